from __future__ import annotations

"""
Status endpoints for the print agent.

- `/`       : running summary (version, port, platform, configured printers)
- `/health` : liveness probe; always 200, also reports render engine state
"""

import platform
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Blueprint

from print_agent.core.config import get_settings
from print_agent.printing.engine import engine_status

health_bp = Blueprint("health", __name__)


@health_bp.get("/")
def index():
    from print_agent import __version__

    settings = get_settings()
    return {
        "status": "running",
        "version": __version__,
        "port": settings.port,
        "platform": platform.system().lower(),
        "defaultPrinter": settings.printer_name or None,
        "kitchenPrinter": settings.kitchen_printer_name or None,
        "message": "Print Agent is running. Use POST /print, /print-kot or /test-print.",
    }


@health_bp.get("/health")
def health():
    status: Dict[str, Any] = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    status.update(engine_status())
    return status, 200
