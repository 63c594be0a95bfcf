from __future__ import annotations

"""
Diagnostics view: the tail of the agent log file.
"""

from flask import Blueprint, render_template, request

from print_agent.core.config import get_log_path
from print_agent.core.logging import tail_log

diagnostics_bp = Blueprint("diagnostics", __name__)

MAX_LINES = 2000


@diagnostics_bp.get("/logs")
def logs():
    try:
        lines = int(request.args.get("lines", 200))
    except ValueError:
        lines = 200
    lines = max(1, min(MAX_LINES, lines))
    log_path = get_log_path()
    entries = tail_log(lines, log_path)
    if request.args.get("format") == "json":
        return {"path": log_path, "lines": entries}
    return render_template("logs.html", log_path=log_path, entries=entries, lines=lines)
