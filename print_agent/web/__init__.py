"""
Web module for the print agent.

Exposes blueprints for:
- Status and liveness routes: health_bp
- Print and printer JSON API: api_bp
- Settings form: settings_bp
- Log viewer: diagnostics_bp
"""

from .api import api_bp
from .diagnostics import diagnostics_bp
from .health import health_bp
from .settings import settings_bp

__all__ = ["api_bp", "diagnostics_bp", "health_bp", "settings_bp"]
