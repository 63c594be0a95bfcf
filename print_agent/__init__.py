"""
Print Agent package

This module provides the application factory:
- Configures logging through print_agent.core.logging
- Creates a Flask app with the template folder pointing at the repository-level dir
- Initializes CSRF protection (settings form) and open CORS (POS web apps call the agent from the browser)
- Registers the web blueprints
- Optionally ensures the background render engine is started
"""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Optional

from flask import Flask, g, request
from flask_cors import CORS
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf
from jinja2 import StrictUndefined

__version__ = "1.0.0"

csrf = CSRFProtect()


def _default_secret_key() -> str:
    return os.environ.get("PRINTAGENT_SECRET_KEY", "printagent_dev_secret_key")


def _set_request_id() -> None:
    g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex


def _set_csrf_cookie(response):
    """
    Keep a CSRF cookie on safe responses so the settings form works after POST→redirect.
    """
    token = generate_csrf()
    response.set_cookie("csrf_token", token, secure=False, httponly=False, samesite="Lax")
    return response


def create_app(
    config_overrides: Optional[dict] = None,
    register_engine: bool = True,
    configure_logs: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after defaults
    - register_engine: if True, starts the render engine loop thread up front
    - configure_logs: if True, installs the agent's root logging handlers

    Returns:
    - Flask app instance
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root = pkg_dir.parent
    templates_dir = repo_root / "templates"

    app = Flask(
        "print_agent",
        template_folder=str(templates_dir) if templates_dir.exists() else None,
    )
    app.jinja_env.undefined = StrictUndefined

    app.secret_key = _default_secret_key()
    # Receipts with embedded images and base64 PDFs can be large.
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("PRINTAGENT_MAX_CONTENT_LENGTH", 50 * 1024 * 1024))
    app.url_map.strict_slashes = False

    csrf.init_app(app)
    CORS(app)

    if configure_logs:
        from print_agent.core.logging import configure_logging

        configure_logging()
    app.logger.info("Print Agent app created")

    @app.before_request
    def _before_request():
        _set_request_id()

    @app.after_request
    def _after_request(response):
        if request.method in ("GET", "HEAD") or (300 <= response.status_code < 400):
            return _set_csrf_cookie(response)
        return response

    from print_agent.web import api_bp, diagnostics_bp, health_bp, settings_bp

    for bp in (health_bp, api_bp, settings_bp, diagnostics_bp):
        app.register_blueprint(bp)

    if register_engine:
        from print_agent.printing.engine import ensure_engine

        ensure_engine()
        app.logger.info("Render engine ensured")

    if config_overrides:
        app.config.update(config_overrides)

    return app


__all__ = ["__version__", "create_app", "csrf"]
