from __future__ import annotations

"""
Settings endpoints for the print agent.

This blueprint provides:
- GET/POST /settings: edit port, printer names, paper profiles and offset

Saving writes the config document and swaps the in-process settings snapshot;
requests already in flight keep the snapshot they started with. A port change
only takes effect after a restart, so it is flashed as a notice.
"""

from typing import Any, Dict, List

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from pydantic import ValidationError

from print_agent.core.config import AgentSettings, get_config_path, get_settings, save_settings
from print_agent.printing.orchestrator import list_available_printers

settings_bp = Blueprint("settings", __name__)

TEXT_FIELDS = ("printer_name", "kitchen_printer_name", "main_paper", "kitchen_paper")
NUMBER_FIELDS = ("port", "horizontal_offset_mm", "minimum_height_mm", "print_timeout_seconds")
PAPER_CHOICES = ("80mm", "58mm", "none")


def _printer_names(settings: AgentSettings) -> List[str]:
    try:
        return [p.name for p in list_available_printers(settings)]
    except Exception as e:
        current_app.logger.warning("Printer enumeration failed for settings form: %s", e)
        return []


def _merge_form(current: AgentSettings, form) -> Dict[str, Any]:
    data = current.model_dump(mode="json")
    for key in TEXT_FIELDS:
        if key in form:
            data[key] = form.get(key, "").strip()
    for key in NUMBER_FIELDS:
        raw = (form.get(key, "") or "").strip()
        if raw != "":
            data[key] = raw
    return data


def _render(settings: AgentSettings, code: int = 200):
    return (
        render_template(
            "settings.html",
            settings=settings,
            printers=_printer_names(settings),
            paper_choices=PAPER_CHOICES,
            config_path=get_config_path(),
        ),
        code,
    )


@settings_bp.route("/settings", methods=["GET", "POST"])
def settings_view():
    current = get_settings()
    if request.method == "GET":
        return _render(current)

    current_app.logger.info("POST /settings received: form_keys=%s", list(request.form.keys()))
    try:
        updated = AgentSettings.model_validate(_merge_form(current, request.form))
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(part) for part in err.get("loc", ())) or "settings"
            flash(f"{field}: {err.get('msg')}", "error")
        return _render(current, 400)

    save_settings(updated, path=get_config_path())
    flash("Settings saved", "success")
    if updated.port != current.port:
        flash(f"Port changed to {updated.port}. Restart the agent for it to take effect.", "warning")
    return redirect(url_for("settings.settings_view"))
