"""
Config utilities for the print agent.

Responsibilities:
- Resolve config/log paths with environment and XDG support
- Provide JSON load/save helpers for the agent's config document
- Validate the document into an immutable AgentSettings snapshot
- Hold the process-wide snapshot; saving replaces it for subsequent requests only
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from print_agent.core.errors import Unconfigured
from print_agent.printing.models import MEDIUM_PROFILES, LogicalPrinter, MediumProfile

logger = logging.getLogger(__name__)


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/printagent/config.json
    2) ~/.config/printagent/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "printagent" / "config.json")
    return str(Path.home() / ".config" / "printagent" / "config.json")


def default_log_path() -> str:
    """
    Resolve the default log file path using:
    1) $XDG_STATE_HOME/printagent/agent.log
    2) ~/.local/state/printagent/agent.log
    """
    xdg = os.environ.get("XDG_STATE_HOME")
    if xdg:
        return str(Path(xdg) / "printagent" / "agent.log")
    return str(Path.home() / ".local" / "state" / "printagent" / "agent.log")


def get_config_path() -> str:
    """
    Return the config path honoring PRINTAGENT_CONFIG_PATH override.
    """
    return os.environ.get("PRINTAGENT_CONFIG_PATH", default_config_path())


def get_log_path() -> str:
    """
    Return the log file path honoring PRINTAGENT_LOG_PATH override.
    """
    return os.environ.get("PRINTAGENT_LOG_PATH", default_log_path())


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


PaperName = Literal["80mm", "58mm", "none"]


class EscposDevice(BaseModel):
    """A directly attached ESC/POS receipt printer, listed next to the OS printers."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    printer_type: Literal["usb", "network", "serial"] = "network"
    usb_vendor_id: str = "0x04b8"
    usb_product_id: str = "0x0e28"
    network_ip: str = ""
    network_port: int = 9100
    serial_port: str = ""
    serial_baudrate: int = 19200
    printer_profile: Optional[str] = None
    receipt_width: int = Field(default=576, ge=280, le=1024)
    cut_feed_lines: int = Field(default=2, ge=0, le=10)


class AgentSettings(BaseModel):
    """
    Read-only configuration snapshot consumed by the print pipeline.

    Unknown keys in the JSON document are ignored so older/newer documents still load.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    port: int = Field(default=4000, ge=1, le=65535)
    printer_name: str = "XP-80C Main"
    kitchen_printer_name: Optional[str] = "XP-80C"
    horizontal_offset_mm: float = 0.0
    main_paper: PaperName = "80mm"
    kitchen_paper: PaperName = "80mm"
    minimum_height_mm: float = Field(default=50.0, ge=0)

    print_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    graphics_selector: str = '[id^="barcode-"]'
    graphics_content_selector: str = "rect, path, polygon, polyline, line, circle, ellipse, text, image, canvas, img"
    graphics_poll_interval_ms: int = Field(default=100, ge=1, le=5000)
    graphics_poll_attempts: int = Field(default=50, ge=0, le=1000)
    settle_delay_ms: int = Field(default=300, ge=0, le=10000)
    device_scale_factor: float = Field(default=2.0, ge=1.0, le=4.0)

    ghostscript_path: str = "gswin64c.exe"
    escpos_devices: List[EscposDevice] = Field(default_factory=list)

    @field_validator("printer_name", "kitchen_printer_name")
    @classmethod
    def _strip_names(cls, v: Optional[str]) -> Optional[str]:
        return (v or "").strip()

    def printer_for(self, logical: LogicalPrinter) -> str:
        """
        Return the configured device name for a logical printer.

        Raises:
            Unconfigured when no name is mapped.
        """
        if logical is LogicalPrinter.KITCHEN:
            name = self.kitchen_printer_name
            if not name:
                raise Unconfigured("No KOT printer configured.")
            return name
        if not self.printer_name:
            raise Unconfigured("No printer configured.")
        return self.printer_name

    def medium_profile_for(self, logical: LogicalPrinter) -> Optional[MediumProfile]:
        """Return the roll geometry for a logical printer, or None when it is not a narrow roll."""
        paper = self.kitchen_paper if logical is LogicalPrinter.KITCHEN else self.main_paper
        profile = MEDIUM_PROFILES.get(paper)
        if profile is None:
            return None
        return replace(profile, minimum_height_mm=self.minimum_height_mm)


_SNAPSHOT: Optional[AgentSettings] = None
_SNAPSHOT_LOCK = threading.Lock()


def load_settings(path: Optional[str] = None) -> AgentSettings:
    """
    Build settings from the config document, falling back to defaults when it is missing.
    Raises pydantic.ValidationError when the document is present but invalid.
    """
    data = load_config(path) or {}
    return AgentSettings.model_validate(data)


def get_settings() -> AgentSettings:
    """
    Return the process-wide settings snapshot, loading it on first use.
    """
    global _SNAPSHOT
    with _SNAPSHOT_LOCK:
        if _SNAPSHOT is None:
            _SNAPSHOT = load_settings()
        return _SNAPSHOT


def reload_settings(path: Optional[str] = None) -> AgentSettings:
    """
    Re-read the config document and replace the snapshot.
    """
    global _SNAPSHOT
    settings = load_settings(path)
    with _SNAPSHOT_LOCK:
        _SNAPSHOT = settings
    logger.info("Settings reloaded from %s", path or get_config_path())
    return settings


def save_settings(settings: AgentSettings, path: Optional[str] = None) -> AgentSettings:
    """
    Persist settings and swap the snapshot. In-flight requests keep the snapshot they started with.
    """
    global _SNAPSHOT
    save_config(settings.model_dump(mode="json"), path=path)
    with _SNAPSHOT_LOCK:
        _SNAPSHOT = settings
    logger.info("Settings saved to %s", path or get_config_path())
    return settings


__all__ = [
    "AgentSettings",
    "EscposDevice",
    "default_config_path",
    "default_log_path",
    "get_config_path",
    "get_log_path",
    "get_settings",
    "load_config",
    "load_settings",
    "reload_settings",
    "save_config",
    "save_settings",
]
