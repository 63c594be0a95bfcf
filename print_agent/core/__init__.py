"""
Core utilities for the print agent.

This package groups non-Flask helpers used across the app:
- config: paths, JSON load/save, the AgentSettings snapshot
- errors: the error hierarchy surfaced by the print pipeline
- logging: Request ID aware logging filters/formatters and root logger config

Exports are explicit to keep static analyzers (e.g., Pyright) happy.
"""

from .config import (
    AgentSettings,
    EscposDevice,
    default_config_path,
    default_log_path,
    get_config_path,
    get_log_path,
    get_settings,
    load_config,
    load_settings,
    reload_settings,
    save_config,
    save_settings,
)
from .errors import (
    BadRequest,
    ErrorKind,
    LoadFailed,
    PrintAgentError,
    PrintFailed,
    PrintTimeout,
    PrinterNotFound,
    Unconfigured,
)
from .logging import (
    JsonFormatter,
    RequestIdFilter,
    configure_logging,
    tail_log,
)

__all__ = [
    # config
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
    # errors
    "BadRequest",
    "ErrorKind",
    "LoadFailed",
    "PrintAgentError",
    "PrintFailed",
    "PrintTimeout",
    "PrinterNotFound",
    "Unconfigured",
    # logging
    "configure_logging",
    "RequestIdFilter",
    "JsonFormatter",
    "tail_log",
]
