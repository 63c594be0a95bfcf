"""
Error types for the print agent.

Hierarchy:
    PrintAgentError (base)
    ├── BadRequest       - payload missing or malformed (400)
    ├── Unconfigured     - no printer name mapped for the logical printer (503)
    ├── PrinterNotFound  - no exact match and no default device (404)
    ├── LoadFailed       - document shell or stabilization script failed (500)
    ├── PrintTimeout     - the request exceeded its wall-clock budget (504)
    └── PrintFailed      - device/driver reported failure (500)

All errors are local to one request. Nothing here is retried by the agent.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    UNCONFIGURED = "unconfigured"
    PRINTER_NOT_FOUND = "printer_not_found"
    LOAD_FAILED = "load_failed"
    TIMEOUT = "timeout"
    PRINT_FAILED = "print_failed"


class PrintAgentError(Exception):
    """
    Base exception for all print agent errors.

    Args:
        message: Human-readable error message, surfaced to the HTTP caller verbatim
        details: Optional dictionary with additional context for logs
    """

    kind: ErrorKind = ErrorKind.PRINT_FAILED
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class BadRequest(PrintAgentError):
    kind = ErrorKind.BAD_REQUEST
    status_code = 400


class Unconfigured(PrintAgentError):
    kind = ErrorKind.UNCONFIGURED
    status_code = 503


class PrinterNotFound(PrintAgentError):
    """Raised when resolution finds neither the configured printer nor a default."""

    kind = ErrorKind.PRINTER_NOT_FOUND
    status_code = 404

    def __init__(self, printer_name: str, label: str = "Printer"):
        super().__init__(
            f'{label} "{printer_name}" not found and no default printer available.',
            details={"printer_name": printer_name},
        )
        self.printer_name = printer_name


class LoadFailed(PrintAgentError):
    kind = ErrorKind.LOAD_FAILED
    status_code = 500


class PrintTimeout(PrintAgentError):
    kind = ErrorKind.TIMEOUT
    status_code = 504


class PrintFailed(PrintAgentError):
    kind = ErrorKind.PRINT_FAILED
    status_code = 500


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    cls.kind: cls.status_code
    for cls in (BadRequest, Unconfigured, PrinterNotFound, LoadFailed, PrintTimeout, PrintFailed)
}


__all__ = [
    "STATUS_BY_KIND",
    "BadRequest",
    "ErrorKind",
    "LoadFailed",
    "PrintAgentError",
    "PrintFailed",
    "PrintTimeout",
    "PrinterNotFound",
    "Unconfigured",
]
