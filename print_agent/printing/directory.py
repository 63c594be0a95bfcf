"""
Printer directory: enumerate devices and resolve a configured name to one of them.

Enumeration is never cached; printers come and go while the agent runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, List, Optional

from print_agent.core.errors import PrinterNotFound

from .drivers import PrinterDriver
from .models import PrinterDescriptor, PrinterStatus, ResolutionReason, ResolvedTarget

if TYPE_CHECKING:
    from print_agent.core.config import EscposDevice

logger = logging.getLogger(__name__)


def list_printers(driver: PrinterDriver, escpos_devices: Iterable["EscposDevice"] = ()) -> List[PrinterDescriptor]:
    """
    Query the OS driver and append configured ESC/POS devices.
    Driver errors propagate to the caller.
    """
    printers = list(driver.list_printers())
    seen = {p.name for p in printers}
    for dev in escpos_devices:
        if dev.name in seen:
            logger.warning("ESC/POS device %r shadows an OS printer of the same name; skipping", dev.name)
            continue
        printers.append(
            PrinterDescriptor(
                name=dev.name,
                display_name=f"{dev.name} (ESC/POS {dev.printer_type})",
                is_default=False,
                status=PrinterStatus.UNKNOWN,
                driver="escpos",
            )
        )
    return printers


def resolve(printer_name: str, candidates: Sequence[PrinterDescriptor], label: str = "Printer") -> ResolvedTarget:
    """
    Resolve a configured printer name against the enumerated candidates.

    - Exact name match wins.
    - Otherwise the first candidate flagged as default, in enumeration order.
    - Otherwise PrinterNotFound naming the requested printer.
    """
    for candidate in candidates:
        if candidate.name == printer_name:
            return ResolvedTarget(candidate, ResolutionReason.EXACT_MATCH)

    default: Optional[PrinterDescriptor] = next((c for c in candidates if c.is_default), None)
    if default is None:
        raise PrinterNotFound(printer_name, label=label)

    logger.warning('%s "%s" not found, using default: %s', label, printer_name, default.name)
    return ResolvedTarget(default, ResolutionReason.DEFAULT_FALLBACK)


__all__ = ["list_printers", "resolve"]
