"""
Value types shared by the printing pipeline.

Everything here is request-scoped: created when a print request arrives and
discarded when it completes. Nothing is cached across requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# CSS reference pixel density used by Chromium when laying out a page.
CSS_PX_PER_INCH = 96.0
MM_PER_INCH = 25.4


def px_to_mm(px: float) -> float:
    return px * MM_PER_INCH / CSS_PX_PER_INCH


def mm_to_px(mm: float) -> int:
    return int(round(mm * CSS_PX_PER_INCH / MM_PER_INCH))


class DocumentKind(str, Enum):
    HTML = "html"
    PDF = "pdf"


class LogicalPrinter(str, Enum):
    MAIN = "main"
    KITCHEN = "kitchen"

    @property
    def label(self) -> str:
        """Short name used in user-facing messages ("Bill sent...", "KOT Printer ...")."""
        return "KOT" if self is LogicalPrinter.KITCHEN else "Bill"


class PrinterStatus(str, Enum):
    READY = "ready"
    PRINTING = "printing"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class ResolutionReason(str, Enum):
    EXACT_MATCH = "exact_match"
    DEFAULT_FALLBACK = "default_fallback"


@dataclass(frozen=True)
class PrintRequest:
    document_kind: DocumentKind
    payload: Union[str, bytes, None]
    logical_printer: LogicalPrinter = LogicalPrinter.MAIN


@dataclass(frozen=True)
class PrinterDescriptor:
    """A printer as reported by the OS (driver="system") or declared in config (driver="escpos")."""

    name: str
    display_name: str = ""
    is_default: bool = False
    status: PrinterStatus = PrinterStatus.UNKNOWN
    driver: str = "system"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "displayName": self.display_name or self.name,
            "status": self.status.value,
            "isDefault": self.is_default,
            "driver": self.driver,
        }


@dataclass(frozen=True)
class ResolvedTarget:
    descriptor: PrinterDescriptor
    reason: ResolutionReason

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class MediumProfile:
    """
    Physical geometry of a receipt roll.

    The unprintable strip is split evenly between both sides; a configured
    horizontal offset shifts content right (positive) or left (negative) but
    never beyond the strip.
    """

    name: str
    total_width_mm: float
    printable_width_mm: float
    minimum_height_mm: float = 50.0

    @property
    def side_margin_mm(self) -> float:
        return max(0.0, (self.total_width_mm - self.printable_width_mm) / 2.0)

    def margins(self, horizontal_offset_mm: float = 0.0) -> Tuple[float, float]:
        """Return (left, right) margins in mm for the given offset."""
        side = self.side_margin_mm
        requested = float(horizontal_offset_mm or 0.0)
        offset = max(-side, min(side, requested))
        if offset != requested:
            logger.warning(
                "Horizontal offset %gmm exceeds the %s side margin; clamped to %gmm", requested, self.name, offset
            )
        return side + offset, side - offset


ROLL_80MM = MediumProfile("80mm", total_width_mm=80.0, printable_width_mm=72.0)
ROLL_58MM = MediumProfile("58mm", total_width_mm=58.0, printable_width_mm=48.0)

MEDIUM_PROFILES: Dict[str, MediumProfile] = {
    ROLL_80MM.name: ROLL_80MM,
    ROLL_58MM.name: ROLL_58MM,
}


@dataclass(frozen=True)
class Margins:
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0

    def as_css(self) -> Dict[str, str]:
        return {
            "top": f"{self.top:g}mm",
            "right": f"{self.right:g}mm",
            "bottom": f"{self.bottom:g}mm",
            "left": f"{self.left:g}mm",
        }


@dataclass(frozen=True)
class PageSize:
    width_mm: float
    height_mm: float


@dataclass(frozen=True)
class JobOptions:
    device_name: str
    silent: bool = True
    print_background: bool = True
    color: bool = False
    margins: Optional[Margins] = None
    page_size: Optional[PageSize] = None
    copies: int = 1
    landscape: bool = False
    job_name: str = "print-agent"


@dataclass(frozen=True)
class PrintOutcome:
    succeeded: bool
    printer_name: Optional[str] = None
    duration_ms: int = 0
    failure_reason: Optional[str] = None
    error_kind: Optional[str] = None
    resolution: Optional[ResolutionReason] = None
    details: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "MEDIUM_PROFILES",
    "ROLL_58MM",
    "ROLL_80MM",
    "DocumentKind",
    "JobOptions",
    "LogicalPrinter",
    "Margins",
    "MediumProfile",
    "PageSize",
    "PrintOutcome",
    "PrintRequest",
    "PrinterDescriptor",
    "PrinterStatus",
    "ResolutionReason",
    "ResolvedTarget",
    "mm_to_px",
    "px_to_mm",
]
