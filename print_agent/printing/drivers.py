"""
OS printer drivers: enumeration and file submission.

- CupsDriver (Linux/macOS): pycups for enumeration when the scheduler is reachable,
  `lpstat` otherwise; `lp` for submission
- WindowsDriver: pywin32 spooler enumeration, GhostScript `mswinpr2` for submission

Drivers are blocking; the pipeline calls them from an executor. A non-zero exit
of the external command is reported as a negative DriverResult, never raised.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .models import MM_PER_INCH, JobOptions, PrinterDescriptor, PrinterStatus

try:
    import cups  # type: ignore
except ImportError:  # optional dependency (print-agent[cups])
    cups = None

logger = logging.getLogger(__name__)

SUBMIT_TIMEOUT_SECONDS = 60
ENUM_TIMEOUT_SECONDS = 10

# IPP printer-state values reported by CUPS
_IPP_STATUS = {3: PrinterStatus.READY, 4: PrinterStatus.PRINTING, 5: PrinterStatus.STOPPED}


@dataclass(frozen=True)
class DriverResult:
    success: bool
    message: str = ""
    job_id: Optional[str] = None


class PrinterDriver(ABC):
    """Abstract base class for platform-specific print drivers."""

    name: str = "abstract"

    @abstractmethod
    def list_printers(self) -> List[PrinterDescriptor]:
        """Enumerate printers currently known to the OS, in OS order."""

    @abstractmethod
    def get_default_printer(self) -> Optional[str]:
        """Return the OS default printer name if any."""

    @abstractmethod
    def print_file(self, path: Path, options: JobOptions) -> DriverResult:
        """Submit a rendered PDF file to the named device."""


def _run(cmd: Sequence[str], timeout: float) -> subprocess.CompletedProcess:
    env = dict(os.environ, LC_ALL="C", LANG="C")
    return subprocess.run(list(cmd), capture_output=True, text=True, timeout=timeout, env=env)


class CupsDriver(PrinterDriver):
    """CUPS driver: pycups enumeration with an lpstat fallback, lp submission."""

    name = "cups"

    _REQUEST_ID = re.compile(r"request id is (\S+)")

    def __init__(self, lp_path: str = "lp", lpstat_path: str = "lpstat"):
        self.lp_path = lp_path
        self.lpstat_path = lpstat_path

    def _cups_connection(self):
        if cups is None:
            return None
        try:
            return cups.Connection()
        except RuntimeError as e:
            # scheduler not reachable over IPP; lpstat reports the real error
            logger.debug("CUPS connection failed, using lpstat: %s", e)
            return None

    def get_default_printer(self) -> Optional[str]:
        conn = self._cups_connection()
        if conn is not None:
            return conn.getDefault() or None
        return self._lpstat_default()

    def list_printers(self) -> List[PrinterDescriptor]:
        conn = self._cups_connection()
        if conn is not None:
            return printers_from_cups(conn.getPrinters(), conn.getDefault())
        return self._lpstat_printers()

    def _lpstat_default(self) -> Optional[str]:
        proc = _run([self.lpstat_path, "-d"], ENUM_TIMEOUT_SECONDS)
        # sample: "system default destination: XP-80C"
        text = (proc.stdout or "").strip()
        if proc.returncode != 0 or "no system default" in text or ":" not in text:
            return None
        return text.split(":", 1)[1].strip() or None

    def _lpstat_printers(self) -> List[PrinterDescriptor]:
        default_name = self._lpstat_default()
        proc = _run([self.lpstat_path, "-l", "-p"], ENUM_TIMEOUT_SECONDS)
        if proc.returncode != 0:
            err = (proc.stderr or "").strip()
            # lpstat exits non-zero when no destinations exist at all
            if "no destinations" in err.lower():
                return []
            raise RuntimeError(err or f"lpstat failed (rc={proc.returncode})")
        return parse_lpstat(proc.stdout or "", default_name)

    def build_command(self, path: Path, options: JobOptions) -> List[str]:
        cmd = [self.lp_path, "-d", options.device_name, "-n", str(max(1, options.copies)), "-t", options.job_name]
        if options.page_size is not None:
            size = options.page_size
            cmd.extend(["-o", f"media=Custom.{size.width_mm:g}x{size.height_mm:g}mm"])
        if options.margins is not None:
            m = options.margins
            # CUPS page-* options are in points
            for side, value in (("left", m.left), ("right", m.right), ("top", m.top), ("bottom", m.bottom)):
                cmd.extend(["-o", f"page-{side}={int(round(value * 72 / 25.4))}"])
        if not options.color:
            cmd.extend(["-o", "print-color-mode=monochrome"])
        if options.landscape:
            cmd.extend(["-o", "landscape"])
        cmd.append(str(path))
        return cmd

    def print_file(self, path: Path, options: JobOptions) -> DriverResult:
        cmd = self.build_command(path, options)
        logger.debug("Submitting via lp: %s", cmd)
        try:
            proc = _run(cmd, SUBMIT_TIMEOUT_SECONDS)
        except FileNotFoundError:
            return DriverResult(False, f"'{self.lp_path}' command not found. Is CUPS installed?")
        except subprocess.TimeoutExpired:
            return DriverResult(False, f"lp did not finish within {SUBMIT_TIMEOUT_SECONDS}s")
        if proc.returncode != 0:
            out = ((proc.stderr or "") + (proc.stdout or "")).strip()
            return DriverResult(False, out or f"lp failed (rc={proc.returncode})")
        out = (proc.stdout or "").strip()
        match = self._REQUEST_ID.search(out)
        return DriverResult(True, out or "Submitted print job via lp.", match.group(1) if match else None)


def printers_from_cups(found: Dict[str, Dict], default_name: Optional[str] = None) -> List[PrinterDescriptor]:
    """Map `cups.Connection().getPrinters()` output to descriptors, keeping scheduler order."""
    printers: List[PrinterDescriptor] = []
    for name, info in found.items():
        state = int(info.get("printer-state", 0) or 0)
        printers.append(
            PrinterDescriptor(
                name=name,
                display_name=info.get("printer-info") or name,
                is_default=(name == default_name),
                status=_IPP_STATUS.get(state, PrinterStatus.UNKNOWN),
            )
        )
    return printers


def parse_lpstat(output: str, default_name: Optional[str] = None) -> List[PrinterDescriptor]:
    """
    Parse `lpstat -l -p` output into descriptors, preserving OS order.

    Printer lines look like "printer XP-80C is idle.  enabled since ..."; the
    indented "Description:" line that follows carries the display name.
    """
    records: List[Dict[str, str]] = []
    for line in output.splitlines():
        if line.startswith("printer "):
            parts = line.split(None, 2)
            if len(parts) < 2:
                continue
            # state text follows the name; names may contain "disabled" etc.
            records.append({"name": parts[1], "state": parts[2] if len(parts) > 2 else "", "description": ""})
        elif records and line.strip().startswith("Description:"):
            records[-1]["description"] = line.split(":", 1)[1].strip()

    printers: List[PrinterDescriptor] = []
    for rec in records:
        state = rec["state"]
        if state.startswith("disabled"):
            status = PrinterStatus.STOPPED
        elif state.startswith("now printing"):
            status = PrinterStatus.PRINTING
        elif state.startswith("is idle"):
            status = PrinterStatus.READY
        else:
            status = PrinterStatus.UNKNOWN
        printers.append(
            PrinterDescriptor(
                name=rec["name"],
                display_name=rec["description"] or rec["name"],
                is_default=(rec["name"] == default_name),
                status=status,
            )
        )
    return printers


_WIN32_PRINTING = 0x00000400
_WIN32_STOPPED_MASK = 0x00000001 | 0x00000002 | 0x00000080  # paused | error | offline


class WindowsDriver(PrinterDriver):
    """Windows spooler enumeration via pywin32; submission through GhostScript's mswinpr2 device."""

    name = "windows"

    def __init__(self, ghostscript_path: str = "gswin64c.exe"):
        self.ghostscript_path = ghostscript_path

    def get_default_printer(self) -> Optional[str]:
        import win32print  # type: ignore

        try:
            return win32print.GetDefaultPrinter() or None
        except Exception:
            return None

    def list_printers(self) -> List[PrinterDescriptor]:
        import win32print  # type: ignore

        default_name = self.get_default_printer()
        flags = win32print.PRINTER_ENUM_LOCAL | win32print.PRINTER_ENUM_CONNECTIONS
        printers: List[PrinterDescriptor] = []
        for info in win32print.EnumPrinters(flags, None, 2):
            name = info["pPrinterName"]
            raw_status = int(info.get("Status", 0) or 0)
            if raw_status & _WIN32_STOPPED_MASK:
                status = PrinterStatus.STOPPED
            elif raw_status & _WIN32_PRINTING:
                status = PrinterStatus.PRINTING
            else:
                status = PrinterStatus.READY
            printers.append(
                PrinterDescriptor(
                    name=name,
                    display_name=info.get("pComment") or name,
                    is_default=(name == default_name),
                    status=status,
                )
            )
        return printers

    def build_args(self, path: Path, options: JobOptions) -> List[str]:
        args = [
            self.ghostscript_path,
            "-dBATCH",
            "-dNOPAUSE",
            "-dSAFER",
            f"-dNumCopies={max(1, options.copies)}",
            "-sDEVICE=mswinpr2",
            f"-sOutputFile=%printer%{options.device_name}",
        ]
        if options.page_size is not None:
            # media in points; the rendered PDF already carries its margins
            size = options.page_size
            args.extend(
                [
                    f"-dDEVICEWIDTHPOINTS={int(round(size.width_mm * 72 / MM_PER_INCH))}",
                    f"-dDEVICEHEIGHTPOINTS={int(round(size.height_mm * 72 / MM_PER_INCH))}",
                    "-dFIXEDMEDIA",
                    "-dPDFFitPage",
                ]
            )
        if not options.color:
            args.append("-dBitsPerPixel=1")
        args.append(str(path))
        return args

    def print_file(self, path: Path, options: JobOptions) -> DriverResult:
        args = self.build_args(path, options)
        logger.debug("Submitting via GhostScript: %s", args)
        try:
            proc = subprocess.run(args, capture_output=True, text=True, timeout=SUBMIT_TIMEOUT_SECONDS)
        except FileNotFoundError:
            return DriverResult(False, f"GhostScript not found at '{self.ghostscript_path}'")
        except subprocess.TimeoutExpired:
            return DriverResult(False, f"GhostScript did not finish within {SUBMIT_TIMEOUT_SECONDS}s")
        if proc.returncode != 0:
            out = ((proc.stderr or "") + (proc.stdout or "")).strip()
            return DriverResult(False, out or f"GhostScript failed (rc={proc.returncode})")
        return DriverResult(True, f"Submitted print job to '{options.device_name}'.")


def get_printer_driver(ghostscript_path: str = "gswin64c.exe") -> PrinterDriver:
    """Factory for the platform-specific print driver."""
    if platform.system().lower() == "windows":
        return WindowsDriver(ghostscript_path=ghostscript_path)
    return CupsDriver()


__all__ = [
    "CupsDriver",
    "DriverResult",
    "PrinterDriver",
    "WindowsDriver",
    "get_printer_driver",
    "parse_lpstat",
    "printers_from_cups",
]
