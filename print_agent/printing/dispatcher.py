"""
Print dispatcher: submit a rendered session to a resolved device and map the result.

Each submission gets exactly one completion future (the executor future around
the blocking driver call). A negative result always carries a reason. Nothing
is retried here.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING, Dict

from print_agent.core.errors import ErrorKind, PrintFailed

from .drivers import DriverResult, PrinterDriver
from .escpos_device import print_raster
from .models import JobOptions, PrintOutcome, ResolvedTarget

if TYPE_CHECKING:
    from print_agent.core.config import EscposDevice

    from .session import RenderSession

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Print failed"


def build_job_options(target: ResolvedTarget, session: "RenderSession", job_name: str = "print-agent") -> JobOptions:
    """
    Silent, background graphics on, monochrome. Margins and page size are explicit only
    when a medium profile drove the layout; otherwise the driver applies its defaults.
    """
    return JobOptions(
        device_name=target.name,
        silent=True,
        print_background=True,
        color=False,
        margins=session.margins,
        page_size=session.page_size,
        job_name=job_name,
    )


class PrintDispatcher:
    """Routes a rendered document to the OS spooler or to an ESC/POS device."""

    def __init__(self, driver: PrinterDriver, escpos_devices: Iterable["EscposDevice"] = ()):
        self.driver = driver
        self.escpos_devices: Dict[str, "EscposDevice"] = {d.name: d for d in escpos_devices}

    async def submit(self, session: "RenderSession", target: ResolvedTarget, options: JobOptions) -> PrintOutcome:
        started = time.monotonic()
        loop = asyncio.get_running_loop()
        logger.info("Printing to %s...", target.name)

        if target.descriptor.driver == "escpos":
            device = self.escpos_devices.get(target.name)
            if device is None:
                raise PrintFailed(f"ESC/POS device '{target.name}' is not configured")
            png = await session.rasterize()
            completion = loop.run_in_executor(None, print_raster, device, png)
        else:
            path = await session.export_pdf(options)
            completion = loop.run_in_executor(None, self.driver.print_file, path, options)

        try:
            result: DriverResult = await completion
        except Exception as e:
            logger.exception("Print submission raised: %s", e)
            result = DriverResult(False, str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        if result.success:
            logger.info("Print successful on %s (%s)", target.name, result.message)
            details = {"job_id": result.job_id} if result.job_id else {}
            return PrintOutcome(
                succeeded=True,
                printer_name=target.name,
                duration_ms=duration_ms,
                resolution=target.reason,
                details=details,
            )

        reason = (result.message or "").strip() or GENERIC_FAILURE
        logger.error("Print failed on %s: %s", target.name, reason)
        return PrintOutcome(
            succeeded=False,
            printer_name=target.name,
            duration_ms=duration_ms,
            failure_reason=reason,
            error_kind=ErrorKind.PRINT_FAILED.value,
            resolution=target.reason,
        )


__all__ = ["GENERIC_FAILURE", "PrintDispatcher", "build_job_options"]
