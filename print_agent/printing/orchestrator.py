"""
Per-request print orchestration.

Sequence for one request: validate -> map logical printer to a configured name
-> enumerate and resolve the device -> render and stabilize -> submit -> close
the session. The whole sequence runs under one wall-clock budget; when it
expires the render session is torn down before the timeout outcome returns.
Every request yields exactly one PrintOutcome.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from dataclasses import replace
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional

from print_agent.core.config import AgentSettings, get_settings
from print_agent.core.errors import BadRequest, PrintAgentError, PrintFailed, PrintTimeout

from .directory import list_printers, resolve
from .dispatcher import GENERIC_FAILURE, PrintDispatcher, build_job_options
from .drivers import PrinterDriver, get_printer_driver
from .engine import RenderEngine, ensure_engine
from .models import DocumentKind, LogicalPrinter, PrinterDescriptor, PrintOutcome, PrintRequest, ResolvedTarget
from .session import BrowserFactory, RenderSession, decode_pdf_payload

logger = logging.getLogger(__name__)

# Extra wait on the request thread beyond the pipeline's own budget.
GUARD_SECONDS = 5.0


def validate_request(request: PrintRequest) -> None:
    """
    Raises:
        BadRequest when the document body is absent, or a PDF payload cannot be decoded.
    """
    payload = request.payload
    if payload is None or not isinstance(payload, (str, bytes, bytearray)) or not payload.strip():
        raise BadRequest(f"Missing {request.document_kind.value} in request body")
    if request.document_kind is DocumentKind.PDF:
        decode_pdf_payload(payload)


def _printer_label(logical: LogicalPrinter) -> str:
    return "KOT Printer" if logical is LogicalPrinter.KITCHEN else "Printer"


class PrintJob:
    """State for one request; `target` is kept so failures can still name the printer."""

    def __init__(
        self,
        request: PrintRequest,
        settings: AgentSettings,
        browser_factory: BrowserFactory,
        driver: PrinterDriver,
    ):
        self.request = request
        self.settings = settings
        self.browser_factory = browser_factory
        self.driver = driver
        self.target: Optional[ResolvedTarget] = None

    async def run(self) -> PrintOutcome:
        request, settings = self.request, self.settings
        logical = request.logical_printer

        validate_request(request)
        printer_name = settings.printer_for(logical)

        loop = asyncio.get_running_loop()
        try:
            candidates = await loop.run_in_executor(None, list_printers, self.driver, settings.escpos_devices)
        except Exception as e:
            raise PrintFailed(f"Could not enumerate printers: {e}") from e
        self.target = resolve(printer_name, candidates, label=_printer_label(logical))

        profile = None
        if request.document_kind is DocumentKind.HTML:
            profile = settings.medium_profile_for(logical)

        dispatcher = PrintDispatcher(self.driver, settings.escpos_devices)
        async with RenderSession(self.browser_factory, request, settings) as session:
            await session.await_stable(profile)
            options = build_job_options(self.target, session, job_name=f"print-agent-{logical.value}")
            return await dispatcher.submit(session, self.target, options)


def _failure(error: PrintAgentError, target: Optional[ResolvedTarget], duration_ms: int) -> PrintOutcome:
    return PrintOutcome(
        succeeded=False,
        printer_name=target.name if target else getattr(error, "printer_name", None),
        duration_ms=duration_ms,
        failure_reason=error.message or GENERIC_FAILURE,
        error_kind=error.kind.value,
        resolution=target.reason if target else None,
    )


async def run_print_job(
    request: PrintRequest,
    settings: AgentSettings,
    *,
    browser_factory: BrowserFactory,
    driver: PrinterDriver,
) -> PrintOutcome:
    """
    Handle one print request end to end and return its single outcome.
    """
    started = time.monotonic()
    job = PrintJob(request, settings, browser_factory, driver)
    budget = settings.print_timeout_seconds
    try:
        outcome = await asyncio.wait_for(job.run(), timeout=budget)
    except asyncio.TimeoutError:
        outcome = _failure(PrintTimeout(f"Print did not complete within {budget:g}s"), job.target, 0)
    except PrintAgentError as e:
        outcome = _failure(e, job.target, 0)
    except Exception as e:
        logger.exception("Print error: %s", e)
        outcome = _failure(PrintFailed(str(e) or GENERIC_FAILURE), job.target, 0)

    outcome = replace(outcome, duration_ms=int((time.monotonic() - started) * 1000))
    if outcome.succeeded:
        logger.info(
            "%s printed on %s in %dms (%s)",
            request.logical_printer.label,
            outcome.printer_name,
            outcome.duration_ms,
            outcome.resolution.value if outcome.resolution else "-",
        )
    else:
        logger.error(
            "%s print failed [%s] on %s: %s",
            request.logical_printer.label,
            outcome.error_kind,
            outcome.printer_name or "-",
            outcome.failure_reason,
        )
    return outcome


def print_document(
    request: PrintRequest,
    settings: Optional[AgentSettings] = None,
    *,
    engine: Optional[RenderEngine] = None,
    driver: Optional[PrinterDriver] = None,
) -> PrintOutcome:
    """
    Blocking entry point for request threads: run the job on the render engine loop.
    """
    settings = settings or get_settings()
    engine = engine or ensure_engine()
    driver = driver or get_printer_driver(settings.ghostscript_path)
    coro = run_print_job(request, settings, browser_factory=engine.get_browser, driver=driver)
    try:
        return engine.run(coro, timeout=settings.print_timeout_seconds + GUARD_SECONDS)
    except concurrent.futures.TimeoutError:
        error = PrintTimeout(f"Print did not complete within {settings.print_timeout_seconds:g}s")
        return _failure(error, None, int((settings.print_timeout_seconds + GUARD_SECONDS) * 1000))


def list_available_printers(
    settings: Optional[AgentSettings] = None, driver: Optional[PrinterDriver] = None
) -> List[PrinterDescriptor]:
    """
    Fresh enumeration for the /printers endpoint. Driver errors propagate.
    """
    settings = settings or get_settings()
    driver = driver or get_printer_driver(settings.ghostscript_path)
    return list_printers(driver, settings.escpos_devices)


def build_test_document(printer_name: str, now: Optional[datetime] = None) -> str:
    """
    Synthetic receipt used by the test print.
    """
    stamp = (now or datetime.now()).strftime("%H:%M:%S")
    return f"""
      <div style="font-family: monospace; width: 80mm; padding: 5px; box-sizing: border-box;">
        <h2 style="text-align: center;">Test Print</h2>
        <p>--------------------------------</p>
        <p>Printer: {escape(printer_name)}</p>
        <p>Status: Success</p>
        <p>Time: {stamp}</p>
        <p>--------------------------------</p>
        <p style="text-align: center;">Print Agent is working!</p>
      </div>
    """


def trigger_test_print(settings: Optional[AgentSettings] = None, base_url: Optional[str] = None) -> Dict[str, Any]:
    """
    Send the test document to a running agent through its /print endpoint.

    Raises requests.RequestException when the agent cannot be reached.
    """
    import requests

    settings = settings or get_settings()
    url = f"{(base_url or f'http://localhost:{settings.port}').rstrip('/')}/print"
    logger.info("Test print triggered via %s", url)
    resp = requests.post(
        url,
        json={"html": build_test_document(settings.printer_name)},
        timeout=settings.print_timeout_seconds + GUARD_SECONDS,
    )
    return resp.json()


__all__ = [
    "PrintJob",
    "build_test_document",
    "list_available_printers",
    "print_document",
    "run_print_job",
    "trigger_test_print",
    "validate_request",
]
