import asyncio
import base64
import concurrent.futures

import pytest

from conftest import FakeBrowser, FakeDriver, printer
from print_agent.printing.engine import RenderEngine
from print_agent.printing.models import DocumentKind, LogicalPrinter, PrintRequest, ResolutionReason
from print_agent.printing.orchestrator import build_test_document, print_document, run_print_job

RECEIPT = '<html><body><h1>Bill #1042</h1><div id="barcode-1042"><svg><rect width="2" height="40"></rect></svg></div></body></html>'


def _run(request, settings, browser, driver):
    return asyncio.run(run_print_job(request, settings, browser_factory=browser.factory(), driver=driver))


def test_end_to_end_success(settings, tracked_tmpdirs):
    browser = FakeBrowser()
    driver = FakeDriver([printer("Office", is_default=True), printer("XP-80C Main")])
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, browser, driver)

    assert outcome.succeeded, outcome.failure_reason
    assert outcome.printer_name == "XP-80C Main"
    assert outcome.resolution is ResolutionReason.EXACT_MATCH
    assert outcome.duration_ms >= 0
    assert len(driver.submitted) == 1
    assert driver.submitted[0]["options"].job_name == "print-agent-main"
    assert driver.submitted[0]["options"].page_size.width_mm == 80
    assert browser.contexts[0].closed
    assert all(not d.exists() for d in tracked_tmpdirs)


def test_kitchen_ticket_uses_kot_printer(settings):
    driver = FakeDriver([printer("XP-80C Main", is_default=True), printer("XP-80C")])
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT, LogicalPrinter.KITCHEN), settings, FakeBrowser(), driver)
    assert outcome.succeeded
    assert outcome.printer_name == "XP-80C"


def test_default_fallback_is_reported(settings):
    driver = FakeDriver([printer("Office", is_default=True)])
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, FakeBrowser(), driver)
    assert outcome.succeeded
    assert outcome.printer_name == "Office"
    assert outcome.resolution is ResolutionReason.DEFAULT_FALLBACK


@pytest.mark.parametrize("payload", ["", "   ", None])
def test_empty_payload_is_bad_request_without_session(settings, tracked_tmpdirs, payload):
    browser = FakeBrowser()
    driver = FakeDriver([printer("XP-80C Main")])
    outcome = _run(PrintRequest(DocumentKind.HTML, payload), settings, browser, driver)
    assert not outcome.succeeded
    assert outcome.error_kind == "bad_request"
    assert outcome.failure_reason == "Missing html in request body"
    assert tracked_tmpdirs == []
    assert browser.contexts == []
    assert driver.submitted == []


def test_invalid_pdf_is_bad_request_without_session(settings, tracked_tmpdirs):
    request = PrintRequest(DocumentKind.PDF, base64.b64encode(b"hello").decode())
    outcome = _run(request, settings, FakeBrowser(), FakeDriver([printer("XP-80C Main")]))
    assert outcome.error_kind == "bad_request"
    assert tracked_tmpdirs == []


def test_printer_not_found_without_session(settings, tracked_tmpdirs):
    browser = FakeBrowser()
    driver = FakeDriver([printer("Office"), printer("Label")])
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, browser, driver)
    assert not outcome.succeeded
    assert outcome.error_kind == "printer_not_found"
    assert outcome.printer_name == "XP-80C Main"
    assert outcome.failure_reason == 'Printer "XP-80C Main" not found and no default printer available.'
    assert tracked_tmpdirs == []
    assert browser.contexts == []


def test_unconfigured_kitchen_printer(settings):
    settings = settings.model_copy(update={"kitchen_printer_name": ""})
    outcome = _run(
        PrintRequest(DocumentKind.HTML, RECEIPT, LogicalPrinter.KITCHEN), settings, FakeBrowser(), FakeDriver()
    )
    assert outcome.error_kind == "unconfigured"
    assert outcome.failure_reason == "No KOT printer configured."


def test_enumeration_failure_is_print_failed(settings):
    driver = FakeDriver(enum_error=RuntimeError("lpstat: scheduler is not running"))
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, FakeBrowser(), driver)
    assert outcome.error_kind == "print_failed"
    assert "Could not enumerate printers" in outcome.failure_reason


def test_load_failure_outcome_names_printer(settings, tracked_tmpdirs):
    from playwright.async_api import Error as PlaywrightError

    browser = FakeBrowser(load_error=PlaywrightError("net::ERR_FAILED"))
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, browser, FakeDriver([printer("XP-80C Main")]))
    assert outcome.error_kind == "load_failed"
    assert outcome.printer_name == "XP-80C Main"
    assert browser.contexts[0].closed
    assert not tracked_tmpdirs[0].exists()


def test_timeout_cleans_up_session(settings, tracked_tmpdirs):
    settings = settings.model_copy(update={"print_timeout_seconds": 0.2})
    browser = FakeBrowser(stabilize_delay=30)
    driver = FakeDriver([printer("XP-80C Main")])
    outcome = _run(PrintRequest(DocumentKind.HTML, RECEIPT), settings, browser, driver)
    assert not outcome.succeeded
    assert outcome.error_kind == "timeout"
    assert outcome.printer_name == "XP-80C Main"
    assert outcome.duration_ms < 5000
    assert browser.contexts[0].closed
    assert not tracked_tmpdirs[0].exists()
    assert driver.submitted == []


def test_concurrent_requests_have_independent_sessions(settings, tracked_tmpdirs):
    browser = FakeBrowser()
    driver = FakeDriver([printer("XP-80C Main"), printer("XP-80C")])
    bill = PrintRequest(DocumentKind.HTML, "<html><body>BILL</body></html>")
    kot = PrintRequest(DocumentKind.HTML, "<html><body>KOT</body></html>", LogicalPrinter.KITCHEN)

    async def both():
        factory = browser.factory()
        return await asyncio.gather(
            run_print_job(bill, settings, browser_factory=factory, driver=driver),
            run_print_job(kot, settings, browser_factory=factory, driver=driver),
        )

    first, second = asyncio.run(both())
    assert first.succeeded and second.succeeded
    assert {first.printer_name, second.printer_name} == {"XP-80C Main", "XP-80C"}
    assert len(browser.contexts) == 2
    assert {p.html for p in browser.pages} == {bill.payload, kot.payload}
    assert len(set(tracked_tmpdirs)) == 2
    paths = {s["path"] for s in driver.submitted}
    assert len(paths) == 2
    assert all(not d.exists() for d in tracked_tmpdirs)


def test_pdf_document_printed_as_is(settings):
    pdf = b"%PDF-1.4\n%%EOF\n"
    driver = FakeDriver([printer("XP-80C Main")])
    browser = FakeBrowser()
    outcome = _run(PrintRequest(DocumentKind.PDF, base64.b64encode(pdf).decode()), settings, browser, driver)
    assert outcome.succeeded
    assert browser.contexts == []
    assert driver.submitted[0]["head"] == b"%PDF-"
    assert driver.submitted[0]["options"].page_size is None


def test_print_document_runs_on_engine_thread(settings):
    browser = FakeBrowser()

    async def launcher():
        return browser

    engine = RenderEngine(launcher=launcher)
    try:
        driver = FakeDriver([printer("XP-80C Main")])
        outcome = print_document(PrintRequest(DocumentKind.HTML, RECEIPT), settings, engine=engine, driver=driver)
    finally:
        engine.stop()
    assert outcome.succeeded
    assert len(browser.contexts) == 1


def test_engine_run_times_out(settings):
    engine = RenderEngine()

    async def slow():
        await asyncio.sleep(30)

    try:
        with pytest.raises(concurrent.futures.TimeoutError):
            engine.run(slow(), timeout=0.1)
    finally:
        engine.stop()


def test_test_document_escapes_printer_name():
    html = build_test_document("<XP & Co>")
    assert "&lt;XP &amp; Co&gt;" in html
    assert "Test Print" in html
