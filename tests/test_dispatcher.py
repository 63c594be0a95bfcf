import asyncio
import io

from PIL import Image

from conftest import FakeBrowser, FakeDriver, printer
from print_agent.core.config import EscposDevice
from print_agent.printing import dispatcher as dispatcher_mod
from print_agent.printing.dispatcher import GENERIC_FAILURE, PrintDispatcher, build_job_options
from print_agent.printing.drivers import DriverResult
from print_agent.printing.escpos_device import prepare_raster
from print_agent.printing.models import (
    ROLL_80MM,
    DocumentKind,
    PrintRequest,
    PrinterDescriptor,
    ResolutionReason,
    ResolvedTarget,
)
from print_agent.printing.session import RenderSession


def _target(name="XP-80C", driver="system", reason=ResolutionReason.EXACT_MATCH):
    return ResolvedTarget(PrinterDescriptor(name=name, driver=driver), reason)


def _submit(settings, driver, target, profile=ROLL_80MM, escpos_devices=()):
    browser = FakeBrowser()
    request = PrintRequest(DocumentKind.HTML, "<html><body><p>Bill</p></body></html>")

    async def run():
        async with RenderSession(browser.factory(), request, settings) as session:
            await session.await_stable(profile)
            options = build_job_options(target, session)
            return await PrintDispatcher(driver, escpos_devices).submit(session, target, options)

    return asyncio.run(run())


def test_success_reports_printer_and_job(settings):
    driver = FakeDriver([printer("XP-80C")])
    outcome = _submit(settings, driver, _target())
    assert outcome.succeeded
    assert outcome.printer_name == "XP-80C"
    assert outcome.resolution is ResolutionReason.EXACT_MATCH
    assert outcome.details == {"job_id": "XP-80C-42"}
    submitted = driver.submitted[0]
    assert submitted["existed"] and submitted["head"] == b"%PDF-"
    opts = submitted["options"]
    assert opts.silent and opts.print_background and not opts.color
    assert opts.page_size.width_mm == 80


def test_without_profile_driver_defaults_apply(settings):
    driver = FakeDriver()
    _submit(settings, driver, _target(), profile=None)
    opts = driver.submitted[0]["options"]
    assert opts.margins is None
    assert opts.page_size is None


def test_driver_failure_keeps_reason(settings):
    driver = FakeDriver(result=DriverResult(False, "lp: Unable to connect to printer"))
    outcome = _submit(settings, driver, _target())
    assert not outcome.succeeded
    assert outcome.error_kind == "print_failed"
    assert outcome.failure_reason == "lp: Unable to connect to printer"
    assert outcome.printer_name == "XP-80C"


def test_blank_failure_reason_becomes_generic(settings):
    driver = FakeDriver(result=DriverResult(False, "   "))
    outcome = _submit(settings, driver, _target())
    assert not outcome.succeeded
    assert outcome.failure_reason == GENERIC_FAILURE == "Print failed"


def test_driver_exception_is_negative_outcome(settings):
    class Exploding(FakeDriver):
        def print_file(self, path, options):
            raise OSError("spooler went away")

    outcome = _submit(settings, Exploding(), _target())
    assert not outcome.succeeded
    assert outcome.failure_reason == "spooler went away"


def test_escpos_target_prints_raster(settings, monkeypatch):
    printed = {}

    def _fake_print_raster(device, png):
        printed["device"] = device.name
        printed["png"] = png
        return DriverResult(True, "ok")

    monkeypatch.setattr(dispatcher_mod, "print_raster", _fake_print_raster)
    device = EscposDevice(name="Counter", network_ip="10.0.0.9")
    driver = FakeDriver()
    outcome = _submit(settings, driver, _target("Counter", driver="escpos"), escpos_devices=[device])
    assert outcome.succeeded
    assert printed["device"] == "Counter"
    assert printed["png"].startswith(b"\x89PNG")
    assert driver.submitted == []


def test_prepare_raster_scales_to_dot_width():
    buf = io.BytesIO()
    Image.new("RGBA", (302, 100), (0, 0, 0, 0)).save(buf, format="PNG")
    img = prepare_raster(buf.getvalue(), 576)
    assert img.mode == "L"
    assert img.size == (576, 191)
    # transparent areas become white paper
    assert img.getpixel((10, 10)) == 255
