# Ensure the repository root is on sys.path so `print_agent` can be imported in tests,
# and provide in-memory stand-ins for the headless browser and the OS print driver.

import asyncio
import io
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

from print_agent.core import config as config_mod  # noqa: E402
from print_agent.core.config import AgentSettings  # noqa: E402
from print_agent.printing.drivers import DriverResult, PrinterDriver  # noqa: E402
from print_agent.printing.models import PrinterDescriptor, PrinterStatus  # noqa: E402
from print_agent.printing.session import MEASURE_HEIGHT_SCRIPT, STABILIZE_SCRIPT  # noqa: E402


def _png(width: int = 300, height: int = 120) -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGB", (width, height), (255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


class FakeElement:
    def __init__(self):
        self.removed = False

    async def evaluate(self, script, arg=None):
        self.removed = True

    async def screenshot(self, **kwargs):
        return _png()


class FakePage:
    def __init__(
        self,
        *,
        load_error: Optional[Exception] = None,
        load_delay: float = 0.0,
        stabilize_error: Optional[Exception] = None,
        stabilize_delay: float = 0.0,
        stats: Optional[Dict[str, Any]] = None,
        height_px: int = 400,
    ):
        self.load_error = load_error
        self.load_delay = load_delay
        self.stabilize_error = stabilize_error
        self.stabilize_delay = stabilize_delay
        self.stats = stats if stats is not None else {"images": 0, "graphics": 0, "pendingGraphics": 0, "polls": 0}
        self.height_px = height_px

        self.html: Optional[str] = None
        self.viewport: Optional[Dict[str, int]] = None
        self.styles: List[str] = []
        self.overlays: List[FakeElement] = []
        self.stabilize_args: Optional[Dict[str, Any]] = None
        self.pdf_calls: List[Dict[str, Any]] = []
        self.handlers: Dict[str, Any] = {}

    def on(self, event, handler):
        self.handlers[event] = handler

    async def set_content(self, html, wait_until=None, timeout=None):
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        self.html = html

    async def set_viewport_size(self, size):
        self.viewport = dict(size)

    async def add_style_tag(self, content=None, **kwargs):
        self.styles.append(content)
        el = FakeElement()
        self.overlays.append(el)
        return el

    async def evaluate(self, script, arg=None):
        if script == STABILIZE_SCRIPT:
            self.stabilize_args = arg
            if self.stabilize_delay:
                await asyncio.sleep(self.stabilize_delay)
            if self.stabilize_error is not None:
                raise self.stabilize_error
            return dict(self.stats)
        if script == MEASURE_HEIGHT_SCRIPT:
            return self.height_px
        return None

    async def pdf(self, **kwargs):
        self.pdf_calls.append(kwargs)
        Path(kwargs["path"]).write_bytes(b"%PDF-1.4\n% rendered\n")
        return b""

    async def query_selector(self, selector):
        return FakeElement()

    async def screenshot(self, **kwargs):
        return _png()


class FakeContext:
    def __init__(self, page_kwargs: Dict[str, Any], viewport=None, device_scale_factor=None):
        self.page_kwargs = page_kwargs
        self.viewport = viewport
        self.device_scale_factor = device_scale_factor
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self):
        page = FakePage(**self.page_kwargs)
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    """Chromium stand-in: every new_context() yields an independent context/page pair."""

    def __init__(self, **page_kwargs):
        self.page_kwargs = page_kwargs
        self.contexts: List[FakeContext] = []

    async def new_context(self, viewport=None, device_scale_factor=None, **kwargs):
        ctx = FakeContext(self.page_kwargs, viewport=viewport, device_scale_factor=device_scale_factor)
        self.contexts.append(ctx)
        return ctx

    def is_connected(self) -> bool:
        return True

    async def close(self):
        return None

    @property
    def pages(self) -> List[FakePage]:
        return [p for ctx in self.contexts for p in ctx.pages]

    def factory(self):
        async def _factory():
            return self

        return _factory


class FakeDriver(PrinterDriver):
    name = "fake"

    def __init__(
        self,
        printers: Optional[List[PrinterDescriptor]] = None,
        result: Optional[DriverResult] = None,
        enum_error: Optional[Exception] = None,
    ):
        self.printers = list(printers or [])
        self.result = result or DriverResult(True, "request id is XP-80C-42 (1 file(s))", "XP-80C-42")
        self.enum_error = enum_error
        self.submitted: List[Dict[str, Any]] = []

    def list_printers(self):
        if self.enum_error is not None:
            raise self.enum_error
        return list(self.printers)

    def get_default_printer(self):
        return next((p.name for p in self.printers if p.is_default), None)

    def print_file(self, path, options):
        path = Path(path)
        self.submitted.append(
            {"path": path, "options": options, "existed": path.exists(), "head": path.read_bytes()[:5] if path.exists() else b""}
        )
        return self.result


def printer(name: str, is_default: bool = False, status: PrinterStatus = PrinterStatus.READY) -> PrinterDescriptor:
    return PrinterDescriptor(name=name, display_name=name, is_default=is_default, status=status)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config and log paths at a temp dir and reset the settings snapshot."""
    monkeypatch.setenv("PRINTAGENT_CONFIG_PATH", str(tmp_path / "config.json"))
    monkeypatch.setenv("PRINTAGENT_LOG_PATH", str(tmp_path / "agent.log"))
    monkeypatch.setattr(config_mod, "_SNAPSHOT", None)
    yield tmp_path / "config.json"


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(
        printer_name="XP-80C Main",
        kitchen_printer_name="XP-80C",
        settle_delay_ms=0,
        graphics_poll_interval_ms=1,
        graphics_poll_attempts=5,
        print_timeout_seconds=5,
    )


@pytest.fixture
def tracked_tmpdirs(monkeypatch):
    """Record every session temp dir created through tempfile.mkdtemp."""
    import tempfile

    created: List[Path] = []
    real_mkdtemp = tempfile.mkdtemp

    def _mkdtemp(*args, **kwargs):
        path = real_mkdtemp(*args, **kwargs)
        created.append(Path(path))
        return path

    monkeypatch.setattr(tempfile, "mkdtemp", _mkdtemp)
    return created
