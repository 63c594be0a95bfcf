"""
Render sessions: one isolated headless-browser context per print request.

A session materializes a document, waits until its asynchronous inputs have
settled (images, web fonts, script-generated graphics such as barcodes),
optionally adapts the layout to a receipt roll, and exports the result for the
dispatcher. Sessions are never shared between requests and always clean up
after themselves, whichever way the request ends.

HTML documents are rendered in their own browser context. PDF documents are
decoded into the session's temporary directory and printed as-is.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import math
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from print_agent.core.errors import BadRequest, LoadFailed, PrintFailed, PrintTimeout

from .models import DocumentKind, JobOptions, Margins, MediumProfile, PageSize, PrintRequest, mm_to_px, px_to_mm

if TYPE_CHECKING:
    from playwright.async_api import Browser

    from print_agent.core.config import AgentSettings

logger = logging.getLogger(__name__)

BrowserFactory = Callable[[], Awaitable["Browser"]]

DEFAULT_VIEWPORT = {"width": 800, "height": 600}
PDF_MAGIC = b"%PDF-"

# Waits for images, fonts, and script-generated graphics. A graphic counts as
# rendered once it is, or contains, drawable content (graphics_content_selector);
# an empty <svg> placeholder is still pending. Pages signal completion explicitly
# with <html data-print-ready="true">; polling is the bounded fallback.
STABILIZE_SCRIPT = """
async ({ selector, content, interval, attempts }) => {
  const images = Array.from(document.images);
  await Promise.all(images.map(img => img.complete ? Promise.resolve()
    : new Promise(resolve => {
        img.addEventListener('load', resolve, { once: true });
        img.addEventListener('error', resolve, { once: true });
      })));

  if (document.fonts && document.fonts.ready) {
    await document.fonts.ready;
  }

  const root = document.documentElement;
  const signalled = () => root.getAttribute('data-print-ready') === 'true';
  const drawn = el => el.matches(content) || el.querySelector(content) !== null;
  const pending = () => Array.from(document.querySelectorAll(selector))
    .filter(el => !drawn(el));

  let polls = 0;
  if (!signalled() && pending().length > 0) {
    await new Promise(resolve => {
      let timer = null;
      const observer = new MutationObserver(() => { if (signalled()) { done(); } });
      const done = () => { observer.disconnect(); clearTimeout(timer); resolve(); };
      observer.observe(root, { attributes: true, attributeFilter: ['data-print-ready'] });
      const check = () => {
        if (signalled() || pending().length === 0 || polls >= attempts) { done(); return; }
        polls += 1;
        timer = setTimeout(check, interval);
      };
      check();
    });
  }

  return {
    images: images.length,
    graphics: document.querySelectorAll(selector).length,
    pendingGraphics: pending().length,
    signalled: signalled(),
    polls: polls,
  };
}
"""

MEASURE_HEIGHT_SCRIPT = """
() => Math.ceil(Math.max(
  document.documentElement.scrollHeight,
  document.body ? document.body.scrollHeight : 0,
  document.body ? document.body.getBoundingClientRect().bottom : 0
))
"""

REMOVE_ELEMENT_SCRIPT = "el => el.remove()"


def medium_overlay_css(profile: MediumProfile, horizontal_offset_mm: float = 0.0) -> str:
    """
    Style overlay that clamps content to the printable width and centers it on the roll.
    Payload padding on the page shell is stripped so it cannot push content off-center.
    """
    left, right = profile.margins(horizontal_offset_mm)
    width = profile.printable_width_mm
    return (
        "html, body { margin: 0 !important; padding: 0 !important; }\n"
        "body {\n"
        "  box-sizing: border-box !important;\n"
        f"  width: {width:g}mm !important;\n"
        f"  max-width: {width:g}mm !important;\n"
        f"  margin-left: {left:g}mm !important;\n"
        f"  margin-right: {right:g}mm !important;\n"
        "  overflow-x: hidden !important;\n"
        "}\n"
        "body > * {\n"
        "  box-sizing: border-box !important;\n"
        "  max-width: 100% !important;\n"
        "  padding-left: 0 !important;\n"
        "  padding-right: 0 !important;\n"
        "}\n"
        "img, svg, canvas, table { max-width: 100% !important; }\n"
    )


def decode_pdf_payload(payload: Any) -> bytes:
    """
    Decode a transport-encoded PDF (base64 text, or raw bytes) and check its magic header.

    Raises:
        BadRequest when the payload is not base64 or not a PDF.
    """
    if isinstance(payload, (bytes, bytearray)) and bytes(payload[:5]) == PDF_MAGIC:
        return bytes(payload)
    try:
        data = base64.b64decode(payload or b"", validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise BadRequest(f"pdf payload is not valid base64: {e}") from e
    if not data.startswith(PDF_MAGIC):
        raise BadRequest("pdf payload does not contain a PDF document")
    return data


class RenderSession:
    """
    Request-scoped rendering context.

    Usage:
        async with RenderSession(browser_factory, request, settings) as session:
            await session.await_stable(profile)
            pdf_path = await session.export_pdf(options)
    """

    def __init__(self, browser_factory: BrowserFactory, request: PrintRequest, settings: "AgentSettings"):
        self._browser_factory = browser_factory
        self.request = request
        self.settings = settings

        self.workdir: Optional[Path] = None
        self.pdf_path: Optional[Path] = None
        self.context = None
        self.page = None
        self.page_size: Optional[PageSize] = None
        self.margins: Optional[Margins] = None
        self.profile: Optional[MediumProfile] = None
        self.stats: Dict[str, Any] = {}

        self._load: Optional[asyncio.Future] = None
        self._overlay = None
        self._opened = False
        self._stable = False
        self._closed = False

    @property
    def is_pdf(self) -> bool:
        return self.request.document_kind is DocumentKind.PDF

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "RenderSession":
        try:
            await self.open()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> "RenderSession":
        if self._opened:
            raise RuntimeError("render session already opened")
        self._opened = True
        self.workdir = Path(tempfile.mkdtemp(prefix="print-agent-"))

        if self.is_pdf:
            self.pdf_path = self.workdir / "document.pdf"
            self.pdf_path.write_bytes(decode_pdf_payload(self.request.payload))
            logger.info("PDF document materialized (%d bytes)", self.pdf_path.stat().st_size)
            return self

        payload = self.request.payload
        html = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload or "")

        browser = await self._browser_factory()
        self.context = await browser.new_context(
            viewport=dict(DEFAULT_VIEWPORT),
            device_scale_factor=self.settings.device_scale_factor,
        )
        self.page = await self.context.new_page()
        self.page.on("requestfailed", self._on_request_failed)
        # Loading starts now; await_stable observes its completion.
        self._load = asyncio.ensure_future(self.page.set_content(html, wait_until="load", timeout=0))
        logger.info("HTML document loading (%d chars)", len(html))
        return self

    def _on_request_failed(self, request) -> None:
        logger.warning("Embedded resource failed: %s (%s)", getattr(request, "url", "?"), getattr(request, "failure", None))

    async def await_stable(self, profile: Optional[MediumProfile] = None) -> None:
        """
        Wait until the document is fully rendered and, with a profile, sized for the roll.

        Raises:
            LoadFailed when the document shell or the stabilization script fails.
            PrintTimeout when the browser reports a timeout.
        """
        if not self._opened or self._closed:
            raise RuntimeError("render session is not open")
        if self.is_pdf:
            self._stable = True
            return

        assert self._load is not None and self.page is not None
        try:
            await self._load
        except PlaywrightTimeoutError as e:
            raise PrintTimeout(f"Timed out loading content: {e.message}") from e
        except PlaywrightError as e:
            raise LoadFailed(f"Failed to load content: {e.message}") from e
        logger.info("Page loaded, waiting for resources...")

        if profile is not None:
            self.profile = profile
            await self.page.set_viewport_size({"width": mm_to_px(profile.total_width_mm), "height": DEFAULT_VIEWPORT["height"]})
            css = medium_overlay_css(profile, self.settings.horizontal_offset_mm)
            self._overlay = await self.page.add_style_tag(content=css)
            self.margins = Margins()

        try:
            self.stats = await self.page.evaluate(
                STABILIZE_SCRIPT,
                {
                    "selector": self.settings.graphics_selector,
                    "content": self.settings.graphics_content_selector,
                    "interval": self.settings.graphics_poll_interval_ms,
                    "attempts": self.settings.graphics_poll_attempts,
                },
            ) or {}
        except PlaywrightTimeoutError as e:
            raise PrintTimeout(f"Timed out waiting for resources: {e.message}") from e
        except PlaywrightError as e:
            raise LoadFailed(f"Resource loading failed: {e.message}") from e

        if self.stats.get("pendingGraphics"):
            logger.warning(
                "Dynamic graphics still empty after %s polls: %s",
                self.stats.get("polls"),
                self.stats.get("pendingGraphics"),
            )

        settle = self.settings.settle_delay_ms / 1000.0
        if settle > 0:
            await asyncio.sleep(settle)

        if profile is not None:
            height_px = await self.page.evaluate(MEASURE_HEIGHT_SCRIPT)
            height_mm = math.ceil(px_to_mm(float(height_px or 0)) * 10) / 10
            self.page_size = PageSize(profile.total_width_mm, max(profile.minimum_height_mm, height_mm))
            logger.info("Measured content: %spx -> page %gx%gmm", height_px, self.page_size.width_mm, self.page_size.height_mm)

        self._stable = True
        logger.info("All resources loaded: %s", self.stats)

    async def export_pdf(self, options: JobOptions) -> Path:
        """
        Write the rendered document as a PDF inside the session directory and return its path.
        """
        self._require_stable()
        if self.is_pdf:
            assert self.pdf_path is not None
            return self.pdf_path

        assert self.page is not None and self.workdir is not None
        path = self.workdir / "rendered.pdf"
        kwargs: Dict[str, Any] = {
            "path": str(path),
            "print_background": options.print_background,
            "landscape": options.landscape,
        }
        if options.page_size is not None:
            kwargs["width"] = f"{options.page_size.width_mm:g}mm"
            kwargs["height"] = f"{options.page_size.height_mm:g}mm"
        else:
            kwargs["prefer_css_page_size"] = True
        if options.margins is not None:
            kwargs["margin"] = options.margins.as_css()
        try:
            await self.page.pdf(**kwargs)
        except PlaywrightError as e:
            raise PrintFailed(f"Could not render document for printing: {e.message}") from e
        return path

    async def rasterize(self) -> bytes:
        """
        Return a PNG of the rendered page body for raster printers.
        """
        self._require_stable()
        if self.is_pdf:
            raise PrintFailed("PDF documents can only be printed on system printers")
        assert self.page is not None
        try:
            body = await self.page.query_selector("body")
            if body is None:
                return await self.page.screenshot(full_page=True, type="png")
            return await body.screenshot(type="png")
        except PlaywrightError as e:
            raise PrintFailed(f"Could not rasterize document: {e.message}") from e

    def _require_stable(self) -> None:
        if self._closed or not self._stable:
            raise RuntimeError("render session is not stable")

    async def close(self) -> None:
        """
        Release the browser context, the style overlay, and the temporary directory.
        Safe to call more than once; cleanup failures are logged, never raised.
        """
        if self._closed:
            return
        self._closed = True

        if self._load is not None:
            if not self._load.done():
                self._load.cancel()
            await asyncio.gather(self._load, return_exceptions=True)

        if self._overlay is not None:
            try:
                await self._overlay.evaluate(REMOVE_ELEMENT_SCRIPT)
            except Exception as e:
                logger.debug("Overlay removal skipped: %s", e)
            self._overlay = None

        if self.context is not None:
            try:
                await self.context.close()
            except Exception as e:
                logger.warning("Closing render context failed: %s", e)
            self.context = None
            self.page = None

        if self.workdir is not None:
            try:
                shutil.rmtree(self.workdir)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Removing render workdir %s failed: %s", self.workdir, e)
                shutil.rmtree(self.workdir, ignore_errors=True)
        logger.debug("Render session closed")


__all__ = [
    "MEASURE_HEIGHT_SCRIPT",
    "STABILIZE_SCRIPT",
    "BrowserFactory",
    "RenderSession",
    "decode_pdf_payload",
    "medium_overlay_css",
]
