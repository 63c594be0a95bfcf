"""
Background render engine for the print agent.

This module owns:
- A daemon thread running one asyncio event loop
- The shared headless Chromium process (launched lazily, relaunched if it dies)
- A blocking `run()` bridge so Flask request threads can await pipeline coroutines

Each print request still opens its own browser context, so sessions never share
rendering state; only the browser process is shared.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, Dict, Optional

if TYPE_CHECKING:
    from playwright.async_api import Browser

logger = logging.getLogger(__name__)

BrowserLauncher = Callable[[], Awaitable["Browser"]]

CHROMIUM_ARGS = ["--disable-dev-shm-usage", "--font-render-hinting=none"]


class RenderEngine:
    def __init__(self, launcher: Optional[BrowserLauncher] = None, headless: bool = True):
        self._launcher = launcher
        self._headless = headless
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._browser_lock: Optional[asyncio.Lock] = None
        self._browser: Optional["Browser"] = None
        self._playwright = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive() and self._loop and self._loop.is_running())

    def start(self) -> None:
        """
        Start the loop thread (idempotent).
        """
        with self._start_lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _run() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()

            t = threading.Thread(target=_run, daemon=True, name="print-agent-render")
            t.start()
            ready.wait()
            self._loop = loop
            self._thread = t
            self._browser_lock = None
            logger.info("Render engine started")

    async def get_browser(self) -> "Browser":
        """
        Return the shared browser, launching it on first use or after it disconnected.
        """
        if self._browser_lock is None:
            self._browser_lock = asyncio.Lock()
        async with self._browser_lock:
            if self._browser is None or not self._browser.is_connected():
                launcher = self._launcher or self._launch_chromium
                self._browser = await launcher()
        return self._browser

    async def _launch_chromium(self) -> "Browser":
        from playwright.async_api import async_playwright

        if self._playwright is None:
            self._playwright = await async_playwright().start()
        browser = await self._playwright.chromium.launch(headless=self._headless, args=CHROMIUM_ARGS)
        logger.info("Headless Chromium %s launched", browser.version)
        return browser

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """
        Run a coroutine on the engine loop and block for its result.

        Raises concurrent.futures.TimeoutError (after cancelling the coroutine) when
        `timeout` elapses first.
        """
        self.start()
        assert self._loop is not None
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    async def _shutdown(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Browser close failed: %s", e)
            self._browser = None
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed: %s", e)
            self._playwright = None

    def stop(self, timeout: float = 10.0) -> None:
        """
        Close the browser and stop the loop thread.
        """
        if not self.running:
            return
        assert self._loop is not None
        try:
            asyncio.run_coroutine_threadsafe(self._shutdown(), self._loop).result(timeout)
        except Exception as e:
            logger.warning("Render engine shutdown incomplete: %s", e)
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("Render engine stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "engine_running": self.running,
            "browser_connected": bool(self._browser is not None and self._browser.is_connected()),
        }


ENGINE: Optional[RenderEngine] = None
_ENGINE_LOCK = threading.Lock()


def ensure_engine() -> RenderEngine:
    """
    Ensure the process-wide render engine is started (idempotent).
    """
    global ENGINE
    with _ENGINE_LOCK:
        if ENGINE is None:
            ENGINE = RenderEngine()
        ENGINE.start()
        return ENGINE


def engine_status() -> Dict[str, Any]:
    if ENGINE is None:
        return {"engine_running": False, "browser_connected": False}
    return ENGINE.status()


__all__ = ["ENGINE", "RenderEngine", "engine_status", "ensure_engine"]
