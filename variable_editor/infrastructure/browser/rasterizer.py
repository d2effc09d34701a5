# variable_editor/infrastructure/browser/rasterizer.py
import asyncio
import logging
import time
from typing import List, Optional

from playwright.async_api import Browser, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError, async_playwright

from variable_editor.config.settings import settings
from variable_editor.domain.exceptions import CaptureError, NavigationError, RenderTimeoutError

logger = logging.getLogger(__name__)


class PlaywrightRasterizer:
    """
    Screenshots the ready-marker element of a rendered page with headless Chromium.

    One browser is shared; every render gets its own context and page, so
    concurrent renders do not see each other's state.
    """

    def __init__(
        self,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        device_scale_factor: Optional[float] = None,
        browser_args: Optional[List[str]] = None,
    ):
        self.viewport = {
            "width": viewport_width or settings.VIEWPORT_WIDTH,
            "height": viewport_height or settings.VIEWPORT_HEIGHT,
        }
        self.device_scale_factor = device_scale_factor or settings.DEVICE_SCALE_FACTOR
        self.browser_args = browser_args if browser_args is not None else settings.BROWSER_ARGS
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._lock:
            if self._browser is not None:
                return
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=True, args=self.browser_args)
            logger.info("Headless Chromium started.")

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
            logger.info("Headless Chromium stopped.")

    async def render(self, target_url: str, ready_selector: Optional[str] = None, timeout_ms: Optional[int] = None) -> bytes:
        ready_selector = ready_selector or settings.READY_SELECTOR
        timeout_ms = timeout_ms or settings.RENDER_TIMEOUT_MS
        if self._browser is None:
            await self.start()

        start_time = time.perf_counter()
        context = await self._browser.new_context(
            viewport=self.viewport,
            device_scale_factor=self.device_scale_factor,
        )
        try:
            page = await context.new_page()
            try:
                await page.goto(target_url, wait_until="load", timeout=timeout_ms)
            except PlaywrightTimeoutError as e:
                raise RenderTimeoutError(f"{target_url} did not finish loading within {timeout_ms}ms", url=target_url) from e
            except PlaywrightError as e:
                raise NavigationError(f"Could not load {target_url}: {e}", url=target_url) from e

            try:
                element = await page.wait_for_selector(ready_selector, timeout=timeout_ms)
            except PlaywrightTimeoutError as e:
                raise RenderTimeoutError(
                    f"'{ready_selector}' did not appear within {timeout_ms}ms on {target_url}", url=target_url
                ) from e
            except PlaywrightError as e:
                raise NavigationError(f"Page {target_url} failed while waiting for '{ready_selector}': {e}", url=target_url) from e
            if element is None:
                raise RenderTimeoutError(f"'{ready_selector}' never attached on {target_url}", url=target_url)

            try:
                image = await element.screenshot(type="png")
            except PlaywrightError as e:
                raise CaptureError(f"Screenshot of '{ready_selector}' failed: {e}", url=target_url) from e
            if not image.startswith(b"\x89PNG"):
                raise CaptureError(f"Screenshot of '{ready_selector}' is not a PNG image", url=target_url)
        finally:
            await context.close()

        logger.info(f"Rendered {target_url} in {time.perf_counter() - start_time:.2f}s ({len(image)} bytes)")
        return image
