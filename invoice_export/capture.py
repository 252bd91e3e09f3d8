"""Headless-browser capture of a rendered invoice element."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from . import config
from .errors import CaptureError, EmptyCapture, TargetNotFound
from .logging import get_logger
from .models import CaptureResult, ImageEncoding, RenderTarget

logger = get_logger(__name__)

BACKGROUND_COLOR = (255, 255, 255)

# Playwright reports an element removed from the DOM mid-capture with these phrases.
DETACHED_MARKERS = ("not attached", "detached")

# Resolves after layout and paint of the current frame have been committed.
SETTLE_SCRIPT = """
async () => {
  if (document.fonts && document.fonts.ready) {
    await document.fonts.ready;
  }
  await new Promise((resolve) => requestAnimationFrame(() => requestAnimationFrame(resolve)));
  return true;
}
"""


class BrowserSession:
    """Owns one Playwright driver and headless Chromium shared by captures."""

    def __init__(self, launch_args: Optional[list] = None) -> None:
        self.launch_args = launch_args or ["--no-sandbox", "--disable-dev-shm-usage"]
        self.playwright: Any = None
        self.browser: Any = None

    async def __aenter__(self) -> "BrowserSession":
        self.playwright = await async_playwright().start()
        try:
            self.browser = await self.playwright.chromium.launch(headless=True, args=self.launch_args)
        except Exception:
            await self.playwright.stop()
            raise
        logger.info("Headless browser started")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self.browser is not None:
                await self.browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
            self.browser = None
            self.playwright = None
        logger.info("Headless browser stopped")


def flatten_on_white(image: Image.Image) -> Image.Image:
    """Composite any transparency onto an opaque white background."""
    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, BACKGROUND_COLOR)
    background.paste(rgba, mask=rgba.getchannel("A"))
    return background


def decode_screenshot(png: bytes) -> Image.Image:
    with Image.open(io.BytesIO(png)) as raw:
        return flatten_on_white(raw)


def is_detached_error(exc: BaseException) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in DETACHED_MARKERS)


class CaptureEngine:
    def __init__(
        self,
        browser: Any,
        viewport_width: int = config.VIEWPORT_WIDTH,
        viewport_height: int = config.VIEWPORT_HEIGHT,
        timeout_ms: int = config.CAPTURE_TIMEOUT_MS,
    ) -> None:
        self.browser = browser
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self.timeout_ms = timeout_ms

    async def capture(
        self,
        target: RenderTarget,
        scale: float,
        encoding: ImageEncoding = ImageEncoding.PNG,
    ) -> CaptureResult:
        context = await self.browser.new_context(
            device_scale_factor=scale,
            viewport=self.viewport,
            ignore_https_errors=True,
        )
        try:
            page = await context.new_page()
            page.set_default_timeout(self.timeout_ms)
            await self._load(page, target)
            try:
                await page.evaluate(SETTLE_SCRIPT)
            except PlaywrightError as exc:
                raise CaptureError(f"Rendering of {target.identity} did not settle: {exc}") from exc

            element = await self._resolve(page, target)
            try:
                box = await element.bounding_box()
            except PlaywrightError as exc:
                raise TargetNotFound(f"Element {target.selector!r} went away before capture: {exc}") from exc
            if not box or box["width"] <= 0 or box["height"] <= 0:
                raise EmptyCapture(f"Element {target.selector!r} has no visible area.")

            try:
                png = await element.screenshot(type="png", omit_background=True, animations="disabled")
            except PlaywrightError as exc:
                if is_detached_error(exc):
                    raise TargetNotFound(f"Element {target.selector!r} was removed before capture.") from exc
                raise CaptureError(f"Screenshot of {target.selector!r} failed: {exc}") from exc
        finally:
            await context.close()

        try:
            image = await asyncio.to_thread(decode_screenshot, png)
        except (UnidentifiedImageError, OSError) as exc:
            raise CaptureError(f"Screenshot of {target.selector!r} is not a readable image.") from exc

        if image.width == 0 or image.height == 0:
            raise EmptyCapture(f"Capture of {target.selector!r} is {image.width}x{image.height}.")

        logger.debug("Captured element", selector=target.selector, scale=scale, width=image.width, height=image.height)
        return CaptureResult(image=image, scale=scale, encoding=encoding)

    async def _load(self, page: Any, target: RenderTarget) -> None:
        try:
            if target.url is not None:
                await page.goto(target.url, wait_until="domcontentloaded")
            else:
                await page.set_content(target.html, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise TargetNotFound(f"Document for {target.identity} could not be loaded: {exc}") from exc
        try:
            await page.wait_for_load_state("load", timeout=self.timeout_ms)
        except PlaywrightTimeoutError:
            # Unreachable images (e.g. a cross-origin logo) are left out of the capture.
            logger.warning("Sub-resources did not finish loading; capturing without them", target=target.identity)

    async def _resolve(self, page: Any, target: RenderTarget) -> Any:
        locator = page.locator(target.selector)
        try:
            count = await locator.count()
        except PlaywrightError as exc:
            raise TargetNotFound(f"Selector {target.selector!r} is invalid: {exc}") from exc
        if count == 0:
            raise TargetNotFound(f"No element matches {target.selector!r}.")
        return locator.first
