"""
Page acquisition on top of a single shared headless Chromium.

The BrowserManager is constructed and owned by the application (see the
lifespan handler in app.py) and passed to whatever needs pages. Pages are
short-lived: acquire_page() always closes the page it opened, whatever
happens inside the ``async with`` block.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

from playwright.async_api import Browser, Page, Playwright, Route, async_playwright

from config import Config

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
}
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]
BLOCKED_RESOURCE_TYPES = {"image", "font"}


class BrowserLaunchError(RuntimeError):
    """The headless browser could not be started."""


async def block_heavy_resources(route: Route) -> None:
    """Abort image and font requests, let everything else through."""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserManager:
    def __init__(self, headless: Optional[bool] = None):
        self.headless = Config.HEADLESS if headless is None else headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def start(self) -> Browser:
        """Launch the shared browser once; later calls reuse it."""
        async with self._lock:
            if self.is_running:
                return self._browser

            logger.info("Launching headless Chromium")
            try:
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=LAUNCH_ARGS,
                )
            except Exception as e:
                logger.error(f"Browser launch failed: {e}")
                await self._stop_driver()
                raise BrowserLaunchError(str(e)) from e

            logger.info("Headless Chromium is running")
            return self._browser

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                logger.info("Closing browser")
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning(f"Error while closing browser: {e}")
                self._browser = None
            await self._stop_driver()

    async def _stop_driver(self) -> None:
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error while stopping playwright: {e}")
            self._playwright = None

    @asynccontextmanager
    async def acquire_page(self) -> AsyncIterator[Page]:
        """Open an isolated page with the fixed UA/viewport; closed on exit."""
        browser = await self.start()
        page = await browser.new_page(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            extra_http_headers=DEFAULT_HEADERS,
        )
        try:
            await page.route("**/*", block_heavy_resources)
            yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Page close failed: {e}")


async def load_page(page: Page, url: str, settle_ms: int) -> Tuple[str, str]:
    """Navigate, wait for network idle plus a settle delay, return (html, final_url)."""
    logger.debug(f"Visiting: {url}")
    await page.goto(url, wait_until="networkidle", timeout=Config.NAVIGATION_TIMEOUT_MS)
    if settle_ms > 0:
        await page.wait_for_timeout(settle_ms)
    return await page.content(), page.url
