import asyncio
import logging
from contextlib import asynccontextmanager

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from config import (
    ACCEPT_LANGUAGE,
    BROWSER_ARGS,
    CONSENT_COOKIES,
    LOCALE,
    NAV_TIMEOUT,
    READY_TIMEOUT,
    SELECTOR_TIMEOUT,
    UPSTREAM_COOKIE_DOMAIN,
    USER_AGENT,
    VIEWPORT,
    watch_url,
)
from extractor import CARD_SELECTOR, PageSnapshot, has_structured_items

READY_SCRIPT = (
    "() => Boolean(window.ytInitialData?.contents"
    "?.twoColumnWatchNextResults?.secondaryResults)"
)

# Only the "up next" subtree crosses the page boundary, keeping the ytInitialData nesting
SECONDARY_RESULTS_SCRIPT = """() => {
    const secondary = window.ytInitialData?.contents?.twoColumnWatchNextResults?.secondaryResults;
    if (!secondary) return null;
    return { contents: { twoColumnWatchNextResults: { secondaryResults: secondary } } };
}"""


def consent_cookies() -> list[dict]:
    return [
        {"name": name, "value": value, "domain": UPSTREAM_COOKIE_DOMAIN, "path": "/"}
        for name, value in CONSENT_COOKIES.items()
    ]


# === 🌐 SHARED BROWSER ===
class BrowserSession:
    """One Chromium instance and one shared context for the whole process.

    Created lazily on the first ``acquire_page`` call and kept until
    ``shutdown``. Every request gets its own page from the shared context.
    """

    def __init__(self, driver_factory=async_playwright):
        self._driver_factory = driver_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._lock = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._context is not None

    async def get_context(self) -> BrowserContext:
        context = self._context
        if context is not None and self._browser is not None and self._browser.is_connected():
            return context

        async with self._lock:
            if self._browser is not None and not self._browser.is_connected():
                logging.warning("BROWSER DISCONNECTED - Discarding shared session")
                await self._discard()

            if self._context is None:
                await self._launch()

            return self._context

    async def _launch(self):
        if self._playwright is None:
            self._playwright = await self._driver_factory().start()

        browser = await self._playwright.chromium.launch(headless=True, args=BROWSER_ARGS)
        try:
            context = await browser.new_context(
                user_agent=USER_AGENT,
                locale=LOCALE,
                viewport=VIEWPORT,
                java_script_enabled=True,
                extra_http_headers={"Accept-Language": ACCEPT_LANGUAGE},
            )
            await context.add_cookies(consent_cookies())
        except Exception:
            try:
                await browser.close()
            except Exception as e:
                logging.warning(f"Failed to close browser after setup error: {e}")
            raise

        self._browser = browser
        self._context = context
        logging.info("BROWSER - Shared session ready")

    async def _discard(self):
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logging.warning(f"Failed to close context: {e}")

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logging.warning(f"Failed to close browser: {e}")

        self._context = None
        self._browser = None

    async def acquire_page(self) -> Page:
        context = await self.get_context()
        return await context.new_page()

    @asynccontextmanager
    async def page(self):
        page = await self.acquire_page()
        try:
            yield page
        finally:
            try:
                await page.close()
            except Exception as e:
                logging.warning(f"Failed to close page: {e}")

    async def shutdown(self):
        async with self._lock:
            await self._discard()

            if self._playwright is not None:
                try:
                    await self._playwright.stop()
                except Exception as e:
                    logging.warning(f"Failed to stop playwright: {e}")
                self._playwright = None


# === 🧭 RENDER ===
async def safe_evaluate(page: Page, script: str, arg=None):
    try:
        if page.is_closed():
            return None
        return await page.evaluate(script, arg) if arg else await page.evaluate(script)
    except Exception as e:
        logging.error(f"SAFE EVAL ERROR - {e}")
        return None


async def render_snapshot(page: Page, video_id: str) -> PageSnapshot:
    url = watch_url(video_id)

    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=NAV_TIMEOUT)
    except PlaywrightTimeoutError as e:
        logging.warning(f"NAVIGATION TIMEOUT - {url}: {e}")

    try:
        await page.wait_for_function(READY_SCRIPT, timeout=READY_TIMEOUT)
    except PlaywrightError as e:
        logging.info(f"READY WAIT - No structured data for {video_id}: {e}")

    initial_data = await safe_evaluate(page, SECONDARY_RESULTS_SCRIPT)
    if not isinstance(initial_data, dict):
        initial_data = None

    if has_structured_items(initial_data):
        return PageSnapshot(initial_data=initial_data)

    try:
        await page.wait_for_selector(CARD_SELECTOR, timeout=SELECTOR_TIMEOUT)
    except PlaywrightError as e:
        logging.info(f"SELECTOR WAIT - No recommendation cards for {video_id}: {e}")

    return PageSnapshot(initial_data=initial_data, rendered_html=await page.content())
