"""
Rendered page acquisition through a headless browser.

Fallback for pages whose content is built client-side, where the static
fetch sees an empty shell.

Resource model:
---------------
- BrowserPool owns one Chromium process, launched lazily on first use and
  shared by all acquisitions. It is closed explicitly on shutdown
  (application lifespan / worker shutdown).
- Every acquisition gets its own BrowserContext (cookies, storage and
  cache isolated from other requests). The context is closed on every
  exit path; the pool counts open contexts so leaks are visible.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from content_indexer.core.config import settings
from content_indexer.services.acquisition.base import (
    FetchError,
    FetchErrorKind,
    FetchResult,
    StrategyName,
    build_result,
    elapsed_ms,
)
from content_indexer.services.acquisition.extraction import extract_main_text


logger = logging.getLogger(__name__)

# Rendered text shorter than this is treated as a failed render
MIN_RENDERED_CHARS = 50

# Extra settle time after network idle for late client-side rendering
SETTLE_MS = 1000


class BrowserPool:
    """
    Lazily started, shared headless Chromium.

    Usage:
        pool = BrowserPool()
        async with pool.context(user_agent="...") as context:
            page = await context.new_page()
            ...
        await pool.close()
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()
        self._open_contexts = 0

    @property
    def open_contexts(self) -> int:
        return self._open_contexts

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                self._playwright = await async_playwright().start()

            logger.info("Launching headless Chromium for rendered page fetches")
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            return self._browser

    @asynccontextmanager
    async def context(self, **context_options) -> AsyncIterator[BrowserContext]:
        """Yield a fresh browser context; always closed on exit."""
        browser = await self._get_browser()
        context = await browser.new_context(**context_options)
        self._open_contexts += 1
        try:
            yield context
        finally:
            self._open_contexts -= 1
            try:
                await context.close()
            except PlaywrightError as e:
                # Browser already gone; nothing left to release
                logger.warning(f"Failed to close browser context: {e}")

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._lock:
            if self._open_contexts:
                logger.warning(f"Closing browser with {self._open_contexts} open contexts")
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
        logger.info("Browser pool closed")


class RenderedPageStrategy:
    """Fetch a page in headless Chromium and extract its main content."""

    name = StrategyName.RENDERED_PAGE

    def __init__(
        self,
        pool: BrowserPool,
        timeout_ms: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        self.pool = pool
        self.timeout_ms = timeout_ms or settings.INDEXING_TIMEOUT_MS
        self.user_agent = user_agent or settings.INDEXING_USER_AGENT

    async def fetch(self, url: str) -> FetchResult:
        """
        Render ``url`` and extract its text.

        Raises:
            FetchError: timeout, non-2xx status, browser failure or
                fewer than MIN_RENDERED_CHARS characters of content
        """
        started = time.monotonic()

        try:
            async with self.pool.context(user_agent=self.user_agent) as context:
                page = await context.new_page()
                # Rendering waits for network idle, allow twice the static timeout
                response = await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.timeout_ms * 2,
                )
                if response is not None and not response.ok:
                    raise FetchError(
                        url,
                        f"HTTP {response.status}: {response.status_text}",
                        FetchErrorKind.HTTP_STATUS,
                        duration_ms=elapsed_ms(started),
                        status_code=response.status,
                    )
                await page.wait_for_timeout(SETTLE_MS)
                html = await page.content()
                final_url = page.url
        except PlaywrightTimeoutError as e:
            duration = elapsed_ms(started)
            raise FetchError(
                url, f"Timeout after {duration}ms rendering page", FetchErrorKind.TIMEOUT,
                duration_ms=duration, cause=e,
            ) from e
        except PlaywrightError as e:
            raise FetchError(
                url, f"Browser fetch failed: {e.message}", FetchErrorKind.RENDER_FAILED,
                duration_ms=elapsed_ms(started), cause=e,
            ) from e

        plain_text = await asyncio.to_thread(extract_main_text, html)

        if len(plain_text) < MIN_RENDERED_CHARS:
            raise FetchError(
                url,
                f"Insufficient content extracted ({len(plain_text)} chars)",
                FetchErrorKind.INSUFFICIENT_CONTENT,
                duration_ms=elapsed_ms(started),
            )

        result = build_result(
            url=url,
            final_url=final_url,
            plain_text=plain_text,
            full_text=html,
            started=started,
            strategy=self.name,
        )
        logger.info(f"Rendered {url}: {result.word_count} words in {result.duration_ms}ms")
        return result


# ========================================
# Global Instance Management
# ========================================

_browser_pool: Optional[BrowserPool] = None


def get_browser_pool() -> BrowserPool:
    """Process-wide pool; the browser itself starts on first use."""
    global _browser_pool
    if _browser_pool is None:
        _browser_pool = BrowserPool()
    return _browser_pool


async def close_browser_pool() -> None:
    global _browser_pool
    if _browser_pool is not None:
        await _browser_pool.close()
        _browser_pool = None
