"""
Tests for the browser pool and the rendered page strategy.

Playwright is replaced with mocks; no browser is launched.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from content_indexer.services.acquisition.base import FetchError, FetchErrorKind, StrategyName
from content_indexer.services.acquisition.browser import BrowserPool, RenderedPageStrategy


RENDERED_HTML = (
    "<html><body><div id='app'><article><p>"
    "This article body only exists after the client-side bundle has run, "
    "so a static fetch never sees it."
    "</p></article></div></body></html>"
)


def mock_page(html=RENDERED_HTML, status=200, url="https://spa.example.com/post", goto_error=None):
    page = MagicMock()
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status = status
    response.status_text = "Forbidden" if status == 403 else "OK"
    page.goto = AsyncMock(return_value=response, side_effect=goto_error)
    page.wait_for_timeout = AsyncMock()
    page.content = AsyncMock(return_value=html)
    page.url = url
    return page


def mock_pool(page) -> tuple[BrowserPool, MagicMock]:
    """Pool whose browser is a mock; returns the pool and the mocked context."""
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()

    browser = MagicMock()
    browser.is_connected.return_value = True
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    pool = BrowserPool()
    pool._browser = browser
    return pool, context


# ========================================
# BrowserPool
# ========================================

@pytest.mark.asyncio
class TestBrowserPool:

    async def test_context_counted_and_closed(self):
        pool, context = mock_pool(mock_page())

        async with pool.context(user_agent="TestBot") as ctx:
            assert ctx is context
            assert pool.open_contexts == 1

        assert pool.open_contexts == 0
        context.close.assert_awaited_once()
        pool._browser.new_context.assert_awaited_once_with(user_agent="TestBot")

    async def test_context_closed_on_error(self):
        pool, context = mock_pool(mock_page())

        with pytest.raises(RuntimeError):
            async with pool.context():
                raise RuntimeError("boom")

        assert pool.open_contexts == 0
        context.close.assert_awaited_once()

    async def test_close(self):
        pool, _ = mock_pool(mock_page())
        browser = pool._browser

        await pool.close()

        browser.close.assert_awaited_once()
        assert not pool.is_started


# ========================================
# RenderedPageStrategy
# ========================================

@pytest.mark.asyncio
class TestRenderedPageStrategy:

    async def test_fetch(self):
        pool, context = mock_pool(mock_page())
        strategy = RenderedPageStrategy(pool, timeout_ms=1000, user_agent="TestBot")

        result = await strategy.fetch("https://spa.example.com/post")

        assert result.strategy == StrategyName.RENDERED_PAGE
        assert "client-side bundle" in result.plain_text
        assert result.final_url == "https://spa.example.com/post"
        assert pool.open_contexts == 0
        context.close.assert_awaited_once()

    async def test_reports_final_url(self):
        pool, _ = mock_pool(mock_page(url="https://spa.example.com/new"))

        result = await RenderedPageStrategy(pool, timeout_ms=1000).fetch("https://spa.example.com/old")

        assert result.was_redirected
        assert result.final_url == "https://spa.example.com/new"

    async def test_http_error_status(self):
        pool, context = mock_pool(mock_page(status=403))

        with pytest.raises(FetchError) as exc_info:
            await RenderedPageStrategy(pool, timeout_ms=1000).fetch("https://spa.example.com/post")

        assert exc_info.value.kind == FetchErrorKind.HTTP_STATUS
        assert exc_info.value.status_code == 403
        context.close.assert_awaited_once()

    async def test_timeout(self):
        pool, context = mock_pool(mock_page(goto_error=PlaywrightTimeoutError("Timeout 2000ms exceeded")))

        with pytest.raises(FetchError) as exc_info:
            await RenderedPageStrategy(pool, timeout_ms=1000).fetch("https://spa.example.com/post")

        assert exc_info.value.kind == FetchErrorKind.TIMEOUT
        assert pool.open_contexts == 0
        context.close.assert_awaited_once()

    async def test_browser_error(self):
        pool, _ = mock_pool(mock_page(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))

        with pytest.raises(FetchError) as exc_info:
            await RenderedPageStrategy(pool, timeout_ms=1000).fetch("https://spa.example.com/post")

        assert exc_info.value.kind == FetchErrorKind.RENDER_FAILED
        assert "ERR_NAME_NOT_RESOLVED" in str(exc_info.value)

    async def test_insufficient_content(self):
        pool, _ = mock_pool(mock_page(html="<html><body><p>Loading...</p></body></html>"))

        with pytest.raises(FetchError) as exc_info:
            await RenderedPageStrategy(pool, timeout_ms=1000).fetch("https://spa.example.com/post")

        assert exc_info.value.kind == FetchErrorKind.INSUFFICIENT_CONTENT
