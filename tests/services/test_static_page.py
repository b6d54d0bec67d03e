"""
Tests for StaticPageStrategy using httpx.MockTransport.
"""

import httpx
import pytest

from content_indexer.services.acquisition.base import FetchError, FetchErrorKind, StrategyName
from content_indexer.services.acquisition.static_page import StaticPageStrategy


ARTICLE = (
    "<html><body><nav>Menu</nav><article><h1>Indexing</h1>"
    "<p>Chunks are embedded one at a time so a failing chunk never takes the "
    "rest of the document down with it. Keyword search still finds it.</p>"
    "</article></body></html>"
)


def strategy_for(handler) -> StaticPageStrategy:
    return StaticPageStrategy(timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestStaticPageStrategy:

    async def test_fetch_extracts_main_text(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, html=ARTICLE)

        result = await strategy_for(handler).fetch("https://example.com/post")

        assert result.strategy == StrategyName.STATIC_PAGE
        assert result.final_url == "https://example.com/post"
        assert not result.was_redirected
        assert result.plain_text.startswith("Indexing")
        assert "Menu" not in result.plain_text
        assert result.full_text == ARTICLE
        assert result.word_count == len(result.plain_text.split())
        assert result.token_count > 0

    async def test_sends_user_agent(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(200, html=ARTICLE)

        strategy = StaticPageStrategy(
            timeout=5, user_agent="TestBot/1.0", transport=httpx.MockTransport(handler)
        )
        await strategy.fetch("https://example.com/post")

        assert seen["ua"] == "TestBot/1.0"

    async def test_follows_redirect_and_reports_final_url(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://example.com/new"})
            return httpx.Response(200, html=ARTICLE)

        result = await strategy_for(handler).fetch("https://example.com/old")

        assert result.final_url == "https://example.com/new"
        assert result.was_redirected

    async def test_non_success_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(FetchError) as exc_info:
            await strategy_for(handler).fetch("https://example.com/missing")

        assert exc_info.value.kind == FetchErrorKind.HTTP_STATUS
        assert exc_info.value.status_code == 404
        assert "404" in str(exc_info.value)

    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchError) as exc_info:
            await strategy_for(handler).fetch("https://slow.example.com")

        assert exc_info.value.kind == FetchErrorKind.TIMEOUT
        assert exc_info.value.is_timeout
        assert str(exc_info.value).startswith("Timeout after")

    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Name or service not known", request=request)

        with pytest.raises(FetchError) as exc_info:
            await strategy_for(handler).fetch("https://nowhere.invalid")

        assert exc_info.value.kind == FetchErrorKind.UNREACHABLE
        assert not exc_info.value.is_timeout
