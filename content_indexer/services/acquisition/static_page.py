"""
Static page acquisition: one HTTP GET, no script execution.

Fast path for ordinary pages. Redirects are followed and the final URL is
reported so the orchestrator can detect a URL that now points at another,
already indexed item.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

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


class StaticPageStrategy:
    """
    Fetch a page with httpx and extract its main content.

    Example:
        >>> strategy = StaticPageStrategy()
        >>> result = await strategy.fetch("https://example.com/blog/post")
        >>> result.final_url, result.word_count
    """

    name = StrategyName.STATIC_PAGE

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            timeout: Request timeout in seconds (default INDEXING_TIMEOUT_MS)
            user_agent: User-Agent header (default INDEXING_USER_AGENT)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.user_agent = user_agent or settings.INDEXING_USER_AGENT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
            },
            transport=self._transport,
        )

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch and extract a page.

        Raises:
            FetchError: timeout, unreachable host or non-2xx status
        """
        started = time.monotonic()

        try:
            async with self._client() as client:
                # httpx timeouts are per phase; wait_for bounds the whole request
                response = await asyncio.wait_for(client.get(url), timeout=self.timeout)
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            duration = elapsed_ms(started)
            raise FetchError(
                url, f"Timeout after {duration}ms", FetchErrorKind.TIMEOUT,
                duration_ms=duration, cause=e,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                url, f"Request failed: {e}", FetchErrorKind.UNREACHABLE,
                duration_ms=elapsed_ms(started), cause=e,
            ) from e

        if not response.is_success:
            raise FetchError(
                url,
                f"HTTP {response.status_code}: {response.reason_phrase}",
                FetchErrorKind.HTTP_STATUS,
                duration_ms=elapsed_ms(started),
                status_code=response.status_code,
            )

        html = response.text
        plain_text = await asyncio.to_thread(extract_main_text, html)
        final_url = str(response.url)

        result = build_result(
            url=url,
            final_url=final_url,
            plain_text=plain_text,
            full_text=html,
            started=started,
            strategy=self.name,
        )

        logger.info(
            f"Fetched {url} statically: {result.word_count} words in {result.duration_ms}ms"
            + (f" (redirected to {final_url})" if result.was_redirected else "")
        )
        return result
