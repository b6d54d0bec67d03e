"""
Content acquirer: picks an acquisition strategy for a URL.

    video URL ──────────────▶ VideoTranscriptStrategy
    anything else ──────────▶ StaticPageStrategy
                                 │ too little text, or 403/429 bot wall
                                 ▼
                              RenderedPageStrategy (headless browser)

If the rendered fallback fails too, the static outcome is what the caller
sees: the short static result, or the static FetchError.
"""

import logging
from typing import Optional

from content_indexer.core.config import settings
from content_indexer.services.acquisition.base import (
    AcquisitionStrategy,
    FetchError,
    FetchErrorKind,
    FetchResult,
)
from content_indexer.services.acquisition.browser import RenderedPageStrategy, get_browser_pool
from content_indexer.services.acquisition.static_page import StaticPageStrategy
from content_indexer.services.acquisition.transcript import VideoTranscriptStrategy, is_video_url


logger = logging.getLogger(__name__)

# Statuses that usually mean "a real browser would get through"
RENDER_RETRY_STATUSES = {403, 429}


class ContentAcquirer:
    """
    Turn a URL into normalized text.

    Example:
        >>> acquirer = ContentAcquirer()
        >>> result = await acquirer.fetch("https://example.com/post")
        >>> result.strategy, result.word_count, result.was_redirected
    """

    def __init__(
        self,
        static: Optional[AcquisitionStrategy] = None,
        transcript: Optional[AcquisitionStrategy] = None,
        rendered: Optional[AcquisitionStrategy] = None,
        min_content_chars: Optional[int] = None,
        browser_fallback: Optional[bool] = None,
    ):
        self.static = static or StaticPageStrategy()
        self.transcript = transcript or VideoTranscriptStrategy()

        if browser_fallback is None:
            browser_fallback = settings.INDEXING_BROWSER_FALLBACK_ENABLED
        if browser_fallback and rendered is None:
            rendered = RenderedPageStrategy(get_browser_pool())
        self.rendered = rendered if browser_fallback else None

        self.min_content_chars = (
            settings.INDEXING_MIN_CONTENT_CHARS if min_content_chars is None else min_content_chars
        )

    def select_strategy(self, url: str) -> AcquisitionStrategy:
        """Primary strategy for a URL, decided by URL shape."""
        if is_video_url(url):
            return self.transcript
        return self.static

    async def fetch(self, url: str) -> FetchResult:
        """
        Acquire text for ``url``.

        Raises:
            FetchError: when no strategy produced a result
        """
        strategy = self.select_strategy(url)

        if strategy is not self.static:
            return await strategy.fetch(url)

        try:
            result = await self.static.fetch(url)
        except FetchError as e:
            if self.rendered is None or not self._render_after_error(e):
                raise
            logger.info(f"Static fetch of {url} blocked ({e}), trying rendered fetch")
            try:
                return await self.rendered.fetch(url)
            except FetchError as render_error:
                logger.warning(f"Rendered fetch of {url} failed: {render_error}")
                raise e

        if self.rendered is None or len(result.plain_text) >= self.min_content_chars:
            return result

        logger.info(
            f"Static fetch of {url} yielded {len(result.plain_text)} chars "
            f"(< {self.min_content_chars}), trying rendered fetch"
        )
        try:
            return await self.rendered.fetch(url)
        except FetchError as render_error:
            logger.warning(f"Rendered fetch of {url} failed, keeping static result: {render_error}")
            return result

    @staticmethod
    def _render_after_error(error: FetchError) -> bool:
        return (
            error.kind == FetchErrorKind.HTTP_STATUS
            and error.status_code in RENDER_RETRY_STATUSES
        )
