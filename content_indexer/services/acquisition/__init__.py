"""
Content acquisition package.

Modules:
--------
- base: FetchResult, FetchError and the AcquisitionStrategy protocol
- extraction: main-content extraction rules for HTML
- static_page: httpx-based page fetch (fast path)
- transcript: YouTube caption tracks and WebVTT parsing
- browser: headless-browser fallback and its shared BrowserPool
- acquirer: strategy selection and fallback
"""

from content_indexer.services.acquisition.acquirer import ContentAcquirer
from content_indexer.services.acquisition.base import (
    AcquisitionStrategy,
    FetchError,
    FetchErrorKind,
    FetchResult,
    StrategyName,
)
from content_indexer.services.acquisition.browser import (
    BrowserPool,
    RenderedPageStrategy,
    close_browser_pool,
    get_browser_pool,
)
from content_indexer.services.acquisition.static_page import StaticPageStrategy
from content_indexer.services.acquisition.transcript import (
    VideoTranscriptStrategy,
    extract_video_id,
    parse_vtt,
)

__all__ = [
    "AcquisitionStrategy",
    "BrowserPool",
    "ContentAcquirer",
    "FetchError",
    "FetchErrorKind",
    "FetchResult",
    "RenderedPageStrategy",
    "StaticPageStrategy",
    "StrategyName",
    "VideoTranscriptStrategy",
    "close_browser_pool",
    "extract_video_id",
    "get_browser_pool",
    "parse_vtt",
]
