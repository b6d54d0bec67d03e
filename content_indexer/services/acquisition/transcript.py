"""
Video transcript acquisition.

Turns a YouTube URL into continuous prose from the video's caption track.

Track selection (first hit wins):
1. Manual transcript in a preferred language
2. Auto-generated transcript in a preferred language
3. Any manual transcript
4. Any auto-generated transcript

A video without captions is not an error: the strategy returns an empty
result and the orchestrator records "no content available".
"""

import asyncio
import html
import logging
import re
import time
from typing import Iterable, Optional
from urllib.parse import parse_qs, urlparse

from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from content_indexer.services.acquisition.base import (
    FetchError,
    FetchErrorKind,
    FetchResult,
    StrategyName,
    build_result,
    elapsed_ms,
)


logger = logging.getLogger(__name__)

VIDEO_HOSTS = ("youtube.com", "youtube-nocookie.com", "youtu.be")

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

PREFERRED_LANGUAGES = ["en", "en-US", "en-GB"]

# Inline cue timestamps (<00:00:04.000>) and styling tags (<c>, </c>, <i>, <c.colorE5E5E5>)
_CUE_TIMESTAMP = re.compile(r"<\d{1,2}:\d{2}(?::\d{2})?\.\d{3}>")
_CUE_TAG = re.compile(r"</?[a-z]+(?:\.[\w.-]+)?(?:\s[^>]*)?>", re.IGNORECASE)
# Sound cues such as [Music], [Applause], (laughter)
_SOUND_CUE = re.compile(r"\[[^\]]*\]|\((?:music|applause|laughter|laughs)\)", re.IGNORECASE)


def is_video_url(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in VIDEO_HOSTS)


def extract_video_id(url: str) -> Optional[str]:
    """
    Extract the 11-character video ID from a YouTube URL.

    Supports:
    - https://www.youtube.com/watch?v=VIDEO_ID
    - https://youtu.be/VIDEO_ID
    - https://www.youtube.com/embed/VIDEO_ID
    - https://www.youtube.com/shorts/VIDEO_ID and /live/VIDEO_ID

    Returns:
        Video ID if found, None otherwise
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    candidate = None

    if host == "youtu.be" or host.endswith(".youtu.be"):
        candidate = parsed.path.lstrip("/").split("/")[0]
    elif is_video_url(url):
        query_params = parse_qs(parsed.query)
        if "v" in query_params:
            candidate = query_params["v"][0]
        else:
            parts = [p for p in parsed.path.split("/") if p]
            if len(parts) >= 2 and parts[0] in ("embed", "shorts", "live", "v"):
                candidate = parts[1]

    if candidate and VIDEO_ID_PATTERN.match(candidate):
        return candidate
    return None


def clean_caption_text(text: str) -> str:
    """Strip cue markup, sound cues and entities from one caption line."""
    text = _CUE_TIMESTAMP.sub("", text)
    text = _CUE_TAG.sub("", text)
    text = html.unescape(text)
    text = _SOUND_CUE.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def join_caption_lines(lines: Iterable[str]) -> str:
    """
    Join caption lines into prose.

    Rolling auto-captions repeat the previous line as the first line of
    the next cue; consecutive duplicates are dropped.
    """
    joined: list[str] = []
    for line in lines:
        cleaned = clean_caption_text(line)
        if not cleaned or (joined and joined[-1] == cleaned):
            continue
        joined.append(cleaned)
    return re.sub(r"\s+", " ", " ".join(joined)).strip()


def parse_vtt(vtt_content: str) -> str:
    """
    Parse a WebVTT payload into plain text.

    Skips the header, metadata (Kind:, Language:), NOTE/STYLE blocks,
    cue identifiers and timing lines (with their cue settings).
    """
    lines: list[str] = []
    skipping_block = False

    for raw_line in vtt_content.splitlines():
        line = raw_line.strip()

        if not line:
            skipping_block = False
            continue
        if skipping_block:
            continue
        if line.startswith("WEBVTT") or line.startswith(("Kind:", "Language:")):
            continue
        if line.startswith(("NOTE", "STYLE", "REGION")):
            skipping_block = True
            continue
        # Timing line, e.g. "00:00:01.000 --> 00:00:04.000 align:start position:0%"
        if "-->" in line:
            continue
        # Numeric cue identifiers
        if line.isdigit():
            continue

        lines.append(line)

    return join_caption_lines(lines)


class VideoTranscriptStrategy:
    """
    Fetch captions through youtube-transcript-api.

    Example:
        >>> strategy = VideoTranscriptStrategy()
        >>> result = await strategy.fetch("https://youtu.be/dQw4w9WgXcQ")
        >>> result.plain_text[:80]
    """

    name = StrategyName.VIDEO_TRANSCRIPT

    # Caption listing + download is two round trips; allow more than a page fetch
    TIMEOUT_SECONDS = 30

    def __init__(
        self,
        api: Optional[YouTubeTranscriptApi] = None,
        preferred_languages: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.api = api or YouTubeTranscriptApi()
        self.preferred_languages = preferred_languages or PREFERRED_LANGUAGES
        self.timeout = timeout or self.TIMEOUT_SECONDS

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch the transcript of the video at ``url``.

        Raises:
            FetchError: invalid video URL, unavailable video, timeout or a
                failure retrieving captions (rate limiting, blocked IP)
        """
        started = time.monotonic()

        video_id = extract_video_id(url)
        if not video_id:
            raise FetchError(url, "Invalid YouTube URL", FetchErrorKind.INVALID_VIDEO_URL)

        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self._download_transcript, video_id),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            duration = elapsed_ms(started)
            raise FetchError(
                url, f"Timeout after {duration}ms fetching transcript",
                FetchErrorKind.TIMEOUT, duration_ms=duration, cause=e,
            ) from e
        except VideoUnavailable as e:
            raise FetchError(
                url, f"Video {video_id} is unavailable", FetchErrorKind.UNREACHABLE,
                duration_ms=elapsed_ms(started), cause=e,
            ) from e
        except CouldNotRetrieveTranscript as e:
            logger.error(f"Could not retrieve transcript for {video_id}: {type(e).__name__}")
            raise FetchError(
                url, f"Could not retrieve transcript: {type(e).__name__}",
                FetchErrorKind.TRANSCRIPT_UNAVAILABLE,
                duration_ms=elapsed_ms(started), cause=e,
            ) from e

        if not text:
            logger.info(f"No captions available for video {video_id}")

        return build_result(
            url=url,
            final_url=url,
            plain_text=text,
            full_text=text,
            started=started,
            strategy=self.name,
        )

    def _download_transcript(self, video_id: str) -> str:
        """Pick a caption track and return its text (sync, runs in a thread)."""
        try:
            transcript_list = self.api.list(video_id)
        except (TranscriptsDisabled, NoTranscriptFound):
            return ""

        transcript = None
        for finder in (
            transcript_list.find_manually_created_transcript,
            transcript_list.find_generated_transcript,
        ):
            try:
                transcript = finder(self.preferred_languages)
                break
            except NoTranscriptFound:
                continue

        if transcript is None:
            # Non-preferred language: manual tracks first
            tracks = sorted(transcript_list, key=lambda t: t.is_generated)
            if not tracks:
                return ""
            transcript = tracks[0]
            logger.info(
                f"Using {'auto-generated' if transcript.is_generated else 'manual'} transcript "
                f"in non-preferred language {transcript.language_code} for video {video_id}"
            )

        fetched = transcript.fetch()
        return join_caption_lines(snippet.text for snippet in fetched)
