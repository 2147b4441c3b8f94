"""
YouTube Adapter
===============

Discovers tying videos through the YouTube Data API v3 and fetches their
captions from the public watch page. Content for a video is its title,
channel and description, plus the transcript when captions exist.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from fly_pattern_db.core.enums import SourceType
from fly_pattern_db.core.schema import StagedSource
from fly_pattern_db.ingestion.adapters.base import Candidate, DiscoveryBackend, Scraper
from fly_pattern_db.ingestion.config import ConfigurationError, GlobalConfig, YouTubeConfig
from fly_pattern_db.ingestion.crawler import Crawler, TransientNetworkError

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Descriptions shorter than this are not worth staging without a transcript.
MIN_DESCRIPTION_LENGTH = 100

_CAPTIONS_RE = re.compile(
    r'"captions":\s*(\{[\s\S]*?"playerCaptionsTracklistRenderer"[\s\S]*?\})\s*,\s*"videoDetails"'
)


def video_url(video_id: str) -> str:
    """Build the watch URL for a video."""
    return WATCH_URL.format(video_id=video_id)


def extract_video_id(url: str) -> str | None:
    """Pull the video id out of a watch, short or embed URL."""
    parsed = urlparse(url)
    host = parsed.netloc.lower().removeprefix("www.").removeprefix("m.")
    if host == "youtu.be":
        return parsed.path.lstrip("/") or None
    if host.endswith("youtube.com"):
        if parsed.path == "/watch":
            return (parse_qs(parsed.query).get("v") or [None])[0]
        for prefix in ("/embed/", "/shorts/", "/v/"):
            if parsed.path.startswith(prefix):
                return parsed.path[len(prefix) :].split("/")[0] or None
    return None


def is_youtube_url(url: str) -> bool:
    return extract_video_id(url) is not None


def build_video_content(
    title: str,
    channel: str | None,
    description: str | None,
    transcript: str | None,
) -> str:
    """Combine the text of a video into one extraction input."""
    parts = [f"Title: {title}", f"Channel: {channel or ''}"]
    if description:
        parts.append(f"\nDescription:\n{description}")
    if transcript:
        parts.append(f"\nTranscript:\n{transcript}")
    return "\n".join(parts)


def parse_caption_tracks(html: str) -> list[dict[str, Any]]:
    """Find the caption track list embedded in a watch page."""
    match = _CAPTIONS_RE.search(html)
    if not match:
        return []
    try:
        captions = json.loads(match.group(1))
    except json.JSONDecodeError:
        return []
    renderer = captions.get("playerCaptionsTracklistRenderer") or {}
    return list(renderer.get("captionTracks") or [])


def choose_caption_track(tracks: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Prefer English, then any English variant, then the first track."""
    for track in tracks:
        if track.get("languageCode") == "en":
            return track
    for track in tracks:
        if str(track.get("languageCode", "")).startswith("en"):
            return track
    return tracks[0] if tracks else None


def parse_transcript_events(data: dict[str, Any]) -> str | None:
    """Join the text segments of a json3 caption document."""
    segments = []
    for event in data.get("events") or []:
        segs = event.get("segs")
        if not segs:
            continue
        text = "".join(seg.get("utf8", "") for seg in segs).strip()
        if text:
            segments.append(text)
    return " ".join(segments) if segments else None


class YouTubeAdapter(DiscoveryBackend, Scraper):
    """
    YouTube discovery backend and transcript scraper.

    API calls and watch-page fetches go through separate crawlers, so the
    Data API quota delay and the page delay are throttled independently.
    """

    ADAPTER_NAME = "youtube"
    SOURCE_TYPE = SourceType.YOUTUBE

    def __init__(
        self,
        config: YouTubeConfig,
        global_config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        global_config = global_config or GlobalConfig()
        self.api = Crawler.from_config(
            global_config, request_delay=config.request_delay, transport=transport
        )
        self.pages = Crawler.from_config(global_config, transport=transport)

    async def discover(self, query: str) -> list[Candidate]:
        """Search every configured query template and return unique videos."""
        if not self.config.api_key:
            raise ConfigurationError("YOUTUBE_API_KEY not configured")

        candidates: list[Candidate] = []
        seen: set[str] = set()

        for template in self.config.search_queries:
            search_query = template.replace("{pattern}", query)
            logger.info("Searching YouTube: %s", search_query)

            data = await self.api.get_json(
                SEARCH_URL,
                params={
                    "part": "snippet",
                    "q": search_query,
                    "type": "video",
                    "maxResults": self.config.max_results_per_query,
                    "relevanceLanguage": "en",
                    "videoDuration": "medium",
                    "key": self.config.api_key,
                },
            )
            items = [i for i in data.get("items") or [] if i.get("id", {}).get("videoId")]
            if not items:
                logger.warning("No YouTube results for %r", search_query)
                continue

            stats = await self._fetch_stats([i["id"]["videoId"] for i in items])

            for item in items:
                video_id = item["id"]["videoId"]
                if video_id in seen:
                    continue
                candidate = await self._build_candidate(item, stats.get(video_id, {}))
                if candidate is not None:
                    seen.add(video_id)
                    candidates.append(candidate)

        logger.info("YouTube found %d videos for %r", len(candidates), query)
        return candidates

    async def _fetch_stats(self, video_ids: list[str]) -> dict[str, dict[str, Any]]:
        data = await self.api.get_json(
            VIDEOS_URL,
            params={"part": "statistics", "id": ",".join(video_ids), "key": self.config.api_key},
        )
        return {item["id"]: item.get("statistics") or {} for item in data.get("items") or []}

    async def _build_candidate(
        self, item: dict[str, Any], statistics: dict[str, Any]
    ) -> Candidate | None:
        video_id = item["id"]["videoId"]
        snippet = item.get("snippet") or {}
        title = snippet.get("title", "")
        channel = snippet.get("channelTitle")
        description = snippet.get("description", "")

        transcript = await self.fetch_transcript(video_id)
        if not transcript and len(description) <= MIN_DESCRIPTION_LENGTH:
            logger.debug("Skipping %s: no transcript and a short description", video_id)
            return None

        view_count = int(statistics.get("viewCount") or 0)
        like_count = int(statistics.get("likeCount") or 0)
        return Candidate(
            url=video_url(video_id),
            title=title,
            source_type=SourceType.YOUTUBE,
            snippet=description,
            engagement=view_count,
            creator_name=channel,
            platform="YouTube",
            content=build_video_content(title, channel, description, transcript),
            metadata={
                "video_id": video_id,
                "view_count": view_count,
                "like_count": like_count,
                "published_at": snippet.get("publishedAt"),
                "has_transcript": transcript is not None,
            },
        )

    async def fetch_transcript(self, video_id: str) -> str | None:
        """
        Fetch a video's captions as plain text.

        Returns:
            Transcript text, or None when the video has no usable captions
        """
        try:
            html = await self.pages.get_text(video_url(video_id))
            track = choose_caption_track(parse_caption_tracks(html))
            if track is None or not track.get("baseUrl"):
                return None
            data = await self.pages.get_json(f"{track['baseUrl']}&fmt=json3")
        except (TransientNetworkError, httpx.HTTPError, ValueError) as e:
            logger.debug("No transcript for %s: %s", video_id, e)
            return None
        return parse_transcript_events(data)

    def handles(self, source: StagedSource) -> bool:
        return source.source_type == SourceType.YOUTUBE

    async def fetch_content(self, source: StagedSource) -> str | None:
        """
        Transcript-first content for a staged video.

        Falls back to the title and description staged at discovery when the
        video has no captions.
        """
        video_id = source.metadata.get("video_id") or extract_video_id(source.url)
        if not video_id:
            logger.warning("Cannot determine video id for %s", source.url)
            return source.raw_content

        transcript = await self.fetch_transcript(video_id)
        if transcript:
            return build_video_content(
                source.title or "", source.creator_name, None, transcript
            )
        if source.raw_content:
            logger.info("No transcript for %s, using description content", video_id)
            return source.raw_content
        return None

    async def describe_url(self, url: str) -> Candidate | None:
        """
        Build a candidate for one manually imported video URL.

        Uses the Data API for title and channel when a key is configured,
        otherwise stages the bare URL.
        """
        video_id = extract_video_id(url)
        if video_id is None:
            return None

        title, channel, description = url, None, ""
        if self.config.api_key:
            data = await self.api.get_json(
                VIDEOS_URL,
                params={"part": "snippet", "id": video_id, "key": self.config.api_key},
            )
            items = data.get("items") or []
            if items:
                snippet = items[0].get("snippet") or {}
                title = snippet.get("title") or url
                channel = snippet.get("channelTitle")
                description = snippet.get("description") or ""

        return Candidate(
            url=video_url(video_id),
            title=title,
            source_type=SourceType.YOUTUBE,
            snippet=description,
            creator_name=channel,
            platform="YouTube",
            content=build_video_content(title, channel, description, None) if description else None,
            metadata={"video_id": video_id, "manual_import": True},
        )
