"""
YouTube URL Parser
Resolves YouTube URLs (watch pages, youtu.be short links, Shorts, embeds)
to the canonical 11-character video ID.
"""

import re
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
from typing import List, Optional, Set
from dataclasses import dataclass


WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"


@dataclass
class ParsedVideoURL:
    """Result of parsing a YouTube URL"""
    video_id: str
    original_url: str
    clean_url: str  # URL with tracking params removed


# Query parameters to strip from URLs (tracking/analytics params)
TRACKING_PARAMS: Set[str] = {
    'si',
    'feature',
    'pp',
    'utm_source',
    'utm_medium',
    'utm_campaign',
    'utm_content',
    'utm_term',
    'fbclid',
    'gclid',
    'ref',
    'source',
}


def build_watch_url(video_id: str) -> str:
    """Canonical watch-page URL handed to yt-dlp"""
    return WATCH_URL_TEMPLATE.format(video_id=video_id)


class VideoURLParser:
    """
    Parse YouTube URLs to extract the video ID.

    Supports:
    - Watch pages: youtube.com/watch?v=ID, m.youtube.com/watch?v=ID
    - Short links: youtu.be/ID
    - Shorts: youtube.com/shorts/ID
    - Embeds: youtube.com/embed/ID, youtube.com/v/ID
    """

    # Tried in order; each pattern captures the video ID in group 1
    PATTERNS: List[str] = [
        # Watch page, v may follow other query params
        r'youtube\.com/watch\?(?:[^#]*&)?v=([A-Za-z0-9_-]{11})',
        # Short link: youtu.be/VIDEO_ID
        r'youtu\.be/([A-Za-z0-9_-]{11})',
        # Shorts: youtube.com/shorts/VIDEO_ID
        r'youtube\.com/shorts/([A-Za-z0-9_-]{11})',
        # Embed: youtube.com/embed/VIDEO_ID
        r'youtube\.com/embed/([A-Za-z0-9_-]{11})',
        # Legacy embed: youtube.com/v/VIDEO_ID
        r'youtube\.com/v/([A-Za-z0-9_-]{11})',
    ]

    @classmethod
    def clean_url(cls, url: str) -> str:
        """
        Remove tracking query parameters and fragments.

        Unlike other platforms, YouTube watch pages carry the video ID in the
        query string, so only the known tracking params are dropped.
        """
        if not url:
            return url

        try:
            parsed = urlparse(url)
            query = [
                (key, value)
                for key, value in parse_qsl(parsed.query, keep_blank_values=True)
                if key.lower() not in TRACKING_PARAMS
            ]
            return urlunparse(parsed._replace(query=urlencode(query), fragment=''))
        except ValueError:
            return url

    @classmethod
    def extract_video_id(cls, url: str) -> Optional[str]:
        """
        Return the first video ID matched by the ordered patterns, or None.

        Args:
            url: Any string presumed to be a YouTube URL

        Returns:
            The 11-character video ID, or None if no pattern matches
        """
        if not url:
            return None

        candidate = url.strip()
        for pattern in cls.PATTERNS:
            match = re.search(pattern, candidate, re.IGNORECASE)
            if match:
                return match.group(1)

        return None

    @classmethod
    def parse(cls, url: str) -> Optional[ParsedVideoURL]:
        """
        Parse a YouTube URL.

        Args:
            url: The video URL to parse

        Returns:
            ParsedVideoURL if successful, None if URL is not recognized
        """
        video_id = cls.extract_video_id(url)
        if not video_id:
            return None

        return ParsedVideoURL(
            video_id=video_id,
            original_url=url,
            clean_url=cls.clean_url(url.strip())
        )
