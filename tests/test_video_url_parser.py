"""
Tests for YouTube URL parsing
"""
import pytest

from app.services.video_url_parser import VideoURLParser, build_watch_url

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.mark.parametrize("url", [
    f"https://www.youtube.com/watch?v={VIDEO_ID}",
    f"https://youtube.com/watch?v={VIDEO_ID}&t=42s",
    f"https://m.youtube.com/watch?v={VIDEO_ID}",
    f"https://www.youtube.com/watch?list=PL123&index=2&v={VIDEO_ID}",
    f"https://youtu.be/{VIDEO_ID}",
    f"https://youtu.be/{VIDEO_ID}?si=abcdef",
    f"https://www.youtube.com/shorts/{VIDEO_ID}",
    f"https://www.youtube.com/embed/{VIDEO_ID}",
    f"https://www.youtube.com/v/{VIDEO_ID}",
    f"  https://youtu.be/{VIDEO_ID}  ",
])
def test_extracts_video_id(url):
    assert VideoURLParser.extract_video_id(url) == VIDEO_ID
    assert VideoURLParser.parse(url).video_id == VIDEO_ID


@pytest.mark.parametrize("url", [
    "",
    "https://vimeo.com/123456789",
    "https://www.youtube.com/",
    "https://www.youtube.com/channel/UC1234567890",
    "https://youtu.be/short",
    "not a url",
])
def test_unrecognized_urls(url):
    assert VideoURLParser.extract_video_id(url) is None
    assert VideoURLParser.parse(url) is None


def test_parse_strips_tracking_params():
    url = f"https://www.youtube.com/watch?v={VIDEO_ID}&si=tracking&feature=share#comments"

    parsed = VideoURLParser.parse(url)

    assert parsed.video_id == VIDEO_ID
    assert parsed.original_url == url
    assert parsed.clean_url == f"https://www.youtube.com/watch?v={VIDEO_ID}"


def test_clean_url_keeps_timestamp():
    cleaned = VideoURLParser.clean_url(f"https://youtu.be/{VIDEO_ID}?si=abc&t=90")
    assert cleaned == f"https://youtu.be/{VIDEO_ID}?t=90"


def test_clean_url_without_query_is_unchanged():
    assert VideoURLParser.clean_url(f"https://youtu.be/{VIDEO_ID}") == f"https://youtu.be/{VIDEO_ID}"


def test_watch_url_is_canonical():
    assert build_watch_url(VIDEO_ID) == f"https://www.youtube.com/watch?v={VIDEO_ID}"
