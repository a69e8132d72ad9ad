"""
yt-dlp wrappers: metadata lookup and video download.

yt-dlp is blocking, so every call runs in a worker thread via
asyncio.to_thread() to keep the event loop (and SSE streams) responsive.
"""
import os
import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import yt_dlp

from app.core.config import get_settings
from app.domain.exceptions import MetadataFetchError, ProcessError
from app.domain.models import VideoMetadata
from app.services.video_url_parser import build_watch_url

logger = logging.getLogger(__name__)

FORMAT_SELECTOR = "bv*[height<={h}]+ba/b[height<={h}]/bv*+ba/b"


def _ffmpeg_location() -> Optional[str]:
    """Only pass ffmpeg_location when FFMPEG_PATH points somewhere specific"""
    ffmpeg_path = get_settings().FFMPEG_PATH
    if os.sep in ffmpeg_path or "/" in ffmpeg_path:
        return ffmpeg_path
    return None


def _metadata_from_info(info: Dict[str, Any]) -> VideoMetadata:
    return VideoMetadata(
        title=info.get("title") or "Unknown Title",
        duration=int(info.get("duration") or 0),
        channel=info.get("channel") or info.get("uploader") or "Unknown Channel",
        thumbnail=info.get("thumbnail") or "",
        description=info.get("description"),
    )


async def fetch_video_metadata(video_id: str) -> VideoMetadata:
    """
    Fetch title, duration, channel and thumbnail without downloading.

    Raises:
        MetadataFetchError: yt-dlp could not resolve the video
    """
    url = build_watch_url(video_id)

    def _sync_fetch() -> Dict[str, Any]:
        ydl_opts = {
            "skip_download": True,
            "quiet": True,
            "no_warnings": True,
        }
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    try:
        info = await asyncio.to_thread(_sync_fetch)
    except Exception as e:
        logger.error(f"Failed to fetch metadata for {video_id}: {str(e)}")
        raise MetadataFetchError(f"Failed to fetch video metadata: {str(e)}") from e

    if not info:
        raise MetadataFetchError("Failed to fetch video metadata: empty response")

    return _metadata_from_info(info)


async def download_video(
    video_id: str,
    job_dir: str,
    on_progress: Optional[Callable[[float], None]] = None,
) -> str:
    """
    Download a video capped at YOUTUBE_MAX_HEIGHT and merged to mp4.

    Args:
        video_id: YouTube video ID
        job_dir: Job working directory, the video lands in job_dir/video.mp4
        on_progress: Called from the download thread with a 0-100 percent

    Returns:
        Path to the downloaded video

    Raises:
        ProcessError: yt-dlp failed
    """
    settings = get_settings()
    url = build_watch_url(video_id)

    def _hook(status: Dict[str, Any]):
        if not on_progress or status.get("status") != "downloading":
            return
        total = status.get("total_bytes") or status.get("total_bytes_estimate")
        downloaded = status.get("downloaded_bytes")
        if total and downloaded is not None:
            try:
                on_progress(min(downloaded / total * 100, 100.0))
            except Exception as e:
                # best effort
                logger.debug(f"Download progress callback failed: {e}")

    def _sync_download() -> str:
        ydl_opts = {
            "format": FORMAT_SELECTOR.format(h=settings.YOUTUBE_MAX_HEIGHT),
            "outtmpl": os.path.join(job_dir, "video.%(ext)s"),
            "merge_output_format": "mp4",
            "quiet": True,
            "no_warnings": True,
            "noprogress": True,
            "progress_hooks": [_hook],
        }
        ffmpeg_location = _ffmpeg_location()
        if ffmpeg_location:
            ydl_opts["ffmpeg_location"] = ffmpeg_location

        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(url, download=True)
            video_path = os.path.splitext(ydl.prepare_filename(info))[0] + ".mp4"

        if not os.path.exists(video_path):
            # Merge skipped (single progressive stream); use whatever landed
            candidates = sorted(
                name for name in os.listdir(job_dir) if name.startswith("video.")
            )
            if not candidates:
                raise FileNotFoundError("yt-dlp produced no video file")
            video_path = os.path.join(job_dir, candidates[0])
        return video_path

    logger.info(f"Downloading video {video_id}...")
    try:
        video_path = await asyncio.to_thread(_sync_download)
    except Exception as e:
        logger.error(f"Error downloading video {video_id}: {str(e)}")
        raise ProcessError("yt-dlp", "video download failed", str(e)) from e

    logger.info(f"Downloaded video {video_id} to {video_path}")
    return video_path
