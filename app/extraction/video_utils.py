"""
Media helpers: speech-optimized audio transcode and scene-change frame sampling.
"""
import os
import re
import asyncio
import logging
from typing import List

from moviepy.video.io.VideoFileClip import VideoFileClip

from app.core.config import get_settings
from app.domain.exceptions import ProcessError

logger = logging.getLogger(__name__)

# Seconds assumed between scene-change frames; timestamps are approximate
SECONDS_PER_FRAME = 5

_FRAME_NUMBER = re.compile(r"frame_(\d+)")


async def extract_audio(video_path: str, job_dir: str) -> str:
    """
    Transcode the soundtrack to mono 16 kHz 48 kbps mp3.

    48 kbps keeps an hour of speech around 21.6 MB, under the 25 MB upload
    ceiling of the transcription API.

    Raises:
        ProcessError: the video has no audio track or ffmpeg failed
    """
    audio_path = os.path.join(job_dir, "audio.mp3")

    def _sync_extract() -> str:
        video = VideoFileClip(video_path)
        try:
            if video.audio is None:
                raise ValueError("video has no audio track")
            video.audio.write_audiofile(
                audio_path,
                fps=16000,
                bitrate="48k",
                ffmpeg_params=["-ac", "1"],
                logger=None,
            )
        finally:
            video.close()
        return audio_path

    logger.info("Extracting audio (optimized for transcription)...")
    try:
        return await asyncio.to_thread(_sync_extract)
    except Exception as e:
        logger.error(f"Error extracting audio: {str(e)}")
        raise ProcessError("ffmpeg", "audio extraction failed", str(e)) from e


async def extract_frames(video_path: str, frames_dir: str) -> List[str]:
    """
    Sample a frame at every significant visual change.

    Returns:
        Sorted frame paths (frame_0001.jpg, frame_0002.jpg, ...)

    Raises:
        ProcessError: ffmpeg exited non-zero (stderr attached)
    """
    settings = get_settings()
    os.makedirs(frames_dir, exist_ok=True)

    args = [
        "-i", video_path,
        "-vf", f"select=gt(scene\\,{settings.YOUTUBE_SCENE_THRESHOLD})",
        "-vsync", "vfr",
        "-q:v", "3",
        "-y",
        os.path.join(frames_dir, "frame_%04d.jpg"),
    ]

    logger.info("Extracting frames with scene detection...")
    try:
        process = await asyncio.create_subprocess_exec(
            settings.FFMPEG_PATH,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessError("ffmpeg", "could not start process", str(e)) from e

    _, stderr = await process.communicate()
    if process.returncode != 0:
        raise ProcessError(
            "ffmpeg",
            f"frame extraction exited with code {process.returncode}",
            stderr.decode("utf-8", errors="replace"),
        )

    frames = sorted(
        (
            os.path.join(frames_dir, name)
            for name in os.listdir(frames_dir)
            if name.startswith("frame_") and name.endswith(".jpg")
        ),
        key=frame_number,
    )
    logger.info(f"Extracted {len(frames)} frames")
    return frames


def frame_number(frame_path: str) -> int:
    """Ordinal ffmpeg gave the frame (frame_0007.jpg -> 7), 0 if unnamed"""
    match = _FRAME_NUMBER.search(os.path.basename(frame_path))
    return int(match.group(1)) if match else 0


def frame_timestamp(frame_path: str) -> int:
    """Approximate timestamp in seconds from the frame's ordinal"""
    return frame_number(frame_path) * SECONDS_PER_FRAME
