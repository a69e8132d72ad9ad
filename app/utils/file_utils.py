import os
import shutil
import logging

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def job_dir_path(job_id: str) -> str:
    """Working directory for a job under YOUTUBE_TEMP_DIR"""
    return os.path.join(get_settings().YOUTUBE_TEMP_DIR, job_id)


def create_job_dir(job_id: str) -> str:
    """Create the job directory (with its frames/ subdirectory) and return it"""
    job_dir = job_dir_path(job_id)
    os.makedirs(os.path.join(job_dir, "frames"), exist_ok=True)
    return job_dir


def remove_job_dir(job_dir: str) -> bool:
    """Delete a job directory and everything in it. Never raises."""
    if not job_dir or not os.path.exists(job_dir):
        return False
    try:
        shutil.rmtree(job_dir)
        logger.info(f"Cleaned up job directory: {job_dir}")
        return True
    except OSError as e:
        logger.warning(f"Failed to cleanup {job_dir}: {e}")
        return False
