"""
Cleanup service for temporary job directories.

Every job removes its own directory when it finishes; this sweep catches
what a crash or restart left behind.
"""
import time
import shutil
import logging
from pathlib import Path
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


def _dir_size(path: Path) -> int:
    return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())


def cleanup_stale_job_dirs(
    temp_dir: str,
    max_age_hours: int,
    is_active: Optional[Callable[[str], bool]] = None,
) -> dict:
    """
    Delete job directories not modified for max_age_hours.

    Args:
        temp_dir: Root holding one directory per job
        max_age_hours: Maximum age in hours before deletion
        is_active: Returns True for job ids still running; those are kept

    Returns:
        Dict with cleanup statistics
    """
    cutoff = time.time() - (max_age_hours * 3600)
    temp_path = Path(temp_dir)

    stats = {
        "dirs_deleted": 0,
        "bytes_freed": 0,
        "errors": []
    }

    if not temp_path.exists():
        logger.debug(f"Temp directory does not exist: {temp_dir}")
        return stats

    for job_dir in temp_path.iterdir():
        if not job_dir.is_dir():
            continue
        if is_active and is_active(job_dir.name):
            continue

        try:
            if job_dir.stat().st_mtime >= cutoff:
                continue
            size = _dir_size(job_dir)
            shutil.rmtree(job_dir)
            stats["dirs_deleted"] += 1
            stats["bytes_freed"] += size
            logger.info(f"Deleted stale job directory: {job_dir}")
        except OSError as e:
            error_msg = f"Failed to delete {job_dir}: {str(e)}"
            logger.warning(error_msg)
            stats["errors"].append(error_msg)

    if stats["dirs_deleted"] > 0:
        logger.info(
            f"Cleanup complete: {stats['dirs_deleted']} dirs, "
            f"{stats['bytes_freed'] / 1024 / 1024:.2f} MB freed"
        )

    return stats


def start_cleanup_scheduler(
    temp_dir: str,
    max_age_hours: int,
    interval_hours: int = 1,
    is_active: Optional[Callable[[str], bool]] = None,
) -> AsyncIOScheduler:
    """
    Start a background scheduler that sweeps stale job directories.

    Args:
        temp_dir: Root holding one directory per job
        max_age_hours: Maximum age in hours before deletion
        interval_hours: How often to run cleanup (in hours)
        is_active: Returns True for job ids still running
    """
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        cleanup_stale_job_dirs,
        trigger=IntervalTrigger(hours=interval_hours),
        args=[temp_dir, max_age_hours, is_active],
        id="cleanup_youtube_temp",
        name="Cleanup stale YouTube job directories",
        replace_existing=True
    )

    scheduler.start()
    logger.info(
        f"Started temp cleanup scheduler: "
        f"runs every {interval_hours}h, deletes job dirs older than {max_age_hours}h"
    )

    return scheduler
