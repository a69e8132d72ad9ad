"""
In-memory live progress for running extraction jobs.

The database holds the durable snapshot; this mirror lets status polls and
the SSE stream see sub-stage progress (download percent, OCR counters)
without a write per tick. Single-instance only, which is fine since the
pipeline itself runs in-process.
"""
import logging
import threading
from dataclasses import replace
from functools import lru_cache
from typing import Dict, Optional

from app.domain.models import JobProgress

logger = logging.getLogger(__name__)


class JobProgressTracker:
    """Thread-safe map of job_id -> JobProgress (yt-dlp reports from a worker thread)"""

    def __init__(self):
        self._jobs: Dict[str, JobProgress] = {}
        self._lock = threading.Lock()

    def start(self, job_id: str, status: str, current_step: str, progress: int = 0):
        with self._lock:
            self._jobs[job_id] = JobProgress(
                status=status,
                current_step=current_step,
                progress=progress,
            )

    def update(self, job_id: str, **fields) -> Optional[JobProgress]:
        """
        Merge fields into a tracked job.

        Progress never moves backwards. Unknown jobs are ignored so late
        callbacks after cancel are harmless.
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None
            if "progress" in fields:
                fields["progress"] = max(current.progress, int(fields["progress"]))
            updated = replace(current, **fields)
            self._jobs[job_id] = updated
            return updated

    def get(self, job_id: str) -> Optional[JobProgress]:
        with self._lock:
            progress = self._jobs.get(job_id)
            return replace(progress) if progress else None

    def remove(self, job_id: str):
        with self._lock:
            self._jobs.pop(job_id, None)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs


@lru_cache()
def get_progress_tracker() -> JobProgressTracker:
    """Process-wide tracker"""
    return JobProgressTracker()
