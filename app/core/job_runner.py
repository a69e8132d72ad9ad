"""
Background execution of extraction jobs.

Submitting returns immediately; the runner keeps a handle on each task so
it is not garbage collected mid-flight and so shutdown can cancel it.
"""
import asyncio
import logging
from functools import lru_cache
from typing import Coroutine, Dict, Optional

logger = logging.getLogger(__name__)


class BackgroundJobRunner:
    """Owns the asyncio tasks running job pipelines"""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, job_id: str, coro: Coroutine) -> asyncio.Task:
        """Schedule coro on the running loop and return without waiting"""
        task = asyncio.create_task(coro, name=f"youtube-job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(job_id, t))
        logger.info(f"Queued background processing for job {job_id}")
        return task

    def _on_done(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            logger.info(f"Background task for job {job_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background task for job {job_id} crashed: {error}", exc_info=error)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._tasks

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def wait(self, job_id: str, timeout: Optional[float] = None):
        """Wait for a job's task to finish (used by tests and shutdown)"""
        task = self._tasks.get(job_id)
        if task is None:
            return
        await asyncio.wait({task}, timeout=timeout)

    async def shutdown(self, timeout: float = 5.0):
        """Cancel whatever is still running"""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info(f"Cancelling {len(tasks)} running extraction job(s)")
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks, timeout=timeout)


@lru_cache()
def get_job_runner() -> BackgroundJobRunner:
    """Process-wide job runner"""
    return BackgroundJobRunner()
