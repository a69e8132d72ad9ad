"""
YouTube extraction job repository
"""
from typing import Optional, List, Dict, Any
from supabase import Client
import logging

from app.repositories.base import BaseRepository
from app.domain.enums import YouTubeJobStatus, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

TERMINAL_STATUS_VALUES = [status.value for status in TERMINAL_STATUSES]


class YouTubeJobRepository(BaseRepository):
    """Repository for youtube_extraction_jobs"""

    def __init__(self, supabase: Client):
        super().__init__(supabase, "youtube_extraction_jobs")

    async def get_for_user(self, job_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a job only if it belongs to user_id"""
        try:
            response = await self._execute(
                self.table()
                .select("*")
                .eq("id", job_id)
                .eq("user_id", user_id)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error fetching job {job_id}: {str(e)}")
            raise

    async def find_active_for_video(self, user_id: str, video_id: str) -> Optional[Dict[str, Any]]:
        """Newest job for (user, video) that has not failed"""
        try:
            response = await self._execute(
                self.table()
                .select("*")
                .eq("user_id", user_id)
                .eq("video_id", video_id)
                .neq("status", YouTubeJobStatus.FAILED.value)
                .order("created_at", desc=True)
                .limit(1)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error finding existing job for video {video_id}: {str(e)}")
            raise

    async def list_for_user(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """User's jobs, newest first"""
        try:
            response = await self._execute(
                self.table()
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
            )
            return response.data or []
        except Exception as e:
            logger.error(f"Error listing jobs for user {user_id}: {str(e)}")
            raise

    async def update_if_active(self, job_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update a job only while it is not completed or failed.

        Returns:
            The updated row, or None when the job is already terminal
            (for example cancelled while the pipeline was running)
        """
        try:
            response = await self._execute(
                self.table()
                .update(data)
                .eq("id", job_id)
                .not_.in_("status", TERMINAL_STATUS_VALUES)
            )
            return response.data[0] if response.data else None
        except Exception as e:
            logger.error(f"Error updating job {job_id}: {str(e)}")
            raise
