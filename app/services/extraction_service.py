"""
YouTube extraction orchestrator
Owns the job state machine: submission, background pipeline, status,
results, import into permanent recipes, cancel, retry and history.
"""
import os
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List

from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.job_runner import BackgroundJobRunner, get_job_runner
from app.core.progress import JobProgressTracker, get_progress_tracker
from app.domain.enums import YouTubeJobStatus, RecipeSource
from app.domain.exceptions import (
    InvalidJobStateError,
    InvalidVideoURLError,
    JobCancelledError,
    JobNotFoundError,
    MetadataFetchError,
    VideoValidationError,
    YouTubeExtractionError,
)
from app.domain.extraction_steps import (
    ExtractionStep,
    PROGRESS_DOWNLOAD_START,
    PROGRESS_DOWNLOAD_END,
    PROGRESS_EXTRACTING_AUDIO,
    PROGRESS_TRANSCRIBING,
    PROGRESS_EXTRACTING_FRAMES,
    PROGRESS_OCR_START,
    PROGRESS_OCR_END,
    PROGRESS_AI_SYNTHESIS,
    PROGRESS_SYNTHESIZING,
    PROGRESS_COMPLETE,
)
from app.domain.models import ExtractedRecipe, JobProgress, VideoMetadata
from app.extraction import downloader, ocr, video_utils
from app.repositories.recipe_repository import RecipeRepository
from app.repositories.youtube_job_repository import YouTubeJobRepository
from app.services.openai_service import OpenAIService
from app.services.video_url_parser import VideoURLParser
from app.utils import file_utils

logger = logging.getLogger(__name__)

HISTORY_DEFAULT_LIMIT = 10
HISTORY_MAX_LIMIT = 50
DEFAULT_SERVINGS = 4


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_recipes(raw: Any) -> List[Dict[str, Any]]:
    """Stored recipes as a list; legacy rows hold a single object"""
    if isinstance(raw, list):
        return [recipe for recipe in raw if isinstance(recipe, dict)]
    if isinstance(raw, dict):
        return [raw]
    return []


def imported_ids_map(raw: Any) -> Dict[str, str]:
    """Stored imported ids as {str(index): recipe_id}; legacy rows hold a positional list"""
    if isinstance(raw, dict):
        return {str(key): value for key, value in raw.items() if value}
    if isinstance(raw, list):
        return {str(index): value for index, value in enumerate(raw) if value}
    return {}


def imported_ids_list(raw: Any, count: int) -> List[Optional[str]]:
    """Imported ids aligned with the recipe list, None where not imported"""
    mapping = imported_ids_map(raw)
    return [mapping.get(str(index)) for index in range(count)]


class YouTubeExtractionService:
    """Orchestrates YouTube recipe extraction jobs"""

    def __init__(
        self,
        job_repo: YouTubeJobRepository,
        recipe_repo: RecipeRepository,
        ai_service: Optional[OpenAIService] = None,
        progress_tracker: Optional[JobProgressTracker] = None,
        job_runner: Optional[BackgroundJobRunner] = None,
        settings: Optional[Settings] = None,
    ):
        self.job_repo = job_repo
        self.recipe_repo = recipe_repo
        self.ai_service = ai_service or OpenAIService()
        self.progress = progress_tracker or get_progress_tracker()
        self.runner = job_runner or get_job_runner()
        self.settings = settings or get_settings()

    # ============= Public operations =============

    async def submit(self, user_id: str, url: str) -> str:
        """
        Validate a URL and queue an extraction job.

        Resubmitting a video the user already extracted returns the
        completed job instead of creating a new one. The URL is stored
        without tracking parameters.

        Returns:
            Job ID

        Raises:
            InvalidVideoURLError: not a YouTube video URL
            InvalidJobStateError: the same video is still being processed
            VideoValidationError: metadata unavailable or video too long
        """
        parsed = VideoURLParser.parse(url)
        if not parsed:
            raise InvalidVideoURLError(url)
        video_id = parsed.video_id

        existing = await self.job_repo.find_active_for_video(user_id, video_id)
        if existing:
            if existing["status"] == YouTubeJobStatus.COMPLETED.value:
                logger.info(f"Video {video_id} already extracted in job {existing['id']}")
                return existing["id"]
            raise InvalidJobStateError(
                "This video is already being processed. Check the existing job."
            )

        try:
            metadata = await downloader.fetch_video_metadata(video_id)
        except MetadataFetchError as e:
            logger.error(f"Failed to fetch metadata for {video_id}: {e.message}")
            raise VideoValidationError(
                "Could not fetch video information. Please check the URL and try again."
            ) from e

        max_duration = self.settings.YOUTUBE_MAX_DURATION
        if metadata.duration > max_duration:
            raise VideoValidationError(
                f"Video exceeds {max_duration // 60} minute limit "
                f"({metadata.duration // 60} minutes)"
            )

        job = await self.job_repo.create({
            "user_id": user_id,
            "youtube_url": parsed.clean_url,
            "video_id": video_id,
            "status": YouTubeJobStatus.PENDING.value,
            "current_step": ExtractionStep.QUEUED.value,
            "progress": 0,
            "frames_extracted": 0,
            "frames_with_text": 0,
            "video_title": metadata.title,
            "video_duration": metadata.duration,
            "channel_name": metadata.channel,
            "thumbnail_url": metadata.thumbnail,
            "video_description": metadata.description,
            "imported_recipe_ids": {},
        })
        if not job:
            raise YouTubeExtractionError("Failed to create extraction job")

        job_id = job["id"]
        logger.info(f"Created extraction job {job_id} for video {video_id}")

        self.progress.start(
            job_id,
            YouTubeJobStatus.PENDING.value,
            ExtractionStep.QUEUED.value,
        )
        self.runner.submit(job_id, self.process_job(job_id))
        return job_id

    async def get_status(self, user_id: str, job_id: str) -> Dict[str, Any]:
        """Persisted snapshot with live in-memory progress merged on top"""
        job = await self._get_owned_job(user_id, job_id)
        live = None
        if not YouTubeJobStatus(job["status"]).is_terminal:
            live = self.progress.get(job_id)
        return self._status_snapshot(job, live)

    async def get_result(self, user_id: str, job_id: str) -> Dict[str, Any]:
        """Recipes, transcript and per-recipe import state of a completed job"""
        job = await self._get_owned_job(user_id, job_id)
        self._require_completed(job)

        recipes = normalize_recipes(job.get("extracted_recipes"))
        return {
            "id": job["id"],
            "video_title": job.get("video_title"),
            "channel_name": job.get("channel_name"),
            "thumbnail_url": job.get("thumbnail_url"),
            "youtube_url": job.get("youtube_url"),
            "transcription": job.get("transcription"),
            "extracted_recipes": recipes,
            "imported_recipe_ids": imported_ids_list(job.get("imported_recipe_ids"), len(recipes)),
        }

    async def import_recipe(
        self,
        user_id: str,
        job_id: str,
        recipe_index: int,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Save one extracted recipe as a permanent recipe.

        Importing the same index twice returns the first recipe's ID.
        Non-null overrides replace the extracted values.

        Returns:
            Recipe ID
        """
        job = await self._get_owned_job(user_id, job_id)
        self._require_completed(job)

        recipes = normalize_recipes(job.get("extracted_recipes"))
        if recipe_index < 0 or recipe_index >= len(recipes):
            raise VideoValidationError(
                f"Invalid recipe index {recipe_index}: job has {len(recipes)} recipe(s)"
            )

        imported = imported_ids_map(job.get("imported_recipe_ids"))
        existing_id = imported.get(str(recipe_index))
        if existing_id:
            logger.info(f"Recipe {recipe_index} of job {job_id} already imported as {existing_id}")
            return existing_id

        try:
            extracted = ExtractedRecipe.model_validate(recipes[recipe_index])
        except ValidationError as e:
            raise VideoValidationError("Extracted recipe is invalid and cannot be imported") from e

        merged = extracted.model_dump(mode="json")
        merged.update({
            key: value for key, value in (overrides or {}).items() if value is not None
        })
        fields = self._validate_edited_recipe(merged)

        recipe = await self.recipe_repo.create(self._recipe_row(user_id, job, fields))
        if not recipe:
            raise YouTubeExtractionError("Failed to create recipe")

        imported[str(recipe_index)] = recipe["id"]
        await self.job_repo.update(job_id, {"imported_recipe_ids": imported})

        logger.info(f"Imported recipe {recipe['id']} from job {job_id} (index {recipe_index})")
        return recipe["id"]

    async def cancel(self, user_id: str, job_id: str):
        """
        Force a running job to FAILED.

        The pipeline notices at its next write and stops; calls already in
        flight (download, model requests) are not interrupted.
        """
        job = await self._get_owned_job(user_id, job_id)
        if YouTubeJobStatus(job["status"]).is_terminal:
            raise InvalidJobStateError("Cannot cancel a completed or failed job")

        updated = await self.job_repo.update_if_active(job_id, {
            "status": YouTubeJobStatus.FAILED.value,
            "current_step": ExtractionStep.FAILED.value,
            "error_message": "Cancelled by user",
            "completed_at": _now(),
        })
        if updated is None:
            raise InvalidJobStateError("Cannot cancel a completed or failed job")

        self.progress.remove(job_id)
        file_utils.remove_job_dir(file_utils.job_dir_path(job_id))
        logger.info(f"Cancelled job {job_id}")

    async def retry(self, user_id: str, job_id: str) -> str:
        """Submit the URL of a failed job again; the failed job is left as is"""
        job = await self._get_owned_job(user_id, job_id)
        if job["status"] != YouTubeJobStatus.FAILED.value:
            raise InvalidJobStateError("Can only retry failed jobs")

        return await self.submit(user_id, job["youtube_url"])

    async def get_history(self, user_id: str, limit: int = HISTORY_DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        """User's jobs, newest first"""
        limit = max(1, min(limit, HISTORY_MAX_LIMIT))
        jobs = await self.job_repo.list_for_user(user_id, limit)
        return [self._status_snapshot(job) for job in jobs]

    async def delete_from_history(self, user_id: str, job_id: str):
        """Delete a finished job"""
        job = await self._get_owned_job(user_id, job_id)
        if not YouTubeJobStatus(job["status"]).is_terminal:
            raise InvalidJobStateError(
                "Cannot delete a job that is still processing. Cancel it first."
            )

        await self.job_repo.delete(job_id)
        logger.info(f"Deleted extraction job {job_id} from history")

    # ============= Background pipeline =============

    async def process_job(self, job_id: str):
        """
        Run the extraction pipeline for a job (background task).

        Every failure lands in the single except below and marks the job
        FAILED, as does a shutdown that cancels the task. The job directory
        is always removed on the way out.
        """
        job_dir = None
        try:
            job = await self.job_repo.get_by_id(job_id)
            if not job:
                raise JobNotFoundError(job_id)
            if YouTubeJobStatus(job["status"]).is_terminal:
                logger.info(f"Job {job_id} is already {job['status']}, skipping")
                return

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.DOWNLOADING,
                ExtractionStep.DOWNLOADING,
                PROGRESS_DOWNLOAD_START,
                started_at=_now(),
            )
            job_dir = file_utils.create_job_dir(job_id)

            def on_download(percent: float):
                span = PROGRESS_DOWNLOAD_END - PROGRESS_DOWNLOAD_START
                self.progress.update(job_id, progress=PROGRESS_DOWNLOAD_START + percent * span / 100)

            video_path = await downloader.download_video(job["video_id"], job_dir, on_download)

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.EXTRACTING_AUDIO,
                ExtractionStep.EXTRACTING_AUDIO,
                PROGRESS_EXTRACTING_AUDIO,
            )
            audio_path = await video_utils.extract_audio(video_path, job_dir)

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.TRANSCRIBING,
                ExtractionStep.TRANSCRIBING,
                PROGRESS_TRANSCRIBING,
            )
            transcription = await self.ai_service.transcribe_audio(audio_path)
            await self._save(job_id, {"transcription": transcription})

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.EXTRACTING_FRAMES,
                ExtractionStep.EXTRACTING_FRAMES,
                PROGRESS_EXTRACTING_FRAMES,
            )
            frame_paths = await video_utils.extract_frames(video_path, os.path.join(job_dir, "frames"))
            await self._save(job_id, {"frames_extracted": len(frame_paths)})
            self.progress.update(job_id, frames_extracted=len(frame_paths))

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.OCR_PROCESSING,
                ExtractionStep.OCR_PROCESSING,
                PROGRESS_OCR_START,
            )

            def on_ocr(processed: int, with_text: int):
                span = PROGRESS_OCR_END - PROGRESS_OCR_START
                self.progress.update(
                    job_id,
                    current_step=f"Analyzing frames... ({with_text} with text)",
                    progress=PROGRESS_OCR_START + processed / max(len(frame_paths), 1) * span,
                    frames_with_text=with_text,
                )

            frames_with_text = await ocr.ocr_filter_frames(frame_paths, on_progress=on_ocr)
            await self._save(job_id, {
                "frames_with_text": len(frames_with_text),
                "ocr_results": [
                    {"timestamp": frame.timestamp, "text": frame.ocr_text}
                    for frame in frames_with_text
                ],
            })

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.AI_SYNTHESIS,
                ExtractionStep.VISION_ANALYZING,
                PROGRESS_AI_SYNTHESIS,
            )
            frame_analyses = await self.ai_service.analyze_frames_with_vision(frames_with_text)

            self.progress.update(
                job_id,
                current_step=ExtractionStep.SYNTHESIZING.value,
                progress=PROGRESS_SYNTHESIZING,
            )
            metadata = VideoMetadata(
                title=job.get("video_title") or "Unknown",
                duration=job.get("video_duration") or 0,
                channel=job.get("channel_name") or "Unknown",
                thumbnail=job.get("thumbnail_url") or "",
                description=job.get("video_description") or "",
            )
            recipes = await self.ai_service.synthesize_recipes(transcription, frame_analyses, metadata)

            await self._update_job_status(
                job_id,
                YouTubeJobStatus.COMPLETED,
                ExtractionStep.COMPLETE,
                PROGRESS_COMPLETE,
                extracted_recipes=[r.model_dump(mode="json", by_alias=True) for r in recipes],
                imported_recipe_ids={},
                completed_at=_now(),
            )
            logger.info(f"Job {job_id} completed successfully with {len(recipes)} recipe(s)")

        except JobCancelledError:
            logger.info(f"Job {job_id} was cancelled, stopping pipeline")
        except asyncio.CancelledError:
            # Runner shutdown
            logger.warning(f"Job {job_id} interrupted by server shutdown")
            await self._mark_failed(job_id, "Interrupted by server shutdown")
            raise
        except Exception as e:
            logger.error(f"Job {job_id} failed: {str(e)}", exc_info=True)
            await self._mark_failed(job_id, getattr(e, "message", None) or str(e) or "Unknown error")
        finally:
            self.progress.remove(job_id)
            if job_dir:
                file_utils.remove_job_dir(job_dir)

    # ============= Helpers =============

    async def _get_owned_job(self, user_id: str, job_id: str) -> Dict[str, Any]:
        job = await self.job_repo.get_for_user(job_id, user_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    @staticmethod
    def _require_completed(job: Dict[str, Any]):
        if job["status"] != YouTubeJobStatus.COMPLETED.value:
            raise InvalidJobStateError("Extraction is not yet complete")

    async def _save(self, job_id: str, data: Dict[str, Any]):
        """Conditional write; a terminal row means someone cancelled the job"""
        if await self.job_repo.update_if_active(job_id, data) is None:
            raise JobCancelledError(job_id)

    async def _update_job_status(
        self,
        job_id: str,
        status: YouTubeJobStatus,
        step: ExtractionStep,
        progress: int,
        **extra: Any,
    ):
        """Persist a state transition and mirror it into the live tracker"""
        await self._save(job_id, {
            "status": status.value,
            "current_step": step.value,
            "progress": progress,
            **extra,
        })
        self.progress.update(
            job_id,
            status=status.value,
            current_step=step.value,
            progress=progress,
        )

    async def _mark_failed(self, job_id: str, message: str):
        try:
            await self.job_repo.update_if_active(job_id, {
                "status": YouTubeJobStatus.FAILED.value,
                "current_step": ExtractionStep.FAILED.value,
                "error_message": message,
                "completed_at": _now(),
            })
        except Exception as e:
            logger.error(f"Failed to record failure for job {job_id}: {str(e)}")

    @staticmethod
    def _validate_edited_recipe(fields: Dict[str, Any]) -> Dict[str, Any]:
        """Extracted recipe with user edits applied must still be a valid recipe"""
        try:
            recipe = ExtractedRecipe.model_validate(fields)
        except ValidationError as e:
            raise VideoValidationError("Edited recipe is invalid and cannot be imported") from e

        if not recipe.components or not all(c.has_content for c in recipe.components):
            raise VideoValidationError(
                "Every recipe component needs at least one ingredient or step"
            )
        return recipe.model_dump(mode="json")

    @staticmethod
    def _recipe_row(user_id: str, job: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
        prep = fields.get("prep_time_minutes")
        cook = fields.get("cook_time_minutes")
        return {
            "created_by": user_id,
            "title": fields.get("title"),
            "description": fields.get("description"),
            "prep_time_minutes": prep,
            "cook_time_minutes": cook,
            "total_time_minutes": ((prep or 0) + (cook or 0)) or None,
            "servings": fields.get("servings") or DEFAULT_SERVINGS,
            "difficulty": fields.get("difficulty"),
            "category": fields.get("category"),
            "cuisine": fields.get("cuisine"),
            "tags": fields.get("tags") or [],
            "components": fields.get("components") or [],
            "source": RecipeSource.YOUTUBE.value,
            "source_url": job.get("youtube_url"),
            "source_author": job.get("channel_name"),
            "image_url": job.get("thumbnail_url"),
        }

    @staticmethod
    def _status_snapshot(job: Dict[str, Any], live: Optional[JobProgress] = None) -> Dict[str, Any]:
        return {
            "id": job["id"],
            "status": job["status"],
            "current_step": (live.current_step if live else None) or job.get("current_step"),
            "progress": max(live.progress if live else 0, job.get("progress") or 0),
            "video_title": job.get("video_title"),
            "channel_name": job.get("channel_name"),
            "thumbnail_url": job.get("thumbnail_url"),
            "video_duration": job.get("video_duration"),
            "frames_extracted": max(live.frames_extracted if live else 0, job.get("frames_extracted") or 0),
            "frames_with_text": max(live.frames_with_text if live else 0, job.get("frames_with_text") or 0),
            "error_message": job.get("error_message"),
            "created_at": job.get("created_at"),
            "started_at": job.get("started_at"),
            "completed_at": job.get("completed_at"),
        }
