"""
YouTube recipe extraction endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from sse_starlette.sse import EventSourceResponse
from supabase import Client
from typing import List, Optional
import logging
import asyncio
import json

from app.core.database import get_supabase_admin_client
from app.core.security import get_current_user
from app.domain.enums import YouTubeJobStatus
from app.domain.exceptions import (
    InvalidJobStateError,
    InvalidVideoURLError,
    JobNotFoundError,
    VideoValidationError,
    YouTubeExtractionError,
)
from app.repositories.recipe_repository import RecipeRepository
from app.repositories.youtube_job_repository import YouTubeJobRepository
from app.services.extraction_service import (
    YouTubeExtractionService,
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
)
from app.api.v1.schemas.common import MessageResponse
from app.api.v1.schemas.youtube import (
    SubmitYouTubeRequest,
    JobSubmittedResponse,
    YouTubeJobStatusResponse,
    YouTubeExtractionResultResponse,
    ImportYouTubeRecipeRequest,
    RecipeImportedResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/youtube", tags=["YouTube"])

STREAM_POLL_SECONDS = 1.0
STREAM_KEEPALIVE_SECONDS = 30.0


def get_youtube_extraction_service(
    admin_client: Client = Depends(get_supabase_admin_client)
) -> YouTubeExtractionService:
    """Service wired to the admin client; ownership is enforced by the service"""
    return YouTubeExtractionService(
        job_repo=YouTubeJobRepository(admin_client),
        recipe_repo=RecipeRepository(admin_client),
    )


def _http_error(e: YouTubeExtractionError) -> HTTPException:
    """Map a domain error to its HTTP status"""
    if isinstance(e, (InvalidVideoURLError, VideoValidationError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, JobNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, InvalidJobStateError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=e.message)


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {str(e)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}"
    )


@router.get("/health")
async def youtube_health():
    """Liveness check for the YouTube extraction module"""
    return {"status": "ok", "module": "youtube"}


@router.post("/extract", response_model=JobSubmittedResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_youtube_extraction(
    request: SubmitYouTubeRequest,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """
    Submit a YouTube URL for recipe extraction.

    Processing runs in the background; poll /jobs/{job_id} or stream
    /jobs/{job_id}/stream for progress. Submitting a video that was already
    extracted returns the existing job.
    """
    try:
        job_id = await service.submit(current_user["id"], request.url)
        return JobSubmittedResponse(job_id=job_id)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("submitting YouTube extraction", e)


@router.get("/jobs", response_model=List[YouTubeJobStatusResponse])
async def get_job_history(
    limit: int = Query(HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """User's extraction jobs, newest first"""
    try:
        jobs = await service.get_history(current_user["id"], limit)
        return [YouTubeJobStatusResponse(**job) for job in jobs]
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("fetching job history", e)


@router.get("/jobs/{job_id}", response_model=YouTubeJobStatusResponse)
async def get_job_status(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """Current status and progress of a job"""
    try:
        job = await service.get_status(current_user["id"], job_id)
        return YouTubeJobStatusResponse(**job)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("fetching job status", e)


@router.get("/jobs/{job_id}/stream")
async def stream_job_status(
    job_id: str,
    request: Request,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """
    Stream job status snapshots via Server-Sent Events (SSE).

    A "job_update" event is sent whenever the snapshot changes; the
    connection closes once the job is completed or failed.
    """
    user_id = current_user["id"]
    try:
        # Verify access before opening the stream
        initial = await service.get_status(user_id, job_id)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("starting event stream", e)

    async def event_stream():
        """Generate Server-Sent Events for job updates"""
        snapshot = initial
        last_sent = None
        idle = 0.0
        try:
            while True:
                payload = json.dumps(YouTubeJobStatusResponse(**snapshot).model_dump())
                if payload != last_sent:
                    yield {"event": "job_update", "data": payload}
                    last_sent = payload
                    idle = 0.0
                elif idle >= STREAM_KEEPALIVE_SECONDS:
                    yield {"comment": "keep-alive"}
                    idle = 0.0

                if YouTubeJobStatus(snapshot["status"]).is_terminal:
                    logger.info(f"Job {job_id} {snapshot['status']}, closing SSE connection")
                    break

                await asyncio.sleep(STREAM_POLL_SECONDS)
                idle += STREAM_POLL_SECONDS

                if await request.is_disconnected():
                    logger.info(f"Client disconnected from SSE stream for job {job_id}")
                    break

                snapshot = await service.get_status(user_id, job_id)

        except asyncio.CancelledError:
            logger.info(f"SSE stream cancelled for job {job_id}")
        except JobNotFoundError:
            yield {"event": "error", "data": json.dumps({"message": "Job not found"})}
        except Exception as e:
            logger.error(f"Error in SSE stream for job {job_id}: {e}")
            yield {"event": "error", "data": json.dumps({"message": "Stream error occurred"})}

    return EventSourceResponse(event_stream())


@router.get("/jobs/{job_id}/result", response_model=YouTubeExtractionResultResponse)
async def get_job_result(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """Extracted recipes, transcription and import state of a completed job"""
    try:
        result = await service.get_result(current_user["id"], job_id)
        return YouTubeExtractionResultResponse(**result)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("fetching extraction result", e)


@router.post("/jobs/{job_id}/import", response_model=RecipeImportedResponse)
async def import_extracted_recipe(
    job_id: str,
    recipe_index: int = Query(0, ge=0),
    overrides: Optional[ImportYouTubeRecipeRequest] = None,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """
    Save one extracted recipe to the user's recipes.

    The body may override any extracted field. Importing the same recipe
    twice returns the recipe created the first time.
    """
    try:
        fields = overrides.model_dump(mode="json", exclude_unset=True) if overrides else {}
        recipe_id = await service.import_recipe(current_user["id"], job_id, recipe_index, fields)
        return RecipeImportedResponse(recipe_id=recipe_id)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("importing recipe", e)


@router.delete("/jobs/{job_id}", response_model=MessageResponse)
async def cancel_job(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """Cancel a job that is still processing"""
    try:
        await service.cancel(current_user["id"], job_id)
        return MessageResponse(message="Job cancelled")
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("cancelling job", e)


@router.post("/jobs/{job_id}/retry", response_model=JobSubmittedResponse, status_code=status.HTTP_202_ACCEPTED)
async def retry_job(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """Start a new job for the URL of a failed job"""
    try:
        new_job_id = await service.retry(current_user["id"], job_id)
        return JobSubmittedResponse(job_id=new_job_id)
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("retrying job", e)


@router.delete("/history/{job_id}", response_model=MessageResponse)
async def delete_job_from_history(
    job_id: str,
    current_user: dict = Depends(get_current_user),
    service: YouTubeExtractionService = Depends(get_youtube_extraction_service)
):
    """Delete a completed or failed job from history"""
    try:
        await service.delete_from_history(current_user["id"], job_id)
        return MessageResponse(message="Job deleted")
    except YouTubeExtractionError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("deleting job", e)
