"""
YouTube extraction API schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from app.domain.enums import DifficultyLevel, RecipeCategory
from app.domain.models import RecipeComponent


class SubmitYouTubeRequest(BaseModel):
    """Submit a YouTube video for recipe extraction"""
    url: str = Field(..., min_length=1, max_length=2048)


class JobSubmittedResponse(BaseModel):
    """ID of the created (or already completed) job"""
    job_id: str


class RecipeImportedResponse(BaseModel):
    recipe_id: str


class YouTubeJobStatusResponse(BaseModel):
    """Job status snapshot"""
    id: str
    status: str
    current_step: Optional[str] = None
    progress: int = 0
    video_title: Optional[str] = None
    channel_name: Optional[str] = None
    thumbnail_url: Optional[str] = None
    video_duration: Optional[int] = None
    frames_extracted: int = 0
    frames_with_text: int = 0
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class YouTubeExtractionResultResponse(BaseModel):
    """
    Result of a completed job.

    imported_recipe_ids is aligned with extracted_recipes: entry i is the
    saved recipe's ID once recipe i was imported, else null.
    """
    id: str
    video_title: Optional[str] = None
    channel_name: Optional[str] = None
    thumbnail_url: Optional[str] = None
    youtube_url: Optional[str] = None
    transcription: Optional[str] = None
    extracted_recipes: List[Dict[str, Any]] = Field(default_factory=list)
    imported_recipe_ids: List[Optional[str]] = Field(default_factory=list)


class ImportYouTubeRecipeRequest(BaseModel):
    """User edits applied on top of the extracted recipe; omitted fields keep extracted values"""
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    prep_time_minutes: Optional[int] = Field(None, ge=0)
    cook_time_minutes: Optional[int] = Field(None, ge=0)
    servings: Optional[int] = Field(None, ge=1)
    difficulty: Optional[DifficultyLevel] = None
    category: Optional[RecipeCategory] = None
    cuisine: Optional[str] = None
    tags: Optional[List[str]] = None
    components: Optional[List[RecipeComponent]] = Field(None, min_length=1)
