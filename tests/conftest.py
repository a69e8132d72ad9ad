import os

# Settings are read on first import; give the required keys test values
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")

import copy
from typing import Any, Dict, List, Optional

import pytest

from app.core.config import get_settings
from app.core.job_runner import BackgroundJobRunner
from app.core.progress import JobProgressTracker
from app.domain.models import ExtractedRecipe, VideoMetadata
from app.extraction import downloader, ocr, video_utils
from app.services.extraction_service import YouTubeExtractionService
from app.utils import file_utils

TERMINAL = ("completed", "failed")

VIDEO_ID = "dQw4w9WgXcQ"
WATCH_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"


class FakeJobRepository:
    """In-memory stand-in for YouTubeJobRepository"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self._seq = 0

    def add(self, **data) -> Dict[str, Any]:
        self._seq += 1
        job = {
            "id": f"job-{self._seq}",
            "created_at": f"2024-01-01T00:{self._seq // 60:02d}:{self._seq % 60:02d}+00:00",
            "started_at": None,
            "completed_at": None,
            "error_message": None,
            "current_step": None,
            "progress": 0,
            "frames_extracted": 0,
            "frames_with_text": 0,
            "transcription": None,
            "extracted_recipes": None,
            "imported_recipe_ids": {},
        }
        job.update(data)
        self.jobs[job["id"]] = job
        return copy.deepcopy(job)

    async def create(self, data):
        return self.add(**data)

    async def get_by_id(self, job_id):
        job = self.jobs.get(job_id)
        return copy.deepcopy(job) if job else None

    async def get_for_user(self, job_id, user_id):
        job = self.jobs.get(job_id)
        if job and job["user_id"] == user_id:
            return copy.deepcopy(job)
        return None

    async def find_active_for_video(self, user_id, video_id):
        matches = [
            job for job in self.jobs.values()
            if job["user_id"] == user_id and job["video_id"] == video_id and job["status"] != "failed"
        ]
        matches.sort(key=lambda job: job["created_at"], reverse=True)
        return copy.deepcopy(matches[0]) if matches else None

    async def list_for_user(self, user_id, limit=10):
        jobs = [job for job in self.jobs.values() if job["user_id"] == user_id]
        jobs.sort(key=lambda job: job["created_at"], reverse=True)
        return copy.deepcopy(jobs[:limit])

    async def update(self, job_id, data):
        job = self.jobs.get(job_id)
        if not job:
            return None
        job.update(copy.deepcopy(data))
        return copy.deepcopy(job)

    async def update_if_active(self, job_id, data):
        job = self.jobs.get(job_id)
        if not job or job["status"] in TERMINAL:
            return None
        return await self.update(job_id, data)

    async def delete(self, job_id):
        return self.jobs.pop(job_id, None) is not None


class FakeRecipeRepository:
    def __init__(self):
        self.rows: List[Dict[str, Any]] = []

    async def create(self, data):
        row = {"id": f"recipe-{len(self.rows) + 1}", **data}
        self.rows.append(row)
        return row


def make_recipe(title: str = "Garlic Pasta", **overrides) -> ExtractedRecipe:
    data = {
        "title": title,
        "prepTimeMinutes": 10,
        "cookTimeMinutes": 15,
        "components": [
            {
                "name": "Main",
                "ingredients": [{"quantity": 200, "unit": "g", "name": "spaghetti"}],
                "steps": [{"order": 1, "instruction": "Boil the pasta"}],
            }
        ],
        "confidence": 0.9,
    }
    data.update(overrides)
    return ExtractedRecipe.model_validate(data)


class FakeAIService:
    """Records calls; returns canned results"""

    def __init__(self, recipes: Optional[List[ExtractedRecipe]] = None):
        self.recipes = recipes if recipes is not None else [make_recipe()]
        self.synthesis_error: Optional[Exception] = None
        self.transcribed: List[str] = []

    async def transcribe_audio(self, audio_path):
        self.transcribed.append(audio_path)
        return "Boil the pasta then add garlic"

    async def analyze_frames_with_vision(self, frames):
        return []

    async def synthesize_recipes(self, transcription, frame_analyses, metadata):
        if self.synthesis_error:
            raise self.synthesis_error
        return self.recipes


@pytest.fixture
def job_repo():
    return FakeJobRepository()


@pytest.fixture
def recipe_repo():
    return FakeRecipeRepository()


@pytest.fixture
def ai_service():
    return FakeAIService()


@pytest.fixture
def service(job_repo, recipe_repo, ai_service):
    return YouTubeExtractionService(
        job_repo=job_repo,
        recipe_repo=recipe_repo,
        ai_service=ai_service,
        progress_tracker=JobProgressTracker(),
        job_runner=BackgroundJobRunner(),
        settings=get_settings(),
    )


class PipelineStubs:
    """Replaces the media stages with fast fakes and records cleanup"""

    def __init__(self, tmp_path):
        self.tmp_path = tmp_path
        self.metadata = VideoMetadata(
            title="Garlic Pasta in 10 Minutes",
            duration=600,
            channel="Chef Test",
            thumbnail="https://i.ytimg.com/vi/x/hq.jpg",
            description="Ingredients: 200g spaghetti, 4 cloves garlic",
        )
        self.metadata_calls = 0
        self.created_dirs: List[str] = []
        self.removed_dirs: List[str] = []


@pytest.fixture
def stubs(monkeypatch, tmp_path):
    stubs = PipelineStubs(tmp_path)

    async def fetch_video_metadata(video_id):
        stubs.metadata_calls += 1
        return stubs.metadata

    async def download_video(video_id, job_dir, on_progress=None):
        if on_progress:
            on_progress(50.0)
        return os.path.join(job_dir, "video.mp4")

    async def extract_audio(video_path, job_dir):
        return os.path.join(job_dir, "audio.mp3")

    async def extract_frames(video_path, frames_dir):
        return []

    async def ocr_filter_frames(frame_paths, batch_size=None, on_progress=None):
        return []

    def create_job_dir(job_id):
        path = tmp_path / job_id
        (path / "frames").mkdir(parents=True, exist_ok=True)
        stubs.created_dirs.append(str(path))
        return str(path)

    def remove_job_dir(job_dir):
        stubs.removed_dirs.append(job_dir)
        return True

    monkeypatch.setattr(downloader, "fetch_video_metadata", fetch_video_metadata)
    monkeypatch.setattr(downloader, "download_video", download_video)
    monkeypatch.setattr(video_utils, "extract_audio", extract_audio)
    monkeypatch.setattr(video_utils, "extract_frames", extract_frames)
    monkeypatch.setattr(ocr, "ocr_filter_frames", ocr_filter_frames)
    monkeypatch.setattr(file_utils, "create_job_dir", create_job_dir)
    monkeypatch.setattr(file_utils, "remove_job_dir", remove_job_dir)
    return stubs


@pytest.fixture
def recipe_factory():
    return make_recipe
