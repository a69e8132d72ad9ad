"""
Job orchestrator tests: submission rules, pipeline state machine,
cleanup, import, cancel, retry and history.
"""
import asyncio

import pytest

from app.domain.exceptions import (
    InvalidJobStateError,
    InvalidVideoURLError,
    JobNotFoundError,
    MetadataFetchError,
    NoRecipesExtractedError,
    ProcessError,
    VideoValidationError,
)
from app.extraction import downloader, video_utils

USER = "user-1"
OTHER_USER = "user-2"
VIDEO_ID = "dQw4w9WgXcQ"
WATCH_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"
SHORT_URL = f"https://youtu.be/{VIDEO_ID}"


async def run_to_end(service, job_id):
    await asyncio.wait_for(service.runner.wait(job_id), timeout=5)


def completed_job(job_repo, recipes, **extra):
    data = {
        "user_id": USER,
        "youtube_url": WATCH_URL,
        "video_id": VIDEO_ID,
        "status": "completed",
        "progress": 100,
        "channel_name": "Chef Test",
        "thumbnail_url": "https://i.ytimg.com/vi/x/hq.jpg",
        "transcription": "hello",
        "extracted_recipes": [r.model_dump(mode="json", by_alias=True) for r in recipes],
        "imported_recipe_ids": {},
    }
    data.update(extra)
    return job_repo.add(**data)


# ============= Submission =============

async def test_submit_runs_pipeline_to_completion(service, job_repo, stubs):
    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    job = job_repo.jobs[job_id]
    assert job["status"] == "completed"
    assert job["current_step"] == "Complete"
    assert job["progress"] == 100
    assert job["started_at"] is not None
    assert job["completed_at"] is not None
    assert job["transcription"] == "Boil the pasta then add garlic"
    assert job["video_title"] == "Garlic Pasta in 10 Minutes"
    assert len(job["extracted_recipes"]) == 1
    assert job["extracted_recipes"][0]["title"] == "Garlic Pasta"


async def test_submit_rejects_non_youtube_url(service, job_repo, stubs):
    with pytest.raises(InvalidVideoURLError):
        await service.submit(USER, "https://vimeo.com/123456")
    assert job_repo.jobs == {}


async def test_resubmitting_completed_video_returns_existing_job(service, job_repo, stubs):
    first = await service.submit(USER, WATCH_URL)
    await run_to_end(service, first)

    second = await service.submit(USER, SHORT_URL)

    assert second == first
    assert len(job_repo.jobs) == 1


async def test_submit_rejects_video_already_in_flight(service, job_repo, stubs):
    job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="transcribing")

    with pytest.raises(InvalidJobStateError, match="already being processed"):
        await service.submit(USER, SHORT_URL)

    assert stubs.metadata_calls == 0
    assert len(job_repo.jobs) == 1


async def test_failed_job_does_not_block_resubmission(service, job_repo, stubs):
    old = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="failed")

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    assert job_id != old["id"]
    assert job_repo.jobs[job_id]["status"] == "completed"


async def test_other_users_jobs_do_not_count_as_duplicates(service, job_repo, stubs):
    job_repo.add(user_id=OTHER_USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="downloading")

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    assert job_repo.jobs[job_id]["user_id"] == USER


async def test_video_over_duration_limit_creates_no_job(service, job_repo, stubs):
    stubs.metadata.duration = service.settings.YOUTUBE_MAX_DURATION + 1

    with pytest.raises(VideoValidationError, match="minute limit"):
        await service.submit(USER, WATCH_URL)

    assert job_repo.jobs == {}


async def test_video_at_duration_limit_is_accepted(service, job_repo, stubs):
    stubs.metadata.duration = service.settings.YOUTUBE_MAX_DURATION

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    assert job_repo.jobs[job_id]["status"] == "completed"


async def test_metadata_failure_is_a_validation_error(service, job_repo, stubs, monkeypatch):
    async def broken(video_id):
        raise MetadataFetchError("Video unavailable")

    monkeypatch.setattr(downloader, "fetch_video_metadata", broken)

    with pytest.raises(VideoValidationError, match="Could not fetch video information"):
        await service.submit(USER, WATCH_URL)
    assert job_repo.jobs == {}


# ============= Pipeline failures and cleanup =============

async def test_job_directory_removed_once_on_success(service, stubs):
    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    assert stubs.created_dirs == [str(stubs.tmp_path / job_id)]
    assert stubs.removed_dirs == stubs.created_dirs


async def test_stage_failure_marks_job_failed_and_cleans_up(service, job_repo, stubs, monkeypatch):
    async def broken_audio(video_path, job_dir):
        raise ProcessError("ffmpeg", "audio extraction failed", "Invalid data found")

    monkeypatch.setattr(video_utils, "extract_audio", broken_audio)

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    job = job_repo.jobs[job_id]
    assert job["status"] == "failed"
    assert "ffmpeg failed" in job["error_message"]
    assert "Invalid data found" in job["error_message"]
    assert job["completed_at"] is not None
    assert stubs.removed_dirs == stubs.created_dirs
    assert len(stubs.removed_dirs) == 1


async def test_no_recipes_fails_job_with_message(service, job_repo, ai_service, stubs):
    ai_service.synthesis_error = NoRecipesExtractedError()

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    job = job_repo.jobs[job_id]
    assert job["status"] == "failed"
    assert job["error_message"] == "No valid recipes could be extracted"
    assert len(stubs.removed_dirs) == 1


async def test_live_progress_dropped_after_completion(service, stubs):
    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    assert service.progress.get(job_id) is None


async def test_multiple_recipes_are_stored_in_order(service, job_repo, ai_service, stubs, recipe_factory):
    ai_service.recipes = [
        recipe_factory("Pasta One"),
        recipe_factory("Pasta Two"),
        recipe_factory("Pasta Three"),
    ]

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    result = await service.get_result(USER, job_id)
    assert [r["title"] for r in result["extracted_recipes"]] == ["Pasta One", "Pasta Two", "Pasta Three"]
    assert result["imported_recipe_ids"] == [None, None, None]


# ============= Status =============

async def test_status_merges_live_progress(service, job_repo):
    job = job_repo.add(
        user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID,
        status="ocr_processing", current_step="Analyzing frames for text...", progress=55,
        frames_extracted=12,
    )
    service.progress.start(job["id"], "ocr_processing", "Analyzing frames for text...", 55)
    service.progress.update(
        job["id"], current_step="Analyzing frames... (3 with text)", progress=62, frames_with_text=3,
    )

    status = await service.get_status(USER, job["id"])

    assert status["progress"] == 62
    assert status["current_step"] == "Analyzing frames... (3 with text)"
    assert status["frames_extracted"] == 12
    assert status["frames_with_text"] == 3


async def test_status_of_someone_elses_job_is_not_found(service, job_repo):
    job = job_repo.add(user_id=OTHER_USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="completed")

    with pytest.raises(JobNotFoundError):
        await service.get_status(USER, job["id"])
    with pytest.raises(JobNotFoundError):
        await service.get_status(USER, "missing-job")


# ============= Results and import =============

async def test_result_requires_completed_job(service, job_repo):
    job = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="ai_synthesis")

    with pytest.raises(InvalidJobStateError, match="not yet complete"):
        await service.get_result(USER, job["id"])


async def test_result_normalizes_legacy_single_recipe(service, job_repo, recipe_factory):
    legacy = recipe_factory().model_dump(mode="json", by_alias=True)
    job = job_repo.add(
        user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="completed",
        extracted_recipes=legacy, imported_recipe_ids=["recipe-old"],
    )

    result = await service.get_result(USER, job["id"])

    assert len(result["extracted_recipes"]) == 1
    assert result["imported_recipe_ids"] == ["recipe-old"]


async def test_import_is_idempotent_per_index(service, job_repo, recipe_repo, recipe_factory):
    job = completed_job(job_repo, [recipe_factory("First"), recipe_factory("Second")])

    first = await service.import_recipe(USER, job["id"], 0)
    again = await service.import_recipe(USER, job["id"], 0)

    assert first == again
    assert len(recipe_repo.rows) == 1
    assert job_repo.jobs[job["id"]]["imported_recipe_ids"] == {"0": first}

    result = await service.get_result(USER, job["id"])
    assert result["imported_recipe_ids"] == [first, None]


async def test_import_each_index_creates_its_own_recipe(service, job_repo, recipe_repo, recipe_factory):
    job = completed_job(job_repo, [recipe_factory("First"), recipe_factory("Second")])

    second = await service.import_recipe(USER, job["id"], 1)
    first = await service.import_recipe(USER, job["id"], 0)

    assert first != second
    assert [row["title"] for row in recipe_repo.rows] == ["Second", "First"]
    result = await service.get_result(USER, job["id"])
    assert result["imported_recipe_ids"] == [first, second]


async def test_import_applies_overrides_and_defaults(service, job_repo, recipe_repo, recipe_factory):
    job = completed_job(job_repo, [recipe_factory("Extracted Title")])

    await service.import_recipe(
        USER, job["id"], 0,
        {"title": "My Pasta", "cook_time_minutes": 20, "description": None},
    )

    row = recipe_repo.rows[0]
    assert row["title"] == "My Pasta"
    assert row["prep_time_minutes"] == 10
    assert row["cook_time_minutes"] == 20
    assert row["total_time_minutes"] == 30
    assert row["servings"] == 4
    assert row["source"] == "youtube"
    assert row["source_url"] == WATCH_URL
    assert row["source_author"] == "Chef Test"
    assert row["image_url"] == "https://i.ytimg.com/vi/x/hq.jpg"
    assert row["created_by"] == USER
    assert row["components"][0]["ingredients"][0]["name"] == "spaghetti"


async def test_import_honours_legacy_list_of_ids(service, job_repo, recipe_repo, recipe_factory):
    job = completed_job(job_repo, [recipe_factory()], imported_recipe_ids=["recipe-old"])

    assert await service.import_recipe(USER, job["id"], 0) == "recipe-old"
    assert recipe_repo.rows == []


@pytest.mark.parametrize("index", [-1, 2])
async def test_import_rejects_out_of_range_index(service, job_repo, recipe_factory, index):
    job = completed_job(job_repo, [recipe_factory("A"), recipe_factory("B")])

    with pytest.raises(VideoValidationError, match="Invalid recipe index"):
        await service.import_recipe(USER, job["id"], index)


async def test_import_requires_completed_job(service, job_repo):
    job = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="failed")

    with pytest.raises(InvalidJobStateError):
        await service.import_recipe(USER, job["id"], 0)


# ============= Cancel =============

async def test_cancel_stops_pipeline_and_keeps_cancel_message(service, job_repo, ai_service, stubs, monkeypatch):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_download(video_id, job_dir, on_progress=None):
        started.set()
        await release.wait()
        return f"{job_dir}/video.mp4"

    monkeypatch.setattr(downloader, "download_video", slow_download)

    job_id = await service.submit(USER, WATCH_URL)
    await asyncio.wait_for(started.wait(), timeout=5)

    await service.cancel(USER, job_id)
    release.set()
    await run_to_end(service, job_id)

    job = job_repo.jobs[job_id]
    assert job["status"] == "failed"
    assert job["error_message"] == "Cancelled by user"
    assert ai_service.transcribed == []
    assert service.progress.get(job_id) is None
    assert str(stubs.tmp_path / job_id) in stubs.removed_dirs


async def test_cancel_before_pipeline_starts(service, job_repo, ai_service, stubs):
    job_id = await service.submit(USER, WATCH_URL)
    # The background task has not run yet
    await service.cancel(USER, job_id)
    await run_to_end(service, job_id)

    job = job_repo.jobs[job_id]
    assert job["status"] == "failed"
    assert job["error_message"] == "Cancelled by user"
    assert stubs.created_dirs == []


@pytest.mark.parametrize("status", ["completed", "failed"])
async def test_cancel_terminal_job_is_rejected(service, job_repo, status):
    job = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status=status)

    with pytest.raises(InvalidJobStateError, match="Cannot cancel"):
        await service.cancel(USER, job["id"])


# ============= Retry =============

async def test_retry_creates_independent_job(service, job_repo, stubs):
    failed = job_repo.add(
        user_id=USER, youtube_url=SHORT_URL, video_id=VIDEO_ID, status="failed",
        error_message="yt-dlp failed: video download failed",
    )

    new_id = await service.retry(USER, failed["id"])
    await run_to_end(service, new_id)

    assert new_id != failed["id"]
    assert job_repo.jobs[failed["id"]]["status"] == "failed"
    assert job_repo.jobs[failed["id"]]["error_message"] == "yt-dlp failed: video download failed"
    assert job_repo.jobs[new_id]["status"] == "completed"
    assert job_repo.jobs[new_id]["youtube_url"] == SHORT_URL


@pytest.mark.parametrize("status", ["completed", "downloading", "pending"])
async def test_retry_only_failed_jobs(service, job_repo, status):
    job = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status=status)

    with pytest.raises(InvalidJobStateError, match="Can only retry failed jobs"):
        await service.retry(USER, job["id"])


# ============= History =============

async def test_history_newest_first_and_capped(service, job_repo):
    for i in range(60):
        job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=f"vid{i:08d}", status="failed")
    job_repo.add(user_id=OTHER_USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="failed")

    history = await service.get_history(USER, limit=100)
    assert len(history) == 50
    assert history[0]["id"] == "job-60"
    created = [job["created_at"] for job in history]
    assert created == sorted(created, reverse=True)

    assert len(await service.get_history(USER)) == 10


async def test_delete_only_terminal_jobs(service, job_repo):
    running = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="extracting_frames")
    done = job_repo.add(user_id=USER, youtube_url=WATCH_URL, video_id="abcdefghijk", status="completed")

    with pytest.raises(InvalidJobStateError, match="Cancel it first"):
        await service.delete_from_history(USER, running["id"])
    assert running["id"] in job_repo.jobs

    await service.delete_from_history(USER, done["id"])
    assert done["id"] not in job_repo.jobs


async def test_delete_someone_elses_job_is_not_found(service, job_repo):
    job = job_repo.add(user_id=OTHER_USER, youtube_url=WATCH_URL, video_id=VIDEO_ID, status="completed")

    with pytest.raises(JobNotFoundError):
        await service.delete_from_history(USER, job["id"])
    assert job["id"] in job_repo.jobs


# ============= Persistence of transitions =============

async def test_every_stage_transition_is_persisted(service, job_repo, stubs, monkeypatch):
    writes = []
    conditional_update = job_repo.update_if_active

    async def recording_update(job_id, data):
        writes.append(dict(data))
        return await conditional_update(job_id, data)

    monkeypatch.setattr(job_repo, "update_if_active", recording_update)

    job_id = await service.submit(USER, WATCH_URL)
    await run_to_end(service, job_id)

    transitions = [w for w in writes if "status" in w]
    assert [w["status"] for w in transitions] == [
        "downloading",
        "extracting_audio",
        "transcribing",
        "extracting_frames",
        "ocr_processing",
        "ai_synthesis",
        "completed",
    ]
    assert all(w.get("current_step") for w in transitions)
    progress = [w["progress"] for w in writes if "progress" in w]
    assert progress == sorted(progress)
    assert progress[-1] == 100


async def test_submit_stores_url_without_tracking_params(service, job_repo, stubs):
    job_id = await service.submit(USER, f"https://youtu.be/{VIDEO_ID}?si=share123&feature=shared")
    await run_to_end(service, job_id)

    assert job_repo.jobs[job_id]["youtube_url"] == SHORT_URL


async def test_shutdown_marks_running_job_failed(service, job_repo, stubs, monkeypatch):
    started = asyncio.Event()

    async def hanging_download(video_id, job_dir, on_progress=None):
        started.set()
        await asyncio.sleep(3600)

    monkeypatch.setattr(downloader, "download_video", hanging_download)

    job_id = await service.submit(USER, WATCH_URL)
    await asyncio.wait_for(started.wait(), timeout=5)
    await service.runner.shutdown(timeout=5)

    job = job_repo.jobs[job_id]
    assert job["status"] == "failed"
    assert job["error_message"] == "Interrupted by server shutdown"
    assert stubs.removed_dirs == stubs.created_dirs
    assert await job_repo.find_active_for_video(USER, VIDEO_ID) is None


# ============= Import edits =============

@pytest.mark.parametrize("components", [
    [],
    [{"name": "Sauce", "ingredients": [], "steps": []}],
    [
        {"name": "Main", "ingredients": [{"name": "penne"}], "steps": []},
        {"name": "Topping", "ingredients": [], "steps": []},
    ],
])
async def test_import_rejects_components_without_content(service, job_repo, recipe_repo, recipe_factory, components):
    job = completed_job(job_repo, [recipe_factory()])

    with pytest.raises(VideoValidationError, match="at least one ingredient or step"):
        await service.import_recipe(USER, job["id"], 0, {"components": components})

    assert recipe_repo.rows == []
    assert job_repo.jobs[job["id"]]["imported_recipe_ids"] == {}


async def test_import_accepts_edited_components(service, job_repo, recipe_repo, recipe_factory):
    job = completed_job(job_repo, [recipe_factory()])

    await service.import_recipe(USER, job["id"], 0, {"components": [
        {"name": "Main", "ingredients": [{"quantity": 250, "unit": "g", "name": "penne"}], "steps": []},
    ]})

    components = recipe_repo.rows[0]["components"]
    assert [i["name"] for i in components[0]["ingredients"]] == ["penne"]
