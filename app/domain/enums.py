"""
Enumerations for domain models
"""
from enum import Enum


class YouTubeJobStatus(str, Enum):
    """
    YouTube extraction job status.

    Jobs move strictly forward through the pipeline states and end in
    COMPLETED or FAILED. Cancellation is a forced FAILED.
    """
    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTING_AUDIO = "extracting_audio"
    TRANSCRIBING = "transcribing"
    EXTRACTING_FRAMES = "extracting_frames"
    OCR_PROCESSING = "ocr_processing"
    AI_SYNTHESIS = "ai_synthesis"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({YouTubeJobStatus.COMPLETED, YouTubeJobStatus.FAILED})


class DifficultyLevel(str, Enum):
    """Recipe difficulty levels"""
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    EXPERT = "EXPERT"


class RecipeCategory(str, Enum):
    """Recipe categories the synthesizer may assign"""
    BREAKFAST = "BREAKFAST"
    LUNCH = "LUNCH"
    DINNER = "DINNER"
    DESSERT = "DESSERT"
    SNACK = "SNACK"
    APPETIZER = "APPETIZER"
    SIDE_DISH = "SIDE_DISH"
    MAIN_COURSE = "MAIN_COURSE"
    SOUP = "SOUP"
    SALAD = "SALAD"
    BREAD = "BREAD"
    BAKING = "BAKING"
    BEVERAGE = "BEVERAGE"


class RecipeSource(str, Enum):
    """Where a saved recipe came from"""
    YOUTUBE = "youtube"
