"""
Human-readable step descriptions and progress checkpoints for the
YouTube extraction pipeline.
"""
from enum import Enum


class ExtractionStep(str, Enum):
    """Step descriptions shown to the user while a job runs"""

    QUEUED = "Queued"
    DOWNLOADING = "Downloading video..."
    EXTRACTING_AUDIO = "Extracting audio..."
    TRANSCRIBING = "Transcribing audio..."
    EXTRACTING_FRAMES = "Extracting frames..."
    OCR_PROCESSING = "Analyzing frames for text..."
    VISION_ANALYZING = "Analyzing content with AI..."
    SYNTHESIZING = "Synthesizing recipe..."
    COMPLETE = "Complete"
    FAILED = "Extraction failed"


# Progress percentage at which each stage starts
PROGRESS_DOWNLOAD_START = 5
PROGRESS_DOWNLOAD_END = 20
PROGRESS_EXTRACTING_AUDIO = 25
PROGRESS_TRANSCRIBING = 30
PROGRESS_EXTRACTING_FRAMES = 45
PROGRESS_OCR_START = 55
PROGRESS_OCR_END = 70
PROGRESS_AI_SYNTHESIS = 70
PROGRESS_SYNTHESIZING = 85
PROGRESS_COMPLETE = 100
