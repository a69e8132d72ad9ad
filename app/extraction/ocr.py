"""
Tesseract OCR pre-filter.

Cheap local OCR decides which scene frames carry recipe text; only those
are sent to the (expensive) vision model.
"""
import re
import asyncio
import logging
from typing import Callable, List, Optional

import pytesseract
from PIL import Image

from app.core.config import get_settings
from app.domain.models import OcrFrameResult
from app.extraction.video_utils import frame_timestamp

logger = logging.getLogger(__name__)

RECIPE_KEYWORDS = (
    # English measurements
    "cup", "cups", "tbsp", "tsp", "oz", "lb", "ml", "liter", "gram", "kg",
    # English cooking terms
    "ingredient", "step", "mix", "add", "cook", "bake", "minute", "hour",
    "preheat", "stir", "combine", "pour", "heat", "oven", "flour", "sugar",
    "salt", "butter", "oil", "water", "egg",
    # Fractions usually mean quantities
    "1/2", "1/4", "3/4",
    # Arabic: spoon, cup, gram, minute, hour, is added, is mixed
    "ملعقة", "كوب", "غرام", "دقيقة", "ساعة", "يضاف", "يخلط",
)

_DIGIT = re.compile(r"\d")


def has_relevant_text(text: str) -> bool:
    """
    Whether OCR output looks like recipe content.

    Needs at least 10 characters and 3 words longer than two letters, plus
    either a recipe keyword or at least 5 such words alongside a number.
    """
    if not text or len(text) < 10:
        return False

    words = [word for word in text.split() if len(word) > 2]
    if len(words) < 3:
        return False

    lower_text = text.lower()
    if any(keyword in lower_text for keyword in RECIPE_KEYWORDS):
        return True
    return len(words) >= 5 and bool(_DIGIT.search(text))


def _configure_tesseract():
    tesseract_path = get_settings().TESSERACT_PATH
    if tesseract_path:
        pytesseract.pytesseract.tesseract_cmd = tesseract_path


async def run_ocr(frame_path: str) -> str:
    """Run Tesseract on one frame with the configured languages"""
    languages = get_settings().YOUTUBE_OCR_LANGUAGES

    def _sync_ocr() -> str:
        with Image.open(frame_path) as image:
            return pytesseract.image_to_string(image, lang=languages)

    text = await asyncio.to_thread(_sync_ocr)
    return text.strip()


async def ocr_filter_frames(
    frame_paths: List[str],
    batch_size: Optional[int] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> List[OcrFrameResult]:
    """
    OCR frames in batches and keep the ones with recipe-relevant text.

    Frames inside a batch run concurrently; batches run one after another.
    A frame whose OCR fails is logged and left out, it never fails the batch.

    Args:
        frame_paths: Frames to examine, in order
        batch_size: Frames per batch (defaults to YOUTUBE_OCR_BATCH_SIZE)
        on_progress: Called with (processed, with_text) after every frame

    Returns:
        Relevant frames in input order
    """
    batch_size = max(1, batch_size or get_settings().YOUTUBE_OCR_BATCH_SIZE)
    _configure_tesseract()

    results: List[OcrFrameResult] = []
    processed = 0
    with_text = 0

    logger.info(f"Running OCR on {len(frame_paths)} frames...")

    async def _process(frame_path: str) -> Optional[OcrFrameResult]:
        nonlocal processed, with_text
        result = None
        try:
            text = await run_ocr(frame_path)
            if has_relevant_text(text):
                with_text += 1
                result = OcrFrameResult(
                    frame_path=frame_path,
                    timestamp=frame_timestamp(frame_path),
                    ocr_text=text,
                )
        except Exception as e:
            logger.warning(f"OCR failed for {frame_path}: {str(e)}")

        processed += 1
        if on_progress:
            on_progress(processed, with_text)
        return result

    for start in range(0, len(frame_paths), batch_size):
        batch = frame_paths[start:start + batch_size]
        batch_results = await asyncio.gather(*(_process(path) for path in batch))
        results.extend(result for result in batch_results if result is not None)

    logger.info(f"Found {len(results)} frames with relevant text")
    return results
