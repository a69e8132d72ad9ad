"""
OpenAI service for YouTube recipe extraction.

Three calls per job:
1. Speech-to-text on the extracted audio (retried on connection errors)
2. Vision analysis of the frames that passed the OCR pre-filter
3. Recipe synthesis from description, on-screen data and transcript

The OpenAI SDK is synchronous, so calls run in worker threads via
asyncio.to_thread() like the rest of the pipeline's blocking work.
"""
import os
import base64
import asyncio
import logging
from typing import List, Optional

import openai
from openai import OpenAI
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import get_settings
from app.domain.models import (
    ExtractedRecipe,
    FrameAnalysis,
    OcrFrameResult,
    VideoMetadata,
)
from app.extraction.parser import (
    format_frame_context,
    parse_frame_analysis,
    parse_recipes,
    select_evenly_distributed,
)

logger = logging.getLogger(__name__)

TRANSCRIBE_ATTEMPTS = 3
DESCRIPTION_LIMIT = 8000
TRANSCRIPT_LIMIT = 10000
FRAME_CONTEXT_LIMIT = 5000

VISION_SYSTEM_PROMPT = """You are extracting recipe information from a video frame.
Extract any visible text that could be recipe-related:
- Ingredient lists with quantities (numbers, units, ingredient names)
- Step numbers or instructions
- Cooking times or temperatures
- Measurements in any language

Return ONLY valid JSON with this structure (no markdown, no explanation):
{"ingredients": [{"quantity": number, "unit": "string", "name": "string"}], "steps": [{"instruction": "string", "duration": number}], "otherText": "string"}

If no recipe information is visible, return: {"ingredients": [], "steps": [], "otherText": ""}"""

SYNTHESIS_SYSTEM_PROMPT = """You are a professional recipe extractor. Synthesize recipes from these sources (in order of priority):
1. VIDEO DESCRIPTION (notes under video) - Often contains the COMPLETE recipe with exact measurements
2. Visual frame analysis (on-screen text, ingredient lists, measurements)
3. Audio transcription (spoken instructions from the chef)

CRITICAL: Many cooking channels put the FULL RECIPE in the video description. Check it FIRST as it's often the most accurate source with precise measurements.

CRITICAL: Videos may contain MULTIPLE distinct recipes. Identify and extract each one separately.
Examples of multiple recipes:
- "3 Easy Pasta Recipes" → 3 separate recipes
- "Chicken 2 Ways" → 2 recipes (one for each method)
- "Basic Cake + Frosting" → 1 recipe (components of same dish)

IMPORTANT RULES:
- Check the video DESCRIPTION first - it often contains the complete recipe with exact measurements
- If description has a recipe, use those measurements as the primary source
- Visual ingredient lists are second priority (more accurate than spoken)
- Audio transcription fills in gaps and provides cooking instructions
- Extract ALL ingredients mentioned, with precise quantities when available
- Create clear, numbered cooking steps for EACH recipe
- Variations of the same dish (baked vs fried) = SEPARATE recipes
- Components of one dish (cake + frosting) = ONE recipe with multiple components
- Detect the language and translate if needed

Return ONLY valid JSON ARRAY with this EXACT structure (no markdown, no explanation):
[
  {
    "title": "Recipe name",
    "description": "Brief 1-2 sentence description",
    "prepTimeMinutes": number or null,
    "cookTimeMinutes": number or null,
    "servings": number or null,
    "difficulty": "EASY" or "MEDIUM" or "HARD" or "EXPERT" or null,
    "category": "BREAKFAST" or "LUNCH" or "DINNER" or "DESSERT" or "SNACK" or "APPETIZER" or "SIDE_DISH" or "MAIN_COURSE" or "SOUP" or "SALAD" or "BREAD" or "BAKING" or "BEVERAGE" or null,
    "cuisine": "Cuisine type" or null,
    "tags": ["array", "of", "relevant", "tags"],
    "components": [
      {
        "name": "Main" or component name,
        "ingredients": [
          {"quantity": number or null, "unit": "string or null", "name": "ingredient name", "notes": "optional notes", "optional": false}
        ],
        "steps": [
          {"order": 1, "instruction": "Step instruction", "duration": minutes or null, "tips": "optional tip"}
        ]
      }
    ],
    "confidence": 0.0 to 1.0
  }
]

Always return an ARRAY, even if there's only one recipe: [{ recipe }]"""


class OpenAIService:
    """
    Service for OpenAI API interactions used by the YouTube pipeline.

    Args:
        client: Preconfigured OpenAI client (tests pass a fake)
        retry_wait: tenacity wait strategy for transcription retries
    """

    def __init__(self, client: Optional[OpenAI] = None, retry_wait=None):
        settings = get_settings()
        self.settings = settings
        self.max_frames = settings.YOUTUBE_MAX_FRAMES
        self._client = client
        self._retry_wait = retry_wait or wait_exponential(multiplier=2, min=2, max=8)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.settings.OPENAI_API_KEY:
                raise ValueError("OpenAI API key not configured")
            self._client = OpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                organization=self.settings.OPENAI_ORGANIZATION_ID or None,
                project=self.settings.OPENAI_PROJECT_ID or None,
            )
        return self._client

    async def transcribe_audio(self, audio_path: str) -> str:
        """
        Transcribe the job's audio track.

        Connection failures are retried (3 attempts, exponential backoff);
        any other API error, or the last connection error, propagates.
        """
        client = self.client
        size_mb = os.path.getsize(audio_path) / (1024 * 1024)
        logger.info(f"Transcribing audio ({size_mb:.2f} MB)...")

        def _sync_transcribe() -> str:
            with open(audio_path, "rb") as audio_file:
                result = client.audio.transcriptions.create(
                    model=self.settings.OPENAI_TRANSCRIBE_MODEL,
                    file=audio_file,
                    response_format="text",
                )
            return result if isinstance(result, str) else getattr(result, "text", "")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(TRANSCRIBE_ATTEMPTS),
            wait=self._retry_wait,
            retry=retry_if_exception_type(openai.APIConnectionError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                transcription = await asyncio.to_thread(_sync_transcribe)

        logger.info(f"Transcription complete: {len(transcription)} characters")
        return transcription

    async def analyze_frames_with_vision(
        self,
        frames: List[OcrFrameResult],
    ) -> List[FrameAnalysis]:
        """
        Run the vision model over at most max_frames frames, evenly spread.

        Frames are analyzed one at a time; a failing frame is logged and skipped.
        """
        client = self.client
        selected = select_evenly_distributed(frames, self.max_frames)
        logger.info(f"Analyzing {len(selected)} frames with vision model...")

        analyses: List[FrameAnalysis] = []
        for frame in selected:
            try:
                analyses.append(await self._analyze_frame(client, frame))
            except Exception as e:
                logger.warning(f"Failed to analyze frame at {frame.timestamp}s: {str(e)}")

        logger.info(f"Analyzed {len(analyses)} frames successfully")
        return analyses

    async def _analyze_frame(self, client: OpenAI, frame: OcrFrameResult) -> FrameAnalysis:
        def _sync_analyze() -> str:
            with open(frame.frame_path, "rb") as image_file:
                encoded = base64.b64encode(image_file.read()).decode("utf-8")

            response = client.chat.completions.create(
                model=self.settings.OPENAI_VISION_MODEL,
                messages=[
                    {"role": "system", "content": VISION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:image/jpeg;base64,{encoded}"},
                            },
                            {
                                "type": "text",
                                "text": (
                                    f'OCR detected this text: "{frame.ocr_text}". '
                                    "Extract recipe information from the image."
                                ),
                            },
                        ],
                    },
                ],
                max_tokens=1000,
                temperature=0.2,
            )
            return response.choices[0].message.content or "{}"

        content = await asyncio.to_thread(_sync_analyze)
        return FrameAnalysis(timestamp=frame.timestamp, analysis=parse_frame_analysis(content))

    async def synthesize_recipes(
        self,
        transcription: str,
        frame_analyses: List[FrameAnalysis],
        metadata: VideoMetadata,
    ) -> List[ExtractedRecipe]:
        """
        Merge all sources into one or more structured recipes.

        Raises:
            RecipeParseError: the response was not JSON
            NoRecipesExtractedError: no recipe survived validation
        """
        client = self.client
        logger.info("Synthesizing recipes from transcription and frame data...")

        description = (
            metadata.description[:DESCRIPTION_LIMIT]
            if metadata.description else "No description available"
        )
        frame_context = format_frame_context(frame_analyses)[:FRAME_CONTEXT_LIMIT]
        user_prompt = f"""Video: "{metadata.title}" by {metadata.channel}

VIDEO DESCRIPTION (notes under video - CHECK THIS FIRST for recipe):
{description}

AUDIO TRANSCRIPTION:
{(transcription or "")[:TRANSCRIPT_LIMIT]}

VISUAL FRAME ANALYSIS (ingredients and measurements shown on screen):
{frame_context}

Extract ALL complete recipes from this video. Return as a JSON array."""

        def _sync_synthesize() -> str:
            response = client.chat.completions.create(
                model=self.settings.OPENAI_SYNTHESIS_MODEL,
                messages=[
                    {"role": "system", "content": SYNTHESIS_SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.3,
                max_tokens=8000,
            )
            return response.choices[0].message.content or "[]"

        content = await asyncio.to_thread(_sync_synthesize)
        return parse_recipes(content)
