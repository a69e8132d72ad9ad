"""
Core domain models for YouTube recipe extraction
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.domain.enums import DifficultyLevel, RecipeCategory


_UNICODE_FRACTIONS = {
    "½": 0.5, "⅓": 1 / 3, "⅔": 2 / 3, "¼": 0.25, "¾": 0.75,
    "⅕": 0.2, "⅛": 0.125,
}


def parse_quantity(value: Any) -> Optional[float]:
    """
    Parse an ingredient quantity the model may return as a number or text.

    Handles "2", "1.5", "1/2", "1 1/2", "1½" and ranges like "2-3"
    (first number wins). Anything else becomes None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    for symbol, amount in _UNICODE_FRACTIONS.items():
        if symbol in text:
            whole = re.match(r'\s*(\d+)', text.split(symbol)[0])
            return (int(whole.group(1)) if whole else 0) + amount

    mixed = re.match(r'^(\d+)\s+(\d+)/(\d+)', text)
    if mixed:
        denominator = int(mixed.group(3))
        if denominator:
            return int(mixed.group(1)) + int(mixed.group(2)) / denominator

    fraction = re.match(r'^(\d+)/(\d+)', text)
    if fraction:
        denominator = int(fraction.group(2))
        return int(fraction.group(1)) / denominator if denominator else None

    number = re.search(r'\d+(?:[.,]\d+)?', text)
    if number:
        return float(number.group().replace(",", "."))
    return None


def parse_int(value: Any) -> Optional[int]:
    """Parse integer values such as servings or minutes, handling '4 - 6'."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        match = re.search(r'\d+', value)
        if match:
            return int(match.group())
    return None


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class _ExtractedModel(BaseModel):
    """Accepts both camelCase (model output, legacy rows) and snake_case keys"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ============= Extracted Recipe Models =============

class ExtractedIngredient(_ExtractedModel):
    """Single ingredient as returned by the synthesizer"""
    quantity: Optional[float] = None
    unit: Optional[str] = None
    name: str = Field(..., min_length=1)
    notes: Optional[str] = None
    optional: bool = False

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, v):
        return parse_quantity(v)

    @field_validator("unit", "notes", mode="before")
    @classmethod
    def _clean_text(cls, v):
        return _blank_to_none(v)

    @field_validator("optional", mode="before")
    @classmethod
    def _parse_optional(cls, v):
        return bool(v) if v is not None else False


class ExtractedStep(_ExtractedModel):
    """Single cooking step; order 0 means 'not provided by the model'"""
    order: int = 0
    instruction: str = Field(..., min_length=1)
    duration: Optional[int] = None  # minutes
    tips: Optional[str] = None

    @field_validator("order", mode="before")
    @classmethod
    def _parse_order(cls, v):
        return parse_int(v) or 0

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, v):
        return parse_int(v)

    @field_validator("tips", mode="before")
    @classmethod
    def _clean_tips(cls, v):
        return _blank_to_none(v)


class RecipeComponent(_ExtractedModel):
    """A part of a dish (e.g. 'Cake', 'Frosting') with its own ingredients and steps"""
    name: str = "Main"
    ingredients: List[ExtractedIngredient] = Field(default_factory=list)
    steps: List[ExtractedStep] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, v):
        return _blank_to_none(v) or "Main"

    @field_validator("ingredients", "steps", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @property
    def has_content(self) -> bool:
        return bool(self.ingredients or self.steps)


class ExtractedRecipe(_ExtractedModel):
    """
    Structured recipe produced by synthesis.

    Lives inside the job's extracted_recipes until it is imported.
    A valid recipe has a title and at least one component with content.
    """
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[DifficultyLevel] = None
    category: Optional[RecipeCategory] = None
    cuisine: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    components: List[RecipeComponent] = Field(default_factory=list)
    confidence: float = 0.5

    @field_validator("title", mode="before")
    @classmethod
    def _clean_title(cls, v):
        return _blank_to_none(v) or ""

    @field_validator("description", "cuisine", mode="before")
    @classmethod
    def _clean_text(cls, v):
        return _blank_to_none(v)

    @field_validator("prep_time_minutes", "cook_time_minutes", "servings", mode="before")
    @classmethod
    def _parse_ints(cls, v):
        return parse_int(v)

    @field_validator("difficulty", mode="before")
    @classmethod
    def _parse_difficulty(cls, v):
        text = _blank_to_none(v)
        if text and text.upper() in DifficultyLevel.__members__:
            return text.upper()
        return None

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, v):
        text = _blank_to_none(v)
        if text:
            key = text.upper().replace(" ", "_").replace("-", "_")
            if key in RecipeCategory.__members__:
                return key
        return None

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, v):
        if not isinstance(v, list):
            return []
        return [str(tag).strip() for tag in v if tag is not None and str(tag).strip()]

    @field_validator("components", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return v or []

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.5
        return min(max(value, 0.0), 1.0)


# ============= Pipeline Models =============

class VideoMetadata(BaseModel):
    """Video metadata fetched once before a job is created"""
    title: str = "Unknown Title"
    duration: int = 0  # seconds
    channel: str = "Unknown Channel"
    thumbnail: str = ""
    description: Optional[str] = None


@dataclass
class OcrFrameResult:
    """A scene-change frame that passed the OCR pre-filter"""
    frame_path: str
    timestamp: int  # approximate, seconds
    ocr_text: str


class FrameAnalysisContent(BaseModel):
    """Recipe fragments the vision model read off one frame"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ingredients: List[Dict[str, Any]] = Field(default_factory=list)
    steps: List[Dict[str, Any]] = Field(default_factory=list)
    other_text: str = Field("", alias="otherText")

    @field_validator("ingredients", "steps", mode="before")
    @classmethod
    def _only_dicts(cls, v):
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]

    @field_validator("other_text", mode="before")
    @classmethod
    def _text(cls, v):
        return str(v) if v else ""

    @property
    def is_empty(self) -> bool:
        return not (self.ingredients or self.steps or self.other_text)


class FrameAnalysis(BaseModel):
    """Vision analysis of a single frame"""
    timestamp: int
    analysis: FrameAnalysisContent


@dataclass
class JobProgress:
    """Live progress of an in-flight job, mirrored in memory for polling"""
    status: str
    current_step: str = ""
    progress: int = 0
    frames_extracted: int = 0
    frames_with_text: int = 0
