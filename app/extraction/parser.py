"""
Parsing helpers for model responses.

Kept free of I/O so the vision and synthesis post-processing can be
tested without calling OpenAI.
"""
import json
import logging
import re
from typing import Any, List, Optional, Sequence, TypeVar

from pydantic import ValidationError

from app.domain.exceptions import NoRecipesExtractedError, RecipeParseError
from app.domain.models import ExtractedRecipe, FrameAnalysis, FrameAnalysisContent

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)


def clean_json_content(content: str) -> str:
    """Strip markdown code fences the model sometimes wraps JSON in"""
    return _FENCE.sub("", content or "").strip()


def parse_frame_analysis(content: str) -> FrameAnalysisContent:
    """
    Parse one vision response.

    Anything that is not a JSON object falls back to the empty structure.
    """
    try:
        data = json.loads(clean_json_content(content) or "{}")
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse frame analysis: {content}")
        return FrameAnalysisContent()

    if not isinstance(data, dict):
        return FrameAnalysisContent()

    try:
        return FrameAnalysisContent.model_validate(data)
    except ValidationError:
        return FrameAnalysisContent()


def select_evenly_distributed(items: Sequence[T], max_count: int) -> List[T]:
    """Pick max_count items spread across the sequence, at floor(i * len / max)"""
    if max_count <= 0:
        return []
    if len(items) <= max_count:
        return list(items)

    step = len(items) / max_count
    return [items[int(i * step)] for i in range(max_count)]


def format_timestamp(seconds: int) -> str:
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_frame_context(analyses: Sequence[FrameAnalysis]) -> str:
    """One '[m:ss]: {json}' line per frame that found anything"""
    lines = []
    for frame in analyses:
        if frame.analysis.is_empty:
            continue
        payload = frame.analysis.model_dump(by_alias=True)
        lines.append(
            f"[{format_timestamp(frame.timestamp)}]: "
            f"{json.dumps(payload, ensure_ascii=False)}"
        )
    return "\n".join(lines)


def _clean_component(component: Any) -> Any:
    """Drop ingredients without a name and steps without an instruction"""
    if not isinstance(component, dict):
        return component

    cleaned = dict(component)
    ingredients = component.get("ingredients") or []
    steps = component.get("steps") or []
    cleaned["ingredients"] = [
        item for item in ingredients
        if isinstance(item, dict) and str(item.get("name") or "").strip()
    ]
    cleaned["steps"] = [
        step for step in steps
        if isinstance(step, dict) and str(step.get("instruction") or "").strip()
    ]
    return cleaned


def _normalize_recipe(raw: Any) -> Optional[ExtractedRecipe]:
    if not isinstance(raw, dict):
        return None

    data = dict(raw)
    components = data.get("components")
    if isinstance(components, list):
        data["components"] = [_clean_component(c) for c in components]

    try:
        recipe = ExtractedRecipe.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping invalid recipe '{raw.get('title')}': {e.error_count()} errors")
        return None

    recipe.components = [c for c in recipe.components if c.has_content]
    if not recipe.components:
        logger.warning(f"Dropping recipe '{recipe.title}': no ingredients or steps")
        return None

    for component in recipe.components:
        for index, step in enumerate(component.steps):
            if not step.order:
                step.order = index + 1

    return recipe


def parse_recipes(content: str) -> List[ExtractedRecipe]:
    """
    Parse the synthesis response into validated recipes.

    A single object is treated as a one-recipe list. Recipes without a
    title or without any ingredient or step are dropped.

    Raises:
        RecipeParseError: content is not JSON
        NoRecipesExtractedError: nothing survived validation
    """
    try:
        parsed = json.loads(clean_json_content(content) or "[]")
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse recipes: {content}")
        raise RecipeParseError() from e

    raw_recipes = parsed if isinstance(parsed, list) else [parsed]

    recipes = []
    for raw in raw_recipes:
        recipe = _normalize_recipe(raw)
        if recipe is not None:
            recipes.append(recipe)

    if not recipes:
        raise NoRecipesExtractedError()

    logger.info(
        f"Extracted {len(recipes)} recipe(s): {', '.join(r.title for r in recipes)}"
    )
    return recipes
