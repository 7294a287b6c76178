"""
Template catalogue and automatic template selection.

`dynamic` picks the template that best suits the analyzed photos and the
surface orientation; `random` picks uniformly from a small per-orientation
set. Both resolve to a concrete TemplateType before regions are generated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np

from photolayout.models.layout import PhotoAnalysis, TemplateType

logger = logging.getLogger(__name__)

DYNAMIC = "dynamic"
RANDOM = "random"
PSEUDO_TEMPLATES = (DYNAMIC, RANDOM)

MIN_PHOTOS_FIXED = 2
MIN_PHOTOS_DYNAMIC = 3


@dataclass(slots=True, frozen=True)
class TemplateInfo:
    template: TemplateType
    min_photos: int
    # Number of regions, or None when it depends on the surface.
    region_count: int | None
    landscape_ok: bool = True
    portrait_ok: bool = True
    description: str = ""


CATALOGUE: Dict[TemplateType, TemplateInfo] = {
    info.template: info
    for info in (
        TemplateInfo(TemplateType.TWO_VERTICAL, MIN_PHOTOS_FIXED, 2, description="Two photos stacked"),
        TemplateInfo(TemplateType.TWO_HORIZONTAL, MIN_PHOTOS_FIXED, 2, description="Two photos side by side"),
        TemplateInfo(TemplateType.THREE_MAIN_LEFT, MIN_PHOTOS_FIXED, 3, description="Main photo left, two stacked right"),
        TemplateInfo(TemplateType.THREE_MAIN_RIGHT, MIN_PHOTOS_FIXED, 3, description="Main photo right, two stacked left"),
        TemplateInfo(TemplateType.FOUR_GRID, MIN_PHOTOS_FIXED, 4, description="Two by two grid"),
        TemplateInfo(
            TemplateType.MASONRY,
            MIN_PHOTOS_DYNAMIC,
            None,
            landscape_ok=False,
            description="Variable-height columns with a tall first column",
        ),
        TemplateInfo(TemplateType.SMART_THREE, MIN_PHOTOS_DYNAMIC, 3, description="Main photo on a random side"),
        TemplateInfo(
            TemplateType.COLLAGE,
            MIN_PHOTOS_DYNAMIC,
            5,
            portrait_ok=False,
            description="Large centre photo with four corner photos",
        ),
        TemplateInfo(TemplateType.SCATTERED, MIN_PHOTOS_DYNAMIC, None, description="Rotated overlapping photos"),
    )
}

LANDSCAPE_CANDIDATES = (
    TemplateType.TWO_HORIZONTAL,
    TemplateType.THREE_MAIN_LEFT,
    TemplateType.THREE_MAIN_RIGHT,
    TemplateType.FOUR_GRID,
    TemplateType.COLLAGE,
)
PORTRAIT_CANDIDATES = (
    TemplateType.TWO_VERTICAL,
    TemplateType.THREE_MAIN_LEFT,
    TemplateType.THREE_MAIN_RIGHT,
    TemplateType.FOUR_GRID,
    TemplateType.MASONRY,
)

RANDOM_LANDSCAPE = (TemplateType.TWO_HORIZONTAL, TemplateType.THREE_MAIN_LEFT, TemplateType.FOUR_GRID)
RANDOM_PORTRAIT = (TemplateType.TWO_VERTICAL, TemplateType.THREE_MAIN_LEFT, TemplateType.FOUR_GRID)


def min_photos(template: TemplateType) -> int:
    return CATALOGUE[template].min_photos


def is_template_compatible(template: TemplateType, surface_w: int, surface_h: int) -> bool:
    info = CATALOGUE[template]
    if surface_w > surface_h:
        return info.landscape_ok
    return info.portrait_ok


def content_score(template: TemplateType, photos: Sequence[PhotoAnalysis]) -> float:
    """How well a set of analyzed photos suits a template; higher is better."""
    portraits = sum(1 for photo in photos if photo.is_portrait)
    landscapes = sum(1 for photo in photos if photo.is_landscape)
    squares = sum(1 for photo in photos if photo.is_square)
    with_faces = sum(1 for photo in photos if photo.has_faces)
    faces = sum(len(photo.faces) for photo in photos)

    score = 0.0
    if template is TemplateType.TWO_VERTICAL:
        score += 0.5 * portraits
        if with_faces >= 2:
            score += 1.0
    elif template is TemplateType.TWO_HORIZONTAL:
        score += 0.5 * landscapes
        if with_faces >= 2:
            score += 1.0
    elif template in (TemplateType.THREE_MAIN_LEFT, TemplateType.THREE_MAIN_RIGHT):
        if with_faces:
            score += 2.0
        score += 0.3 * min(faces, 3)
    elif template is TemplateType.FOUR_GRID:
        score += 0.25 * squares
        score += 0.25 * min(faces, 4)
    else:
        # Freeform and column layouts like mixed orientations.
        if portraits and landscapes:
            score += 1.0
        if squares:
            score += 0.5
        score += 0.2 * min(faces, len(photos))
    return score


def determine_best_template(
    photos: Sequence[PhotoAnalysis],
    surface_w: int,
    surface_h: int,
) -> TemplateType | None:
    """
    Pick the best-scoring template for the photos and surface orientation.

    Only templates whose minimum photo count is met are considered; ties go
    to the earlier candidate. Returns None for fewer than two photos.
    """
    if len(photos) < MIN_PHOTOS_FIXED:
        return None

    candidates = LANDSCAPE_CANDIDATES if surface_w > surface_h else PORTRAIT_CANDIDATES
    feasible = [template for template in candidates if len(photos) >= min_photos(template)]

    scores = {template: content_score(template, photos) for template in feasible}
    best = max(feasible, key=lambda template: scores[template])
    logger.debug("Template scores: %s", {template.value: round(value, 2) for template, value in scores.items()})
    return best


def random_template(surface_w: int, surface_h: int, photo_count: int, rng: np.random.Generator) -> TemplateType | None:
    """Uniform pick from the per-orientation random set, None for too few photos."""
    if photo_count < MIN_PHOTOS_FIXED:
        return None
    choices = RANDOM_LANDSCAPE if surface_w > surface_h else RANDOM_PORTRAIT
    return choices[int(rng.integers(0, len(choices)))]


def list_templates() -> List[TemplateInfo]:
    return list(CATALOGUE.values())
