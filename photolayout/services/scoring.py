from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import numpy as np

from photolayout.models.layout import LayoutRegion, PhotoAnalysis

logger = logging.getLogger(__name__)

ASPECT_WEIGHT = 0.4
FACE_BONUS = 0.3
FACE_BONUS_MIN_ASPECT = 0.7
LARGE_REGION_BONUS = 0.2
LARGE_REGION_FRACTION = 0.3
ORIENTATION_BONUS = 0.2

# Phase 1 of assignment only takes pairs scoring at least this.
STRONG_MATCH = 0.9

# (minimum min/max ratio, bucketed score), checked top to bottom.
ASPECT_BUCKETS = (
    (0.9, 1.0),
    (0.8, 0.9),
    (0.7, 0.8),
    (0.6, 0.7),
    (0.5, 0.6),
    (0.4, 0.4),
    (0.3, 0.2),
)


def aspect_match(photo_ratio: float, region_ratio: float) -> float:
    """Non-linear bucketing of min/max between two aspect ratios."""
    if photo_ratio <= 0 or region_ratio <= 0:
        return 0.0
    ratio = min(photo_ratio, region_ratio) / max(photo_ratio, region_ratio)
    for threshold, value in ASPECT_BUCKETS:
        if ratio >= threshold:
            return value
    return 0.0


def score(photo: PhotoAnalysis, region: LayoutRegion, surface_area: float) -> float:
    """
    Suitability of a photo for a region, in [0, 1].

    Combines the weighted aspect-ratio match with bonuses for faces in
    well-matched or large regions and for wide/landscape or tall/portrait
    pairings.
    """
    aspect = aspect_match(photo.aspect_ratio, region.expected_aspect_ratio)
    value = aspect * ASPECT_WEIGHT

    if photo.has_faces and aspect > FACE_BONUS_MIN_ASPECT:
        value += FACE_BONUS

    if photo.has_faces and surface_area > 0 and region.rect.area / surface_area > LARGE_REGION_FRACTION:
        value += LARGE_REGION_BONUS

    region_ratio = region.expected_aspect_ratio
    if (region_ratio > 1.0 and photo.is_landscape) or (region_ratio < 1.0 and photo.is_portrait):
        value += ORIENTATION_BONUS

    return min(1.0, max(0.0, value))


def score_matrix(
    photos: Sequence[PhotoAnalysis],
    regions: Sequence[LayoutRegion],
    surface_w: int,
    surface_h: int,
) -> np.ndarray:
    """Scores as a (region x photo) matrix, built once per layout pass."""
    surface_area = float(surface_w * surface_h)
    scores = np.zeros((len(regions), len(photos)), dtype=np.float64)
    for region_index, region in enumerate(regions):
        for photo_index, photo in enumerate(photos):
            scores[region_index, photo_index] = score(photo, region, surface_area)
    return scores


def assign(scores: np.ndarray) -> Dict[int, int]:
    """
    Greedy two-phase assignment of photos to regions.

    Phase 1 takes every pair scoring at least 0.9, best first. Phase 2 walks
    the remaining regions in order and gives each the best unassigned photo.
    Regions still empty after that (more regions than photos) wrap around to
    `region_index % photo_count`. Ties go to the lower index.

    Returns a region index -> photo index map covering every region.
    """
    region_count, photo_count = scores.shape
    assignments: Dict[int, int] = {}
    if region_count == 0 or photo_count == 0:
        return assignments

    used_photos: set[int] = set()

    strong = [
        (float(scores[r, p]), r, p)
        for r in range(region_count)
        for p in range(photo_count)
        if scores[r, p] >= STRONG_MATCH
    ]
    strong.sort(key=lambda item: (-item[0], item[1], item[2]))
    for _, region_index, photo_index in strong:
        if region_index in assignments or photo_index in used_photos:
            continue
        assignments[region_index] = photo_index
        used_photos.add(photo_index)

    for region_index in range(region_count):
        if region_index in assignments:
            continue
        best_photo = None
        for photo_index in range(photo_count):
            if photo_index in used_photos:
                continue
            if best_photo is None or scores[region_index, photo_index] > scores[region_index, best_photo]:
                best_photo = photo_index
        if best_photo is None:
            break
        assignments[region_index] = best_photo
        used_photos.add(best_photo)

    for region_index in range(region_count):
        if region_index not in assignments:
            assignments[region_index] = region_index % photo_count

    return dict(sorted(assignments.items()))


def assign_photos(
    photos: Sequence[PhotoAnalysis],
    regions: Sequence[LayoutRegion],
    surface_w: int,
    surface_h: int,
) -> Dict[int, int]:
    scores = score_matrix(photos, regions, surface_w, surface_h)
    assignments = assign(scores)
    logger.debug("Assignments %s (mean score %.2f)", assignments, float(scores.mean()) if scores.size else 0.0)
    return assignments


def shuffled_assignment(region_count: int, photo_count: int, rng: np.random.Generator) -> Dict[int, int]:
    """
    Assignment for freeform layouts, which have no stable shape to score.

    Photos are dealt in a shuffled order; when regions outnumber photos the
    deck is reshuffled and dealt again, so every photo appears before any
    repeats.
    """
    assignments: Dict[int, int] = {}
    if photo_count <= 0:
        return assignments

    deck: List[int] = []
    for region_index in range(region_count):
        if not deck:
            deck = [int(i) for i in rng.permutation(photo_count)]
        assignments[region_index] = deck.pop()
    return assignments
