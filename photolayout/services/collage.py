"""
Scattered collage placement.

Places many rotated, overlapping rectangles so that together they cover the
surface without a grid structure. This is a greedy coverage heuristic, not an
optimal packing:

1. A handful of strategic anchors (centre, corners, edge midpoints, quadrant
   centres) are seeded first, with a little jitter.
2. Every remaining slot samples candidate positions and keeps the one whose
   footprint lands on the least-covered cells, away from existing centres
   and towards the edges.
3. On landscape surfaces the bottom-right quadrant gets an enlarged anchor
   and a final oversized piece; it is the area fixed templates leave bare.

Coverage is tracked on a coarse grid (about 48 cells along the long side)
rather than per pixel.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List

import cv2
import numpy as np

from photolayout.models.layout import LayoutRegion, Rect

logger = logging.getLogger(__name__)

DEFAULT_SCATTERED_COUNT = 8
MIN_SCATTERED = 8
MAX_SCATTERED = 20
AREA_PER_PHOTO = 350 * 350

# optimal size = diagonal * SIZE_FACTOR / sqrt(count)
SIZE_FACTOR = 0.9
MIN_SCALE, MAX_SCALE = 0.85, 1.4
ENLARGED_MIN_SCALE, ENLARGED_MAX_SCALE = 1.3, 1.6
MIN_ASPECT, MAX_ASPECT = 0.65, 1.7
MAX_ROTATION = 35.0
ENLARGED_MAX_ROTATION = 15.0
ANCHOR_JITTER = 0.05

GRID_CELLS = 48
CANDIDATES_PER_SLOT = 15
REPULSION_WEIGHT = 100.0
CENTER_DISTANCE_WEIGHT = 0.3
BOTTOM_RIGHT_WEIGHT = 0.5
# Each axis of a piece may hang off the surface by at most this fraction.
MAX_OVERHANG = 0.1

# Fractions of the surface, in seeding order.
ANCHORS = (
    (0.5, 0.5),
    (0.12, 0.12), (0.88, 0.12), (0.12, 0.88), (0.88, 0.88),
    (0.5, 0.1), (0.5, 0.9), (0.1, 0.5), (0.9, 0.5),
    (0.25, 0.25), (0.75, 0.25), (0.25, 0.75), (0.75, 0.75),
)
BOTTOM_RIGHT_ANCHOR = 12
FINAL_PLACEMENT_ANCHOR = (0.78, 0.78)


@dataclass(slots=True)
class _Piece:
    cx: float
    cy: float
    width: float
    height: float
    rotation: float


def effective_count(surface_w: int, surface_h: int, requested_count: int) -> int:
    """How many pieces to place: one per 350x350 of surface, within [8, 20], capped at the request."""
    by_area = int(surface_w * surface_h / AREA_PER_PHOTO)
    return max(0, min(max(MIN_SCATTERED, min(by_area, MAX_SCATTERED)), requested_count))


def optimal_size(surface_w: int, surface_h: int, count: int) -> float:
    return math.hypot(surface_w, surface_h) * SIZE_FACTOR / math.sqrt(count)


def _bounding_size(width: float, height: float, rotation: float) -> tuple[float, float]:
    theta = math.radians(rotation)
    cos, sin = abs(math.cos(theta)), abs(math.sin(theta))
    return width * cos + height * sin, width * sin + height * cos


class _CoverageGrid:
    """Coarse per-cell count of how many pieces cover each part of the surface."""

    def __init__(self, surface_w: int, surface_h: int) -> None:
        self.cell = max(surface_w, surface_h) / GRID_CELLS
        self.cols = max(1, math.ceil(surface_w / self.cell))
        self.rows = max(1, math.ceil(surface_h / self.cell))
        self.counts = np.zeros((self.rows, self.cols), dtype=np.float32)

    def footprint(self, piece: _Piece) -> np.ndarray:
        mask = np.zeros((self.rows, self.cols), dtype=np.uint8)
        box = (
            (piece.cx / self.cell, piece.cy / self.cell),
            (piece.width / self.cell, piece.height / self.cell),
            -piece.rotation,
        )
        points = np.round(cv2.boxPoints(box)).astype(np.int32)
        cv2.fillPoly(mask, [points], 1)
        return mask.astype(bool)

    def cost(self, mask: np.ndarray) -> float:
        return float(self.counts[mask].sum())

    def add(self, mask: np.ndarray) -> None:
        self.counts[mask] += 1.0

    def uncovered_fraction(self) -> float:
        return float((self.counts == 0).mean())


class _ScatteredPlacer:
    def __init__(self, surface_w: int, surface_h: int, count: int, rng: np.random.Generator) -> None:
        self.surface_w = surface_w
        self.surface_h = surface_h
        self.count = count
        self.rng = rng
        self.landscape = surface_w > surface_h
        self.size = optimal_size(surface_w, surface_h, count)
        self.grid = _CoverageGrid(surface_w, surface_h)
        self.pieces: List[_Piece] = []

    def _random_piece(self, cx: float, cy: float, enlarged: bool = False) -> _Piece:
        if enlarged:
            scale = self.rng.uniform(ENLARGED_MIN_SCALE, ENLARGED_MAX_SCALE)
            rotation = self.rng.uniform(-ENLARGED_MAX_ROTATION, ENLARGED_MAX_ROTATION)
        else:
            scale = self.rng.uniform(MIN_SCALE, MAX_SCALE)
            rotation = self.rng.uniform(-MAX_ROTATION, MAX_ROTATION)
        aspect = self.rng.uniform(MIN_ASPECT, MAX_ASPECT)
        side = self.size * scale
        return self._fit(_Piece(cx, cy, side * math.sqrt(aspect), side / math.sqrt(aspect), rotation))

    def _fit(self, piece: _Piece) -> _Piece:
        """Shrink a piece whose rotated bounds exceed the surface, then pull it mostly on-surface."""
        bound_w, bound_h = _bounding_size(piece.width, piece.height, piece.rotation)
        shrink = min(1.0, self.surface_w / bound_w, self.surface_h / bound_h)
        if shrink < 1.0:
            piece.width *= shrink
            piece.height *= shrink
            bound_w *= shrink
            bound_h *= shrink

        keep = 0.5 - MAX_OVERHANG
        piece.cx = min(max(piece.cx, bound_w * keep), self.surface_w - bound_w * keep)
        piece.cy = min(max(piece.cy, bound_h * keep), self.surface_h - bound_h * keep)
        return piece

    def _place(self, piece: _Piece, mask: np.ndarray | None = None) -> None:
        self.grid.add(self.grid.footprint(piece) if mask is None else mask)
        self.pieces.append(piece)

    def _score(self, piece: _Piece, mask: np.ndarray) -> float:
        cell = self.grid.cell
        footprint_cells = float(mask.sum())
        score = self.grid.cost(mask)

        for placed in self.pieces:
            distance = math.hypot(piece.cx - placed.cx, piece.cy - placed.cy) / cell
            score += REPULSION_WEIGHT / max(distance, 0.25) ** 2

        half_diagonal = math.hypot(self.surface_w, self.surface_h) / 2
        from_center = math.hypot(piece.cx - self.surface_w / 2, piece.cy - self.surface_h / 2)
        score -= CENTER_DISTANCE_WEIGHT * footprint_cells * (from_center / half_diagonal)

        if self.landscape and piece.cx > self.surface_w / 2 and piece.cy > self.surface_h / 2:
            score -= BOTTOM_RIGHT_WEIGHT * footprint_cells
        return score

    def _place_best_candidate(self) -> None:
        best = None
        for _ in range(CANDIDATES_PER_SLOT):
            piece = self._random_piece(
                self.rng.uniform(0, self.surface_w),
                self.rng.uniform(0, self.surface_h),
            )
            mask = self.grid.footprint(piece)
            score = self._score(piece, mask)
            if best is None or score < best[0]:
                best = (score, piece, mask)
        self._place(best[1], best[2])

    def _try_final_placement(self) -> bool:
        fx, fy = FINAL_PLACEMENT_ANCHOR
        piece = self._random_piece(fx * self.surface_w, fy * self.surface_h, enlarged=True)
        min_separation = min(piece.width, piece.height) * 0.35
        for placed in self.pieces:
            if math.hypot(piece.cx - placed.cx, piece.cy - placed.cy) < min_separation:
                return False
        self._place(piece)
        return True

    def run(self) -> List[_Piece]:
        reserve_final = self.landscape and self.count >= 2
        slots = self.count - 1 if reserve_final else self.count

        anchor_count = min(len(ANCHORS), slots)
        for index in range(anchor_count):
            fx, fy = ANCHORS[index]
            jitter_x = self.rng.uniform(-ANCHOR_JITTER, ANCHOR_JITTER) * self.surface_w
            jitter_y = self.rng.uniform(-ANCHOR_JITTER, ANCHOR_JITTER) * self.surface_h
            enlarged = self.landscape and index == BOTTOM_RIGHT_ANCHOR
            self._place(self._random_piece(fx * self.surface_w + jitter_x, fy * self.surface_h + jitter_y, enlarged))

        for _ in range(slots - anchor_count):
            self._place_best_candidate()

        if reserve_final and not self._try_final_placement():
            self._place_best_candidate()

        logger.debug(
            "Scattered %d pieces on %dx%d, %.1f%% of grid uncovered",
            len(self.pieces),
            self.surface_w,
            self.surface_h,
            self.grid.uncovered_fraction() * 100,
        )
        return self.pieces


def place_scattered(
    surface_w: int,
    surface_h: int,
    requested_count: int,
    rng: np.random.Generator | None = None,
) -> List[LayoutRegion]:
    """
    Place rotated, overlapping regions covering the surface.

    Regions come back in drawing order. Their rectangles are unrotated (the
    rotation is applied around the rectangle centre when compositing) and at
    least 80% of every rectangle lies on the surface.
    """
    if surface_w <= 0 or surface_h <= 0:
        return []
    count = effective_count(surface_w, surface_h, requested_count)
    if count <= 0:
        return []

    placer = _ScatteredPlacer(surface_w, surface_h, count, rng if rng is not None else np.random.default_rng())
    regions = []
    for piece in placer.run():
        rect = Rect(
            piece.cx - piece.width / 2,
            piece.cy - piece.height / 2,
            piece.cx + piece.width / 2,
            piece.cy + piece.height / 2,
        )
        regions.append(LayoutRegion.from_rect(rect, rotation=float(piece.rotation)))
    return regions
