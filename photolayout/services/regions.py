"""
Region generation: partition a display surface into per-photo rectangles.

Every template maps to one builder in `REGION_BUILDERS`. Builders are pure
arithmetic over the surface size, except the smart-3 coin flip and the
scattered collage, which draw from the generator they are handed. Region
order is stable per template; the scorer and compositor rely on it (the
main region of a 3-up layout is always index 0).
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Dict, List

import numpy as np

from photolayout.models.layout import LayoutRegion, Rect, TemplateType
from photolayout.services.collage import DEFAULT_SCATTERED_COUNT, place_scattered
from photolayout.services.errors import UnknownTemplate

logger = logging.getLogger(__name__)

RegionBuilder = Callable[[int, int, float, np.random.Generator], List[LayoutRegion]]

MAIN_SECTION_FRACTION = 0.6
MASONRY_ROW_FRACTION = 0.4
COLLAGE_CENTER_FRACTION = 0.5
# (x, y) fractions of the surface for the collage's corner squares.
COLLAGE_CORNERS = ((0.2, 0.2), (0.8, 0.2), (0.2, 0.8), (0.8, 0.8))


def _regions(rects: List[Rect], width: int, height: int) -> List[LayoutRegion]:
    return [LayoutRegion.from_rect(rect.clamp_to(width, height)) for rect in rects]


def _two_vertical(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    half = border / 2
    mid = height / 2
    return _regions(
        [
            Rect(0, 0, width, mid - half),
            Rect(0, mid + half, width, height),
        ],
        width,
        height,
    )


def _two_horizontal(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    half = border / 2
    mid = width / 2
    return _regions(
        [
            Rect(0, 0, mid - half, height),
            Rect(mid + half, 0, width, height),
        ],
        width,
        height,
    )


def _main_left(width: int, height: int, border: float) -> List[Rect]:
    half = border / 2
    split = int(width * MAIN_SECTION_FRACTION)
    mid = height / 2
    return [
        Rect(0, 0, split - half, height),
        Rect(split + half, 0, width, mid - half),
        Rect(split + half, mid + half, width, height),
    ]


def _main_right(width: int, height: int, border: float) -> List[Rect]:
    half = border / 2
    split = width - int(width * MAIN_SECTION_FRACTION)
    mid = height / 2
    return [
        Rect(split + half, 0, width, height),
        Rect(0, 0, split - half, mid - half),
        Rect(0, mid + half, split - half, height),
    ]


def _main_top(width: int, height: int, border: float) -> List[Rect]:
    half = border / 2
    split = int(height * MAIN_SECTION_FRACTION)
    mid = width / 2
    return [
        Rect(0, 0, width, split - half),
        Rect(0, split + half, mid - half, height),
        Rect(mid + half, split + half, width, height),
    ]


def _main_bottom(width: int, height: int, border: float) -> List[Rect]:
    half = border / 2
    split = height - int(height * MAIN_SECTION_FRACTION)
    mid = width / 2
    return [
        Rect(0, split + half, width, height),
        Rect(0, 0, mid - half, split - half),
        Rect(mid + half, 0, width, split - half),
    ]


def _three_main_left(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    return _regions(_main_left(width, height, border), width, height)


def _three_main_right(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    return _regions(_main_right(width, height, border), width, height)


def _smart_three(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    """Main photo plus two; the main side is a coin flip along the long axis."""
    first = bool(rng.integers(0, 2))
    if width >= height:
        rects = _main_left(width, height, border) if first else _main_right(width, height, border)
    else:
        rects = _main_top(width, height, border) if first else _main_bottom(width, height, border)
    return _regions(rects, width, height)


def _four_grid(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    half = border / 2
    mid_x = width / 2
    mid_y = height / 2
    return _regions(
        [
            Rect(0, 0, mid_x - half, mid_y - half),
            Rect(mid_x + half, 0, width, mid_y - half),
            Rect(0, mid_y + half, mid_x - half, height),
            Rect(mid_x + half, mid_y + half, width, height),
        ],
        width,
        height,
    )


def _masonry(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    """
    Variable-height columns: three on landscape surfaces, two on portrait.

    The first column is a single tall cell; every other column is split into
    a short top cell and a cell filling the rest of the height. Cells are
    ordered top row first, left to right.
    """
    columns = 3 if width > height else 2
    col_width = (width - (columns + 1) * border) / columns
    top = border
    bottom = height - border
    first_row_height = height * MASONRY_ROW_FRACTION

    rects: List[Rect] = []
    for column in range(columns):
        left = border + column * (col_width + border)
        cell_bottom = bottom if column == 0 else top + first_row_height
        rects.append(Rect(left, top, left + col_width, cell_bottom))

    second_row_top = top + first_row_height + border
    for column in range(1, columns):
        left = border + column * (col_width + border)
        rects.append(Rect(left, second_row_top, left + col_width, bottom))

    return _regions(rects, width, height)


def _collage(width: int, height: int, border: float, rng: np.random.Generator) -> List[LayoutRegion]:
    """Large centre square with four smaller squares overlapping the corners."""
    short_side = min(width, height)
    center_size = short_side * COLLAGE_CENTER_FRACTION
    cx, cy = width / 2, height / 2

    rects = [Rect(cx - center_size / 2, cy - center_size / 2, cx + center_size / 2, cy + center_size / 2)]
    for index, (fx, fy) in enumerate(COLLAGE_CORNERS):
        # Alternating 30% / 40% of the short side.
        size = short_side * (0.3 + (index % 2) * 0.1)
        x, y = fx * width, fy * height
        rects.append(Rect(x - size / 2, y - size / 2, x + size / 2, y + size / 2))
    return _regions(rects, width, height)


def _scattered(
    width: int,
    height: int,
    border: float,
    rng: np.random.Generator,
    requested_count: int = DEFAULT_SCATTERED_COUNT,
) -> List[LayoutRegion]:
    return place_scattered(width, height, requested_count, rng)


REGION_BUILDERS: Dict[TemplateType, RegionBuilder] = {
    TemplateType.TWO_VERTICAL: _two_vertical,
    TemplateType.TWO_HORIZONTAL: _two_horizontal,
    TemplateType.THREE_MAIN_LEFT: _three_main_left,
    TemplateType.THREE_MAIN_RIGHT: _three_main_right,
    TemplateType.FOUR_GRID: _four_grid,
    TemplateType.MASONRY: _masonry,
    TemplateType.SMART_THREE: _smart_three,
    TemplateType.COLLAGE: _collage,
    TemplateType.SCATTERED: _scattered,
}


def parse_template(template: TemplateType | str) -> TemplateType:
    """Resolve a template identifier, raising UnknownTemplate for anything else."""
    if isinstance(template, TemplateType):
        return template
    try:
        return TemplateType(str(template).strip().lower())
    except ValueError as exc:
        raise UnknownTemplate(f"Unknown layout template: {template!r}") from exc


def generate_regions(
    template: TemplateType | str,
    surface_w: int,
    surface_h: int,
    border_width: float = 8,
    rng: np.random.Generator | None = None,
    requested_count: int | None = None,
) -> List[LayoutRegion]:
    """
    Compute the target rectangles for a template on a surface.

    Returns an empty list for a non-positive surface; the caller falls back
    to single-photo display. `requested_count` only applies to the scattered
    collage.
    """
    template_type = parse_template(template)
    if surface_w <= 0 or surface_h <= 0:
        logger.warning("No regions for %s on a %dx%d surface", template_type.value, surface_w, surface_h)
        return []

    builder = REGION_BUILDERS[template_type]
    if template_type is TemplateType.SCATTERED and requested_count is not None:
        builder = partial(_scattered, requested_count=requested_count)

    return builder(surface_w, surface_h, border_width, rng if rng is not None else np.random.default_rng())
