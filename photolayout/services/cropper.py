"""
Face-aware cropping.

Given a source photo, its face boxes and a target size, pick the source
sub-rectangle at the target aspect ratio that shows as much of the photo as
possible while keeping every face (plus padding) in frame, then resample it
to exactly fill the target. There is never any letterboxing.

The thresholds below were tuned by eye on real photo libraries; they have no
deeper derivation and are kept as named constants so they can be adjusted.
"""

from __future__ import annotations

import logging
from typing import Sequence

import cv2
import numpy as np

from photolayout.models.layout import FaceRegion, PixelBuffer, PixelFormat, Rect
from photolayout.services.buffer_pool import PixelBufferPool
from photolayout.services.errors import CropBoundsViolation

logger = logging.getLogger(__name__)

# Face union overlap with the maximum crop above which faces count as inside.
EFFECTIVELY_INSIDE_OVERLAP = 0.85
# Minimum overlap for trying to slide the maximum crop over the faces.
SHIFT_MIN_OVERLAP = 0.2

# Extreme ratio mismatch thresholds.
EXTREME_RATIO = 4.0
EXTREME_WIDE_TARGET = 2.5
EXTREME_TALL_TARGET = 0.4
# How far an extreme crop may grow beyond the bare face union.
EXTREME_CONTEXT = 3.0

# Per-face padding bounds, as fractions of the source.
MIN_FACE_PADDING = 0.05
MAX_FACE_PADDING = 0.15

DEFAULT_PADDING_FRACTION = 0.25


def maximum_crop(src_w: float, src_h: float, target_ratio: float) -> Rect:
    """Largest centred sub-rectangle of the source at the target ratio."""
    if src_w / src_h > target_ratio:
        # Source is wider: crop left/right.
        crop_h = float(src_h)
        crop_w = src_h * target_ratio
    else:
        crop_w = float(src_w)
        crop_h = src_w / target_ratio
    left = (src_w - crop_w) / 2
    top = (src_h - crop_h) / 2
    return Rect(left, top, left + crop_w, top + crop_h)


def face_union(
    faces: Sequence[FaceRegion],
    src_w: float,
    src_h: float,
    padding_fraction: float = DEFAULT_PADDING_FRACTION,
) -> Rect | None:
    """Bounding box of all padded faces, clamped to the source."""
    union = None
    min_padding = min(src_w, src_h) * MIN_FACE_PADDING
    for face in faces:
        box = face.rect
        pad = max(min_padding, min(box.width, box.height) * padding_fraction)
        pad_x = min(pad, src_w * MAX_FACE_PADDING)
        pad_y = min(pad, src_h * MAX_FACE_PADDING)
        padded = Rect(box.left - pad_x, box.top - pad_y, box.right + pad_x, box.bottom + pad_y)
        union = padded if union is None else union.union(padded)

    if union is None:
        return None
    clamped = union.clamp_to(src_w, src_h)
    if clamped.area <= 0:
        return None
    return clamped


def is_extreme_mismatch(target_ratio: float, source_ratio: float) -> bool:
    relative = target_ratio / source_ratio
    if relative > EXTREME_RATIO or relative < 1 / EXTREME_RATIO:
        return True
    # Square sources count as both orientations here.
    if target_ratio > EXTREME_WIDE_TARGET and source_ratio <= 1.0:
        return True
    if target_ratio < EXTREME_TALL_TARGET and source_ratio >= 1.0:
        return True
    return False


def _enclosing_at_ratio(rect: Rect, target_ratio: float) -> tuple[float, float]:
    """Size of the smallest rectangle at `target_ratio` that can hold `rect`."""
    if rect.aspect_ratio > target_ratio:
        return rect.width, rect.width / target_ratio
    return rect.height * target_ratio, rect.height


def _centered(cx: float, cy: float, width: float, height: float) -> Rect:
    return Rect(cx - width / 2, cy - height / 2, cx + width / 2, cy + height / 2)


def _shift_inside(rect: Rect, src_w: float, src_h: float) -> Rect:
    """Slide a rectangle (no resizing) until it lies inside the source."""
    dx = 0.0
    if rect.left < 0:
        dx = -rect.left
    elif rect.right > src_w:
        dx = src_w - rect.right
    dy = 0.0
    if rect.top < 0:
        dy = -rect.top
    elif rect.bottom > src_h:
        dy = src_h - rect.bottom
    return rect.translated(dx, dy)


def _shift_to_contain(window: Rect, target: Rect) -> Rect:
    """Move a window the least distance needed to cover `target` where possible."""
    dx = 0.0
    if target.left < window.left:
        dx = target.left - window.left
    elif target.right > window.right:
        dx = target.right - window.right
    dy = 0.0
    if target.top < window.top:
        dy = target.top - window.top
    elif target.bottom > window.bottom:
        dy = target.bottom - window.bottom
    return window.translated(dx, dy)


def _overlap_fraction(union: Rect, crop: Rect) -> float:
    inside = union.intersection(crop)
    if inside is None or union.area <= 0:
        return 0.0
    return inside.area / union.area


def _extreme_crop(union: Rect, src_w: float, src_h: float, target_ratio: float) -> Rect:
    width, height = _enclosing_at_ratio(union, target_ratio)
    factor = min(EXTREME_CONTEXT, src_w / width, src_h / height)
    cx, cy = union.center
    return _shift_inside(_centered(cx, cy, width * factor, height * factor), src_w, src_h)


def _minimal_crop(union: Rect, src_w: float, src_h: float, target_ratio: float) -> Rect:
    width, height = _enclosing_at_ratio(union, target_ratio)
    cx, cy = union.center
    # Largest symmetric growth about the centroid that stays inside the source.
    room_x = min(cx, src_w - cx) / (width / 2)
    room_y = min(cy, src_h - cy) / (height / 2)
    factor = max(1.0, min(room_x, room_y))
    # Never larger than the source itself.
    factor = min(factor, src_w / width, src_h / height)
    return _shift_inside(_centered(cx, cy, width * factor, height * factor), src_w, src_h)


def select_crop_rect(
    src_w: int,
    src_h: int,
    target_w: int,
    target_h: int,
    faces: Sequence[FaceRegion] = (),
    padding_fraction: float = DEFAULT_PADDING_FRACTION,
) -> Rect:
    """
    Choose the source sub-rectangle for a target size.

    Without faces this is the centred maximum crop. With faces, the maximum
    crop is kept whenever the padded face union is (effectively) inside it,
    slid over the faces when they partly overlap it, and otherwise replaced
    by the largest crop centred on the faces. Extreme ratio mismatches go
    straight to a face-centred crop with limited extra context.
    """
    target_ratio = target_w / target_h
    source_ratio = src_w / src_h
    best = maximum_crop(src_w, src_h, target_ratio)

    union = face_union(faces, src_w, src_h, padding_fraction) if faces else None
    if union is None:
        return best

    if is_extreme_mismatch(target_ratio, source_ratio):
        return _extreme_crop(union, src_w, src_h, target_ratio)

    overlap = _overlap_fraction(union, best)
    if best.contains(union) or overlap >= EFFECTIVELY_INSIDE_OVERLAP:
        return best

    if overlap > SHIFT_MIN_OVERLAP:
        shifted = _shift_inside(_shift_to_contain(best, union), src_w, src_h)
        if shifted.contains(union):
            return shifted

    return _minimal_crop(union, src_w, src_h, target_ratio)


def _validated(rect: Rect, src_w: int, src_h: int) -> Rect:
    if not Rect(0, 0, src_w, src_h).contains(rect, tolerance=0.5) or rect.width <= 0 or rect.height <= 0:
        raise CropBoundsViolation(
            f"Crop {rect.to_list()} falls outside the {src_w}x{src_h} source"
        )
    return rect


def crop(
    source: np.ndarray | PixelBuffer,
    target_w: int,
    target_h: int,
    face_regions: Sequence[FaceRegion] = (),
    padding_fraction: float = DEFAULT_PADDING_FRACTION,
    pool: PixelBufferPool | None = None,
    fmt: PixelFormat = PixelFormat.ARGB_8888,
) -> PixelBuffer:
    """
    Crop and resample a photo to exactly `target_w` x `target_h`.

    Non-positive target dimensions are a caller error: the source comes back
    unmodified. The result is acquired from `pool` when one is given; the
    caller owns it and should release it.
    """
    if isinstance(source, PixelBuffer):
        pixels = source.pixels
    else:
        pixels = source

    if target_w <= 0 or target_h <= 0:
        logger.warning("Crop to %dx%d requested; returning the source unmodified", target_w, target_h)
        return source if isinstance(source, PixelBuffer) else PixelBuffer.from_array(pixels)

    src_h, src_w = pixels.shape[:2]
    rect = select_crop_rect(src_w, src_h, target_w, target_h, face_regions, padding_fraction)
    try:
        rect = _validated(rect, src_w, src_h)
    except CropBoundsViolation as exc:
        logger.warning("%s; clamping", exc)
        rect = rect.clamp_to(src_w, src_h)

    x0 = min(max(int(round(rect.left)), 0), src_w - 1)
    y0 = min(max(int(round(rect.top)), 0), src_h - 1)
    x1 = min(max(int(round(rect.right)), x0 + 1), src_w)
    y1 = min(max(int(round(rect.bottom)), y0 + 1), src_h)

    region = np.ascontiguousarray(pixels[y0:y1, x0:x1])
    resized = cv2.resize(region, (target_w, target_h), interpolation=cv2.INTER_LINEAR)

    if pool is None:
        buffer = PixelBuffer.allocate(target_w, target_h, fmt)
        buffer.write(resized)
        return buffer

    buffer = pool.acquire(target_w, target_h, fmt)
    try:
        buffer.write(resized)
    except Exception:
        pool.release(buffer)
        raise
    return buffer
