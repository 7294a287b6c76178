from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List

import numpy as np


class TemplateType(str, Enum):
    """Layout templates the region generator knows how to partition."""

    TWO_VERTICAL = "2-vertical"
    TWO_HORIZONTAL = "2-horizontal"
    THREE_MAIN_LEFT = "3-main-left"
    THREE_MAIN_RIGHT = "3-main-right"
    FOUR_GRID = "4-grid"
    MASONRY = "masonry"
    SMART_THREE = "smart-3"
    COLLAGE = "collage"
    SCATTERED = "scattered"

    @property
    def is_freeform(self) -> bool:
        """Freeform layouts overlap and rotate, so they skip suitability scoring."""
        return self in (TemplateType.COLLAGE, TemplateType.SCATTERED)


class PixelFormat(str, Enum):
    """Pixel formats a PixelBuffer can hold."""

    ARGB_8888 = "argb_8888"
    RGB_565 = "rgb_565"

    @property
    def channels(self) -> int:
        return 4 if self is PixelFormat.ARGB_8888 else 3


_RGB_565_MASK = np.array([0xF8, 0xFC, 0xF8], dtype=np.uint8)


@dataclass(slots=True, eq=False)
class PixelBuffer:
    """
    Owned raster of width x height pixels in a fixed pixel format.

    Buffers are handed to exactly one owner at a time. Identity, not content,
    decides equality so the pool can track them in its in-use set.
    """

    pixels: np.ndarray
    format: PixelFormat = PixelFormat.ARGB_8888

    @classmethod
    def allocate(cls, width: int, height: int, fmt: PixelFormat = PixelFormat.ARGB_8888) -> PixelBuffer:
        return cls(pixels=np.zeros((height, width, fmt.channels), dtype=np.uint8), format=fmt)

    @classmethod
    def from_array(cls, array: np.ndarray, fmt: PixelFormat | None = None) -> PixelBuffer:
        """Copy a decoded raster into a new buffer (full alpha unless told otherwise)."""
        buffer = cls.allocate(int(array.shape[1]), int(array.shape[0]), fmt or PixelFormat.ARGB_8888)
        buffer.write(array)
        return buffer

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def nbytes(self) -> int:
        # RGB_565 is two bytes per pixel on the device even though we keep
        # three uint8 channels in memory.
        if self.format is PixelFormat.RGB_565:
            return self.width * self.height * 2
        return int(self.pixels.nbytes)

    def write(self, array: np.ndarray) -> None:
        """
        Redraw the whole buffer from an RGB, RGBA or grayscale array of the same size.

        Values are converted to this buffer's format: alpha is dropped or set
        opaque, and RGB_565 buffers are quantized to 5/6/5 bits.
        """
        if array.shape[0] != self.height or array.shape[1] != self.width:
            raise ValueError(
                f"Cannot write {array.shape[1]}x{array.shape[0]} pixels into a "
                f"{self.width}x{self.height} buffer"
            )
        if array.ndim == 2:
            array = np.repeat(array[:, :, None], 3, axis=2)
        rgb = np.asarray(array[:, :, :3], dtype=np.uint8)
        if self.format is PixelFormat.RGB_565:
            np.bitwise_and(rgb, _RGB_565_MASK, out=self.pixels)
            return
        self.pixels[:, :, :3] = rgb
        if array.shape[2] == 4:
            self.pixels[:, :, 3] = array[:, :, 3]
        else:
            self.pixels[:, :, 3] = 255

    def fill(self, color: tuple[int, ...]) -> None:
        rgb = np.array(color[:3], dtype=np.uint8)
        if self.format is PixelFormat.RGB_565:
            rgb = rgb & _RGB_565_MASK
        self.pixels[:, :, :3] = rgb
        if self.format is PixelFormat.ARGB_8888:
            self.pixels[:, :, 3] = color[3] if len(color) > 3 else 255

    def as_rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]


@dataclass(slots=True, frozen=True)
class Rect:
    """
    Axis-aligned rectangle in surface (or source) pixel space.

    Edges are floats; callers round only at the point where pixels are
    actually read or written.
    """

    left: float
    top: float
    right: float
    bottom: float

    @classmethod
    def from_size(cls, x: float, y: float, width: float, height: float) -> Rect:
        return cls(x, y, x + width, y + height)

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def aspect_ratio(self) -> float:
        if self.height <= 0:
            return 0.0
        return self.width / self.height

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.right) / 2, (self.top + self.bottom) / 2

    def contains(self, other: Rect, tolerance: float = 1e-6) -> bool:
        return (
            other.left >= self.left - tolerance
            and other.top >= self.top - tolerance
            and other.right <= self.right + tolerance
            and other.bottom <= self.bottom + tolerance
        )

    def intersection(self, other: Rect) -> Rect | None:
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        if right <= left or bottom <= top:
            return None
        return Rect(left, top, right, bottom)

    def union(self, other: Rect) -> Rect:
        return Rect(
            min(self.left, other.left),
            min(self.top, other.top),
            max(self.right, other.right),
            max(self.bottom, other.bottom),
        )

    def clamp_to(self, width: float, height: float) -> Rect:
        """Clip every edge into [0, width] x [0, height]."""
        return Rect(
            min(max(self.left, 0.0), width),
            min(max(self.top, 0.0), height),
            min(max(self.right, 0.0), width),
            min(max(self.bottom, 0.0), height),
        )

    def translated(self, dx: float, dy: float) -> Rect:
        return Rect(self.left + dx, self.top + dy, self.right + dx, self.bottom + dy)

    def to_list(self) -> List[float]:
        return [self.left, self.top, self.right, self.bottom]


@dataclass(slots=True, frozen=True)
class FaceRegion:
    """
    A face bounding box detected in one source photo.

    Produced only by the photo analyzer and never mutated afterwards.
    """

    rect: Rect
    # Detector confidence in [0, 1]. Classical detectors report 1.0.
    score: float = 1.0


@dataclass(slots=True)
class PhotoAnalysis:
    """
    Per-photo metadata computed once per layout pass.

    The raster itself is only referenced; it may outlive the analysis.
    """

    raster: np.ndarray
    aspect_ratio: float
    faces: List[FaceRegion] = field(default_factory=list)
    # Padded region around the most important faces, None when no faces.
    dominant_face_region: Rect | None = None
    is_portrait: bool = False
    is_landscape: bool = False
    is_square: bool = False
    # Coarse saliency grid computed only when face detection found nothing.
    saliency_map: np.ndarray | None = None
    # False when detection raised or timed out and the photo degraded.
    analysis_succeeded: bool = True

    @property
    def width(self) -> int:
        return int(self.raster.shape[1])

    @property
    def height(self) -> int:
        return int(self.raster.shape[0])

    @property
    def has_faces(self) -> bool:
        return bool(self.faces)


@dataclass(slots=True, frozen=True)
class LayoutRegion:
    """
    Target rectangle on the output surface for a single photo.

    Regions are immutable; suitability scores live in a separate matrix built
    by the scorer so nothing aliases a shared mutable map.
    """

    rect: Rect
    expected_aspect_ratio: float
    # Rotation in degrees (counter-clockwise) for collage placements.
    rotation: float = 0.0

    @classmethod
    def from_rect(cls, rect: Rect, rotation: float = 0.0) -> LayoutRegion:
        return cls(rect=rect, expected_aspect_ratio=rect.aspect_ratio, rotation=rotation)


@dataclass(slots=True)
class RenderedSurface:
    """Result of one layout pass, handed to the hosting UI layer."""

    # The output buffer; the caller owns it and should release it to the pool.
    buffer: PixelBuffer
    template: TemplateType
    regions: List[LayoutRegion] = field(default_factory=list)
    # region index -> photo index
    assignments: Dict[int, int] = field(default_factory=dict)
    # Regions painted with the fallback colour because their photo failed.
    fallback_regions: List[int] = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def height(self) -> int:
        return self.buffer.height
