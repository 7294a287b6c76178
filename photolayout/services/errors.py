"""
Error taxonomy for the layout engine.

Only `InvalidDimensions`, `InsufficientPhotos` and `UnknownTemplate` ever reach
the caller of a layout pass; they are raised synchronously before any photo is
analyzed. Per-photo failures (`AnalysisFailed`) and arithmetic slips
(`CropBoundsViolation`) are caught inside the engine, logged, and degraded.
"""

from __future__ import annotations


class LayoutError(Exception):
    """Base class for every error raised by the layout engine."""


class InvalidDimensions(LayoutError):
    """Raised for a non-positive surface or target size. Not retryable."""

    def __init__(self, width: int, height: int, what: str = "surface") -> None:
        super().__init__(f"Invalid {what} dimensions: {width}x{height}")
        self.width = width
        self.height = height


class InsufficientPhotos(LayoutError):
    """Raised when a template needs more photos than were supplied."""

    def __init__(self, template: str, required: int, available: int) -> None:
        super().__init__(
            f"Template {template} needs at least {required} photos, got {available}"
        )
        self.template = template
        self.required = required
        self.available = available


class UnknownTemplate(LayoutError, ValueError):
    """Raised when a template identifier does not name any known template."""


class AnalysisFailed(LayoutError):
    """A single photo could not be analyzed; the pass continues without faces."""

    def __init__(self, photo_index: int, reason: str) -> None:
        super().__init__(f"Analysis failed for photo {photo_index}: {reason}")
        self.photo_index = photo_index


class CropBoundsViolation(LayoutError):
    """A computed crop rectangle fell outside the source raster."""


class LayoutCancelled(LayoutError):
    """The layout pass was superseded and abandoned before completion."""
