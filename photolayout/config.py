from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

ENV_PREFIX = "PHOTOLAYOUT_"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s%s=%r; using %d", ENV_PREFIX, name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring %s%s=%d below minimum %d; using %d", ENV_PREFIX, name, value, minimum, default)
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s%s=%r; using %s", ENV_PREFIX, name, raw, default)
        return default


def _env_color(name: str, default: Color) -> Color:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        parts = tuple(int(p) for p in raw.split(","))
    except ValueError:
        parts = ()
    if len(parts) != 3 or any(p < 0 or p > 255 for p in parts):
        logger.warning("Ignoring malformed colour %s%s=%r; expected R,G,B", ENV_PREFIX, name, raw)
        return default
    return parts  # type: ignore[return-value]


@dataclass(frozen=True)
class LayoutSettings:
    """
    Tunable knobs for the layout engine and the HTTP service.

    Defaults mirror the values the screensaver shipped with; every field can
    be overridden through a `PHOTOLAYOUT_*` environment variable (or `.env`).
    """

    border_width: int = 8
    border_color: Color = (255, 255, 255)
    background_color: Color = (0, 0, 0)
    # Painted into a region whose photo could not be cropped.
    fallback_color: Color = (48, 48, 48)
    # Face padding as a fraction of the smaller face dimension.
    face_padding: float = 0.25
    pool_bucket_size: int = 3
    # Rasters above this many pixels use the reduced-colour format.
    large_raster_pixels: int = 1_000_000
    analysis_workers: int = 4
    face_detection: str = "haar"
    max_upload_photos: int = 20
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> LayoutSettings:
        detection = os.environ.get(ENV_PREFIX + "FACE_DETECTION", cls.face_detection).strip().lower()
        if detection not in ("haar", "none"):
            logger.warning("Unknown face detection backend %r; using 'haar'", detection)
            detection = "haar"

        return cls(
            border_width=_env_int("BORDER_WIDTH", cls.border_width),
            border_color=_env_color("BORDER_COLOR", cls.border_color),
            background_color=_env_color("BACKGROUND_COLOR", cls.background_color),
            fallback_color=_env_color("FALLBACK_COLOR", cls.fallback_color),
            face_padding=_env_float("FACE_PADDING", cls.face_padding),
            pool_bucket_size=_env_int("POOL_BUCKET_SIZE", cls.pool_bucket_size),
            large_raster_pixels=_env_int("LARGE_RASTER_PIXELS", cls.large_raster_pixels, minimum=1),
            analysis_workers=_env_int("ANALYSIS_WORKERS", cls.analysis_workers, minimum=1),
            face_detection=detection,
            max_upload_photos=_env_int("MAX_UPLOAD_PHOTOS", cls.max_upload_photos, minimum=1),
            log_level=os.environ.get(ENV_PREFIX + "LOG_LEVEL", cls.log_level).upper(),
        )
