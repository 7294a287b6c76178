"""
Layout engine: the single entry point a display layer calls.

A layout pass runs the pipeline in order:
- validate the request (dimensions, template, photo count)
- analyze every photo concurrently (faces, orientation, saliency)
- resolve `dynamic` / `random` to a concrete template
- generate regions and assign photos to them
- crop each assigned photo into its region
- composite the crops onto an output surface

Only the analysis step leaves the calling thread. Everything after it is
synchronous and single-threaded for one pass. Buffers for crops and the output
surface come from the engine's PixelBufferPool; crops go back to the pool as
soon as they are drawn, the output surface belongs to the caller.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Sequence

import numpy as np

from photolayout.config import LayoutSettings
from photolayout.models.layout import LayoutRegion, PhotoAnalysis, PixelBuffer, RenderedSurface, TemplateType
from photolayout.services.analysis import FaceDetector, HaarCascadeFaceDetector, NullFaceDetector, analyze_photos
from photolayout.services.buffer_pool import PixelBufferPool, preferred_format
from photolayout.services.collage import DEFAULT_SCATTERED_COUNT
from photolayout.services.compositor import Compositor, crop_size
from photolayout.services.cropper import crop
from photolayout.services.errors import InsufficientPhotos, InvalidDimensions, LayoutCancelled
from photolayout.services.regions import generate_regions, parse_template
from photolayout.services.scoring import assign_photos, shuffled_assignment
from photolayout.services.templates import (
    DYNAMIC,
    MIN_PHOTOS_FIXED,
    PSEUDO_TEMPLATES,
    RANDOM,
    determine_best_template,
    is_template_compatible,
    min_photos,
    random_template,
)

logger = logging.getLogger(__name__)


def build_detector(name: str) -> FaceDetector:
    if name == "none":
        return NullFaceDetector()
    return HaarCascadeFaceDetector()


def _raster(photo: PixelBuffer | np.ndarray) -> np.ndarray:
    return photo.pixels if isinstance(photo, PixelBuffer) else np.asarray(photo)


class LayoutEngine:
    """
    Owns the buffer pool, the face detector and the compositor for a host.

    One engine may serve several threads; each call to `generate_layout` is
    an independent pass and the pool serializes its own access.
    """

    def __init__(
        self,
        settings: LayoutSettings | None = None,
        pool: PixelBufferPool | None = None,
        detector: FaceDetector | None = None,
    ) -> None:
        self.settings = settings or LayoutSettings()
        self.pool = pool if pool is not None else PixelBufferPool(self.settings.pool_bucket_size)
        self.detector = detector if detector is not None else build_detector(self.settings.face_detection)
        self.compositor = Compositor(
            border_width=self.settings.border_width,
            border_color=self.settings.border_color,
            background_color=self.settings.background_color,
            fallback_color=self.settings.fallback_color,
        )

    def _resolve_request(self, template_id: TemplateType | str, photo_count: int) -> TemplateType | str:
        """Validate the template id and photo count before any work starts."""
        if isinstance(template_id, str) and template_id.strip().lower() in PSEUDO_TEMPLATES:
            pseudo = template_id.strip().lower()
            if photo_count < MIN_PHOTOS_FIXED:
                raise InsufficientPhotos(pseudo, MIN_PHOTOS_FIXED, photo_count)
            return pseudo

        template = parse_template(template_id)
        required = min_photos(template)
        if photo_count < required:
            raise InsufficientPhotos(template.value, required, photo_count)
        return template

    def generate_layout(
        self,
        photos: Sequence[PixelBuffer | np.ndarray],
        template_id: TemplateType | str,
        surface_w: int,
        surface_h: int,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        cancel_event: threading.Event | None = None,
        analysis_timeout: float | None = None,
    ) -> RenderedSurface:
        """
        Lay out `photos` on a `surface_w` x `surface_h` surface.

        Raises InvalidDimensions, UnknownTemplate or InsufficientPhotos before
        any photo is analyzed. Per-photo failures never abort the pass: the
        photo loses its faces, or its region is painted with the fallback
        colour. Setting `cancel_event` abandons the pass with LayoutCancelled
        after returning every buffer it acquired to the pool.
        """
        if surface_w <= 0 or surface_h <= 0:
            raise InvalidDimensions(surface_w, surface_h)

        requested = self._resolve_request(template_id, len(photos))
        rng = rng if rng is not None else np.random.default_rng(seed)

        def checkpoint() -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise LayoutCancelled("Layout pass superseded")

        checkpoint()
        rasters = [_raster(photo) for photo in photos]
        analyses = analyze_photos(
            rasters,
            self.detector,
            workers=self.settings.analysis_workers,
            timeout=analysis_timeout,
        )
        checkpoint()

        template = self._select_template(requested, analyses, surface_w, surface_h, rng)
        if not is_template_compatible(template, surface_w, surface_h):
            logger.info(
                "Template %s is not designed for a %dx%d surface; using it anyway",
                template.value,
                surface_w,
                surface_h,
            )

        regions = generate_regions(
            template,
            surface_w,
            surface_h,
            border_width=self.settings.border_width,
            rng=rng,
            requested_count=max(len(photos), DEFAULT_SCATTERED_COUNT),
        )
        if template.is_freeform:
            assignments = shuffled_assignment(len(regions), len(analyses), rng)
        else:
            assignments = assign_photos(analyses, regions, surface_w, surface_h)

        surface = None
        crops: List[PixelBuffer | None] = []
        try:
            for index, region in enumerate(regions):
                checkpoint()
                crops.append(self._crop_region(index, region, analyses[assignments[index]], surface_w, surface_h))

            checkpoint()
            surface = self.pool.acquire(
                surface_w,
                surface_h,
                preferred_format(surface_w, surface_h, self.settings.large_raster_pixels),
            )
            fallback_regions = self.compositor.render(surface, regions, crops, checkpoint)
        except Exception as exc:
            if surface is not None:
                self.pool.release(surface)
            if isinstance(exc, LayoutCancelled):
                logger.info("Layout pass cancelled after %d of %d regions", len(crops), len(regions))
            raise
        finally:
            for piece in crops:
                if piece is not None:
                    self.pool.release(piece)

        logger.info(
            "Rendered %s layout on %dx%d: %d photos, %d regions, %d fallbacks",
            template.value,
            surface_w,
            surface_h,
            len(photos),
            len(regions),
            len(fallback_regions),
        )
        return RenderedSurface(
            buffer=surface,
            template=template,
            regions=regions,
            assignments=assignments,
            fallback_regions=fallback_regions,
        )

    def _select_template(
        self,
        requested: TemplateType | str,
        analyses: Sequence[PhotoAnalysis],
        surface_w: int,
        surface_h: int,
        rng: np.random.Generator,
    ) -> TemplateType:
        if requested == DYNAMIC:
            template = determine_best_template(analyses, surface_w, surface_h)
        elif requested == RANDOM:
            template = random_template(surface_w, surface_h, len(analyses), rng)
        else:
            return requested
        if template is None:
            raise InsufficientPhotos(str(requested), MIN_PHOTOS_FIXED, len(analyses))
        logger.debug("Resolved %s template to %s", requested, template.value)
        return template

    def _crop_region(
        self,
        index: int,
        region: LayoutRegion,
        photo: PhotoAnalysis,
        surface_w: int,
        surface_h: int,
    ) -> PixelBuffer | None:
        target_w, target_h = crop_size(region, surface_w, surface_h)
        try:
            return crop(
                photo.raster,
                target_w,
                target_h,
                photo.faces,
                padding_fraction=self.settings.face_padding,
                pool=self.pool,
                fmt=preferred_format(target_w, target_h, self.settings.large_raster_pixels),
            )
        except Exception as exc:
            logger.warning("Crop for region %d failed: %s", index, exc)
            return None

    def release_pool(self) -> None:
        """Low-memory hook: drop every pooled buffer."""
        self.pool.clear()

    def get_stats(self) -> Dict[str, object]:
        return self.pool.get_stats()
