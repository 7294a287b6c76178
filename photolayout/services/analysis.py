from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Protocol, Sequence

import cv2
import numpy as np

from photolayout.models.layout import FaceRegion, PhotoAnalysis, Rect
from photolayout.services.errors import AnalysisFailed


logger = logging.getLogger(__name__)

PORTRAIT_MAX_RATIO = 0.95
LANDSCAPE_MIN_RATIO = 1.05

MAX_FACES = 5

SALIENCY_GRID = 32
SALIENCY_CENTER_WEIGHT = 1.5
SALIENCY_EDGE_WEIGHT = 0.5

# Dominant face padding: per side, as a fraction of the face (single face)
# or of the image (several faces).
SINGLE_FACE_PADDING = 0.5
GROUP_FACE_PADDING = 0.1


class FaceDetector(Protocol):
    """Anything that returns face boxes for an RGB raster."""

    def detect(self, raster: np.ndarray) -> List[FaceRegion]:
        ...


class NullFaceDetector:
    """Detector used when face detection is switched off; finds nothing."""

    def detect(self, raster: np.ndarray) -> List[FaceRegion]:
        return []


class HaarCascadeFaceDetector:
    """
    Detect faces using OpenCV's Haar cascades.

    This is a classical but well-understood detector. The cascade is loaded
    once and shared by the analysis workers; OpenCV classifiers are not
    documented as re-entrant, so calls are serialized on a lock.
    """

    def __init__(self, max_faces: int = MAX_FACES) -> None:
        self.max_faces = max_faces
        self.cascade_path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
        self._cascade = cv2.CascadeClassifier(self.cascade_path)
        if self._cascade.empty():
            logger.warning("Face cascade could not be loaded from %s", self.cascade_path)
        self._lock = threading.Lock()

    def detect(self, raster: np.ndarray) -> List[FaceRegion]:
        if self._cascade.empty():
            return []

        if raster.ndim == 2:
            gray = raster
        elif raster.shape[2] == 4:
            gray = cv2.cvtColor(raster, cv2.COLOR_RGBA2GRAY)
        else:
            gray = cv2.cvtColor(raster, cv2.COLOR_RGB2GRAY)

        with self._lock:
            faces = self._cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5, minSize=(30, 30))

        regions = [
            FaceRegion(rect=Rect.from_size(float(x), float(y), float(w), float(h)), score=1.0)
            for (x, y, w, h) in faces
        ]
        # Keep the largest faces; they matter most for cropping.
        regions.sort(key=lambda face: face.rect.area, reverse=True)
        return regions[: self.max_faces]


def classify_orientation(aspect_ratio: float) -> tuple[bool, bool, bool]:
    """Return (is_portrait, is_landscape, is_square) for an aspect ratio."""
    is_portrait = aspect_ratio < PORTRAIT_MAX_RATIO
    is_landscape = aspect_ratio > LANDSCAPE_MIN_RATIO
    return is_portrait, is_landscape, not (is_portrait or is_landscape)


def dominant_face_region(faces: Sequence[FaceRegion], width: int, height: int) -> Rect | None:
    """
    Padded region around the most important faces.

    A single face is padded by half its own size on each side; several faces
    are unioned and padded by a tenth of the image size. The result is
    clamped to the image.
    """
    if not faces:
        return None

    if len(faces) == 1:
        face = faces[0].rect
        pad_x = face.width * SINGLE_FACE_PADDING
        pad_y = face.height * SINGLE_FACE_PADDING
        region = Rect(face.left - pad_x, face.top - pad_y, face.right + pad_x, face.bottom + pad_y)
    else:
        union = faces[0].rect
        for face in faces[1:]:
            union = union.union(face.rect)
        pad_x = width * GROUP_FACE_PADDING
        pad_y = height * GROUP_FACE_PADDING
        region = Rect(union.left - pad_x, union.top - pad_y, union.right + pad_x, union.bottom + pad_y)

    return region.clamp_to(width, height)


def compute_saliency_map(raster: np.ndarray, grid: int = SALIENCY_GRID) -> np.ndarray:
    """
    Coarse saliency grid used when no face was found.

    Each cell is its luminance weighted towards the image centre, plus half
    the central-difference gradient magnitude on interior cells.
    """
    rgb = raster[:, :, :3] if raster.ndim == 3 else np.repeat(raster[:, :, None], 3, axis=2)
    small = cv2.resize(rgb, (grid, grid), interpolation=cv2.INTER_AREA).astype(np.float32) / 255.0
    intensity = 0.299 * small[:, :, 0] + 0.587 * small[:, :, 1] + 0.114 * small[:, :, 2]

    center = grid / 2.0
    coords = np.arange(grid, dtype=np.float32)
    dist_x = np.abs(coords - center) / center
    dist_y = np.abs(coords - center) / center
    dist = np.sqrt(dist_x[None, :] ** 2 + dist_y[:, None] ** 2) / 1.414
    base = intensity * (1.0 - dist) * SALIENCY_CENTER_WEIGHT

    saliency = base.copy()
    dx = np.abs(base[1:-1, 2:] - base[1:-1, :-2])
    dy = np.abs(base[2:, 1:-1] - base[:-2, 1:-1])
    edge = np.minimum(1.0, np.sqrt(dx * dx + dy * dy))
    saliency[1:-1, 1:-1] += edge * SALIENCY_EDGE_WEIGHT
    return saliency


def _degraded_analysis(raster: np.ndarray) -> PhotoAnalysis:
    height, width = raster.shape[:2]
    aspect_ratio = width / height if height else 1.0
    is_portrait, is_landscape, is_square = classify_orientation(aspect_ratio)
    return PhotoAnalysis(
        raster=raster,
        aspect_ratio=aspect_ratio,
        is_portrait=is_portrait,
        is_landscape=is_landscape,
        is_square=is_square,
        analysis_succeeded=False,
    )


def analyze_photo(raster: np.ndarray, detector: FaceDetector, index: int = 0) -> PhotoAnalysis:
    """
    Analyze one photo: orientation, faces, dominant face region and saliency.

    Raises AnalysisFailed when the raster is unusable, or the detector raises
    or returns boxes that cannot be used.
    """
    if raster.ndim not in (2, 3) or raster.shape[0] == 0 or raster.shape[1] == 0:
        raise AnalysisFailed(index, f"unusable raster of shape {raster.shape}")

    height, width = raster.shape[:2]
    aspect_ratio = width / height
    is_portrait, is_landscape, is_square = classify_orientation(aspect_ratio)

    try:
        faces = detector.detect(raster)
        saliency_map = None if faces else compute_saliency_map(raster)
        dominant = dominant_face_region(faces, width, height)
    except Exception as exc:
        raise AnalysisFailed(index, str(exc)) from exc

    return PhotoAnalysis(
        raster=raster,
        aspect_ratio=aspect_ratio,
        faces=list(faces),
        dominant_face_region=dominant,
        is_portrait=is_portrait,
        is_landscape=is_landscape,
        is_square=is_square,
        saliency_map=saliency_map,
    )


def _analyze_or_degrade(raster: np.ndarray, detector: FaceDetector, index: int) -> PhotoAnalysis:
    try:
        return analyze_photo(raster, detector, index)
    except AnalysisFailed as exc:
        logger.warning("%s; continuing without faces", exc)
        return _degraded_analysis(raster)


def analyze_photos(
    rasters: Sequence[np.ndarray],
    detector: FaceDetector,
    workers: int = 4,
    timeout: float | None = None,
) -> List[PhotoAnalysis]:
    """
    Analyze every photo concurrently and return results in input order.

    One photo failing never affects the others: it comes back with an empty
    face list. With a timeout, photos still running when it expires are
    degraded the same way and their workers are abandoned.
    """
    if not rasters:
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, min(workers, len(rasters))), thread_name_prefix="analysis")
    try:
        futures = [
            executor.submit(_analyze_or_degrade, raster, detector, index)
            for index, raster in enumerate(rasters)
        ]
        wait(futures, timeout=timeout)

        results: List[PhotoAnalysis] = []
        for index, (raster, future) in enumerate(zip(rasters, futures)):
            if future.done():
                results.append(future.result())
            else:
                future.cancel()
                logger.warning("%s; continuing without faces", AnalysisFailed(index, f"timed out after {timeout}s"))
                results.append(_degraded_analysis(raster))
    finally:
        # Never block on a stalled detector.
        executor.shutdown(wait=False, cancel_futures=True)

    face_count = sum(len(result.faces) for result in results)
    logger.debug("Analyzed %d photos, %d faces found", len(results), face_count)
    return results
