"""
Tests for photo analysis: orientation, dominant face region, saliency and
the concurrent fan-out.
"""

import threading
import time

import numpy as np
import pytest

from photolayout.models.layout import FaceRegion, Rect
from photolayout.services.analysis import (
    HaarCascadeFaceDetector,
    NullFaceDetector,
    analyze_photo,
    analyze_photos,
    classify_orientation,
    compute_saliency_map,
    dominant_face_region,
)
from photolayout.services.errors import AnalysisFailed


class ShapeFaceDetector:
    """Returns canned faces keyed by raster width, after an optional delay."""

    def __init__(self, faces_by_width, delays=None):
        self.faces_by_width = faces_by_width
        self.delays = delays or {}

    def detect(self, raster):
        width = raster.shape[1]
        time.sleep(self.delays.get(width, 0))
        return list(self.faces_by_width.get(width, []))


class FailingDetector:
    def detect(self, raster):
        if raster.shape[1] == 13:
            raise RuntimeError("detector crashed")
        return []


class BlockingDetector:
    def __init__(self):
        self.release = threading.Event()

    def detect(self, raster):
        if raster.shape[1] == 99:
            self.release.wait(10)
        return []


def blank(width, height):
    return np.zeros((height, width, 3), dtype=np.uint8)


def test_orientation_flags():
    assert classify_orientation(0.94) == (True, False, False)
    assert classify_orientation(1.0) == (False, False, True)
    assert classify_orientation(1.05) == (False, False, True)
    assert classify_orientation(1.06) == (False, True, False)


def test_dominant_region_for_one_face_pads_by_half_the_face():
    faces = [FaceRegion(Rect.from_size(100, 100, 40, 60))]
    region = dominant_face_region(faces, 400, 400)
    assert region.to_list() == [80, 70, 160, 190]


def test_dominant_region_for_several_faces_pads_by_image_size():
    faces = [FaceRegion(Rect.from_size(100, 100, 50, 50)), FaceRegion(Rect.from_size(300, 120, 50, 50))]
    region = dominant_face_region(faces, 1000, 500)
    assert region.to_list() == pytest.approx([0, 50, 450, 220])
    assert dominant_face_region([], 100, 100) is None


def test_saliency_prefers_the_centre():
    saliency = compute_saliency_map(np.full((300, 400, 3), 255, dtype=np.uint8))
    assert saliency.shape == (32, 32)
    assert saliency[16, 16] > saliency[0, 0]
    assert saliency[16, 16] > saliency[16, 1]
    assert saliency.max() <= 1.5 + 0.5


def test_analyze_photo_with_faces_skips_saliency():
    detector = ShapeFaceDetector({300: [FaceRegion(Rect.from_size(100, 100, 50, 50))]})
    analysis = analyze_photo(blank(300, 400), detector)
    assert analysis.has_faces
    assert analysis.is_portrait
    assert analysis.saliency_map is None
    assert analysis.dominant_face_region is not None
    assert analysis.analysis_succeeded


def test_analyze_photo_without_faces_computes_saliency():
    analysis = analyze_photo(blank(400, 300), NullFaceDetector())
    assert not analysis.has_faces
    assert analysis.is_landscape
    assert analysis.saliency_map.shape == (32, 32)


def test_unusable_raster_fails_analysis():
    with pytest.raises(AnalysisFailed):
        analyze_photo(np.zeros((0, 10, 3), dtype=np.uint8), NullFaceDetector(), index=3)


def test_results_keep_input_order():
    faces = {
        100: [FaceRegion(Rect.from_size(1, 1, 10, 10))],
        200: [],
        300: [FaceRegion(Rect.from_size(1, 1, 10, 10)), FaceRegion(Rect.from_size(50, 1, 10, 10))],
    }
    # The first photo finishes last.
    detector = ShapeFaceDetector(faces, delays={100: 0.2, 200: 0.0, 300: 0.05})
    results = analyze_photos([blank(100, 80), blank(200, 80), blank(300, 80)], detector, workers=3)
    assert [r.width for r in results] == [100, 200, 300]
    assert [len(r.faces) for r in results] == [1, 0, 2]


def test_failed_photo_degrades_without_affecting_others():
    results = analyze_photos([blank(20, 20), blank(13, 20), blank(40, 20)], FailingDetector())
    assert [r.analysis_succeeded for r in results] == [True, False, True]
    assert results[1].faces == []
    assert results[1].is_portrait


def test_timeout_degrades_stalled_photos_instead_of_hanging():
    detector = BlockingDetector()
    started = time.monotonic()
    try:
        results = analyze_photos([blank(50, 50), blank(99, 50)], detector, workers=2, timeout=0.3)
    finally:
        detector.release.set()
    assert time.monotonic() - started < 5
    assert results[0].analysis_succeeded
    assert not results[1].analysis_succeeded
    assert results[1].faces == []


def test_empty_input():
    assert analyze_photos([], NullFaceDetector()) == []


def test_haar_detector_finds_nothing_in_a_blank_image():
    detector = HaarCascadeFaceDetector()
    assert detector.detect(blank(200, 200)) == []
    rgba = np.zeros((120, 160, 4), dtype=np.uint8)
    assert detector.detect(rgba) == []


class MalformedBoxDetector:
    """Returns bare tuples instead of FaceRegion objects for 30-pixel-wide rasters."""

    def detect(self, raster):
        if raster.shape[1] == 30:
            return [(1, 2, 3, 4)]
        return []


def test_unusable_face_boxes_degrade_only_that_photo():
    with pytest.raises(AnalysisFailed):
        analyze_photo(blank(30, 20), MalformedBoxDetector(), index=1)

    results = analyze_photos([blank(20, 20), blank(30, 20), blank(40, 20)], MalformedBoxDetector())
    assert [r.analysis_succeeded for r in results] == [True, False, True]
    assert results[1].faces == []
    assert results[1].dominant_face_region is None
