"""
Tests for the face-aware cropper.

Most checks run against `select_crop_rect` (pure geometry); a few go through
`crop` to check the produced raster.
"""

import numpy as np
import pytest

from photolayout.models.layout import FaceRegion, PixelBuffer, PixelFormat, Rect
from photolayout.services.buffer_pool import PixelBufferPool
from photolayout.services.cropper import (
    crop,
    face_union,
    is_extreme_mismatch,
    maximum_crop,
    select_crop_rect,
)


def face(x, y, w, h):
    return FaceRegion(rect=Rect.from_size(x, y, w, h))


def test_no_faces_gives_exact_size_and_ratio():
    source = np.random.default_rng(0).integers(0, 255, size=(480, 640, 3), dtype=np.uint8)
    for target_w, target_h in ((100, 100), (320, 90), (90, 320), (640, 480), (1000, 200), (37, 59)):
        buffer = crop(source, target_w, target_h, [])
        assert (buffer.width, buffer.height) == (target_w, target_h)

        rect = select_crop_rect(640, 480, target_w, target_h)
        assert rect.aspect_ratio == pytest.approx(target_w / target_h)
        assert Rect(0, 0, 640, 480).contains(rect)


def test_maximum_crop_is_centred():
    wide = maximum_crop(1600, 1200, 16 / 9)
    assert wide.to_list() == pytest.approx([0, 150, 1600, 1050])
    tall = maximum_crop(1600, 1200, 1.0)
    assert tall.to_list() == pytest.approx([200, 0, 1400, 1200])


def test_faces_inside_maximum_crop_keep_it():
    faces = [face(750, 550, 100, 100)]
    rect = select_crop_rect(1600, 1200, 1600, 900, faces)
    assert rect == maximum_crop(1600, 1200, 1600 / 900)


def test_crop_is_idempotent():
    rng = np.random.default_rng(1)
    source = rng.integers(0, 255, size=(1200, 1600, 3), dtype=np.uint8)
    faces = [face(700, 500, 120, 140), face(900, 520, 100, 110)]
    first = crop(source, 400, 225, faces)
    second = crop(source, 400, 225, faces)
    assert np.array_equal(first.pixels, second.pixels)


def test_partially_covered_faces_shift_the_window():
    # Union spans x 1290..1510; the centred square crop ends at 1400.
    rect = select_crop_rect(1600, 1200, 500, 500, [face(1350, 500, 100, 100)])
    assert rect.to_list() == pytest.approx([310, 0, 1510, 1200])


def test_faces_far_outside_get_a_face_centred_crop():
    faces = [face(1800, 400, 100, 100)]
    union = face_union(faces, 2000, 1000)
    rect = select_crop_rect(2000, 1000, 600, 600, faces)
    assert rect.contains(union)
    assert rect.aspect_ratio == pytest.approx(1.0)
    assert Rect(0, 0, 2000, 1000).contains(rect)


def test_square_source_to_three_to_one_target():
    faces = [face(400, 100, 100, 100)]
    assert is_extreme_mismatch(3.0, 1.0)
    rect = select_crop_rect(900, 900, 900, 300, faces)
    assert rect.aspect_ratio == pytest.approx(3.0)
    assert rect.contains(face_union(faces, 900, 900))
    assert Rect(0, 0, 900, 900).contains(rect)


def test_extreme_crop_limits_context():
    # Small face in a tall photo going into a wide slot: grows at most 3x.
    faces = [face(490, 1240, 20, 20)]
    union = face_union(faces, 1000, 2500)
    rect = select_crop_rect(1000, 2500, 400, 200, faces)
    assert rect.contains(union)
    assert rect.aspect_ratio == pytest.approx(2.0)
    assert (rect.width, rect.height) == pytest.approx((720, 360))


def test_face_padding_is_bounded():
    union = face_union([face(100, 100, 400, 400)], 1000, 1000, padding_fraction=1.0)
    # 400 * 1.0 padding capped at 15% of the source.
    assert union.to_list() == pytest.approx([0, 0, 650, 650])

    small = face_union([face(500, 500, 10, 10)], 1000, 1000)
    # min(w, h) * 5% floor.
    assert small.to_list() == pytest.approx([450, 450, 560, 560])


def test_random_faces_stay_in_bounds_at_target_ratio():
    rng = np.random.default_rng(2)
    for _ in range(300):
        src_w, src_h = (int(v) for v in rng.integers(50, 3000, size=2))
        target_w, target_h = (int(v) for v in rng.integers(20, 2000, size=2))
        faces = []
        for _ in range(int(rng.integers(1, 4))):
            w = float(rng.uniform(5, src_w / 2))
            h = float(rng.uniform(5, src_h / 2))
            faces.append(face(float(rng.uniform(0, src_w - w)), float(rng.uniform(0, src_h - h)), w, h))

        rect = select_crop_rect(src_w, src_h, target_w, target_h, faces)
        assert Rect(0, 0, src_w, src_h).contains(rect, tolerance=1e-6)
        assert rect.aspect_ratio == pytest.approx(target_w / target_h, rel=1e-6)


def test_face_survives_into_the_output():
    source = np.zeros((1000, 2000, 3), dtype=np.uint8)
    source[420:480, 1820:1880] = 255
    buffer = crop(source, 200, 200, [face(1800, 400, 100, 100)])
    assert buffer.as_rgb().max() == 255


def test_non_positive_target_returns_source():
    source = np.full((20, 30, 3), 7, dtype=np.uint8)
    result = crop(source, 0, 10, [])
    assert (result.width, result.height) == (30, 20)
    assert np.array_equal(result.as_rgb(), source)

    buffer = PixelBuffer.from_array(source)
    assert crop(buffer, 10, -1, []) is buffer


def test_crop_buffers_come_from_the_pool():
    pool = PixelBufferPool()
    source = np.zeros((300, 400, 3), dtype=np.uint8)
    buffer = crop(source, 50, 60, [], pool=pool, fmt=PixelFormat.RGB_565)
    assert pool.owns(buffer)
    assert buffer.format is PixelFormat.RGB_565
    assert pool.release(buffer)
