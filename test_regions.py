"""
Tests for the region generator's fixed templates.
"""

import itertools

import numpy as np
import pytest

from photolayout.models.layout import TemplateType
from photolayout.services.errors import UnknownTemplate
from photolayout.services.regions import REGION_BUILDERS, generate_regions, parse_template

FIXED_COUNTS = {
    TemplateType.TWO_VERTICAL: 2,
    TemplateType.TWO_HORIZONTAL: 2,
    TemplateType.THREE_MAIN_LEFT: 3,
    TemplateType.THREE_MAIN_RIGHT: 3,
    TemplateType.FOUR_GRID: 4,
    TemplateType.SMART_THREE: 3,
    TemplateType.COLLAGE: 5,
}


def test_every_template_has_a_builder():
    assert set(REGION_BUILDERS) == set(TemplateType)


def test_three_main_left_geometry():
    regions = generate_regions("3-main-left", 1200, 800, border_width=8)
    rects = [region.rect.to_list() for region in regions]
    assert rects == [
        [0, 0, 716, 800],
        [724, 0, 1200, 396],
        [724, 404, 1200, 800],
    ]
    assert regions[0].expected_aspect_ratio == pytest.approx(716 / 800)


def test_three_main_right_puts_main_region_first():
    regions = generate_regions(TemplateType.THREE_MAIN_RIGHT, 1000, 500, border_width=10)
    main = regions[0].rect
    assert main.right == 1000
    assert main.width == pytest.approx(1000 - 400 - 5)
    assert all(region.rect.right <= 395 for region in regions[1:])


def test_fixed_region_counts_and_bounds():
    rng = np.random.default_rng(3)
    for (width, height), (template, count) in itertools.product(
        [(1920, 1080), (1080, 1920), (500, 500)], FIXED_COUNTS.items()
    ):
        regions = generate_regions(template, width, height, rng=rng)
        assert len(regions) == count, template
        for region in regions:
            rect = region.rect
            assert 0 <= rect.left < rect.right <= width
            assert 0 <= rect.top < rect.bottom <= height
            assert region.rotation == 0.0
            assert region.expected_aspect_ratio == pytest.approx(rect.aspect_ratio)


def test_grid_templates_do_not_overlap_and_keep_border_gaps():
    for template in (TemplateType.TWO_VERTICAL, TemplateType.TWO_HORIZONTAL, TemplateType.FOUR_GRID,
                     TemplateType.THREE_MAIN_LEFT, TemplateType.MASONRY):
        regions = generate_regions(template, 1600, 900, border_width=8)
        for a, b in itertools.combinations(regions, 2):
            assert a.rect.intersection(b.rect) is None, template


def test_masonry_columns_follow_orientation():
    landscape = generate_regions(TemplateType.MASONRY, 1500, 1000, border_width=8)
    portrait = generate_regions(TemplateType.MASONRY, 600, 1000, border_width=8)
    assert len(landscape) == 5
    assert len(portrait) == 3

    # The first column is one tall cell.
    tall = portrait[0].rect
    assert tall.left == 8 and tall.top == 8 and tall.bottom == 992
    assert all(tall.height > region.rect.height for region in portrait[1:])
    assert portrait[1].rect.to_list() == [304, 8, 592, 408]
    assert portrait[2].rect.to_list() == [304, 416, 592, 992]


def test_collage_is_a_centre_square_with_corners():
    regions = generate_regions(TemplateType.COLLAGE, 1920, 1080)
    center = regions[0].rect
    assert center.center == (960, 540)
    assert center.width == pytest.approx(540)
    assert center.aspect_ratio == pytest.approx(1.0)
    corner_sizes = [region.rect.width for region in regions[1:]]
    assert corner_sizes == pytest.approx([324, 432, 324, 432])


def test_smart_three_is_seeded():
    first = generate_regions("smart-3", 1200, 800, rng=np.random.default_rng(11))
    again = generate_regions("smart-3", 1200, 800, rng=np.random.default_rng(11))
    assert [r.rect for r in first] == [r.rect for r in again]

    main_sides = {
        generate_regions("smart-3", 1200, 800, rng=np.random.default_rng(seed))[0].rect.left == 0
        for seed in range(20)
    }
    assert main_sides == {True, False}


def test_smart_three_splits_portrait_surfaces_vertically():
    for seed in range(10):
        regions = generate_regions("smart-3", 800, 1200, rng=np.random.default_rng(seed))
        main = regions[0].rect
        assert main.width == 800
        assert main.height == pytest.approx(int(1200 * 0.6) - 4)


def test_non_positive_surface_returns_no_regions():
    assert generate_regions("4-grid", 0, 600) == []
    assert generate_regions("4-grid", 800, -1) == []
    assert generate_regions("scattered", 0, 0) == []


def test_unknown_template():
    with pytest.raises(UnknownTemplate):
        generate_regions("hexagons", 800, 600)
    with pytest.raises(ValueError):
        parse_template("dynamic")
    assert parse_template(" 4-Grid ") is TemplateType.FOUR_GRID
