"""
Tests for reading LayoutSettings from PHOTOLAYOUT_* environment variables.
"""

import os

from photolayout.config import ENV_PREFIX, LayoutSettings


def test_defaults_without_environment(monkeypatch):
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    settings = LayoutSettings.from_env()
    assert settings == LayoutSettings()
    assert settings.border_width == 8
    assert settings.large_raster_pixels == 1_000_000


def test_overrides(monkeypatch):
    monkeypatch.setenv("PHOTOLAYOUT_BORDER_WIDTH", "12")
    monkeypatch.setenv("PHOTOLAYOUT_BORDER_COLOR", "10, 20, 30")
    monkeypatch.setenv("PHOTOLAYOUT_FACE_PADDING", "0.4")
    monkeypatch.setenv("PHOTOLAYOUT_FACE_DETECTION", " None ")
    monkeypatch.setenv("PHOTOLAYOUT_LOG_LEVEL", "debug")

    settings = LayoutSettings.from_env()
    assert settings.border_width == 12
    assert settings.border_color == (10, 20, 30)
    assert settings.face_padding == 0.4
    assert settings.face_detection == "none"
    assert settings.log_level == "DEBUG"


def test_bad_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("PHOTOLAYOUT_BORDER_WIDTH", "wide")
    monkeypatch.setenv("PHOTOLAYOUT_ANALYSIS_WORKERS", "0")
    monkeypatch.setenv("PHOTOLAYOUT_BACKGROUND_COLOR", "300,0,0")
    monkeypatch.setenv("PHOTOLAYOUT_FALLBACK_COLOR", "1,2")
    monkeypatch.setenv("PHOTOLAYOUT_FACE_PADDING", "lots")
    monkeypatch.setenv("PHOTOLAYOUT_FACE_DETECTION", "dnn")

    settings = LayoutSettings.from_env()
    assert settings.border_width == 8
    assert settings.analysis_workers == 4
    assert settings.background_color == (0, 0, 0)
    assert settings.fallback_color == (48, 48, 48)
    assert settings.face_padding == 0.25
    assert settings.face_detection == "haar"


def test_blank_values_are_ignored(monkeypatch):
    monkeypatch.setenv("PHOTOLAYOUT_POOL_BUCKET_SIZE", "  ")
    assert LayoutSettings.from_env().pool_bucket_size == 3
