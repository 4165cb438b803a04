from __future__ import annotations

import logging

import pytest

from storyloom.config import Settings, configure_logging, get_settings
from storyloom.config import toggles as toggle_module


def reset_cache() -> None:
    toggle_module.get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in (
        "STORYLOOM_START_PASSAGE",
        "STORYLOOM_AUTO_PLAY",
        "STORYLOOM_MAX_EMBED_DEPTH",
        "STORYLOOM_LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_cache()
    yield
    reset_cache()


def test_settings_defaults() -> None:
    settings = get_settings()
    assert settings.start_passage == "Start"
    assert settings.auto_play is True
    assert settings.max_embed_depth == 64
    assert settings.log_level == "WARNING"


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORYLOOM_START_PASSAGE", "  Prologue ")
    monkeypatch.setenv("STORYLOOM_AUTO_PLAY", "false")
    monkeypatch.setenv("STORYLOOM_MAX_EMBED_DEPTH", "8")
    monkeypatch.setenv("STORYLOOM_LOG_LEVEL", "debug")
    settings = get_settings()
    assert settings.start_passage == "Prologue"
    assert settings.auto_play is False
    assert settings.max_embed_depth == 8
    assert settings.log_level == "DEBUG"


def test_invalid_embed_depth(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORYLOOM_MAX_EMBED_DEPTH", "0")
    with pytest.raises(RuntimeError):
        get_settings()


def test_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORYLOOM_LOG_LEVEL", "chatty")
    with pytest.raises(RuntimeError):
        get_settings()


def test_configure_logging_applies_level() -> None:
    settings = Settings.model_validate({"STORYLOOM_LOG_LEVEL": "INFO"})
    logger = configure_logging(settings)
    try:
        assert logger.name == "storyloom"
        assert logger.level == logging.INFO
    finally:
        logger.setLevel(logging.NOTSET)
