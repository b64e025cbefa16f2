"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from tokenvault.core.config import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    env_bool,
    env_int,
    get_config,
)


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("Yes", True), ("off", False)])
def test_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("TV_FLAG", raw)
    assert env_bool("TV_FLAG") is expected


def test_env_bool_default(monkeypatch):
    monkeypatch.delenv("TV_FLAG", raising=False)
    assert env_bool("TV_FLAG", True) is True


def test_env_int(monkeypatch):
    monkeypatch.setenv("TV_INT", " 14 ")
    assert env_int("TV_INT", 30) == 14
    monkeypatch.setenv("TV_INT", "")
    assert env_int("TV_INT", 30) == 30
    monkeypatch.setenv("TV_INT", "fourteen")
    with pytest.raises(ValueError):
        env_int("TV_INT", 30)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("production", ProductionConfig),
        ("TESTING", TestingConfig),
        ("unknown", DevelopmentConfig),
    ],
)
def test_get_config_by_app_env(monkeypatch, name, expected):
    monkeypatch.setenv("APP_ENV", name)
    assert get_config() is expected


def test_lifecycle_defaults():
    assert TestingConfig.TOKEN_SWEEP_ENABLED is False
    assert TestingConfig.TOKEN_STORE_BACKEND == "sqlalchemy"
    assert DevelopmentConfig.TOKEN_SWEEP_CRON == "0 3 * * *"
