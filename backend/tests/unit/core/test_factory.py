"""Unit tests for the application factory."""

from __future__ import annotations

import pytest

from tokenvault.core.config import ProductionConfig, TestingConfig
from tokenvault.factory import PLACEHOLDER_HASH_KEY, create_app
from tokenvault.services._shared.errors import ConfigurationError


class PlaceholderProduction(ProductionConfig):
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    TOKEN_HASH_KEY = PLACEHOLDER_HASH_KEY
    REDIS_URL = None
    TOKEN_SWEEP_ENABLED = False


class MemoryBackendTesting(TestingConfig):
    TOKEN_STORE_BACKEND = "memory"
    LOG_LEVEL = "WARNING"


def test_refuses_placeholder_key_in_production():
    with pytest.raises(ConfigurationError, match="TOKEN_HASH_KEY"):
        create_app(PlaceholderProduction)


def test_registers_cli_and_skips_scheduler_in_testing():
    app = create_app(MemoryBackendTesting)
    assert "tokens" in app.cli.commands
    assert "token_scheduler" not in app.extensions
    assert "session_rotator" in app.extensions
