"""Repository package exposing persistence-layer access for the token table."""

from __future__ import annotations

from tokenvault.repositories.base import BaseRepository
from tokenvault.repositories.refresh_token import RefreshTokenRepository

__all__ = [
    "BaseRepository",
    "RefreshTokenRepository",
]
