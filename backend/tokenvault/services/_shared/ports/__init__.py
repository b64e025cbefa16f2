"""
tokenvault.services._shared.ports
=================================

*Ports* (hexagonal interfaces) that decouple the session lifecycle from the
storage technology.

Modules
-------
- :mod:`token_store`:
    Defines :class:`~.TokenStore`, :class:`~.RefreshTokenRecord`,
    :class:`~.RotationAttempt` and :class:`~.RotationStatus`, plus the
    lock-based :class:`~.InMemoryTokenStore`.

Design Notes
------------
Concrete adapters (SQLAlchemy, Redis) live under ``tokenvault.infra`` and
implement the same protocol.
"""

from __future__ import annotations

from .token_store import (
    InMemoryTokenStore,
    RefreshTokenRecord,
    RotationAttempt,
    RotationStatus,
    TokenStore,
)

__all__ = [
    "TokenStore",
    "RefreshTokenRecord",
    "RotationAttempt",
    "RotationStatus",
    "InMemoryTokenStore",
]
