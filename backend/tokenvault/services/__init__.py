"""Service layer public API.

Callers import from :mod:`tokenvault.services` without knowing the internal
structure.

Re-exports
----------
- Base primitives (from ``tokenvault.services._shared.base``)
    * :class:`BaseService`
    * :class:`ServiceContext`

- Errors (from ``tokenvault.services._shared.errors``)
    * :class:`ServiceError`, :class:`StoreUnavailableError`,
      :class:`ConflictError`, :class:`ConfigurationError`

- Session lifecycle (from ``tokenvault.services.sessions``)
    * :class:`SessionRotator`, :class:`RetentionSweeper`, :class:`TokenCodec`
    * DTOs: :class:`Result`, :class:`SessionFailure`, :class:`FailureKind`,
      :class:`IssuedToken`, :class:`SweepReport`, :class:`SessionConfig`,
      :class:`ReusePolicy`
"""

from __future__ import annotations

# Base primitives (service base + request-scoped context)
from ._shared.base import BaseService, ServiceContext
from ._shared.errors import (
    ConfigurationError,
    ConflictError,
    ServiceError,
    StoreUnavailableError,
)

# Session lifecycle
from .sessions import (
    FailureKind,
    IssuedToken,
    Result,
    RetentionSweeper,
    ReusePolicy,
    SessionConfig,
    SessionFailure,
    SessionRotator,
    SweepReport,
    TokenCodec,
)

__all__ = [
    "BaseService",
    "ServiceContext",
    "ServiceError",
    "StoreUnavailableError",
    "ConflictError",
    "ConfigurationError",
    "SessionRotator",
    "RetentionSweeper",
    "TokenCodec",
    "Result",
    "SessionFailure",
    "FailureKind",
    "IssuedToken",
    "SweepReport",
    "SessionConfig",
    "ReusePolicy",
]
