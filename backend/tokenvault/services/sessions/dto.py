# tokenvault/services/sessions/dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Generic, TypeVar

from tokenvault.services._shared.errors import ConfigurationError
from tokenvault.services._shared.ports import RefreshTokenRecord

T = TypeVar("T")

# ------------------------------ Failures ---------------------------------- #


class FailureKind(Enum):
    """Closed set of reasons a lifecycle operation can fail."""

    UNKNOWN_TOKEN = "unknown_token"
    EXPIRED = "expired"
    REVOKED = "revoked"
    REUSE_DETECTED = "reuse_detected"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True, slots=True)
class SessionFailure:
    """
    Typed failure returned instead of raised.

    :param kind: Failure reason.
    :type kind: FailureKind
    :param detail: Optional human-readable detail (never contains token values).
    :type detail: str | None
    """

    kind: FailureKind
    detail: str | None = None

    @property
    def http_status(self) -> int:
        """Status hint for the boundary layer: 503 when transient, else 401."""
        return 503 if self.kind is FailureKind.STORE_UNAVAILABLE else 401

    @property
    def requires_reauthentication(self) -> bool:
        """Every failure except an unreachable store forces a fresh login."""
        return self.kind is not FailureKind.STORE_UNAVAILABLE


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """
    Success value or :class:`SessionFailure`, never both.

    Build with :meth:`success` / :meth:`fail`.
    """

    value: T | None = None
    failure: SessionFailure | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: FailureKind, detail: str | None = None) -> Result[T]:
        return cls(failure=SessionFailure(kind=kind, detail=detail))

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def kind(self) -> FailureKind | None:
        return self.failure.kind if self.failure else None

    def unwrap(self) -> T:
        """
        Return the success value.

        :raises ValueError: If the result is a failure.
        """
        if self.failure is not None:
            raise ValueError(f"Result is a failure: {self.failure.kind.value}")
        return self.value  # type: ignore[return-value]


# ------------------------------ Outputs ----------------------------------- #


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """
    Freshly minted refresh token.

    :param token: Raw value to hand to the client. Never persisted.
    :type token: str
    :param record: Stored record (holds only the digest).
    :type record: RefreshTokenRecord
    """

    token: str
    record: RefreshTokenRecord

    @property
    def subject_id(self) -> str:
        return self.record.subject_id

    @property
    def expires_at(self) -> datetime:
        return self.record.expires_at

    def __repr__(self) -> str:
        return f"IssuedToken(record={self.record!r}, token=<redacted>)"


@dataclass(frozen=True, slots=True)
class SweepReport:
    """
    Counters emitted by one retention sweep.

    :param started_at: When the sweep began (UTC).
    :param expired_deleted: Rows removed because they expired.
    :param revoked_deleted: Revoked rows removed after the audit window.
    :param duration_ms: Wall time of the sweep.
    :param error: Failure description when the sweep stopped early.
    """

    started_at: datetime
    expired_deleted: int = 0
    revoked_deleted: int = 0
    duration_ms: float = 0.0
    error: str | None = None

    @property
    def total_deleted(self) -> int:
        return self.expired_deleted + self.revoked_deleted

    @property
    def succeeded(self) -> bool:
        return self.error is None


# ------------------------------ Config ------------------------------------ #


class ReusePolicy(Enum):
    """Reaction to a revoked token being presented to ``rotate``."""

    REVOKE_SUBJECT = "revoke_subject"
    REVOKE_FAMILY = "revoke_family"
    REPORT_ONLY = "report_only"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """
    Lifecycle configuration.

    :param refresh_ttl: Absolute refresh token lifetime.
    :type refresh_ttl: timedelta
    :param reuse_policy: What to revoke when reuse is detected.
    :type reuse_policy: ReusePolicy
    """

    refresh_ttl: timedelta = field(default_factory=lambda: timedelta(days=30))
    reuse_policy: ReusePolicy = ReusePolicy.REVOKE_SUBJECT

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> SessionConfig:
        """
        Build from Flask-style settings.

        :raises ConfigurationError: On a non-positive TTL or unknown policy.
        """
        days = int(config.get("REFRESH_TOKEN_TTL_DAYS", 30))
        if days <= 0:
            raise ConfigurationError("REFRESH_TOKEN_TTL_DAYS must be positive.")
        raw_policy = str(config.get("TOKEN_REUSE_POLICY", ReusePolicy.REVOKE_SUBJECT.value))
        try:
            policy = ReusePolicy(raw_policy.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(f"Unknown TOKEN_REUSE_POLICY: {raw_policy!r}") from exc
        return cls(refresh_ttl=timedelta(days=days), reuse_policy=policy)
