"""
Domain-level exceptions used within the service and store layers.

These exceptions never leave :class:`~tokenvault.services.sessions.rotator.SessionRotator`:
the rotator converts them into :class:`~tokenvault.services.sessions.dto.SessionFailure`
values so callers only ever branch on typed results.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    Parameters
    ----------
    exc : IntegrityError
        The exception raised by SQLAlchemy during flush/commit.
    constraint_name : str
        The name of the database constraint to match
        (e.g., ``'uq_refresh_tokens_token_hash'``).

    Returns
    -------
    bool
        True if the IntegrityError message mentions the constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be raised from stores, repositories or domain logic.
    """

    pass


@dataclass(slots=True)
class StoreUnavailableError(ServiceError):
    """
    Raised by a token store when its backend cannot be reached.

    :param backend: Store backend name (e.g. ``"sqlalchemy"``, ``"redis"``).
    :type backend: str
    :param detail: Short description of the underlying failure.
    :type detail: str
    """

    backend: str
    detail: str

    def __str__(self) -> str:
        return f"Token store '{self.backend}' unavailable: {self.detail}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint conflict occurs (duplicate token digest).

    :param entity: Entity name (e.g., "RefreshToken").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"


class ConfigurationError(ServiceError):
    """Raised at construction time when lifecycle settings are unusable."""

    pass
