"""Refresh-token session lifecycle.

Public API
----------
- :class:`SessionRotator` (issue / rotate / validate / revoke)
- :class:`RetentionSweeper` (periodic purge)
- :class:`TokenCodec` (token generation + storage digest)
- DTOs: :class:`Result`, :class:`SessionFailure`, :class:`FailureKind`,
  :class:`IssuedToken`, :class:`SweepReport`, :class:`SessionConfig`,
  :class:`ReusePolicy`

Wiring
------
:func:`init_app` builds one store and one rotator per Flask application from
its config and caches them in ``app.extensions``; request code then calls
:func:`get_rotator` inside an application context.
"""

from __future__ import annotations

from datetime import timedelta

from flask import Flask, current_app

from tokenvault.services._shared.errors import ConfigurationError
from tokenvault.services._shared.ports import InMemoryTokenStore, TokenStore

from .codec import TokenCodec
from .dto import (
    FailureKind,
    IssuedToken,
    Result,
    ReusePolicy,
    SessionConfig,
    SessionFailure,
    SweepReport,
)
from .rotator import SessionRotator
from .sweeper import RetentionSweeper

STORE_KEY = "token_store"
ROTATOR_KEY = "session_rotator"
LAST_SWEEP_KEY = "token_sweep_last_report"

BACKENDS = ("sqlalchemy", "redis", "memory")


def build_store(app: Flask) -> TokenStore:
    """Instantiate the adapter named by ``TOKEN_STORE_BACKEND``.

    :raises ConfigurationError: On an unknown backend or ``redis`` without a client.
    """
    backend = str(app.config.get("TOKEN_STORE_BACKEND", "sqlalchemy")).strip().lower()
    if backend == "sqlalchemy":
        from tokenvault.infra.sqlalchemy.sqlalchemy_token_store import SQLAlchemyTokenStore

        return SQLAlchemyTokenStore()
    if backend == "redis":
        client = app.extensions.get("redis_client")
        if client is None:
            raise ConfigurationError("TOKEN_STORE_BACKEND=redis requires REDIS_URL.")
        from tokenvault.infra.redis.redis_token_store import RedisTokenStore

        return RedisTokenStore(r=client)
    if backend == "memory":
        return InMemoryTokenStore()
    raise ConfigurationError(
        f"Unknown TOKEN_STORE_BACKEND {backend!r}; expected one of {', '.join(BACKENDS)}."
    )


def build_rotator(app: Flask, store: TokenStore) -> SessionRotator:
    return SessionRotator(
        store=store,
        codec=TokenCodec.from_mapping(app.config),
        cfg=SessionConfig.from_mapping(app.config),
    )


def build_sweeper(app: Flask, store: TokenStore | None = None) -> RetentionSweeper:
    """Build a sweeper over the application's store.

    The latest :class:`SweepReport` is kept in ``app.extensions`` for ops tooling.
    """

    def _remember(report: SweepReport) -> None:
        app.extensions[LAST_SWEEP_KEY] = report

    return RetentionSweeper(
        store=store if store is not None else app.extensions[STORE_KEY],
        retention=timedelta(days=int(app.config.get("REVOKED_RETENTION_DAYS", 7))),
        batch_size=int(app.config.get("TOKEN_SWEEP_BATCH_SIZE", 1000)),
        on_report=_remember,
    )


def init_app(app: Flask) -> None:
    """Wire the token store and rotator into ``app.extensions``.

    Configuration errors surface here, at startup, rather than on the first
    refresh request.
    """
    store = build_store(app)
    app.extensions[STORE_KEY] = store
    app.extensions[ROTATOR_KEY] = build_rotator(app, store)
    # Validate sweep settings eagerly
    build_sweeper(app, store)


def get_rotator() -> SessionRotator:
    """Return the rotator of the current application."""
    try:
        return current_app.extensions[ROTATOR_KEY]
    except KeyError as exc:
        raise RuntimeError(
            "Session rotator is not initialized. Call tokenvault.services.sessions.init_app()."
        ) from exc


def get_store() -> TokenStore:
    """Return the token store of the current application."""
    return current_app.extensions[STORE_KEY]


__all__ = [
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
    "build_store",
    "build_rotator",
    "build_sweeper",
    "init_app",
    "get_rotator",
    "get_store",
]
