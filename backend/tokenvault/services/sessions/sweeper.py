# tokenvault/services/sessions/sweeper.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from tokenvault.services._shared.errors import ConfigurationError
from tokenvault.services._shared.ports import TokenStore
from tokenvault.services.sessions.dto import SweepReport

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """
    Periodic purge of dead refresh-token records.

    Two idempotent predicate deletes, in this order:

    1. every record with ``expires_at < now``;
    2. revoked records whose ``revoked_at`` is older than ``now - retention``.

    Revoked-but-unexpired records survive for ``retention`` so reuse of a
    rotated token is still detectable during an investigation. Neither
    predicate can match a record that a concurrent rotation is reading: that
    record is unexpired and unrevoked until the rotation commits.

    :param store: Token store.
    :param retention: Audit window for revoked records.
    :param batch_size: Maximum rows removed per delete statement.
    :param on_report: Observability callback receiving every :class:`SweepReport`.
    :raises ConfigurationError: On a negative retention or a batch size below 1.
    """

    def __init__(
        self,
        *,
        store: TokenStore,
        retention: timedelta = timedelta(days=7),
        batch_size: int = 1000,
        on_report: Callable[[SweepReport], None] | None = None,
    ) -> None:
        if retention < timedelta(0):
            raise ConfigurationError("REVOKED_RETENTION_DAYS cannot be negative.")
        if batch_size < 1:
            raise ConfigurationError("TOKEN_SWEEP_BATCH_SIZE must be at least 1.")
        self.store = store
        self.retention = retention
        self.batch_size = batch_size
        self.on_report = on_report

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    def run(self) -> SweepReport:
        """
        Run one sweep. Never raises.

        A failure is logged and recorded in the report; whatever was deleted
        before it stays deleted and the next tick picks up the rest.
        """
        started_at = self.now_utc()
        clock = time.perf_counter()
        expired = revoked = 0
        error: str | None = None

        logger.info("token sweep started")
        try:
            expired = self.store.delete_expired(started_at, batch_size=self.batch_size)
            cutoff = started_at - self.retention
            revoked = self.store.delete_revoked_before(cutoff, batch_size=self.batch_size)
        except Exception as exc:  # sweep must never take the scheduler down
            error = f"{type(exc).__name__}: {exc}"
            logger.exception("token sweep failed")

        report = SweepReport(
            started_at=started_at,
            expired_deleted=expired,
            revoked_deleted=revoked,
            duration_ms=round((time.perf_counter() - clock) * 1000, 3),
            error=error,
        )
        logger.info(
            "token sweep finished",
            extra={
                "expired_deleted": report.expired_deleted,
                "revoked_deleted": report.revoked_deleted,
                "elapsed_ms": report.duration_ms,
                "outcome": "ok" if report.succeeded else "failed",
            },
        )
        self._emit(report)
        return report

    def _emit(self, report: SweepReport) -> None:
        if self.on_report is None:
            return
        try:
            self.on_report(report)
        except Exception:
            logger.exception("sweep report callback failed")
