# tests/unit/services/test_retention_sweeper.py
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from freezegun import freeze_time

from tokenvault.services._shared.errors import ConfigurationError, StoreUnavailableError
from tokenvault.services._shared.ports import InMemoryTokenStore
from tokenvault.services.sessions import RetentionSweeper, SweepReport

NOW = datetime(2030, 6, 1, 3, 0, tzinfo=UTC)


def _insert(store, token_hash, *, expires_at, created_at=NOW - timedelta(days=1)):
    return store.insert(
        token_hash=token_hash,
        subject_id="s",
        family_id="f",
        expires_at=expires_at,
        created_at=created_at,
    )


@pytest.fixture()
def store() -> InMemoryTokenStore:
    s = InMemoryTokenStore()
    _insert(s, "expired", expires_at=NOW - timedelta(seconds=1))
    _insert(s, "active", expires_at=NOW + timedelta(days=10))
    _insert(s, "revoked-recent", expires_at=NOW + timedelta(days=10))
    _insert(s, "revoked-stale", expires_at=NOW + timedelta(days=10))
    s.mark_revoked("revoked-recent", now=NOW - timedelta(days=2))
    s.mark_revoked("revoked-stale", now=NOW - timedelta(days=8))
    return s


@freeze_time(NOW)
def test_run_deletes_expired_and_stale_revoked(store):
    report = RetentionSweeper(store=store, retention=timedelta(days=7)).run()

    assert report.expired_deleted == 1
    assert report.revoked_deleted == 1
    assert report.total_deleted == 2
    assert report.succeeded
    assert report.started_at == NOW
    assert store.find_by_hash("active") is not None
    assert store.find_by_hash("revoked-recent") is not None
    assert store.find_by_hash("expired") is None
    assert store.find_by_hash("revoked-stale") is None


@freeze_time(NOW)
def test_run_is_idempotent(store):
    sweeper = RetentionSweeper(store=store)
    sweeper.run()
    again = sweeper.run()
    assert again.total_deleted == 0


@freeze_time(NOW)
def test_zero_retention_drops_every_revoked_record(store):
    report = RetentionSweeper(store=store, retention=timedelta(0)).run()
    assert report.revoked_deleted == 2
    assert store.find_by_hash("active") is not None


@freeze_time(NOW)
def test_never_deletes_a_record_mid_rotation(store):
    """A record that can still be rotated is unexpired and unrevoked."""
    RetentionSweeper(store=store, retention=timedelta(0), batch_size=1).run()
    attempt = store.rotate(
        old_hash="active", new_hash="succ", now=NOW, new_expires_at=NOW + timedelta(days=30)
    )
    assert attempt.successor is not None


def test_failure_is_reported_not_raised(caplog):
    class BrokenStore(InMemoryTokenStore):
        def delete_revoked_before(self, cutoff, *, batch_size):
            raise StoreUnavailableError("memory", "down")

    seen: list[SweepReport] = []
    report = RetentionSweeper(store=BrokenStore(), on_report=seen.append).run()

    assert report.succeeded is False
    assert "StoreUnavailableError" in report.error
    assert seen == [report]
    assert "token sweep failed" in caplog.text


def test_callback_errors_are_swallowed(store):
    def _boom(report):
        raise RuntimeError("metrics backend down")

    report = RetentionSweeper(store=store, on_report=_boom).run()
    assert report.succeeded


def test_rejects_invalid_settings(store):
    with pytest.raises(ConfigurationError):
        RetentionSweeper(store=store, retention=timedelta(days=-1))
    with pytest.raises(ConfigurationError):
        RetentionSweeper(store=store, batch_size=0)
