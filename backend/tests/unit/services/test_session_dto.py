# tests/unit/services/test_session_dto.py
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from tokenvault.services._shared.errors import ConfigurationError
from tokenvault.services._shared.ports import RefreshTokenRecord
from tokenvault.services.sessions import (
    FailureKind,
    IssuedToken,
    Result,
    ReusePolicy,
    SessionConfig,
    SweepReport,
)

NOW = datetime(2030, 1, 1, tzinfo=UTC)


def _record(**overrides) -> RefreshTokenRecord:
    data = {
        "id": "1",
        "token_hash": "h",
        "subject_id": "u1",
        "family_id": "f",
        "expires_at": NOW + timedelta(days=1),
        "revoked": False,
        "revoked_at": None,
        "created_at": NOW,
    }
    data.update(overrides)
    return RefreshTokenRecord(**data)


def test_record_validity_window():
    rec = _record(expires_at=NOW)
    assert rec.is_expired(NOW) is True
    assert rec.is_valid(NOW - timedelta(microseconds=1)) is True
    assert _record(revoked=True, revoked_at=NOW).is_valid(NOW) is False


def test_result_success_and_failure():
    ok = Result.success(3)
    assert ok.ok and ok.unwrap() == 3 and ok.kind is None

    bad = Result.fail(FailureKind.REVOKED, "gone")
    assert not bad.ok
    assert bad.kind is FailureKind.REVOKED
    assert bad.failure.detail == "gone"


@pytest.mark.parametrize(
    ("kind", "status"),
    [
        (FailureKind.UNKNOWN_TOKEN, 401),
        (FailureKind.EXPIRED, 401),
        (FailureKind.REVOKED, 401),
        (FailureKind.REUSE_DETECTED, 401),
        (FailureKind.STORE_UNAVAILABLE, 503),
    ],
)
def test_http_status_hint(kind, status):
    assert Result.fail(kind).failure.http_status == status


def test_issued_token_repr_is_redacted():
    issued = IssuedToken(token="raw-secret-value", record=_record())
    assert "raw-secret-value" not in repr(issued)
    assert issued.subject_id == "u1"


def test_sweep_report_totals():
    report = SweepReport(started_at=NOW, expired_deleted=2, revoked_deleted=3)
    assert report.total_deleted == 5
    assert report.succeeded


def test_session_config_from_mapping():
    cfg = SessionConfig.from_mapping(
        {"REFRESH_TOKEN_TTL_DAYS": 14, "TOKEN_REUSE_POLICY": " Revoke_Family "}
    )
    assert cfg.refresh_ttl == timedelta(days=14)
    assert cfg.reuse_policy is ReusePolicy.REVOKE_FAMILY

    defaults = SessionConfig.from_mapping({})
    assert defaults.refresh_ttl == timedelta(days=30)
    assert defaults.reuse_policy is ReusePolicy.REVOKE_SUBJECT


@pytest.mark.parametrize(
    "settings",
    [{"REFRESH_TOKEN_TTL_DAYS": 0}, {"TOKEN_REUSE_POLICY": "shrug"}],
)
def test_session_config_rejects_bad_settings(settings):
    with pytest.raises(ConfigurationError):
        SessionConfig.from_mapping(settings)
