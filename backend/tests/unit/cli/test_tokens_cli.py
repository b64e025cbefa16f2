"""Unit tests for the ``flask tokens`` command group."""

from __future__ import annotations

from datetime import timedelta

import pytest
from freezegun import freeze_time

from tokenvault.services.sessions import FailureKind, get_rotator


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


def test_sweep_prints_counts(app, runner):
    with freeze_time("2030-01-01") as frozen:
        get_rotator().issue("u1")
        frozen.tick(timedelta(days=31))
        result = runner.invoke(args=["tokens", "sweep"])

    assert result.exit_code == 0, result.output
    assert "expired_deleted=1" in result.output
    assert "revoked_deleted=0" in result.output
    assert app.extensions["token_sweep_last_report"].expired_deleted == 1


def test_revoke_all_requires_confirmation(runner):
    issued = get_rotator().issue("u1").unwrap()

    aborted = runner.invoke(args=["tokens", "revoke-all", "u1"], input="n\n")
    assert aborted.exit_code == 1
    assert get_rotator().validate(issued.token).ok

    done = runner.invoke(args=["tokens", "revoke-all", "u1", "--yes"])
    assert done.exit_code == 0, done.output
    assert "revoked=1" in done.output
    assert get_rotator().validate(issued.token).kind is FailureKind.REVOKED


def test_sessions_lists_active_records(runner):
    rotator = get_rotator()
    first = rotator.issue("u1").unwrap()
    rotator.rotate(first.token)

    result = runner.invoke(args=["tokens", "sessions", "u1"])
    assert result.exit_code == 0, result.output
    assert result.output.count("family=") == 1
    assert first.record.family_id in result.output

    empty = runner.invoke(args=["tokens", "sessions", "nobody"])
    assert "(no active sessions)" in empty.output
