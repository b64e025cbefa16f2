"""Flask CLI commands for refresh-token operations."""

from __future__ import annotations

import logging

import click
from flask import current_app
from flask.cli import with_appcontext

from tokenvault.services.sessions import build_sweeper, get_rotator

LOGGER = logging.getLogger(__name__)


def _fail_on(result, action: str) -> None:
    """Turn a failed :class:`Result` into a CLI error (exit code 1)."""
    if not result.ok:
        detail = f": {result.failure.detail}" if result.failure.detail else ""
        raise click.ClickException(f"{action} failed ({result.kind.value}){detail}")


@click.group("tokens")
def tokens_cli() -> None:
    """Refresh-token maintenance commands."""


@tokens_cli.command("sweep")
@with_appcontext
def sweep_command() -> None:
    """Delete expired tokens and revoked tokens past the retention window."""
    report = build_sweeper(current_app._get_current_object()).run()
    click.echo(
        f"expired_deleted={report.expired_deleted} "
        f"revoked_deleted={report.revoked_deleted} "
        f"duration_ms={report.duration_ms}"
    )
    if not report.succeeded:
        raise click.ClickException(f"Sweep stopped early: {report.error}")


@tokens_cli.command("revoke-all")
@click.argument("subject_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@with_appcontext
def revoke_all_command(subject_id: str, yes: bool) -> None:
    """Revoke every active refresh token of SUBJECT_ID (logout everywhere)."""
    if not yes:
        click.confirm(f"Revoke every session of {subject_id!r}?", abort=True)
    result = get_rotator().revoke_all(subject_id)
    _fail_on(result, "Revocation")
    LOGGER.info("revoke-all issued from CLI", extra={"subject_id": subject_id})
    click.echo(f"revoked={result.value}")


@tokens_cli.command("sessions")
@click.argument("subject_id")
@with_appcontext
def sessions_command(subject_id: str) -> None:
    """List the currently valid sessions of SUBJECT_ID."""
    result = get_rotator().list_sessions(subject_id)
    _fail_on(result, "Listing")
    records = result.value or []
    if not records:
        click.echo("  (no active sessions)")
        return
    for rec in records:
        click.echo(
            f"  id={rec.id:>6}  family={rec.family_id}  "
            f"created={rec.created_at.isoformat()}  expires={rec.expires_at.isoformat()}"
        )
