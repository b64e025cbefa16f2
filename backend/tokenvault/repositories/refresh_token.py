"""Refresh token repository: lookups, conditional revocation and bulk deletes."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import cast

from sqlalchemy import CursorResult, and_, delete, select, update

from tokenvault.models.refresh_token import RefreshToken
from tokenvault.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`.

    It never decides whether a token is acceptable; it only offers the
    primitives (conditional update, predicate deletes) the store composes into
    atomic operations.
    """

    model = RefreshToken

    # ---------------------------- Lookups ----------------------------

    def get_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Fetch a token row by its digest."""
        stmt = select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        return cast(RefreshToken | None, self.session.execute(stmt).scalars().first())

    def get_by_hash_for_update(self, token_hash: str) -> RefreshToken | None:
        """Fetch a token row by digest holding a ``FOR UPDATE`` row lock.

        SQLite ignores the clause; the conditional update in
        :meth:`revoke_if_active` still serializes concurrent rotations there.
        """
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .with_for_update()
        )
        return cast(RefreshToken | None, self.session.execute(stmt).scalars().first())

    def list_for_subject(self, subject_id: str) -> list[RefreshToken]:
        """Return every row of a subject, oldest first."""
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.subject_id == subject_id)
            .order_by(RefreshToken.created_at.asc(), RefreshToken.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    # ---------------------------- Revocation ----------------------------

    def revoke_if_active(self, token_id: int, *, now: datetime) -> bool:
        """
        Flip ``revoked`` on a single row only if it is still active.

        This is the compare-and-swap primitive rotation relies on: of two
        transactions racing on the same row, only one sees ``rowcount == 1``.

        :returns: ``True`` when this call performed the revocation.
        """
        stmt = (
            update(RefreshToken)
            .where(and_(RefreshToken.id == token_id, RefreshToken.revoked.is_(False)))
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = cast(CursorResult, self.session.execute(stmt))
        return result.rowcount == 1

    def revoke_by_hash(self, token_hash: str, *, now: datetime) -> int:
        """Revoke the row with ``token_hash`` if active. :returns: Rows changed (0/1)."""
        return self._revoke_where(RefreshToken.token_hash == token_hash, now=now)

    def revoke_for_subject(self, subject_id: str, *, now: datetime) -> int:
        """Revoke every active row of a subject. :returns: Rows changed."""
        return self._revoke_where(RefreshToken.subject_id == subject_id, now=now)

    def revoke_for_family(self, family_id: str, *, now: datetime) -> int:
        """Revoke every active row of a rotation chain. :returns: Rows changed."""
        return self._revoke_where(RefreshToken.family_id == family_id, now=now)

    def _revoke_where(self, clause, *, now: datetime) -> int:
        stmt = (
            update(RefreshToken)
            .where(and_(clause, RefreshToken.revoked.is_(False)))
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = cast(CursorResult, self.session.execute(stmt))
        return int(result.rowcount or 0)

    # ---------------------------- Deletes ----------------------------

    def delete_for_subject(self, subject_id: str) -> int:
        """Hard-delete every row of a subject. :returns: Rows deleted."""
        stmt = (
            delete(RefreshToken)
            .where(RefreshToken.subject_id == subject_id)
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult, self.session.execute(stmt))
        return int(result.rowcount or 0)

    def expired_ids(self, now: datetime, *, limit: int) -> Sequence[int]:
        """Return up to ``limit`` ids of rows with ``expires_at < now``."""
        stmt = (
            select(RefreshToken.id)
            .where(RefreshToken.expires_at < now)
            .order_by(RefreshToken.id.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def stale_revoked_ids(self, cutoff: datetime, *, limit: int) -> Sequence[int]:
        """Return up to ``limit`` ids of rows revoked before ``cutoff``."""
        stmt = (
            select(RefreshToken.id)
            .where(
                and_(
                    RefreshToken.revoked.is_(True),
                    RefreshToken.revoked_at.is_not(None),
                    RefreshToken.revoked_at < cutoff,
                )
            )
            .order_by(RefreshToken.id.asc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def delete_ids(self, ids: Sequence[int]) -> int:
        """Hard-delete rows by id. :returns: Rows deleted."""
        if not ids:
            return 0
        stmt = (
            delete(RefreshToken)
            .where(RefreshToken.id.in_(list(ids)))
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult, self.session.execute(stmt))
        return int(result.rowcount or 0)
