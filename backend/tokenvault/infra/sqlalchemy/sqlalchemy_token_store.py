# tokenvault/infra/sqlalchemy/sqlalchemy_token_store.py
from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from tokenvault.models.base import as_utc
from tokenvault.models.refresh_token import RefreshToken
from tokenvault.services._shared.errors import (
    ConflictError,
    StoreUnavailableError,
    violates,
)
from tokenvault.services._shared.ports import (
    RefreshTokenRecord,
    RotationAttempt,
    RotationStatus,
    TokenStore,
)
from tokenvault.uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork

BACKEND = "sqlalchemy"
TOKEN_HASH_CONSTRAINT = "uq_refresh_tokens_token_hash"


def to_record(row: RefreshToken) -> RefreshTokenRecord:
    """Snapshot an ORM row into the immutable read model."""
    return RefreshTokenRecord(
        id=str(row.id),
        token_hash=row.token_hash,
        subject_id=row.subject_id,
        family_id=row.family_id,
        expires_at=as_utc(row.expires_at),
        revoked=bool(row.revoked),
        revoked_at=as_utc(row.revoked_at) if row.revoked_at else None,
        created_at=as_utc(row.created_at),
    )


@dataclass(slots=True)
class SQLAlchemyTokenStore(TokenStore):
    """
    Relational token store built on :class:`RefreshTokenRepository`.

    Every public method is one Unit of Work (one transaction). Rotation reads
    the row ``FOR UPDATE`` and then revokes it with a conditional ``UPDATE ...
    WHERE revoked = false``; only the transaction that flips the flag may
    insert the successor, so racing rotations cannot both win even on
    engines without row locks.

    :param uow_factory: Read-write Unit of Work factory.
    :param ro_uow_factory: Read-only Unit of Work factory.
    """

    uow_factory: Callable[[], SQLAlchemyUnitOfWork] = SQLAlchemyUnitOfWork
    ro_uow_factory: Callable[[], SQLAlchemyReadOnlyUnitOfWork] = SQLAlchemyReadOnlyUnitOfWork

    # -------------------- helpers --------------------

    @staticmethod
    @contextmanager
    def _guard() -> Iterator[None]:
        """Translate connectivity failures into :class:`StoreUnavailableError`."""
        try:
            yield
        except IntegrityError as exc:
            if violates(exc, TOKEN_HASH_CONSTRAINT) or "token_hash" in str(exc.orig).lower():
                raise ConflictError("RefreshToken", "token digest already exists") from exc
            raise
        except OperationalError as exc:
            raise StoreUnavailableError(BACKEND, type(exc.orig).__name__) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StoreUnavailableError(BACKEND, "connection invalidated") from exc
            raise

    # -------------------- API ------------------------

    def insert(
        self,
        *,
        token_hash: str,
        subject_id: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshTokenRecord:
        with self._guard(), self.uow_factory() as uow:
            row = uow.refresh_tokens.add(
                RefreshToken(
                    token_hash=token_hash,
                    subject_id=subject_id,
                    family_id=family_id,
                    expires_at=expires_at,
                    revoked=False,
                    created_at=created_at,
                )
            )
            return to_record(row)

    def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        with self._guard(), self.ro_uow_factory() as uow:
            row = uow.refresh_tokens.get_by_hash(token_hash)
            return to_record(row) if row is not None else None

    def rotate(
        self,
        *,
        old_hash: str,
        new_hash: str,
        now: datetime,
        new_expires_at: datetime,
    ) -> RotationAttempt:
        """
        Atomically revoke ``old_hash`` and insert ``new_hash``.

        A row that passes the checks but loses the conditional update was
        revoked by a concurrent transaction after our read; that caller sees
        ``ALREADY_REVOKED`` exactly as a later replay would.
        """
        with self._guard(), self.uow_factory() as uow:
            repo = uow.refresh_tokens
            row = repo.get_by_hash_for_update(old_hash)
            if row is None:
                return RotationAttempt(RotationStatus.NOT_FOUND)

            previous = to_record(row)
            if previous.is_expired(now):
                return RotationAttempt(RotationStatus.EXPIRED, previous=previous)
            if previous.revoked:
                return RotationAttempt(RotationStatus.ALREADY_REVOKED, previous=previous)

            if not repo.revoke_if_active(row.id, now=now):
                lost = replace(previous, revoked=True, revoked_at=previous.revoked_at or now)
                return RotationAttempt(RotationStatus.ALREADY_REVOKED, previous=lost)

            successor = repo.add(
                RefreshToken(
                    token_hash=new_hash,
                    subject_id=previous.subject_id,
                    family_id=previous.family_id,
                    expires_at=new_expires_at,
                    revoked=False,
                    created_at=now,
                )
            )
            return RotationAttempt(
                RotationStatus.OK,
                previous=replace(previous, revoked=True, revoked_at=now),
                successor=to_record(successor),
            )

    def mark_revoked(self, token_hash: str, *, now: datetime) -> bool:
        with self._guard(), self.uow_factory() as uow:
            return uow.refresh_tokens.revoke_by_hash(token_hash, now=now) == 1

    def revoke_all_for_subject(self, subject_id: str, *, now: datetime) -> int:
        with self._guard(), self.uow_factory() as uow:
            return uow.refresh_tokens.revoke_for_subject(subject_id, now=now)

    def revoke_family(self, family_id: str, *, now: datetime) -> int:
        with self._guard(), self.uow_factory() as uow:
            return uow.refresh_tokens.revoke_for_family(family_id, now=now)

    def delete_by_subject(self, subject_id: str) -> int:
        with self._guard(), self.uow_factory() as uow:
            return uow.refresh_tokens.delete_for_subject(subject_id)

    def list_for_subject(self, subject_id: str) -> list[RefreshTokenRecord]:
        with self._guard(), self.ro_uow_factory() as uow:
            return [to_record(r) for r in uow.refresh_tokens.list_for_subject(subject_id)]

    # -------------------- sweeping -------------------

    def delete_expired(self, now: datetime, *, batch_size: int) -> int:
        return self._delete_in_batches(
            lambda repo: repo.expired_ids(now, limit=batch_size), batch_size
        )

    def delete_revoked_before(self, cutoff: datetime, *, batch_size: int) -> int:
        return self._delete_in_batches(
            lambda repo: repo.stale_revoked_ids(cutoff, limit=batch_size), batch_size
        )

    def _delete_in_batches(self, select_ids, batch_size: int) -> int:
        """
        Delete matching rows one short transaction per batch.

        Keeping each transaction to ``batch_size`` rows bounds lock time on the
        table; a crash between batches leaves nothing half-done.
        """
        total = 0
        while True:
            with self._guard(), self.uow_factory() as uow:
                ids = select_ids(uow.refresh_tokens)
                total += uow.refresh_tokens.delete_ids(ids)
            if len(ids) < batch_size:
                return total
