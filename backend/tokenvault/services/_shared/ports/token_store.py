from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, auto
from itertools import count
from typing import Protocol

from tokenvault.services._shared.errors import ConflictError


class RotationStatus(Enum):
    """Outcome of an atomic rotate-or-reject attempt at the store level."""

    OK = auto()
    NOT_FOUND = auto()
    EXPIRED = auto()
    ALREADY_REVOKED = auto()


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    """
    Read-model for a stored refresh token.

    :ivar id: Store-assigned surrogate identifier (opaque).
    :ivar token_hash: Digest of the raw token.
    :ivar subject_id: Principal the token authenticates.
    :ivar family_id: Rotation chain identifier.
    :ivar expires_at: Absolute expiration (UTC).
    :ivar revoked: Monotonic revocation flag.
    :ivar revoked_at: Revocation time (UTC) or ``None``.
    :ivar created_at: Insert time (UTC).
    """

    id: str
    token_hash: str
    subject_id: str
    family_id: str
    expires_at: datetime
    revoked: bool
    revoked_at: datetime | None
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def is_valid(self, now: datetime) -> bool:
        """A record is valid iff it is not revoked and ``expires_at > now``."""
        return not self.revoked and not self.is_expired(now)


@dataclass(frozen=True, slots=True)
class RotationAttempt:
    """
    Result of :meth:`TokenStore.rotate`.

    :ivar status: What happened.
    :ivar previous: Snapshot of the presented record (``None`` when not found).
    :ivar successor: The newly inserted record (only when ``status`` is ``OK``).
    """

    status: RotationStatus
    previous: RefreshTokenRecord | None = None
    successor: RefreshTokenRecord | None = None


class TokenStore(Protocol):
    """
    Durable keyed storage of refresh-token records.

    No business logic lives here beyond what atomicity requires: the store
    does not decide reuse policy, it only reports what it observed.
    Adapters raise :class:`~tokenvault.services._shared.errors.StoreUnavailableError`
    when their backend cannot be reached.
    """

    def insert(
        self,
        *,
        token_hash: str,
        subject_id: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshTokenRecord:
        """Insert a new active record. Raises ``ConflictError`` on digest collision."""

    def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        """Fetch a single record snapshot (if present)."""

    def rotate(
        self,
        *,
        old_hash: str,
        new_hash: str,
        now: datetime,
        new_expires_at: datetime,
    ) -> RotationAttempt:
        """
        Atomically revoke ``old_hash`` and insert its successor.

        Checks run in order: not found, expired, already revoked. Of several
        concurrent calls on the same active record exactly one returns ``OK``;
        the others return ``ALREADY_REVOKED``.
        """

    def mark_revoked(self, token_hash: str, *, now: datetime) -> bool:
        """Revoke one record. :returns: True if this call changed it."""

    def revoke_all_for_subject(self, subject_id: str, *, now: datetime) -> int:
        """Revoke every active record of a subject. :returns: Records changed."""

    def revoke_family(self, family_id: str, *, now: datetime) -> int:
        """Revoke every active record of a rotation chain. :returns: Records changed."""

    def delete_by_subject(self, subject_id: str) -> int:
        """Hard-delete every record of a subject. :returns: Records deleted."""

    def list_for_subject(self, subject_id: str) -> list[RefreshTokenRecord]:
        """Every record of a subject, oldest first."""

    def delete_expired(self, now: datetime, *, batch_size: int) -> int:
        """Delete records with ``expires_at < now`` in batches. :returns: Records deleted."""

    def delete_revoked_before(self, cutoff: datetime, *, batch_size: int) -> int:
        """Delete records revoked before ``cutoff`` in batches. :returns: Records deleted."""


class InMemoryTokenStore(TokenStore):
    """
    In-memory token store with atomic rotation behavior.

    .. note::
       A single lock serializes every operation, which is what makes
       :meth:`rotate` linearizable here. Used by unit tests and local tooling.
    """

    def __init__(self) -> None:
        self._by_hash: dict[str, RefreshTokenRecord] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    def _new_record(
        self,
        *,
        token_hash: str,
        subject_id: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshTokenRecord:
        if token_hash in self._by_hash:
            raise ConflictError("RefreshToken", "token digest already exists")
        record = RefreshTokenRecord(
            id=str(next(self._ids)),
            token_hash=token_hash,
            subject_id=subject_id,
            family_id=family_id,
            expires_at=expires_at,
            revoked=False,
            revoked_at=None,
            created_at=created_at,
        )
        self._by_hash[token_hash] = record
        return record

    def _revoke_matching(self, predicate, now: datetime) -> int:
        changed = 0
        for key, rec in self._by_hash.items():
            if predicate(rec) and not rec.revoked:
                self._by_hash[key] = replace(rec, revoked=True, revoked_at=now)
                changed += 1
        return changed

    def _delete_matching(self, predicate, batch_size: int) -> int:
        deleted = 0
        while True:
            with self._lock:
                batch = [k for k, rec in self._by_hash.items() if predicate(rec)][:batch_size]
                for key in batch:
                    del self._by_hash[key]
            deleted += len(batch)
            if len(batch) < batch_size:
                return deleted

    # -------------------------- API ----------------------------

    def insert(
        self,
        *,
        token_hash: str,
        subject_id: str,
        family_id: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshTokenRecord:
        with self._lock:
            return self._new_record(
                token_hash=token_hash,
                subject_id=subject_id,
                family_id=family_id,
                expires_at=expires_at,
                created_at=created_at,
            )

    def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        with self._lock:
            return self._by_hash.get(token_hash)

    def rotate(
        self,
        *,
        old_hash: str,
        new_hash: str,
        now: datetime,
        new_expires_at: datetime,
    ) -> RotationAttempt:
        with self._lock:
            old = self._by_hash.get(old_hash)
            if old is None:
                return RotationAttempt(RotationStatus.NOT_FOUND)
            if old.is_expired(now):
                return RotationAttempt(RotationStatus.EXPIRED, previous=old)
            if old.revoked:
                return RotationAttempt(RotationStatus.ALREADY_REVOKED, previous=old)

            successor = self._new_record(
                token_hash=new_hash,
                subject_id=old.subject_id,
                family_id=old.family_id,
                expires_at=new_expires_at,
                created_at=now,
            )
            retired = replace(old, revoked=True, revoked_at=now)
            self._by_hash[old_hash] = retired
            return RotationAttempt(RotationStatus.OK, previous=retired, successor=successor)

    def mark_revoked(self, token_hash: str, *, now: datetime) -> bool:
        with self._lock:
            return self._revoke_matching(lambda r: r.token_hash == token_hash, now) == 1

    def revoke_all_for_subject(self, subject_id: str, *, now: datetime) -> int:
        with self._lock:
            return self._revoke_matching(lambda r: r.subject_id == subject_id, now)

    def revoke_family(self, family_id: str, *, now: datetime) -> int:
        with self._lock:
            return self._revoke_matching(lambda r: r.family_id == family_id, now)

    def delete_by_subject(self, subject_id: str) -> int:
        with self._lock:
            doomed = [k for k, r in self._by_hash.items() if r.subject_id == subject_id]
            for key in doomed:
                del self._by_hash[key]
            return len(doomed)

    def list_for_subject(self, subject_id: str) -> list[RefreshTokenRecord]:
        with self._lock:
            found = [r for r in self._by_hash.values() if r.subject_id == subject_id]
        return sorted(found, key=lambda r: (r.created_at, int(r.id)))

    def delete_expired(self, now: datetime, *, batch_size: int) -> int:
        return self._delete_matching(lambda r: r.expires_at < now, batch_size)

    def delete_revoked_before(self, cutoff: datetime, *, batch_size: int) -> int:
        return self._delete_matching(
            lambda r: r.revoked and r.revoked_at is not None and r.revoked_at < cutoff,
            batch_size,
        )
