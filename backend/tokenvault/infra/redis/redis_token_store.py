# comments in English; reST docstrings
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

import redis  # type: ignore[import-untyped]
from redis.exceptions import ConnectionError as RedisConnectionError  # type: ignore[import-untyped]
from redis.exceptions import TimeoutError as RedisTimeoutError  # type: ignore[import-untyped]

from tokenvault.services._shared.errors import ConflictError, StoreUnavailableError
from tokenvault.services._shared.ports import (
    RefreshTokenRecord,
    RotationAttempt,
    RotationStatus,
    TokenStore,
)

BACKEND = "redis"
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICRO = timedelta(microseconds=1)


def _text(value: bytes | str | int | None, default: str = "") -> str:
    if value is None:
        return default
    return value.decode() if isinstance(value, bytes | bytearray) else str(value)


@dataclass(slots=True)
class RedisTokenStore(TokenStore):
    """
    Redis-backed token store with atomic rotation.

    Layout::

        rt:{hash}     HASH  id, subject_id, family_id, expires_at, revoked,
                            revoked_at, created_at (timestamps in epoch µs)
        rt:s:{sub}    SET   token hashes of a subject
        rt:f:{fam}    SET   token hashes of a rotation chain
        rt:idx:exp    ZSET  hash -> expires_at
        rt:idx:rev    ZSET  hash -> revoked_at (revoked records only)
        rt:seq        INCR  surrogate ids

    Keys carry no native TTL: revoked records must outlive their expiry
    check for reuse detection, so :class:`RetentionSweeper` owns deletion.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis

    # -------------------- helpers --------------------

    @staticmethod
    def _k(token_hash: str) -> str:
        return f"rt:{token_hash}"

    @staticmethod
    def _ks(subject_id: str) -> str:
        return f"rt:s:{subject_id}"

    @staticmethod
    def _kf(family_id: str) -> str:
        return f"rt:f:{family_id}"

    K_EXP = "rt:idx:exp"
    K_REV = "rt:idx:rev"
    K_SEQ = "rt:seq"

    @staticmethod
    def _to_us(dt: datetime) -> int:
        # naive -> label as UTC (no conversion)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return (dt - _EPOCH) // _MICRO

    @staticmethod
    def _from_us(raw: bytes | str | int | None) -> datetime | None:
        text = _text(raw)
        return _EPOCH + timedelta(microseconds=int(text)) if text else None

    def _to_record(self, token_hash: str, h: dict) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            id=_text(h.get(b"id")),
            token_hash=token_hash,
            subject_id=_text(h.get(b"subject_id")),
            family_id=_text(h.get(b"family_id")),
            expires_at=self._from_us(h.get(b"expires_at")),
            revoked=_text(h.get(b"revoked"), "0") == "1",
            revoked_at=self._from_us(h.get(b"revoked_at")),
            created_at=self._from_us(h.get(b"created_at")),
        )

    @staticmethod
    @contextmanager
    def _guard() -> Iterator[None]:
        """Translate connectivity failures into :class:`StoreUnavailableError`."""
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StoreUnavailableError(BACKEND, type(exc).__name__) from exc

    def _queue_new(
        self,
        p,
        *,
        record_id: int,
        token_hash: str,
        subject_id: str,
        family_id: str,
        expires_us: int,
        created_us: int,
    ) -> None:
        """Queue every write that creates a record onto a MULTI pipeline."""
        p.hset(
            self._k(token_hash),
            mapping={
                "id": str(record_id),
                "subject_id": subject_id,
                "family_id": family_id,
                "expires_at": str(expires_us),
                "revoked": "0",
                "revoked_at": "",
                "created_at": str(created_us),
            },
        )
        p.sadd(self._ks(subject_id), token_hash)
        p.sadd(self._kf(family_id), token_hash)
        p.zadd(self.K_EXP, {token_hash: expires_us})

    def _revoke_one(self, token_hash: str, now_us: int) -> bool:
        """Flip ``revoked`` on one record if it is active. Retries on contention."""
        key = self._k(token_hash)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    if _text(p.hget(key, "revoked"), "") != "0":
                        # missing or already revoked
                        p.unwatch()
                        return False
                    p.multi()
                    p.hset(key, mapping={"revoked": "1", "revoked_at": str(now_us)})
                    p.zadd(self.K_REV, {token_hash: now_us})
                    p.execute()
                    return True
            except redis.WatchError:
                continue

    def _members(self, key: str) -> list[str]:
        return sorted(_text(m) for m in self.r.smembers(key))

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
        key = self._k(token_hash)
        with self._guard():
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(key)
                        if p.exists(key):
                            p.unwatch()
                            raise ConflictError("RefreshToken", "token digest already exists")
                        record_id = int(self.r.incr(self.K_SEQ))
                        p.multi()
                        self._queue_new(
                            p,
                            record_id=record_id,
                            token_hash=token_hash,
                            subject_id=subject_id,
                            family_id=family_id,
                            expires_us=self._to_us(expires_at),
                            created_us=self._to_us(created_at),
                        )
                        p.execute()
                    break
                except redis.WatchError:
                    continue
            return self._to_record(token_hash, self.r.hgetall(key))

    def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        with self._guard():
            h = self.r.hgetall(self._k(token_hash))
        return self._to_record(token_hash, h) if h else None

    def rotate(
        self,
        *,
        old_hash: str,
        new_hash: str,
        now: datetime,
        new_expires_at: datetime,
    ) -> RotationAttempt:
        """
        Atomically revoke ``old_hash`` and create ``new_hash``.

        Uses WATCH/MULTI/EXEC (optimistic locking): a concurrent writer that
        touches either key aborts our EXEC and we re-read. On the retry the
        loser sees ``revoked=1`` and reports ``ALREADY_REVOKED``.
        """
        now_us = self._to_us(now)
        new_exp_us = self._to_us(new_expires_at)
        k_old = self._k(old_hash)
        k_new = self._k(new_hash)

        with self._guard():
            while True:
                try:
                    with self.r.pipeline() as p:
                        p.watch(k_old, k_new)

                        h = p.hgetall(k_old)
                        if not h:
                            p.unwatch()
                            return RotationAttempt(RotationStatus.NOT_FOUND)

                        previous = self._to_record(old_hash, h)
                        if previous.is_expired(now):
                            p.unwatch()
                            return RotationAttempt(RotationStatus.EXPIRED, previous=previous)
                        if previous.revoked:
                            p.unwatch()
                            return RotationAttempt(
                                RotationStatus.ALREADY_REVOKED, previous=previous
                            )
                        if p.exists(k_new):
                            p.unwatch()
                            raise ConflictError("RefreshToken", "token digest already exists")

                        record_id = int(self.r.incr(self.K_SEQ))

                        p.multi()
                        p.hset(k_old, mapping={"revoked": "1", "revoked_at": str(now_us)})
                        p.zadd(self.K_REV, {old_hash: now_us})
                        self._queue_new(
                            p,
                            record_id=record_id,
                            token_hash=new_hash,
                            subject_id=previous.subject_id,
                            family_id=previous.family_id,
                            expires_us=new_exp_us,
                            created_us=now_us,
                        )
                        p.execute()

                    successor = RefreshTokenRecord(
                        id=str(record_id),
                        token_hash=new_hash,
                        subject_id=previous.subject_id,
                        family_id=previous.family_id,
                        expires_at=self._from_us(new_exp_us),
                        revoked=False,
                        revoked_at=None,
                        created_at=self._from_us(now_us),
                    )
                    retired = replace(previous, revoked=True, revoked_at=self._from_us(now_us))
                    return RotationAttempt(RotationStatus.OK, previous=retired, successor=successor)

                except redis.WatchError:
                    # Concurrent modification detected; retry loop
                    continue

    def mark_revoked(self, token_hash: str, *, now: datetime) -> bool:
        with self._guard():
            return self._revoke_one(token_hash, self._to_us(now))

    def revoke_all_for_subject(self, subject_id: str, *, now: datetime) -> int:
        now_us = self._to_us(now)
        with self._guard():
            return sum(self._revoke_one(h, now_us) for h in self._members(self._ks(subject_id)))

    def revoke_family(self, family_id: str, *, now: datetime) -> int:
        now_us = self._to_us(now)
        with self._guard():
            return sum(self._revoke_one(h, now_us) for h in self._members(self._kf(family_id)))

    def delete_by_subject(self, subject_id: str) -> int:
        with self._guard():
            return self._delete_hashes(self._members(self._ks(subject_id)))

    def list_for_subject(self, subject_id: str) -> list[RefreshTokenRecord]:
        key_s = self._ks(subject_id)
        records: list[RefreshTokenRecord] = []
        stale: list[str] = []
        with self._guard():
            for token_hash in self._members(key_s):
                h = self.r.hgetall(self._k(token_hash))
                if h:
                    records.append(self._to_record(token_hash, h))
                else:
                    stale.append(token_hash)
            if stale:
                # Underlying hash missing -> drop from the subject index
                self.r.srem(key_s, *stale)
        return sorted(records, key=lambda rec: (rec.created_at, int(rec.id)))

    # -------------------- sweeping -------------------

    def delete_expired(self, now: datetime, *, batch_size: int) -> int:
        return self._delete_by_score(self.K_EXP, self._to_us(now), batch_size)

    def delete_revoked_before(self, cutoff: datetime, *, batch_size: int) -> int:
        return self._delete_by_score(self.K_REV, self._to_us(cutoff), batch_size)

    def _delete_by_score(self, index: str, bound_us: int, batch_size: int) -> int:
        """Delete records whose score in ``index`` is strictly below ``bound_us``."""
        total = 0
        with self._guard():
            while True:
                batch = [
                    _text(m)
                    for m in self.r.zrangebyscore(
                        index, "-inf", f"({bound_us}", start=0, num=batch_size
                    )
                ]
                total += self._delete_hashes(batch)
                if len(batch) < batch_size:
                    return total

    def _delete_hashes(self, hashes: list[str]) -> int:
        """Remove records and every index entry pointing at them."""
        if not hashes:
            return 0
        read = self.r.pipeline(transaction=False)
        for token_hash in hashes:
            read.hmget(self._k(token_hash), "subject_id", "family_id")
        owners = read.execute()

        pipe = self.r.pipeline(transaction=True)
        for token_hash, (subject_id, family_id) in zip(hashes, owners, strict=True):
            pipe.delete(self._k(token_hash))
            if subject_id is not None:
                pipe.srem(self._ks(_text(subject_id)), token_hash)
            if family_id is not None:
                pipe.srem(self._kf(_text(family_id)), token_hash)
        pipe.zrem(self.K_EXP, *hashes)
        pipe.zrem(self.K_REV, *hashes)
        out = pipe.execute()
        # DEL replies come first for each record; count the ones that removed a key
        deleted = 0
        i = 0
        for subject_id, family_id in owners:
            deleted += int(out[i])
            i += 1 + (subject_id is not None) + (family_id is not None)
        return deleted
