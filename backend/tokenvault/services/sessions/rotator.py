# tokenvault/services/sessions/rotator.py
from __future__ import annotations

import logging
from uuid import uuid4

from tokenvault.services._shared.base import BaseService, ServiceContext
from tokenvault.services._shared.errors import StoreUnavailableError
from tokenvault.services._shared.ports import (
    RefreshTokenRecord,
    RotationStatus,
    TokenStore,
)
from tokenvault.services.sessions.codec import TokenCodec
from tokenvault.services.sessions.dto import (
    FailureKind,
    IssuedToken,
    Result,
    ReusePolicy,
    SessionConfig,
)

logger = logging.getLogger(__name__)


class SessionRotator(BaseService):
    """
    Refresh-token lifecycle service (issue / rotate / validate / revoke).

    The only component allowed to mint or invalidate credentials. It hashes
    presented tokens through :class:`TokenCodec`, delegates atomicity to the
    :class:`TokenStore` and converts every outcome into a :class:`Result`:
    nothing raised by the store crosses this boundary.
    """

    def __init__(
        self,
        *,
        store: TokenStore,
        codec: TokenCodec,
        cfg: SessionConfig | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param store: Token store performing atomic rotation.
        :param codec: Token generator and digest function.
        :param cfg: TTL and reuse policy.
        :param ctx: Optional request-scoped context for logs.
        """
        super().__init__(ctx=ctx)
        self.store = store
        self.codec = codec
        self.cfg = cfg or SessionConfig()

    # ------------------------------------------------------------------ #
    # Issue
    # ------------------------------------------------------------------ #

    def issue(self, subject_id: str) -> Result[IssuedToken]:
        """
        Mint the first token of a new session family.

        The caller has already authenticated the subject (password login).

        :param subject_id: Authenticated principal.
        :returns: The raw token and its stored record.
        :raises ValueError: If ``subject_id`` is blank.
        """
        subject = (subject_id or "").strip()
        if not subject:
            raise ValueError("subject_id is required.")

        raw = self.codec.generate()
        now = self.now_utc()
        try:
            record = self.store.insert(
                token_hash=self.codec.digest(raw),
                subject_id=subject,
                family_id=uuid4().hex,
                expires_at=now + self.cfg.refresh_ttl,
                created_at=now,
            )
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "issue")

        logger.info(
            "refresh token issued",
            extra=self.log_extra(subject_id=subject, family_id=record.family_id, token_id=record.id),
        )
        return Result.success(IssuedToken(token=raw, record=record))

    # ------------------------------------------------------------------ #
    # Rotate
    # ------------------------------------------------------------------ #

    def rotate(self, presented_token: str) -> Result[IssuedToken]:
        """
        Exchange a valid refresh token for its successor.

        Security
        --------
        - Read, validate, revoke and insert happen as one atomic store call.
        - A revoked token presented again is a **reuse signal**: it fails with
          ``REUSE_DETECTED`` and the configured :class:`ReusePolicy` runs.
        - Expired tokens fail with ``EXPIRED`` and are left for the sweeper.
        """
        if not presented_token:
            return Result.fail(FailureKind.UNKNOWN_TOKEN)

        new_raw = self.codec.generate()
        now = self.now_utc()
        try:
            attempt = self.store.rotate(
                old_hash=self.codec.digest(presented_token),
                new_hash=self.codec.digest(new_raw),
                now=now,
                new_expires_at=now + self.cfg.refresh_ttl,
            )
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "rotate")

        if attempt.status is RotationStatus.NOT_FOUND:
            return Result.fail(FailureKind.UNKNOWN_TOKEN)

        if attempt.status is RotationStatus.EXPIRED:
            return Result.fail(FailureKind.EXPIRED)

        if attempt.status is RotationStatus.ALREADY_REVOKED:
            if attempt.previous is None:
                return Result.fail(FailureKind.REUSE_DETECTED)
            return self._handle_reuse(attempt.previous)

        if attempt.successor is None:
            logger.error("store rotated %s without a successor", attempt.status.name)
            return Result.fail(FailureKind.STORE_UNAVAILABLE, "rotation returned no successor")
        logger.info(
            "refresh token rotated",
            extra=self.log_extra(
                subject_id=attempt.successor.subject_id,
                family_id=attempt.successor.family_id,
                token_id=attempt.successor.id,
            ),
        )
        return Result.success(IssuedToken(token=new_raw, record=attempt.successor))

    def _handle_reuse(self, replayed: RefreshTokenRecord) -> Result[IssuedToken]:
        """Apply the reuse policy and report ``REUSE_DETECTED``."""
        policy = self.cfg.reuse_policy
        logger.warning(
            "refresh token reuse detected",
            extra=self.log_extra(
                subject_id=replayed.subject_id,
                family_id=replayed.family_id,
                token_id=replayed.id,
                outcome=policy.value,
            ),
        )
        now = self.now_utc()
        try:
            if policy is ReusePolicy.REVOKE_SUBJECT:
                self.store.revoke_all_for_subject(replayed.subject_id, now=now)
            elif policy is ReusePolicy.REVOKE_FAMILY:
                self.store.revoke_family(replayed.family_id, now=now)
        except StoreUnavailableError:
            # The client is rejected either way; the kill switch must be retried by ops.
            logger.exception(
                "reuse response failed",
                extra=self.log_extra(subject_id=replayed.subject_id, family_id=replayed.family_id),
            )
            return Result.fail(FailureKind.REUSE_DETECTED, "session revocation pending")
        return Result.fail(FailureKind.REUSE_DETECTED)

    # ------------------------------------------------------------------ #
    # Validate
    # ------------------------------------------------------------------ #

    def validate(self, presented_token: str) -> Result[str]:
        """
        Confirm a session is alive without rotating it.

        :returns: The subject id, or ``UNKNOWN_TOKEN`` / ``EXPIRED`` / ``REVOKED``.
        """
        if not presented_token:
            return Result.fail(FailureKind.UNKNOWN_TOKEN)
        try:
            record = self.store.find_by_hash(self.codec.digest(presented_token))
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "validate")

        if record is None:
            return Result.fail(FailureKind.UNKNOWN_TOKEN)
        if record.is_expired(self.now_utc()):
            return Result.fail(FailureKind.EXPIRED)
        if record.revoked:
            return Result.fail(FailureKind.REVOKED)
        return Result.success(record.subject_id)

    # ------------------------------------------------------------------ #
    # Revoke
    # ------------------------------------------------------------------ #

    def revoke(self, presented_token: str) -> Result[bool]:
        """
        Revoke one token (logout). Idempotent.

        Unknown or already revoked tokens are not errors: the postcondition
        "this token cannot be used" already holds.

        :returns: ``True`` when this call changed the record.
        """
        if not presented_token:
            return Result.success(False)
        try:
            changed = self.store.mark_revoked(
                self.codec.digest(presented_token), now=self.now_utc()
            )
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "revoke")
        return Result.success(changed)

    def revoke_all(self, subject_id: str) -> Result[int]:
        """
        Revoke every session of a subject (logout everywhere). Idempotent.

        :returns: Number of records this call revoked.
        """
        try:
            count = self.store.revoke_all_for_subject(subject_id, now=self.now_utc())
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "revoke_all")
        logger.info(
            "subject sessions revoked",
            extra=self.log_extra(subject_id=subject_id, outcome=str(count)),
        )
        return Result.success(count)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def list_sessions(self, subject_id: str) -> Result[list[RefreshTokenRecord]]:
        """Return the subject's currently valid records, oldest first."""
        try:
            records = self.store.list_for_subject(subject_id)
        except StoreUnavailableError as exc:
            return self._unavailable(exc, "list_sessions")
        now = self.now_utc()
        return Result.success([r for r in records if r.is_valid(now)])

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    def _unavailable(self, exc: StoreUnavailableError, operation: str) -> Result:
        logger.error(
            "token store unavailable during %s: %s",
            operation,
            exc.detail,
            extra=self.log_extra(outcome=exc.backend),
        )
        return Result.fail(FailureKind.STORE_UNAVAILABLE, str(exc))
