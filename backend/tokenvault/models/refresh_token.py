"""Refresh token persistence model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, UniqueConstraint, false
from sqlalchemy.orm import Mapped, mapped_column, validates

from tokenvault.core.extensions import db

from .base import CreatedAtMixin, PKMixin, ReprMixin


class RefreshToken(PKMixin, ReprMixin, CreatedAtMixin, db.Model):
    """
    Server-side record of one refresh token.

    Only the keyed digest of the credential is stored; the raw value never
    reaches the database. The subject is a plain key with no relation to a
    user table, so this module owns nothing outside the token lifecycle.

    Fields
    ------
    token_hash : str
        HMAC-SHA256 hex digest of the raw token. Unique.
    subject_id : str
        Principal the token authenticates.
    family_id : str
        Rotation chain the token belongs to; successors inherit it.
    expires_at : datetime
        Absolute expiry (UTC). Never updated after insert.
    revoked : bool
        Monotonic revocation flag.
    revoked_at : datetime | None
        When the token was revoked; drives the audit retention window.
    created_at : datetime
        Insert time (from mixin).
    """

    __tablename__ = "refresh_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(64), nullable=False)
    family_id: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("token_hash", name="uq_refresh_tokens_token_hash"),
        Index("ix_refresh_tokens_subject_id", "subject_id"),
        Index("ix_refresh_tokens_family_id", "family_id"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )

    @validates("revoked")
    def _keep_revocation_monotonic(self, key: str, value: bool) -> bool:
        """
        Refuse to flip a revoked record back to active.

        :raises ValueError: If ``revoked`` would go from ``True`` to ``False``.
        """
        if self.revoked and not value:
            raise ValueError("A revoked refresh token cannot be reactivated.")
        return bool(value)

    @validates("subject_id")
    def _normalize_subject(self, key: str, value: str) -> str:
        """
        Trim and validate the subject identifier.

        :raises ValueError: If the subject is empty.
        """
        if not isinstance(value, str) or not value.strip():
            raise ValueError("subject_id is required.")
        return value.strip()
