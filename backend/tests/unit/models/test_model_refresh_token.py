# tests/unit/models/test_model_refresh_token.py
from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError
from tests.factories.refresh_token import RefreshTokenFactory

from tokenvault.models import RefreshToken


class TestRefreshTokenModel:
    def test_defaults(self, session):
        token = RefreshTokenFactory()
        session.refresh(token)

        assert token.id is not None
        assert token.revoked is False
        assert token.revoked_at is None
        assert token.created_at is not None
        assert repr(token) == f"<RefreshToken id={token.id}>"

    def test_token_hash_is_unique(self, session):
        RefreshTokenFactory(token_hash="same")
        with pytest.raises(IntegrityError, match="token_hash"):
            RefreshTokenFactory(token_hash="same")
        session.rollback()

    def test_revocation_is_monotonic(self, session):
        token = RefreshTokenFactory(revoked_token=True)
        with pytest.raises(ValueError, match="cannot be reactivated"):
            token.revoked = False

    def test_subject_is_trimmed_and_required(self, session):
        token = RefreshTokenFactory(subject_id="  alice  ")
        assert token.subject_id == "alice"
        with pytest.raises(ValueError, match="subject_id is required"):
            RefreshToken(subject_id="   ")
