"""Factory Boy definition for :class:`tokenvault.models.refresh_token.RefreshToken`."""

from __future__ import annotations

import hashlib
from datetime import timedelta
from uuid import uuid4

import factory
from tests.factories import BaseFactory

from tokenvault.models.base import utcnow
from tokenvault.models.refresh_token import RefreshToken


def fake_digest(n: int) -> str:
    """Deterministic 64-char hex digest for the ``n``-th token."""
    return hashlib.sha256(f"token-{n}".encode()).hexdigest()


class RefreshTokenFactory(BaseFactory):
    """
    Build persisted :class:`RefreshToken` rows.

    Traits
    ------
    - ``revoked_token``: revoked just now.
    - ``expired``: ``expires_at`` one second in the past.
    """

    class Meta:
        model = RefreshToken

    class Params:
        revoked_token = factory.Trait(
            revoked=True,
            revoked_at=factory.LazyFunction(utcnow),
        )
        expired = factory.Trait(
            expires_at=factory.LazyFunction(lambda: utcnow() - timedelta(seconds=1)),
        )

    id = None  # let autoincrement handle it
    token_hash = factory.Sequence(fake_digest)
    subject_id = factory.Sequence(lambda n: f"subject-{n}")
    family_id = factory.LazyFunction(lambda: uuid4().hex)
    expires_at = factory.LazyFunction(lambda: utcnow() + timedelta(days=30))
    revoked = False
    revoked_at = None
    created_at = factory.LazyFunction(utcnow)
