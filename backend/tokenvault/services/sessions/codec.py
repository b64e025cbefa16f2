"""Refresh token generation and storage digests."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Mapping
from typing import Any

from tokenvault.services._shared.errors import ConfigurationError

#: 256 bits; anything shorter is rejected.
MIN_TOKEN_BYTES = 32
DEFAULT_TOKEN_BYTES = 48


class TokenCodec:
    """
    Mint opaque refresh tokens and derive their stored representation.

    Storage decision: only ``HMAC-SHA256(key, token)`` reaches a store, so a
    leaked table yields no usable credentials. A fast keyed hash is enough
    because tokens are already high-entropy; password hashing would only add
    latency to every refresh. Lookups digest the presented token first.

    :param key: HMAC key. Must be non-empty.
    :param nbytes: Random bytes per token (``>= 32``).
    :raises ConfigurationError: On an empty key or too few bytes.
    """

    def __init__(self, key: str | bytes, *, nbytes: int = DEFAULT_TOKEN_BYTES) -> None:
        raw_key = key.encode("utf-8") if isinstance(key, str) else bytes(key)
        if not raw_key:
            raise ConfigurationError("TOKEN_HASH_KEY must be set to hash refresh tokens.")
        if nbytes < MIN_TOKEN_BYTES:
            raise ConfigurationError(
                f"TOKEN_BYTES must be at least {MIN_TOKEN_BYTES} (got {nbytes})."
            )
        self._key = raw_key
        self.nbytes = nbytes

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> TokenCodec:
        return cls(
            str(config.get("TOKEN_HASH_KEY") or ""),
            nbytes=int(config.get("TOKEN_BYTES", DEFAULT_TOKEN_BYTES)),
        )

    def generate(self) -> str:
        """Return a new URL-safe token from the OS CSPRNG."""
        return secrets.token_urlsafe(self.nbytes)

    def digest(self, raw_token: str) -> str:
        """Return the 64-char hex digest stored for ``raw_token``.

        Any string digests, lone surrogates included, so malformed client input
        simply matches nothing.
        """
        data = raw_token.encode("utf-8", "surrogatepass")
        return hmac.new(self._key, data, hashlib.sha256).hexdigest()

    def matches(self, raw_token: str, stored_digest: str) -> bool:
        """Constant-time check of ``raw_token`` against a stored digest."""
        return hmac.compare_digest(self.digest(raw_token), stored_digest)

    def __repr__(self) -> str:
        return f"TokenCodec(nbytes={self.nbytes}, key=<redacted>)"
