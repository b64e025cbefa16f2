# tokenvault/services/_shared/base.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param request_id: Correlation id for logging/tracing.
    :param client: Free-form client descriptor (device, user agent) for logs.
    """

    request_id: str | None = None
    client: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Own the clock, so every timestamp of one operation agrees.
    * Build structured ``extra`` payloads for log records.
    * Keep services orchestration-only, no web/ORM leakage.
    """

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        """
        Initialize the base service.

        :param ctx: Optional request-scoped context (tracing, client info).
        :type ctx: ServiceContext | None
        """
        self.ctx = ctx or ServiceContext()

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    def log_extra(self, **fields: Any) -> dict[str, Any]:
        """
        Merge context fields into a logging ``extra`` mapping.

        :returns: Mapping suitable for ``logger.info(..., extra=...)``.
        :rtype: dict[str, Any]
        """
        extra: dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
        if self.ctx.request_id:
            extra.setdefault("request_id", self.ctx.request_id)
        if self.ctx.client:
            extra.setdefault("client", self.ctx.client)
        return extra
