"""Data models for push-dispatch.

This module defines immutable dataclasses exchanged between the dispatch
core and its external collaborators (credential providers and messaging
gateways).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum


@dataclass(slots=True, frozen=True)
class BearerToken:
    """Short-lived credential used to authenticate gateway requests.

    The token value is excluded from ``repr`` so it never leaks into logs
    or tracebacks.
    """

    value: str = field(repr=False)
    expires_at: datetime | None = None

    def is_expired(self, *, now: datetime | None = None, margin_seconds: float = 0.0) -> bool:
        """Check whether the token is expired or about to expire.

        Args:
            now: Reference time (defaults to current UTC time)
            margin_seconds: Treat the token as expired this many seconds early

        Returns:
            True if the token should no longer be used
        """
        if self.expires_at is None:
            return False
        reference = now or datetime.now(tz=UTC)
        return reference + timedelta(seconds=margin_seconds) >= self.expires_at


class GatewayStatus(StrEnum):
    """Classification of a single gateway response."""

    ACCEPTED = "accepted"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(slots=True, frozen=True)
class GatewayResponse:
    """Outcome of one request to the messaging gateway.

    Gateways translate their vendor wire format into this structure; the
    dispatch engine depends only on the classification carried in ``status``.
    """

    status: GatewayStatus
    message_id: str | None = None
    reason: str | None = None
    code: str | None = None
    retry_after: float | None = None

    @classmethod
    def accepted(cls, message_id: str) -> GatewayResponse:
        return cls(status=GatewayStatus.ACCEPTED, message_id=message_id)

    @classmethod
    def transient(
        cls,
        reason: str,
        *,
        code: str | None = None,
        retry_after: float | None = None,
    ) -> GatewayResponse:
        return cls(status=GatewayStatus.TRANSIENT, reason=reason, code=code, retry_after=retry_after)

    @classmethod
    def permanent(cls, reason: str, *, code: str | None = None) -> GatewayResponse:
        return cls(status=GatewayStatus.PERMANENT, reason=reason, code=code)

    @classmethod
    def unauthenticated(cls, reason: str, *, code: str | None = None) -> GatewayResponse:
        return cls(status=GatewayStatus.UNAUTHENTICATED, reason=reason, code=code)
