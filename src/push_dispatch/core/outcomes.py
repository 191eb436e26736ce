"""Per-message dispatch outcomes and batch results.

Every submitted (recipient, payload) pair ends in exactly one outcome.
A successful ``dispatch`` call does not imply delivery: callers inspect
each entry of the returned ``BatchResult``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar, overload


class OutcomeKind(StrEnum):
    """Tag identifying the variant of a dispatch outcome."""

    DELIVERED = "delivered"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"
    INVALID_RECIPIENT = "invalid_recipient"


@dataclass(slots=True, frozen=True)
class Delivered:
    """Gateway accepted the message."""

    kind: ClassVar[OutcomeKind] = OutcomeKind.DELIVERED

    message_id: str
    attempts: int = 1

    def to_dict(self) -> dict[str, object]:
        return {"kind": str(self.kind), "message_id": self.message_id, "attempts": self.attempts}


@dataclass(slots=True, frozen=True)
class TransientFailure:
    """Failure expected to clear on a later retry; surfaced after exhaustion or cancellation."""

    kind: ClassVar[OutcomeKind] = OutcomeKind.TRANSIENT_FAILURE

    reason: str
    attempts: int = 0

    def to_dict(self) -> dict[str, object]:
        return {"kind": str(self.kind), "reason": self.reason, "attempts": self.attempts}


@dataclass(slots=True, frozen=True)
class PermanentFailure:
    """Failure that will not clear on retry; never retried."""

    kind: ClassVar[OutcomeKind] = OutcomeKind.PERMANENT_FAILURE

    reason: str
    code: str | None = None
    attempts: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": str(self.kind),
            "reason": self.reason,
            "code": self.code,
            "attempts": self.attempts,
        }


@dataclass(slots=True, frozen=True)
class InvalidRecipient:
    """Recipient token rejected before any gateway contact."""

    kind: ClassVar[OutcomeKind] = OutcomeKind.INVALID_RECIPIENT

    reason: str

    def to_dict(self) -> dict[str, object]:
        return {"kind": str(self.kind), "reason": self.reason}


type DispatchOutcome = Delivered | TransientFailure | PermanentFailure | InvalidRecipient

# Reason reported for envelopes that never reached a terminal state because
# the batch was cancelled or timed out.
CANCELLED_REASON = "cancelled"


@dataclass(slots=True, frozen=True)
class BatchResult:
    """Ordered outcomes for one dispatch call, one per input pair."""

    batch_id: str
    outcomes: tuple[DispatchOutcome, ...]

    def __len__(self) -> int:
        return len(self.outcomes)

    def __iter__(self) -> Iterator[DispatchOutcome]:
        return iter(self.outcomes)

    @overload
    def __getitem__(self, index: int) -> DispatchOutcome: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[DispatchOutcome, ...]: ...

    def __getitem__(self, index: int | slice) -> DispatchOutcome | tuple[DispatchOutcome, ...]:
        return self.outcomes[index]

    @property
    def delivered_count(self) -> int:
        return sum(1 for outcome in self.outcomes if isinstance(outcome, Delivered))

    @property
    def failed_count(self) -> int:
        return len(self.outcomes) - self.delivered_count

    @property
    def all_delivered(self) -> bool:
        return self.failed_count == 0

    def count(self, kind: OutcomeKind) -> int:
        """Count outcomes of the given kind."""
        return sum(1 for outcome in self.outcomes if outcome.kind is kind)

    def to_dicts(self) -> list[dict[str, object]]:
        """Serialise outcomes in input order, tagging each with its index."""
        return [{"index": index, **outcome.to_dict()} for index, outcome in enumerate(self.outcomes)]
