"""Result aggregation keyed by input index."""

from __future__ import annotations

import logging

from push_dispatch.core.outcomes import BatchResult, DispatchOutcome
from push_dispatch.utils.logging import get_logger

__all__ = ["ResultAggregator"]


class ResultAggregator:
    """Collect exactly one terminal outcome per batch position.

    Slots are preallocated so outcomes can be recorded in any completion
    order while the final result keeps input order.
    """

    def __init__(self, size: int, *, logger_obj: logging.Logger | None = None) -> None:
        """Initialize result aggregator.

        Args:
            size: Number of entries in the batch
        """
        if size < 0:
            msg = "size must not be negative"
            raise ValueError(msg)
        self._outcomes: list[DispatchOutcome | None] = [None] * size
        self._recorded: int = 0
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    def __len__(self) -> int:
        return len(self._outcomes)

    @property
    def recorded_count(self) -> int:
        return self._recorded

    @property
    def is_complete(self) -> bool:
        """Check if every position has a terminal outcome."""
        return self._recorded == len(self._outcomes)

    def record(self, index: int, outcome: DispatchOutcome) -> None:
        """Record the terminal outcome for a batch position.

        Args:
            index: Position of the entry in the submitted batch
            outcome: Terminal outcome

        Raises:
            ValueError: If the index is out of range or already recorded
        """
        if not 0 <= index < len(self._outcomes):
            msg = f"Index {index} is outside batch of size {len(self._outcomes)}"
            raise ValueError(msg)
        if self._outcomes[index] is not None:
            msg = f"Outcome for index {index} already recorded"
            raise ValueError(msg)

        self._outcomes[index] = outcome
        self._recorded += 1
        self._logger.debug("Recorded %s for index %d", outcome.kind, index)

    def get(self, index: int) -> DispatchOutcome | None:
        return self._outcomes[index]

    def pending_indices(self) -> list[int]:
        """Positions still waiting for an outcome, in ascending order."""
        return [index for index, outcome in enumerate(self._outcomes) if outcome is None]

    def fill_pending(self, outcome: DispatchOutcome) -> int:
        """Record ``outcome`` for every position without one.

        Returns:
            Number of positions filled
        """
        pending = self.pending_indices()
        for index in pending:
            self.record(index, outcome)
        return len(pending)

    def result(self, batch_id: str) -> BatchResult:
        """Build the ordered batch result.

        Raises:
            RuntimeError: If any position is still pending
        """
        if not self.is_complete:
            msg = f"{len(self._outcomes) - self._recorded} batch entries have no outcome yet"
            raise RuntimeError(msg)
        outcomes = tuple(outcome for outcome in self._outcomes if outcome is not None)
        return BatchResult(batch_id=batch_id, outcomes=outcomes)
