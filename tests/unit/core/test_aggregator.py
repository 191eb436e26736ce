"""Unit tests for the result aggregator."""

from __future__ import annotations

import pytest

from push_dispatch.core.aggregator import ResultAggregator
from push_dispatch.core.outcomes import Delivered, InvalidRecipient, TransientFailure


@pytest.mark.unit
class TestResultAggregator:
    """Test index-keyed outcome collection."""

    def test_records_out_of_order_and_keeps_input_order(self) -> None:
        aggregator = ResultAggregator(3)

        aggregator.record(2, Delivered(message_id="c"))
        aggregator.record(0, Delivered(message_id="a"))
        aggregator.record(1, InvalidRecipient(reason="empty"))

        result = aggregator.result("batch-1")

        assert result.batch_id == "batch-1"
        assert result.outcomes == (
            Delivered(message_id="a"),
            InvalidRecipient(reason="empty"),
            Delivered(message_id="c"),
        )

    def test_pending_indices(self) -> None:
        aggregator = ResultAggregator(4)
        aggregator.record(1, Delivered(message_id="b"))

        assert aggregator.pending_indices() == [0, 2, 3]
        assert aggregator.is_complete is False
        assert aggregator.recorded_count == 1

    def test_duplicate_record_is_rejected(self) -> None:
        aggregator = ResultAggregator(1)
        aggregator.record(0, Delivered(message_id="a"))

        with pytest.raises(ValueError, match="already recorded"):
            aggregator.record(0, Delivered(message_id="again"))

    @pytest.mark.parametrize("index", [-1, 2])
    def test_out_of_range_index_is_rejected(self, index: int) -> None:
        aggregator = ResultAggregator(2)

        with pytest.raises(ValueError, match="outside batch"):
            aggregator.record(index, Delivered(message_id="a"))

    def test_result_requires_every_outcome(self) -> None:
        aggregator = ResultAggregator(2)
        aggregator.record(0, Delivered(message_id="a"))

        with pytest.raises(RuntimeError, match="1 batch entries have no outcome"):
            _ = aggregator.result("batch-1")

    def test_fill_pending(self) -> None:
        aggregator = ResultAggregator(3)
        aggregator.record(1, Delivered(message_id="b"))

        filled = aggregator.fill_pending(TransientFailure(reason="cancelled"))

        assert filled == 2
        assert aggregator.is_complete is True
        result = aggregator.result("batch-1")
        assert result[0] == TransientFailure(reason="cancelled")
        assert result[1] == Delivered(message_id="b")
        assert result[2] == TransientFailure(reason="cancelled")

    def test_negative_size_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            _ = ResultAggregator(-1)
