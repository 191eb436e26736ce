"""Batch dispatcher coordinating validation, the worker pool and aggregation.

This module implements ``PushDispatcher.dispatch``, the caller-facing
operation: it validates each (recipient, payload) pair, builds envelopes,
sends them through a bounded pool of workers sharing one dispatch engine,
and returns one outcome per input in input order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING
from uuid import uuid4

from push_dispatch.core.aggregator import ResultAggregator
from push_dispatch.core.envelope import DeliveryOptions, Envelope, NotificationPayload, build_envelope
from push_dispatch.core.errors import (
    BatchInputError,
    CredentialUnavailableError,
    InvalidPayloadError,
    InvalidRecipientError,
)
from push_dispatch.core.outcomes import (
    CANCELLED_REASON,
    BatchResult,
    InvalidRecipient,
    OutcomeKind,
    PermanentFailure,
    TransientFailure,
)
from push_dispatch.core.validation import DEFAULT_MAX_TOKEN_LENGTH, validate_recipient
from push_dispatch.utils.logging import (
    get_logger,
    log_with_context,
    reset_correlation_id,
    set_correlation_id,
)
from push_dispatch.utils.sanitization import mask_recipient

if TYPE_CHECKING:
    from push_dispatch.core.credentials import CredentialCache
    from push_dispatch.core.engine import DispatchEngine

__all__ = ["BatchItem", "PushDispatcher"]

type BatchIDFactory = Callable[[], str]
type BatchItem = tuple[object, NotificationPayload | Mapping[str, object]]

INVALID_PAYLOAD_CODE = "INVALID_PAYLOAD"


class PushDispatcher:
    """Dispatch batches of notifications with bounded concurrency."""

    def __init__(
        self,
        engine: DispatchEngine,
        credentials: CredentialCache,
        *,
        concurrency: int = 10,
        max_token_length: int = DEFAULT_MAX_TOKEN_LENGTH,
        default_options: DeliveryOptions | None = None,
        batch_timeout_seconds: float | None = None,
        batch_id_factory: BatchIDFactory | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            msg = "concurrency must be at least 1"
            raise ValueError(msg)
        if batch_timeout_seconds is not None and batch_timeout_seconds <= 0:
            msg = "batch_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._engine: DispatchEngine = engine
        self._credentials: CredentialCache = credentials
        self._concurrency: int = concurrency
        self._max_token_length: int = max_token_length
        self._default_options: DeliveryOptions = default_options or DeliveryOptions()
        self._batch_timeout_seconds: float | None = batch_timeout_seconds
        self._batch_id_factory: BatchIDFactory = batch_id_factory or (lambda: uuid4().hex)
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def dispatch(
        self,
        batch: Iterable[BatchItem],
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
        options: DeliveryOptions | None = None,
    ) -> BatchResult:
        """Send every (recipient, payload) pair and report one outcome each.

        A returned result does not imply delivery; inspect each entry.

        Args:
            batch: Non-empty sequence of (recipient token, payload) pairs
            cancel: When set, no new sends start and unfinished entries
                are reported as cancelled
            timeout: Seconds after which the batch behaves as cancelled
                (defaults to the configured batch timeout)
            options: Delivery metadata applied to every envelope

        Returns:
            Ordered outcomes, one per input pair

        Raises:
            BatchInputError: If the batch is empty or an item is not a pair
            CredentialUnavailableError: If no credential can be obtained
                before the first send
        """
        items = self._check_batch(batch)
        batch_id = self._batch_id_factory()
        correlation_token = set_correlation_id(batch_id)
        start = time.perf_counter()

        stop = asyncio.Event()
        relay: asyncio.Task[None] | None = None
        timer: asyncio.TimerHandle | None = None

        try:
            log_with_context(
                self._logger,
                logging.INFO,
                "Dispatching batch",
                extra={"batch_size": len(items), "concurrency": self._concurrency},
            )

            aggregator = ResultAggregator(len(items))
            pending = self._prepare(items, aggregator, options or self._default_options)

            effective_timeout = timeout if timeout is not None else self._batch_timeout_seconds
            if effective_timeout is not None:
                timer = asyncio.get_running_loop().call_later(effective_timeout, self._expire, stop)
            if cancel is not None:
                if cancel.is_set():
                    stop.set()
                else:
                    relay = asyncio.create_task(_relay_cancel(cancel, stop))

            if pending and not stop.is_set():
                try:
                    credential = await self._credentials.get_unless_stopped(stop)
                except CredentialUnavailableError:
                    log_with_context(
                        self._logger,
                        logging.ERROR,
                        "Batch aborted: no credential available",
                        extra={"batch_size": len(items), "pending": len(pending)},
                    )
                    raise
                if credential is not None:
                    await self._run_workers(pending, aggregator, stop)

            cancelled = aggregator.fill_pending(TransientFailure(reason=CANCELLED_REASON))
            if cancelled:
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Batch stopped before all entries were sent",
                    extra={"cancelled": cancelled},
                )

            result = aggregator.result(batch_id)
            self._log_summary(result, (time.perf_counter() - start) * 1000.0)
            return result
        finally:
            if timer is not None:
                timer.cancel()
            if relay is not None:
                _ = relay.cancel()
                _ = await asyncio.gather(relay, return_exceptions=True)
            reset_correlation_id(correlation_token)

    def _check_batch(self, batch: Iterable[BatchItem]) -> list[tuple[object, object]]:
        items: list[tuple[object, object]] = []
        for index, item in enumerate(batch):
            if (
                not isinstance(item, Sequence)
                or isinstance(item, (str, bytes))
                or len(item) != 2  # pyright: ignore[reportUnknownArgumentType]
            ):
                msg = f"Batch item {index} is not a (recipient, payload) pair"
                raise BatchInputError(msg, index=index)
            recipient, payload = item  # pyright: ignore[reportUnknownVariableType]
            items.append((recipient, payload))  # pyright: ignore[reportUnknownArgumentType]

        if not items:
            raise BatchInputError("Batch must contain at least one entry")
        return items

    def _prepare(
        self,
        items: Sequence[tuple[object, object]],
        aggregator: ResultAggregator,
        options: DeliveryOptions,
    ) -> list[tuple[int, Envelope]]:
        """Validate entries and build envelopes; rejected entries are recorded immediately."""
        pending: list[tuple[int, Envelope]] = []
        for index, (recipient, payload) in enumerate(items):
            try:
                token = validate_recipient(recipient, max_length=self._max_token_length)
            except InvalidRecipientError as exc:
                aggregator.record(index, InvalidRecipient(reason=str(exc)))
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Rejected recipient before dispatch",
                    extra={"index": index, "reason": str(exc)},
                )
                continue

            if not isinstance(payload, (NotificationPayload, Mapping)):
                exc = InvalidPayloadError(f"Payload must be a mapping, got {type(payload).__name__}")
                self._reject_payload(aggregator, index, token, exc)
                continue

            try:
                envelope = build_envelope(token, payload, options)  # pyright: ignore[reportUnknownArgumentType]
            except InvalidPayloadError as exc:
                self._reject_payload(aggregator, index, token, exc)
                continue

            pending.append((index, envelope))
        return pending

    def _reject_payload(
        self,
        aggregator: ResultAggregator,
        index: int,
        recipient: str,
        exc: InvalidPayloadError,
    ) -> None:
        aggregator.record(index, PermanentFailure(reason=str(exc), code=INVALID_PAYLOAD_CODE))
        log_with_context(
            self._logger,
            logging.WARNING,
            "Rejected payload before dispatch",
            extra={"index": index, "recipient": mask_recipient(recipient), "reason": str(exc)},
        )

    async def _run_workers(
        self,
        pending: Sequence[tuple[int, Envelope]],
        aggregator: ResultAggregator,
        stop: asyncio.Event,
    ) -> None:
        queue: asyncio.Queue[tuple[int, Envelope]] = asyncio.Queue()
        for entry in pending:
            queue.put_nowait(entry)

        async def _worker() -> None:
            while not stop.is_set():
                try:
                    index, envelope = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                outcome = await self._engine.send(envelope, stop=stop)
                aggregator.record(index, outcome)

        async with asyncio.TaskGroup() as task_group:
            for _ in range(min(self._concurrency, len(pending))):
                _ = task_group.create_task(_worker())

    def _expire(self, stop: asyncio.Event) -> None:
        if not stop.is_set():
            self._logger.warning("Batch timeout reached, no new sends will start")
            stop.set()

    def _log_summary(self, result: BatchResult, elapsed_ms: float) -> None:
        level = logging.INFO if result.all_delivered else logging.WARNING
        log_with_context(
            self._logger,
            level,
            "Batch dispatch complete",
            extra={
                "batch_size": len(result),
                "delivered": result.delivered_count,
                "transient_failures": result.count(OutcomeKind.TRANSIENT_FAILURE),
                "permanent_failures": result.count(OutcomeKind.PERMANENT_FAILURE),
                "invalid_recipients": result.count(OutcomeKind.INVALID_RECIPIENT),
                "elapsed_ms": round(elapsed_ms, 1),
            },
        )


async def _relay_cancel(cancel: asyncio.Event, stop: asyncio.Event) -> None:
    _ = await cancel.wait()
    stop.set()
