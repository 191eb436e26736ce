"""Dispatch engine: send one envelope with retry and classify the result.

The engine is the only component that talks to the messaging gateway. It
never raises for an individual message; every call to ``send`` ends in
exactly one ``DispatchOutcome``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from push_dispatch.core.errors import CredentialUnavailableError
from push_dispatch.core.outcomes import (
    CANCELLED_REASON,
    Delivered,
    DispatchOutcome,
    PermanentFailure,
    TransientFailure,
)
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.types.models import GatewayResponse, GatewayStatus
from push_dispatch.utils.logging import get_logger, log_with_context
from push_dispatch.utils.sanitization import mask_recipient, sanitize_exception

if TYPE_CHECKING:
    from push_dispatch.core.credentials import CredentialCache
    from push_dispatch.core.envelope import Envelope
    from push_dispatch.types.models import BearerToken
    from push_dispatch.types.protocols import MessagingGateway

__all__ = ["DispatchEngine"]

type SleepFunc = Callable[[float], Awaitable[None]]


class DispatchEngine:
    """Send envelopes to the gateway with capped exponential backoff."""

    def __init__(
        self,
        gateway: MessagingGateway,
        credentials: CredentialCache,
        *,
        retry_policy: RetryPolicy | None = None,
        gateway_timeout_seconds: float = 10.0,
        sleep: SleepFunc | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if gateway_timeout_seconds <= 0:
            msg = "gateway_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._gateway: MessagingGateway = gateway
        self._credentials: CredentialCache = credentials
        self._retry_policy: RetryPolicy = retry_policy or RetryPolicy()
        self._gateway_timeout_seconds: float = gateway_timeout_seconds
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    async def send(self, envelope: Envelope, *, stop: asyncio.Event | None = None) -> DispatchOutcome:
        """Deliver one envelope, retrying transient failures.

        Args:
            envelope: Envelope to deliver
            stop: When set, no further attempt is started

        Returns:
            Terminal outcome for the envelope
        """
        attempts = 0
        retries = 0
        refreshed = False
        recipient = mask_recipient(envelope.recipient)

        while True:
            if stop is not None and stop.is_set():
                return self._cancelled(recipient, attempts)

            try:
                credential = await self._credentials.get_unless_stopped(stop)
            except CredentialUnavailableError as exc:
                log_with_context(
                    self._logger,
                    logging.ERROR,
                    "No credential available for envelope",
                    extra={"recipient": recipient, "attempts": attempts},
                )
                return TransientFailure(reason=f"credential unavailable: {exc}", attempts=attempts)
            if credential is None:
                return self._cancelled(recipient, attempts)

            attempts += 1
            response = await self._call_gateway(envelope, credential)

            match response.status:
                case GatewayStatus.ACCEPTED:
                    message_id = response.message_id or ""
                    log_with_context(
                        self._logger,
                        logging.INFO,
                        "Envelope delivered",
                        extra={"recipient": recipient, "message_id": message_id, "attempts": attempts},
                    )
                    return Delivered(message_id=message_id, attempts=attempts)

                case GatewayStatus.PERMANENT:
                    reason = response.reason or "permanent gateway error"
                    log_with_context(
                        self._logger,
                        logging.WARNING,
                        "Envelope rejected by gateway",
                        extra={"recipient": recipient, "code": response.code, "reason": reason},
                    )
                    return PermanentFailure(reason=reason, code=response.code, attempts=attempts)

                case GatewayStatus.UNAUTHENTICATED:
                    if refreshed:
                        log_with_context(
                            self._logger,
                            logging.ERROR,
                            "Gateway rejected refreshed credential",
                            extra={"recipient": recipient, "attempts": attempts},
                        )
                        return PermanentFailure(
                            reason=response.reason or "credential rejected after refresh",
                            code=response.code or "UNAUTHENTICATED",
                            attempts=attempts,
                        )
                    refreshed = True
                    _ = self._credentials.invalidate(credential)
                    log_with_context(
                        self._logger,
                        logging.INFO,
                        "Credential rejected, retrying with a refreshed credential",
                        extra={"recipient": recipient, "attempts": attempts},
                    )
                    continue

                case GatewayStatus.TRANSIENT:
                    reason = response.reason or "transient gateway error"
                    if not self._retry_policy.should_retry(retries):
                        log_with_context(
                            self._logger,
                            logging.WARNING,
                            "Retries exhausted for envelope",
                            extra={"recipient": recipient, "attempts": attempts, "reason": reason},
                        )
                        return TransientFailure(reason=reason, attempts=attempts)

                    delay = self._retry_policy.delay_for(retries, response.retry_after)
                    retries += 1
                    log_with_context(
                        self._logger,
                        logging.INFO,
                        "Transient gateway failure, retrying",
                        extra={
                            "recipient": recipient,
                            "attempt": attempts,
                            "delay_seconds": delay,
                            "reason": reason,
                        },
                    )
                    if await self._pause(delay, stop):
                        return self._cancelled(recipient, attempts)

                case _:
                    log_with_context(
                        self._logger,
                        logging.ERROR,
                        "Gateway returned an unknown status",
                        extra={"recipient": recipient, "status": str(response.status)},
                    )
                    return PermanentFailure(
                        reason=f"unknown gateway status: {response.status}",
                        code="INTERNAL_ERROR",
                        attempts=attempts,
                    )

    async def _call_gateway(self, envelope: Envelope, credential: BearerToken) -> GatewayResponse:
        start = time.perf_counter()
        try:
            async with asyncio.timeout(self._gateway_timeout_seconds):
                response = await self._gateway.send(envelope, credential)
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            return GatewayResponse.transient(
                f"gateway request timed out after {self._gateway_timeout_seconds:.2f}s",
                code="TIMEOUT",
            )
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.ERROR,
                "Gateway raised an unexpected error",
                extra={"error_message": sanitize_exception(exc), "exception_type": type(exc).__name__},
            )
            return GatewayResponse.permanent(
                f"gateway error: {sanitize_exception(exc)}",
                code="INTERNAL_ERROR",
            )

        self._logger.debug(
            "Gateway responded with %s in %.1fms",
            response.status,
            (time.perf_counter() - start) * 1000.0,
        )
        return response

    async def _pause(self, delay: float, stop: asyncio.Event | None) -> bool:
        """Wait out a backoff delay.

        Returns:
            True if ``stop`` was set before or during the wait
        """
        if stop is None:
            await self._sleep(delay)
            return False
        if stop.is_set():
            return True

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(stop.wait())
        try:
            _ = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    _ = task.cancel()
            _ = await asyncio.gather(sleeper, waiter, return_exceptions=True)
        return stop.is_set()

    def _cancelled(self, recipient: str, attempts: int) -> TransientFailure:
        log_with_context(
            self._logger,
            logging.INFO,
            "Envelope not sent: batch cancelled",
            extra={"recipient": recipient, "attempts": attempts},
        )
        return TransientFailure(reason=CANCELLED_REASON, attempts=attempts)
