"""Service lifecycle wrapper wiring configuration to the dispatch core.

``PushService`` owns the gateway session for its lifetime: the gateway,
credential cache, engine and dispatcher are built once on entry and the
session is closed on exit. No module-level state is kept.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Self

from push_dispatch.core.credentials import CredentialCache, StaticCredentialProvider
from push_dispatch.core.dispatcher import BatchItem, PushDispatcher
from push_dispatch.core.engine import DispatchEngine, SleepFunc
from push_dispatch.core.envelope import DeliveryOptions
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.gateway.dry_run import DryRunGateway
from push_dispatch.gateway.fcm import FCMGateway
from push_dispatch.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from push_dispatch.core.config import MainConfig
    from push_dispatch.core.outcomes import BatchResult
    from push_dispatch.types.protocols import CredentialProvider, MessagingGateway

__all__ = ["DRY_RUN_ACCESS_TOKEN", "PushService"]

# Placeholder credential used when dry-run mode has no configured token
DRY_RUN_ACCESS_TOKEN = "dry-run-access-token"


class PushService:
    """Async context manager exposing ``dispatch`` over a configured gateway.

    Example:
        >>> async with PushService(config) as service:
        ...     result = await service.dispatch([("device-token", {"title": "Hi"})])
    """

    def __init__(
        self,
        config: MainConfig,
        *,
        gateway: MessagingGateway | None = None,
        credential_provider: CredentialProvider | None = None,
        sleep: SleepFunc | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Validated application configuration
            gateway: Gateway to use instead of building one from config;
                the caller keeps ownership of its lifecycle
            credential_provider: Provider to use instead of the static one
            sleep: Backoff sleep function (tests inject a recorder)
        """
        self._config: MainConfig = config
        self._injected_gateway: MessagingGateway | None = gateway
        self._credential_provider: CredentialProvider | None = credential_provider
        self._sleep: SleepFunc | None = sleep
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

        self._exit_stack: AsyncExitStack | None = None
        self._dispatcher: PushDispatcher | None = None
        self._credentials: CredentialCache | None = None

    @property
    def dry_run(self) -> bool:
        return self._config.application.dry_run

    @property
    def dispatcher(self) -> PushDispatcher:
        if self._dispatcher is None:
            msg = "PushService not started. Use 'async with' context manager."
            raise RuntimeError(msg)
        return self._dispatcher

    @property
    def credentials(self) -> CredentialCache:
        if self._credentials is None:
            msg = "PushService not started. Use 'async with' context manager."
            raise RuntimeError(msg)
        return self._credentials

    async def __aenter__(self) -> Self:
        stack = AsyncExitStack()
        try:
            gateway = await self._open_gateway(stack)

            dispatch_config = self._config.dispatch
            self._credentials = CredentialCache(
                self._build_credential_provider(),
                expiry_margin_seconds=self._config.credentials.expiry_margin_seconds,
                fetch_timeout_seconds=self._config.credentials.fetch_timeout_seconds,
            )
            engine = DispatchEngine(
                gateway,
                self._credentials,
                retry_policy=RetryPolicy.from_config(self._config.retry),
                gateway_timeout_seconds=dispatch_config.gateway_timeout_seconds,
                sleep=self._sleep,
            )
            self._dispatcher = PushDispatcher(
                engine,
                self._credentials,
                concurrency=dispatch_config.concurrency,
                max_token_length=dispatch_config.max_token_length,
                default_options=DeliveryOptions(
                    priority=dispatch_config.default_priority,
                    ttl_seconds=dispatch_config.default_ttl_seconds,
                ),
                batch_timeout_seconds=dispatch_config.batch_timeout_seconds,
            )
        except BaseException:
            await stack.aclose()
            raise

        self._exit_stack = stack
        self._logger.info(
            "Push service started (gateway=%s, concurrency=%d)",
            type(gateway).__name__,
            self._config.dispatch.concurrency,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        stack, self._exit_stack = self._exit_stack, None
        self._dispatcher = None
        self._credentials = None
        if stack is not None:
            await stack.aclose()
        self._logger.info("Push service stopped")

    async def dispatch(
        self,
        batch: Iterable[BatchItem],
        *,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
        options: DeliveryOptions | None = None,
    ) -> BatchResult:
        """Dispatch a batch through the configured gateway.

        See ``PushDispatcher.dispatch`` for semantics.
        """
        return await self.dispatcher.dispatch(batch, cancel=cancel, timeout=timeout, options=options)

    async def _open_gateway(self, stack: AsyncExitStack) -> MessagingGateway:
        if self._injected_gateway is not None:
            return self._injected_gateway
        if self.dry_run:
            return await stack.enter_async_context(DryRunGateway())
        return await stack.enter_async_context(
            FCMGateway.from_config(
                self._config.gateway,
                request_timeout_seconds=self._config.dispatch.gateway_timeout_seconds,
            )
        )

    def _build_credential_provider(self) -> CredentialProvider:
        if self._credential_provider is not None:
            return self._credential_provider
        access_token = self._config.credentials.access_token
        if access_token is None and self.dry_run:
            access_token = DRY_RUN_ACCESS_TOKEN
        return StaticCredentialProvider(access_token)
