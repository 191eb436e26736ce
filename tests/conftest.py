"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import pytest

from push_dispatch.core.credentials import CredentialCache
from push_dispatch.core.dispatcher import PushDispatcher
from push_dispatch.core.engine import DispatchEngine
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.types import CredentialProvider
from push_dispatch.utils.logging import clear_correlation_id
from tests.fixtures.dispatch_doubles import RecordingSleep, ScriptedGateway, SequenceCredentialProvider

type DispatcherFactory = Callable[..., PushDispatcher]


@pytest.fixture(autouse=True)
def _reset_correlation_id() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def credential_provider() -> SequenceCredentialProvider:
    return SequenceCredentialProvider()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_dispatcher(
    credential_provider: SequenceCredentialProvider,
    recording_sleep: RecordingSleep,
) -> DispatcherFactory:
    """Build a dispatcher wired to the given gateway with recorded backoff."""

    def _factory(
        gateway: ScriptedGateway,
        *,
        provider: CredentialProvider | None = None,
        concurrency: int = 10,
        retry_policy: RetryPolicy | None = None,
        gateway_timeout_seconds: float = 10.0,
        max_token_length: int = 4096,
        batch_timeout_seconds: float | None = None,
    ) -> PushDispatcher:
        credentials = CredentialCache(provider or credential_provider)
        engine = DispatchEngine(
            gateway,
            credentials,
            retry_policy=retry_policy,
            gateway_timeout_seconds=gateway_timeout_seconds,
            sleep=recording_sleep,
        )
        return PushDispatcher(
            engine,
            credentials,
            concurrency=concurrency,
            max_token_length=max_token_length,
            batch_timeout_seconds=batch_timeout_seconds,
            batch_id_factory=lambda: "batch-1",
        )

    return _factory
