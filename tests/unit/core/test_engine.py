"""Unit tests for the dispatch engine."""

from __future__ import annotations

import asyncio
import logging

import pytest
from _pytest.logging import LogCaptureFixture

from push_dispatch.core.credentials import CredentialCache
from push_dispatch.core.engine import DispatchEngine
from push_dispatch.core.envelope import Envelope, build_envelope
from push_dispatch.core.outcomes import Delivered, PermanentFailure, TransientFailure
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.types import GatewayResponse

from tests.fixtures.dispatch_doubles import (
    HangingCredentialProvider,
    RecordingSleep,
    ScriptedGateway,
    SequenceCredentialProvider,
)

RECIPIENT = "device-token-0001"


def _envelope(recipient: str = RECIPIENT) -> Envelope:
    return build_envelope(recipient, {"title": "Hello", "body": "World"})


def _engine(
    gateway: ScriptedGateway,
    sleep: RecordingSleep,
    *,
    provider: SequenceCredentialProvider | None = None,
    retry_policy: RetryPolicy | None = None,
    gateway_timeout_seconds: float = 10.0,
) -> DispatchEngine:
    credentials = CredentialCache(provider or SequenceCredentialProvider())
    return DispatchEngine(
        gateway,
        credentials,
        retry_policy=retry_policy,
        gateway_timeout_seconds=gateway_timeout_seconds,
        sleep=sleep,
    )


@pytest.mark.unit
class TestEngineClassification:
    """Test mapping of gateway responses to outcomes."""

    async def test_accepted_is_delivered(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway({RECIPIENT: [GatewayResponse.accepted("projects/demo/messages/77")]})
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == Delivered(message_id="projects/demo/messages/77", attempts=1)
        assert gateway.calls == [(RECIPIENT, "token-1")]
        assert recording_sleep.delays == []

    async def test_permanent_is_never_retried(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {RECIPIENT: [GatewayResponse.permanent("Requested entity was not found.", code="UNREGISTERED")]}
        )
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == PermanentFailure(
            reason="Requested entity was not found.",
            code="UNREGISTERED",
            attempts=1,
        )
        assert gateway.calls_for(RECIPIENT) == 1
        assert recording_sleep.delays == []

    async def test_transient_then_success(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {
                RECIPIENT: [
                    GatewayResponse.transient("unavailable", code="UNAVAILABLE"),
                    GatewayResponse.transient("unavailable", code="UNAVAILABLE"),
                    GatewayResponse.accepted("projects/demo/messages/3"),
                ]
            }
        )
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == Delivered(message_id="projects/demo/messages/3", attempts=3)
        assert recording_sleep.delays == [0.5, 1.0]

    async def test_transient_exhaustion(self, recording_sleep: RecordingSleep) -> None:
        """Four attempts with 0.5s, 1.0s and 2.0s between them, then give up."""
        gateway = ScriptedGateway({RECIPIENT: [GatewayResponse.transient("unavailable")] * 10})
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == TransientFailure(reason="unavailable", attempts=4)
        assert gateway.calls_for(RECIPIENT) == 4
        assert recording_sleep.delays == [0.5, 1.0, 2.0]

    async def test_retry_after_hint_overrides_backoff(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {
                RECIPIENT: [
                    GatewayResponse.transient("quota exceeded", code="QUOTA_EXCEEDED", retry_after=7.0),
                    GatewayResponse.transient("quota exceeded", code="QUOTA_EXCEEDED", retry_after=600.0),
                    GatewayResponse.accepted("m"),
                ]
            }
        )
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert isinstance(outcome, Delivered)
        assert recording_sleep.delays == [7.0, 60.0]

    async def test_custom_retry_budget(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway({RECIPIENT: [GatewayResponse.transient("busy")] * 5})
        engine = _engine(gateway, recording_sleep, retry_policy=RetryPolicy(max_retries=1))

        outcome = await engine.send(_envelope())

        assert outcome == TransientFailure(reason="busy", attempts=2)
        assert recording_sleep.delays == [0.5]


@pytest.mark.unit
class TestEngineFailures:
    """Test timeouts and unexpected gateway errors."""

    async def test_gateway_timeout_is_transient(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(delay=0.2)
        engine = _engine(
            gateway,
            recording_sleep,
            retry_policy=RetryPolicy(max_retries=1),
            gateway_timeout_seconds=0.01,
        )

        outcome = await engine.send(_envelope())

        assert isinstance(outcome, TransientFailure)
        assert "timed out" in outcome.reason
        assert outcome.attempts == 2

    async def test_unexpected_exception_is_permanent(
        self,
        recording_sleep: RecordingSleep,
        caplog: LogCaptureFixture,
    ) -> None:
        gateway = ScriptedGateway({RECIPIENT: [ValueError("boom with Bearer ya29.secret")]})
        engine = _engine(gateway, recording_sleep)
        caplog.set_level(logging.ERROR)

        outcome = await engine.send(_envelope())

        assert isinstance(outcome, PermanentFailure)
        assert outcome.code == "INTERNAL_ERROR"
        assert "ya29.secret" not in outcome.reason
        assert gateway.calls_for(RECIPIENT) == 1
        assert "ya29.secret" not in caplog.text

    async def test_unknown_status_is_permanent(self, recording_sleep: RecordingSleep) -> None:
        unknown = GatewayResponse(status="throttled")  # pyright: ignore[reportArgumentType]
        gateway = ScriptedGateway({RECIPIENT: [unknown] * 10})
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == PermanentFailure(
            reason="unknown gateway status: throttled",
            code="INTERNAL_ERROR",
            attempts=1,
        )
        assert gateway.calls_for(RECIPIENT) == 1
        assert recording_sleep.delays == []

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="gateway_timeout_seconds"):
            _ = DispatchEngine(
                ScriptedGateway(),
                CredentialCache(SequenceCredentialProvider()),
                gateway_timeout_seconds=0,
            )


@pytest.mark.unit
class TestEngineCredentials:
    """Test refresh-on-rejection behaviour."""

    async def test_unauthenticated_refreshes_and_retries_in_place(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {RECIPIENT: [GatewayResponse.unauthenticated("expired"), GatewayResponse.accepted("m-1")]}
        )
        provider = SequenceCredentialProvider()
        engine = _engine(gateway, recording_sleep, provider=provider)

        outcome = await engine.send(_envelope())

        assert outcome == Delivered(message_id="m-1", attempts=2)
        assert gateway.credentials_used() == ["token-1", "token-2"]
        assert provider.calls == 2
        assert recording_sleep.delays == []

    async def test_refresh_does_not_consume_retry_budget(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {RECIPIENT: [GatewayResponse.unauthenticated("expired")] + [GatewayResponse.transient("busy")] * 10}
        )
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == TransientFailure(reason="busy", attempts=5)
        assert recording_sleep.delays == [0.5, 1.0, 2.0]

    async def test_second_rejection_is_permanent(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway(
            {RECIPIENT: [GatewayResponse.unauthenticated("expired"), GatewayResponse.unauthenticated("still bad")]}
        )
        engine = _engine(gateway, recording_sleep)

        outcome = await engine.send(_envelope())

        assert outcome == PermanentFailure(reason="still bad", code="UNAUTHENTICATED", attempts=2)

    async def test_refresh_failure_is_transient(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway({RECIPIENT: [GatewayResponse.unauthenticated("expired")]})
        provider = SequenceCredentialProvider(fail_from=2)
        engine = _engine(gateway, recording_sleep, provider=provider)

        outcome = await engine.send(_envelope())

        assert isinstance(outcome, TransientFailure)
        assert outcome.reason.startswith("credential unavailable:")
        assert outcome.attempts == 1


@pytest.mark.unit
class TestEngineCancellation:
    """Test the stop signal."""

    async def test_stop_before_first_attempt(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway()
        engine = _engine(gateway, recording_sleep)
        stop = asyncio.Event()
        stop.set()

        outcome = await engine.send(_envelope(), stop=stop)

        assert outcome == TransientFailure(reason="cancelled", attempts=0)
        assert gateway.calls == []

    async def test_stop_interrupts_backoff(self) -> None:
        gateway = ScriptedGateway({RECIPIENT: [GatewayResponse.transient("busy")] * 4})
        credentials = CredentialCache(SequenceCredentialProvider())
        engine = DispatchEngine(
            gateway,
            credentials,
            retry_policy=RetryPolicy(base_delay=30.0, max_delay=30.0),
        )
        stop = asyncio.Event()

        task = asyncio.create_task(engine.send(_envelope(), stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome == TransientFailure(reason="cancelled", attempts=1)
        assert gateway.calls_for(RECIPIENT) == 1

    async def test_stop_abandons_pending_credential_fetch(self, recording_sleep: RecordingSleep) -> None:
        gateway = ScriptedGateway()
        provider = HangingCredentialProvider()
        engine = DispatchEngine(gateway, CredentialCache(provider), sleep=recording_sleep)
        stop = asyncio.Event()

        task = asyncio.create_task(engine.send(_envelope(), stop=stop))
        await asyncio.sleep(0.05)
        stop.set()
        outcome = await asyncio.wait_for(task, timeout=1.0)

        assert outcome == TransientFailure(reason="cancelled", attempts=0)
        assert gateway.calls == []
        assert provider.abandoned == 1
