"""Unit tests for the PushService lifecycle wrapper."""

from __future__ import annotations

import aiohttp
import pytest

from push_dispatch.core.config import MainConfig
from push_dispatch.core.errors import CredentialUnavailableError
from push_dispatch.core.outcomes import Delivered, TransientFailure
from push_dispatch.core.service import DRY_RUN_ACCESS_TOKEN, PushService
from push_dispatch.gateway.dry_run import DryRunGateway
from push_dispatch.gateway.fcm import FCMGateway
from push_dispatch.types import GatewayResponse

from tests.fixtures.dispatch_doubles import RecordingSleep, ScriptedGateway, SequenceCredentialProvider


def _config(**sections: dict[str, object]) -> MainConfig:
    return MainConfig.model_validate({"gateway": {"project_id": "demo-project"}, **sections})


@pytest.mark.unit
class TestPushServiceLifecycle:
    """Test construction and teardown of the dispatch stack."""

    def test_dispatcher_requires_context(self) -> None:
        service = PushService(_config())

        with pytest.raises(RuntimeError, match="not started"):
            _ = service.dispatcher
        with pytest.raises(RuntimeError, match="not started"):
            _ = service.credentials

    async def test_builds_fcm_gateway_and_closes_session(self, monkeypatch: pytest.MonkeyPatch) -> None:
        opened: list[FCMGateway] = []
        original_aenter = FCMGateway.__aenter__

        async def _tracking_aenter(self: FCMGateway) -> FCMGateway:
            opened.append(self)
            return await original_aenter(self)

        monkeypatch.setattr(FCMGateway, "__aenter__", _tracking_aenter)
        service = PushService(_config(credentials={"access_token": "ya29.configured"}))

        async with service:
            assert len(opened) == 1
            assert isinstance(opened[0]._session, aiohttp.ClientSession)  # pyright: ignore[reportPrivateUsage]  # testing internal state

        assert opened[0]._session is None  # pyright: ignore[reportPrivateUsage]  # testing internal state
        with pytest.raises(RuntimeError):
            _ = service.dispatcher

    async def test_dry_run_uses_placeholder_credential(self) -> None:
        service = PushService(_config(application={"dry_run": True}))

        async with service:
            assert service.dry_run is True
            result = await service.dispatch([("device-token-0001", {"title": "Hello"})])
            token = service.credentials.current

        assert isinstance(result[0], Delivered)
        assert result[0].message_id.startswith("dry-run-")
        assert token is not None
        assert token.value == DRY_RUN_ACCESS_TOKEN

    async def test_missing_credential_fails_batch(self) -> None:
        gateway = ScriptedGateway()

        async with PushService(_config(), gateway=gateway) as service:
            with pytest.raises(CredentialUnavailableError, match="No access token configured"):
                _ = await service.dispatch([("device-token-0001", {"title": "Hello"})])

        assert gateway.calls == []


@pytest.mark.unit
class TestPushServiceDispatch:
    """Test that configuration flows through to dispatch behaviour."""

    async def test_injected_gateway_and_retry_config(self) -> None:
        gateway = ScriptedGateway({"device-a": [GatewayResponse.transient("busy")] * 5})
        provider = SequenceCredentialProvider()
        sleep = RecordingSleep()
        config = _config(retry={"max_retries": 2, "base_delay_seconds": 0.25})

        async with PushService(config, gateway=gateway, credential_provider=provider, sleep=sleep) as service:
            result = await service.dispatch([("device-a", {"title": "Hi"}), ("device-b", {"title": "Hi"})])

        assert result[0] == TransientFailure(reason="busy", attempts=3)
        assert isinstance(result[1], Delivered)
        assert sleep.delays == [0.25, 0.5]
        assert provider.calls == 1

    async def test_injected_gateway_is_not_entered(self) -> None:
        gateway = DryRunGateway()
        provider = SequenceCredentialProvider()

        async with PushService(_config(), gateway=gateway, credential_provider=provider) as service:
            _ = await service.dispatch([("device-a", {"title": "Hi"})])

        assert len(gateway.sent) == 1

    async def test_default_delivery_options_from_config(self) -> None:
        gateway = DryRunGateway()
        config = _config(dispatch={"default_priority": "high", "default_ttl_seconds": 300})

        async with PushService(config, gateway=gateway, credential_provider=SequenceCredentialProvider()) as service:
            _ = await service.dispatch([("device-a", {"title": "Hi"})])

        options = gateway.sent[0].options
        assert options.priority == "high"
        assert options.ttl_seconds == 300
