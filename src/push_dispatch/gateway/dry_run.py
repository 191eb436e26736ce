"""Gateway that records messages without contacting the network."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Self
from uuid import uuid4

from push_dispatch.types.models import GatewayResponse
from push_dispatch.utils.logging import get_logger, log_with_context
from push_dispatch.utils.sanitization import mask_recipient

if TYPE_CHECKING:
    from push_dispatch.core.envelope import Envelope
    from push_dispatch.types.models import BearerToken

__all__ = ["DryRunGateway"]


class DryRunGateway:
    """Accept every envelope and log what would have been sent."""

    def __init__(self, *, logger_obj: logging.Logger | None = None) -> None:
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self.sent: list[Envelope] = []

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        return None

    async def send(self, envelope: Envelope, credential: BearerToken) -> GatewayResponse:  # noqa: ARG002
        message_id = f"dry-run-{uuid4().hex}"
        message = envelope.to_message()
        message["token"] = mask_recipient(envelope.recipient)
        log_with_context(
            self._logger,
            logging.INFO,
            "Dry-run message recorded",
            extra={"message_id": message_id, "notification_payload": message},
        )
        self.sent.append(envelope)
        return GatewayResponse.accepted(message_id)
