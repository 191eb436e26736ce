"""Protocol definitions for external collaborators.

This module defines structural subtyping protocols for the two services the
dispatch core depends on but does not implement: the credential provider and
the messaging gateway.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from push_dispatch.core.envelope import Envelope
    from push_dispatch.types.models import BearerToken, GatewayResponse


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol for suppliers of gateway bearer tokens.

    The dispatch core calls ``get_token`` lazily and caches the result until
    the gateway reports it as stale or it expires.
    """

    async def get_token(self) -> BearerToken:
        """Obtain a bearer token for gateway requests.

        Returns:
            Short-lived bearer token

        Raises:
            CredentialUnavailableError: If no token can be supplied
        """
        ...


@runtime_checkable
class MessagingGateway(Protocol):
    """Protocol for the cloud messaging endpoint.

    Implementations translate their wire format into a ``GatewayResponse``
    and must not raise for per-message errors; network failures and
    timeouts are reported as transient responses.
    """

    async def send(self, envelope: Envelope, credential: BearerToken) -> GatewayResponse:
        """Submit one envelope to the gateway.

        Args:
            envelope: Fully built notification envelope
            credential: Bearer token authenticating the request

        Returns:
            Classified gateway response
        """
        ...
