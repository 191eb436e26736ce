"""Type definitions and protocols for push-dispatch.

This package provides:
- Data models exchanged with external collaborators (immutable dataclasses)
- Protocol definitions for the credential provider and messaging gateway
"""

from push_dispatch.types.models import (
    BearerToken,
    GatewayResponse,
    GatewayStatus,
)
from push_dispatch.types.protocols import (
    CredentialProvider,
    MessagingGateway,
)

__all__ = [
    # Data models
    "BearerToken",
    "GatewayResponse",
    "GatewayStatus",
    # Protocols
    "CredentialProvider",
    "MessagingGateway",
]
