"""Push Dispatch - reliable batch delivery of push notifications.

This package validates (recipient token, payload) pairs, builds immutable
notification envelopes, sends them to a cloud messaging gateway with
retry and backoff, and reports one outcome per input in input order.
"""

from push_dispatch.core.credentials import CredentialCache, StaticCredentialProvider
from push_dispatch.core.dispatcher import PushDispatcher
from push_dispatch.core.engine import DispatchEngine
from push_dispatch.core.envelope import DeliveryOptions, Envelope, NotificationPayload, build_envelope
from push_dispatch.core.errors import (
    BatchInputError,
    CredentialUnavailableError,
    InvalidPayloadError,
    InvalidRecipientError,
    PushDispatchError,
)
from push_dispatch.core.outcomes import (
    BatchResult,
    Delivered,
    DispatchOutcome,
    InvalidRecipient,
    OutcomeKind,
    PermanentFailure,
    TransientFailure,
)
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.core.service import PushService
from push_dispatch.core.validation import validate_recipient
from push_dispatch.types import BearerToken, CredentialProvider, GatewayResponse, GatewayStatus, MessagingGateway

__all__ = [
    # Caller API
    "PushDispatcher",
    "PushService",
    # Building blocks
    "CredentialCache",
    "DeliveryOptions",
    "DispatchEngine",
    "Envelope",
    "NotificationPayload",
    "RetryPolicy",
    "StaticCredentialProvider",
    "build_envelope",
    "validate_recipient",
    # Outcomes
    "BatchResult",
    "Delivered",
    "DispatchOutcome",
    "InvalidRecipient",
    "OutcomeKind",
    "PermanentFailure",
    "TransientFailure",
    # Collaborators
    "BearerToken",
    "CredentialProvider",
    "GatewayResponse",
    "GatewayStatus",
    "MessagingGateway",
    # Errors
    "BatchInputError",
    "CredentialUnavailableError",
    "InvalidPayloadError",
    "InvalidRecipientError",
    "PushDispatchError",
]
