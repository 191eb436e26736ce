"""Notification payload and envelope models.

The message builder turns caller-supplied payloads into immutable
envelopes. Envelopes render to the gateway ``message`` object
deterministically: equal inputs always produce equal envelopes and
byte-identical rendered messages.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Annotated, Literal, override

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from push_dispatch.core.errors import InvalidPayloadError

# Upper bound accepted by the gateway for message time-to-live (28 days)
MAX_TTL_SECONDS = 2_419_200

Priority = Literal["normal", "high"]


class NotificationPayload(BaseModel):
    """Caller-supplied notification content."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        frozen=True,
        strict=True,
    )

    title: Annotated[str, Field(description="Notification title shown to the user")] = ""
    body: Annotated[str, Field(description="Notification body shown to the user")] = ""
    data: Annotated[
        Mapping[str, str],
        Field(description="Custom key/value data delivered to the application"),
    ] = Field(default_factory=lambda: MappingProxyType({}))

    @field_validator("data")
    @classmethod
    def freeze_data(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Store a read-only copy so built envelopes cannot change."""
        return MappingProxyType(dict(v))

    def is_empty(self) -> bool:
        """Check whether the payload carries nothing to deliver."""
        return not (self.title or self.body or self.data)

    @override
    def __hash__(self) -> int:
        return hash((self.title, self.body, tuple(sorted(self.data.items()))))

    @override
    def __str__(self) -> str:
        return f"NotificationPayload(title='{self.title}', data_keys={sorted(self.data)})"


class DeliveryOptions(BaseModel):
    """Optional delivery metadata attached to an envelope."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        frozen=True,
    )

    priority: Annotated[Priority, Field(description="Delivery priority")] = "normal"
    ttl_seconds: Annotated[
        int | None,
        Field(ge=0, le=MAX_TTL_SECONDS, description="Time-to-live for undelivered messages"),
    ] = None
    collapse_key: Annotated[
        str | None,
        Field(min_length=1, max_length=64, description="Replace pending messages sharing this key"),
    ] = None


class Envelope(BaseModel):
    """Fully assembled notification request ready for transmission."""

    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        frozen=True,
    )

    recipient: str = Field(repr=False)
    payload: NotificationPayload
    options: DeliveryOptions = Field(default_factory=DeliveryOptions)

    def to_message(self) -> dict[str, object]:
        """Render the gateway ``message`` object for this envelope.

        Returns:
            JSON-serialisable mapping with keys in a stable order
        """
        message: dict[str, object] = {"token": self.recipient}

        notification: dict[str, str] = {}
        if self.payload.title:
            notification["title"] = self.payload.title
        if self.payload.body:
            notification["body"] = self.payload.body
        if notification:
            message["notification"] = notification

        if self.payload.data:
            message["data"] = {key: self.payload.data[key] for key in sorted(self.payload.data)}

        android: dict[str, object] = {"priority": "high" if self.options.priority == "high" else "normal"}
        if self.options.ttl_seconds is not None:
            android["ttl"] = f"{self.options.ttl_seconds}s"
        if self.options.collapse_key is not None:
            android["collapse_key"] = self.options.collapse_key
        message["android"] = android

        apns_headers: dict[str, str] = {"apns-priority": "10" if self.options.priority == "high" else "5"}
        if self.options.collapse_key is not None:
            apns_headers["apns-collapse-id"] = self.options.collapse_key
        message["apns"] = {"headers": apns_headers}

        return message


def build_envelope(
    recipient: str,
    payload: NotificationPayload | Mapping[str, object],
    options: DeliveryOptions | None = None,
) -> Envelope:
    """Assemble an envelope from a validated recipient and raw payload.

    Args:
        recipient: Recipient token already accepted by the token validator
        payload: Payload model or plain mapping with title/body/data
        options: Delivery metadata (defaults to normal priority, no TTL)

    Returns:
        Immutable envelope

    Raises:
        InvalidPayloadError: If the payload is malformed or carries no content
    """
    if isinstance(payload, NotificationPayload):
        model = payload
    elif isinstance(payload, Mapping):
        try:
            model = NotificationPayload.model_validate(dict(payload))
        except ValidationError as exc:
            fields = sorted({".".join(str(loc) for loc in error["loc"]) for error in exc.errors()})
            msg = f"Malformed payload fields: {', '.join(fields) or 'root'}"
            raise InvalidPayloadError(msg, {"fields": fields}) from exc
    else:
        msg = f"Payload must be a mapping, got {type(payload).__name__}"
        raise InvalidPayloadError(msg)

    if model.is_empty():
        raise InvalidPayloadError("Payload has no title, body or data")

    return Envelope(
        recipient=recipient,
        payload=model,
        options=options or DeliveryOptions(),
    )
