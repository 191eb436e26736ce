"""Exception hierarchy for the dispatch core."""

from __future__ import annotations


class PushDispatchError(Exception):
    """Base exception for all push-dispatch errors."""

    def __init__(self, message: str, context: dict[str, object] | None = None) -> None:
        """Initialize PushDispatchError.

        Args:
            message: Error message
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.context: dict[str, object] = context or {}


class InvalidRecipientError(PushDispatchError):
    """Raised when a recipient token is rejected before dispatch."""


class InvalidPayloadError(PushDispatchError):
    """Raised when a notification payload cannot be turned into an envelope."""


class CredentialUnavailableError(PushDispatchError):
    """Raised when the credential provider cannot supply a bearer token.

    Fatal for a whole batch when it happens before the first send.
    """


class BatchInputError(PushDispatchError, ValueError):
    """Raised for malformed batch input, such as an empty batch."""

    def __init__(
        self,
        message: str,
        index: int | None = None,
        context: dict[str, object] | None = None,
    ) -> None:
        """Initialize BatchInputError.

        Args:
            message: Error message
            index: Position of the offending batch item, if any
            context: Additional context information
        """
        full_context = context or {}
        if index is not None:
            full_context["index"] = index
        super().__init__(message, full_context)
        self.index: int | None = index
