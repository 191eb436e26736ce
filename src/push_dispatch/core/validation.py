"""Recipient token validation.

Tokens are opaque: they are checked for presence and size only and are
never parsed for meaning.
"""

from __future__ import annotations

from typing import Final

from push_dispatch.core.errors import InvalidRecipientError

# Vendor tokens are typically under 200 bytes; this is a ceiling, not a format.
DEFAULT_MAX_TOKEN_LENGTH: Final[int] = 4096


def validate_recipient(token: object, *, max_length: int = DEFAULT_MAX_TOKEN_LENGTH) -> str:
    """Accept or reject a recipient token before dispatch.

    Args:
        token: Caller-supplied recipient identifier
        max_length: Maximum token size in UTF-8 encoded bytes

    Returns:
        The token unchanged

    Raises:
        InvalidRecipientError: If the token is not a string, is empty, or
            exceeds ``max_length`` bytes

    Examples:
        >>> validate_recipient("device-token-1")
        'device-token-1'
        >>> validate_recipient("")
        Traceback (most recent call last):
        ...
        push_dispatch.core.errors.InvalidRecipientError: Recipient token is empty
    """
    if not isinstance(token, str):
        msg = f"Recipient token must be a string, got {type(token).__name__}"
        raise InvalidRecipientError(msg)

    if not token:
        raise InvalidRecipientError("Recipient token is empty")

    size = len(token.encode("utf-8"))
    if size > max_length:
        msg = f"Recipient token is {size} bytes, exceeding the {max_length} byte limit"
        raise InvalidRecipientError(msg, {"size": size, "max_length": max_length})

    return token
