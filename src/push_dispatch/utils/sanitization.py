"""Secret sanitization utilities for logging and error messages.

This module provides utilities to sanitize sensitive information (bearer
tokens, authorization headers, recipient device tokens) from strings and
structured data before logging or displaying in error messages.

Examples:
    >>> sanitize_text("Authorization: Bearer ya29.a0AfH6SM")
    'Authorization: Bearer <REDACTED>'

    >>> sanitize_value({"access_token": "ya29.secret", "count": 42})
    {'access_token': '<REDACTED>', 'count': 42}

    >>> mask_recipient("dGhpcyBpcyBhIGRldmljZSB0b2tlbg")
    'dGhpcyBp<REDACTED>'
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Final, TypeIs

# Redaction marker for sanitized values
REDACTED: Final[str] = "<REDACTED>"

# Number of leading recipient token characters kept for correlation in logs
RECIPIENT_PREFIX_LENGTH: Final[int] = 8

# Authorization header values: "Bearer <token>"
_BEARER_PATTERN = re.compile(r"(\bBearer\s+)([A-Za-z0-9\-._~+/]+=*)", re.IGNORECASE)

# Google OAuth access tokens appearing bare in text
_OAUTH_ACCESS_TOKEN_PATTERN = re.compile(r"\bya29\.[A-Za-z0-9\-._~+/]+")

# Tokens passed in URL query parameters
_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|access_token|api[-_]?key|auth|key|secret)=)([^&\s]+)",
    re.IGNORECASE,
)

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r"^authorization$",
        r".*bearer.*",
        r".*api[-_]?key.*",
    ]
]

# Fields that hold recipient tokens: masked to a prefix instead of fully redacted
_RECIPIENT_FIELD_PATTERN = re.compile(r"^(recipient|device_token|registration_token)$", re.IGNORECASE)


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check (e.g., "access_token")

    Returns:
        True if the field name matches sensitive patterns

    Examples:
        >>> is_sensitive_field("access_token")
        True
        >>> is_sensitive_field("message_id")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def mask_recipient(token: str) -> str:
    """Shorten a recipient token to a non-identifying prefix.

    Args:
        token: Recipient device token

    Returns:
        Prefix of the token followed by the redaction marker
    """
    if len(token) <= RECIPIENT_PREFIX_LENGTH:
        return REDACTED
    return f"{token[:RECIPIENT_PREFIX_LENGTH]}{REDACTED}"


def sanitize_text(text: str) -> str:
    """Redact bearer tokens and token-bearing query parameters from text.

    Args:
        text: Free-form text such as a log message or exception string

    Returns:
        Text with secrets replaced by the redaction marker
    """
    if not text or not isinstance(text, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        return text

    sanitized = _BEARER_PATTERN.sub(rf"\1{REDACTED}", text)
    sanitized = _OAUTH_ACCESS_TOKEN_PATTERN.sub(REDACTED, sanitized)
    return _TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", sanitized)


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    This function walks through nested data structures (dicts, lists, tuples)
    and sanitizes sensitive values based on:
    1. Field name patterns (e.g., "token", "secret", "authorization")
    2. Recipient field names, masked to a short prefix
    3. Secret patterns inside string values

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker
    """
    if field_name and _RECIPIENT_FIELD_PATTERN.match(field_name) and isinstance(value, str):
        return mask_recipient(value)

    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_text(value)
        return value

    if _is_mapping(value):
        sanitized_dict: dict[str, object] = {
            key: sanitize_value(val, field_name=str(key)) for key, val in value.items()
        }
        return sanitized_dict

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Fail-safe for unexpected types
    return sanitize_text(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Args:
        exc: The exception to sanitize

    Returns:
        Sanitized exception message safe for logging

    Examples:
        >>> sanitize_exception(ValueError("rejected Bearer abc.def"))
        'ValueError: rejected Bearer <REDACTED>'
    """
    return f"{type(exc).__name__}: {sanitize_text(str(exc))}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)
