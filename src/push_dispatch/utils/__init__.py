"""Shared utility modules.

This package provides:
- Logging setup with correlation IDs and secret redaction
- Sanitization helpers for tokens in logs and error messages
"""

from push_dispatch.utils.logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)
from push_dispatch.utils.sanitization import (
    REDACTED,
    mask_recipient,
    sanitize_exception,
    sanitize_text,
    sanitize_value,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_with_context",
    "set_correlation_id",
    # Sanitization
    "REDACTED",
    "mask_recipient",
    "sanitize_exception",
    "sanitize_text",
    "sanitize_value",
]
