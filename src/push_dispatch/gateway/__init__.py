"""Messaging gateway implementations.

This package provides:
- FCMGateway: Firebase Cloud Messaging HTTP v1 over aiohttp
- DryRunGateway: logs messages and accepts them without network access
"""

from push_dispatch.gateway.dry_run import DryRunGateway
from push_dispatch.gateway.fcm import FCMGateway, classify_response, parse_retry_after

__all__ = [
    "DryRunGateway",
    "FCMGateway",
    "classify_response",
    "parse_retry_after",
]
