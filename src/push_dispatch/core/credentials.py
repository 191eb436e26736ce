"""Credential caching and the static credential provider.

The cache fetches a bearer token lazily, shares it read-only across all
in-flight sends, and replaces it only when the gateway rejects it or it
reaches its expiry margin. Concurrent refresh requests are coalesced so the
provider is called once per stale token.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from push_dispatch.core.errors import CredentialUnavailableError
from push_dispatch.types.models import BearerToken
from push_dispatch.utils.logging import get_logger, log_with_context
from push_dispatch.utils.sanitization import sanitize_exception

if TYPE_CHECKING:
    from collections.abc import Callable

    from push_dispatch.types.protocols import CredentialProvider

__all__ = ["CredentialCache", "StaticCredentialProvider"]


class StaticCredentialProvider:
    """Credential provider returning a fixed, externally obtained token."""

    def __init__(self, access_token: str | None, *, expires_at: datetime | None = None) -> None:
        self._access_token: str | None = access_token
        self._expires_at: datetime | None = expires_at

    async def get_token(self) -> BearerToken:
        if not self._access_token:
            raise CredentialUnavailableError("No access token configured")
        return BearerToken(value=self._access_token, expires_at=self._expires_at)


class CredentialCache:
    """Lazily fetched, shared bearer token with refresh-on-failure."""

    def __init__(
        self,
        provider: CredentialProvider,
        *,
        expiry_margin_seconds: float = 60.0,
        fetch_timeout_seconds: float = 30.0,
        clock: Callable[[], datetime] | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if fetch_timeout_seconds <= 0:
            msg = "fetch_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._provider: CredentialProvider = provider
        self._expiry_margin_seconds: float = expiry_margin_seconds
        self._fetch_timeout_seconds: float = fetch_timeout_seconds
        self._clock: Callable[[], datetime] = clock or (lambda: datetime.now(tz=UTC))
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._token: BearerToken | None = None
        self._lock: asyncio.Lock = asyncio.Lock()
        self.fetch_count: int = 0

    @property
    def current(self) -> BearerToken | None:
        """The cached token, if any, without triggering a fetch."""
        return self._token

    async def get(self) -> BearerToken:
        """Return a usable bearer token, fetching one if needed.

        Raises:
            CredentialUnavailableError: If the provider cannot supply a token
        """
        token = self._token
        if token is not None and not self._is_stale(token):
            return token

        async with self._lock:
            token = self._token
            if token is not None and not self._is_stale(token):
                return token
            self._token = await self._fetch()
            return self._token

    async def get_unless_stopped(self, stop: asyncio.Event | None) -> BearerToken | None:
        """Return a usable bearer token, giving up once ``stop`` is set.

        Returns:
            The token, or None if ``stop`` was set before one was available

        Raises:
            CredentialUnavailableError: If the provider cannot supply a token
        """
        if stop is None:
            return await self.get()
        if stop.is_set():
            return None

        fetch = asyncio.ensure_future(self.get())
        waiter = asyncio.ensure_future(stop.wait())
        try:
            _ = await asyncio.wait({fetch, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (fetch, waiter):
                if not task.done():
                    _ = task.cancel()
            _ = await asyncio.gather(fetch, waiter, return_exceptions=True)

        if fetch.cancelled():
            self._logger.info("Credential fetch abandoned: dispatch stopped")
            return None
        return fetch.result()

    def invalidate(self, stale: BearerToken) -> bool:
        """Drop the cached token if it is the one the gateway rejected.

        Tokens already replaced by a concurrent refresh are left alone.

        Returns:
            True if the cached token was dropped
        """
        if self._token is not None and self._token == stale:
            self._token = None
            self._logger.info("Cached credential invalidated after gateway rejection")
            return True
        return False

    def _is_stale(self, token: BearerToken) -> bool:
        return token.is_expired(now=self._clock(), margin_seconds=self._expiry_margin_seconds)

    async def _fetch(self) -> BearerToken:
        self.fetch_count += 1
        try:
            async with asyncio.timeout(self._fetch_timeout_seconds):
                token = await self._provider.get_token()
        except TimeoutError as exc:
            self._logger.error(
                "Credential provider did not respond within %.2fs",
                self._fetch_timeout_seconds,
            )
            msg = f"Credential provider timed out after {self._fetch_timeout_seconds:.2f}s"
            raise CredentialUnavailableError(msg) from exc
        except CredentialUnavailableError:
            self._logger.error("Credential provider could not supply a token")
            raise
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.ERROR,
                "Credential provider raised an unexpected error",
                extra={"error_message": sanitize_exception(exc)},
            )
            msg = f"Credential provider failed: {sanitize_exception(exc)}"
            raise CredentialUnavailableError(msg) from exc

        if not isinstance(token, BearerToken) or not token.value:
            raise CredentialUnavailableError("Credential provider returned an empty token")

        log_with_context(
            self._logger,
            logging.DEBUG,
            "Fetched gateway credential",
            extra={"expires_at": token.expires_at.isoformat() if token.expires_at else None},
        )
        return token
