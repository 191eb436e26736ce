"""Firebase Cloud Messaging HTTP v1 gateway.

This module provides the aiohttp-based gateway that submits envelopes to
``projects/{project_id}/messages:send`` and classifies each HTTP response
into a ``GatewayResponse``. Retries are not performed here; the dispatch
engine decides what to do with a transient classification.

Classification:
- 2xx: accepted, the response ``name`` is the message id
- 401: credential rejected (third-party auth errors are permanent)
- 429 and 5xx: transient, honoring ``Retry-After``
- other 4xx: permanent, coded by the FCM ``errorCode`` or ``error.status``
- timeouts and connection errors: transient
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Final, Self

import aiohttp

from push_dispatch.core.config import DEFAULT_GATEWAY_BASE_URL
from push_dispatch.types.models import GatewayResponse
from push_dispatch.utils.sanitization import mask_recipient, sanitize_text

if TYPE_CHECKING:
    from push_dispatch.core.config import GatewayConfig
    from push_dispatch.core.envelope import Envelope
    from push_dispatch.types.models import BearerToken

__all__ = ["FCMGateway", "classify_response", "parse_retry_after"]

_FCM_ERROR_TYPE: Final[str] = "type.googleapis.com/google.firebase.fcm.v1.FcmError"

# 401 codes that a fresh credential cannot fix
_PERMANENT_AUTH_CODES: Final[frozenset[str]] = frozenset({"THIRD_PARTY_AUTH_ERROR"})

_logger = logging.getLogger(__name__)


def parse_retry_after(headers: Mapping[str, str]) -> float | None:
    """Parse the Retry-After header of a gateway response.

    Only the delay-seconds form is supported.

    Args:
        headers: HTTP response headers

    Returns:
        Delay in seconds, or None if the header is absent or invalid
    """
    retry_after = headers.get("Retry-After") or headers.get("retry-after")
    if not retry_after:
        return None

    try:
        delay = float(retry_after)
    except ValueError:
        _logger.warning("Retry-After header has unsupported format: %s", retry_after)
        return None
    return delay if delay >= 0 else None


def _error_details(body: Mapping[str, object]) -> tuple[str | None, str | None]:
    """Extract (code, message) from an FCM error body."""
    error = body.get("error")
    if not isinstance(error, Mapping):
        return None, None

    message = error.get("message")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
    reason = str(message) if message else None  # pyright: ignore[reportUnknownArgumentType]

    details = error.get("details")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
    if isinstance(details, list):
        for detail in details:  # pyright: ignore[reportUnknownVariableType]
            if not isinstance(detail, Mapping):
                continue
            error_code = detail.get("errorCode")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
            if error_code and detail.get("@type", _FCM_ERROR_TYPE) == _FCM_ERROR_TYPE:  # pyright: ignore[reportUnknownMemberType]
                return str(error_code), reason  # pyright: ignore[reportUnknownArgumentType]

    status = error.get("status")  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
    return (str(status) if status else None), reason  # pyright: ignore[reportUnknownArgumentType]


def classify_response(
    status: int,
    body: Mapping[str, object],
    headers: Mapping[str, str],
) -> GatewayResponse:
    """Translate an HTTP response from the send endpoint into a gateway response.

    Args:
        status: HTTP status code
        body: Decoded JSON body (empty when the body was not JSON)
        headers: Response headers

    Returns:
        Classified gateway response
    """
    if 200 <= status < 300:
        name = body.get("name")
        return GatewayResponse.accepted(str(name) if name else "")

    code, message = _error_details(body)
    reason = sanitize_text(message) if message else f"HTTP {status}"

    if status == 401:
        if code in _PERMANENT_AUTH_CODES:
            return GatewayResponse.permanent(reason, code=code)
        return GatewayResponse.unauthenticated(reason, code=code or "UNAUTHENTICATED")

    if status == 429 or status >= 500:
        return GatewayResponse.transient(
            reason,
            code=code or f"HTTP_{status}",
            retry_after=parse_retry_after(headers),
        )

    return GatewayResponse.permanent(reason, code=code or f"HTTP_{status}")


class FCMGateway:
    """Messaging gateway backed by the FCM HTTP v1 API.

    Implements the MessagingGateway Protocol using one shared aiohttp
    session for all requests.

    Example:
        >>> async with FCMGateway(project_id="demo-project") as gateway:
        ...     response = await gateway.send(envelope, credential)
    """

    def __init__(
        self,
        *,
        project_id: str,
        base_url: str = DEFAULT_GATEWAY_BASE_URL,
        validate_only: bool = False,
        request_timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the gateway.

        Args:
            project_id: Project that owns the messaging sender
            base_url: API base URL
            validate_only: Ask the gateway to validate without delivering
            request_timeout_seconds: Total timeout configured on the session
        """
        self._project_id: str = project_id
        self._base_url: str = base_url.rstrip("/")
        self._validate_only: bool = validate_only
        self._request_timeout_seconds: float = request_timeout_seconds

        # aiohttp session (created in __aenter__)
        self._session: aiohttp.ClientSession | None = None

        self._logger: logging.Logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: GatewayConfig, *, request_timeout_seconds: float = 10.0) -> Self:
        return cls(
            project_id=config.project_id,
            base_url=config.base_url,
            validate_only=config.validate_only,
            request_timeout_seconds=request_timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/v1/projects/{self._project_id}/messages:send"

    async def __aenter__(self) -> Self:
        """Enter async context manager and create aiohttp session.

        Returns:
            Self for context manager protocol
        """
        timeout = aiohttp.ClientTimeout(total=self._request_timeout_seconds)
        self._session = aiohttp.ClientSession(
            timeout=timeout,
            json_serialize=json.dumps,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager and close the session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def build_request_body(self, envelope: Envelope) -> dict[str, object]:
        """Render the JSON body for the send endpoint."""
        body: dict[str, object] = {"message": envelope.to_message()}
        if self._validate_only:
            body["validate_only"] = True
        return body

    async def send(self, envelope: Envelope, credential: BearerToken) -> GatewayResponse:
        """Submit one envelope and classify the response.

        Raises:
            RuntimeError: If the session has not been opened
        """
        if self._session is None:
            msg = "Gateway session not initialized. Use 'async with' context manager."
            raise RuntimeError(msg)

        recipient = mask_recipient(envelope.recipient)
        headers = {
            "Authorization": f"Bearer {credential.value}",
            "Content-Type": "application/json; charset=UTF-8",
        }

        self._logger.debug("Submitting message for %s", recipient)

        try:
            async with self._session.post(
                self.endpoint,
                json=self.build_request_body(envelope),
                headers=headers,
            ) as response:
                body: Mapping[str, object]
                try:
                    decoded: object = await response.json()  # pyright: ignore[reportAny]  # aiohttp returns Any
                except (aiohttp.ContentTypeError, ValueError):
                    decoded = {}
                body = decoded if isinstance(decoded, Mapping) else {}  # pyright: ignore[reportUnknownVariableType]

                result = classify_response(response.status, body, dict(response.headers))  # pyright: ignore[reportUnknownArgumentType]
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            self._logger.warning("Request for %s timed out", recipient)
            return GatewayResponse.transient("gateway request timed out", code="TIMEOUT")
        except aiohttp.InvalidURL as exc:
            self._logger.error("Invalid gateway URL: %s", self.endpoint)
            return GatewayResponse.permanent(f"Malformed URL: {exc}", code="INVALID_URL")
        except aiohttp.ClientConnectionError as exc:
            self._logger.warning("Connection error for %s: %s", recipient, exc)
            return GatewayResponse.transient(f"connection error: {sanitize_text(str(exc))}", code="UNAVAILABLE")
        except aiohttp.ClientError as exc:
            self._logger.warning("Client error for %s: %s", recipient, exc)
            return GatewayResponse.transient(f"client error: {sanitize_text(str(exc))}", code="CLIENT_ERROR")

        self._logger.debug(
            "Gateway classified response for %s as %s (status=%d)",
            recipient,
            result.status,
            response.status,
        )
        return result
