"""
Platform adapter interface.

Adapters encapsulate platform-specific logic and expose a normalized
message format to the relay core. The broadcaster and the webhook command
only ever talk to this interface.
"""

from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from app.core.exceptions import DeliveryError
from app.schemas.relay import (
    InboundMessage,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)

DEFAULT_TIMEOUT_SECONDS = 10.0


class BasePlatformAdapter(ABC):
    """Contract for platform adapters. New platforms implement this interface."""

    platform: Platform

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout = timeout
        self._client = client

    @abstractmethod
    def parse_webhook(self, raw_payload: dict[str, Any]) -> InboundMessage:
        """Parse raw webhook payload into normalized inbound message. Raise MalformedPayloadError if invalid."""
        ...

    @abstractmethod
    async def send(self, outbound: OutboundMessage) -> OutboundSendResult:
        """Send normalized outbound message via platform API. Raise DeliveryError on failure."""
        ...

    def verify_webhook(self, expected: Optional[str], provided: Optional[str]) -> bool:
        """Constant-time secret comparison. A mapping without a secret never verifies."""
        if not expected or not provided:
            return False
        return hmac.compare_digest(expected.encode(), provided.encode())

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Perform an HTTP call; transport errors, timeouts and 4xx/5xx raise DeliveryError."""
        name = self.platform.value
        client = self._client
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(timeout=self.timeout)
        try:
            response = await client.request(method, url, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise DeliveryError(
                f"{name} request timed out after {self.timeout}s", platform=name
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"{name} request failed: {e}", platform=name) from e
        finally:
            if owns_client:
                await client.aclose()

        if response.status_code >= 400:
            body = response.text[:500] if response.text else "no body"
            raise DeliveryError(
                f"{name} API returned HTTP {response.status_code}: {body}",
                platform=name,
                status_code=response.status_code,
            )
        return response
