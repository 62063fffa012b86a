"""
Relay error taxonomy.

Routers translate these into HTTP responses; services and commands raise them
and never build HTTP errors themselves.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

if TYPE_CHECKING:
    from app.core.reference_validator import ReferenceValidationResult


class RelayError(Exception):
    """Base class for relay failures."""


class AuthenticationError(RelayError):
    """Webhook secret or API key missing or wrong, or the mapping is inactive."""


class MalformedPayloadError(RelayError):
    """A platform callback could not be parsed."""


class ConflictError(RelayError):
    """An active mapping already owns the (platform, external_group_id) pair."""

    def __init__(self, message: str, existing_id: Optional[UUID] = None) -> None:
        super().__init__(message)
        self.existing_id = existing_id


class MappingNotFoundError(RelayError):
    """No mapping with the given id (or conversation id)."""


class PlatformNotEnabledError(RelayError):
    """No adapter is configured for the requested platform."""


class ReferenceInvalidError(RelayError):
    """The stored conversation reference cannot be used for sending."""

    def __init__(self, result: "ReferenceValidationResult") -> None:
        super().__init__(result.message)
        self.result = result


class DeliveryClassification:
    EXPIRED = "expired"
    TRANSIENT = "transient"
    # The relay's own platform credentials were rejected; says nothing
    # about the conversation, so never reclassified as expired.
    CREDENTIALS = "credentials"


class DeliveryError(RelayError):
    """A platform API call failed or timed out."""

    def __init__(
        self,
        message: str,
        *,
        platform: Optional[str] = None,
        status_code: Optional[int] = None,
        classification: str = DeliveryClassification.TRANSIENT,
    ) -> None:
        super().__init__(message)
        self.platform = platform
        self.status_code = status_code
        self.classification = classification

    @property
    def is_expired(self) -> bool:
        return self.classification == DeliveryClassification.EXPIRED

    @property
    def is_credentials_failure(self) -> bool:
        return self.classification == DeliveryClassification.CREDENTIALS


class ProvisioningNotSupportedError(RelayError):
    """The platform cannot create conversations on demand."""
