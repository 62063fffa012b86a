"""
Conversation reference validation.

``validate_reference`` is a pure check of the stored blob. Staleness is a
separate, informational check on ``last_activity_at``. ``classify_failure``
maps a delivery failure onto ``Expired`` using a configurable table of status
codes and error substrings shared by every platform.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlparse

import httpx

from app.config import Settings, get_settings
from app.core.exceptions import (
    DeliveryClassification,
    DeliveryError,
    ReferenceInvalidError,
)
from app.infra.logging_config import get_logger
from app.utils.time import as_utc, utcnow

logger = get_logger("reference_validator")


class ReferenceStatus(str, Enum):
    VALID = "valid"
    MISSING = "missing"
    INVALID = "invalid"
    EXPIRED = "expired"
    POSSIBLY_STALE = "possibly_stale"


@dataclass(frozen=True)
class ReferenceValidationResult:
    status: ReferenceStatus
    message: str
    suggested_http_status_code: Optional[int] = None

    @property
    def can_attempt_send(self) -> bool:
        return self.status in (ReferenceStatus.VALID, ReferenceStatus.POSSIBLY_STALE)

    @classmethod
    def valid(cls) -> "ReferenceValidationResult":
        return cls(ReferenceStatus.VALID, "Conversation reference is valid")

    @classmethod
    def missing(cls) -> "ReferenceValidationResult":
        return cls(
            ReferenceStatus.MISSING,
            "Conversation reference is missing. Bot may not be installed in this channel.",
            404,
        )

    @classmethod
    def invalid(cls, details: str) -> "ReferenceValidationResult":
        return cls(
            ReferenceStatus.INVALID,
            f"Conversation reference is invalid: {details}",
            400,
        )

    @classmethod
    def expired(cls, details: str) -> "ReferenceValidationResult":
        return cls(
            ReferenceStatus.EXPIRED,
            f"Conversation reference has expired: {details}",
            410,
        )

    @classmethod
    def possibly_stale(cls, age: timedelta) -> "ReferenceValidationResult":
        days = age.total_seconds() / 86400
        return cls(
            ReferenceStatus.POSSIBLY_STALE,
            f"Conversation reference may be stale (age: {days:.1f} days). Will attempt to send.",
        )


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_reference(reference: Optional[str]) -> ReferenceValidationResult:
    """Classify a serialized reference as Valid, Missing or Invalid."""
    if reference is None or not reference.strip():
        return ReferenceValidationResult.missing()

    try:
        data = json.loads(reference)
    except ValueError:
        return ReferenceValidationResult.invalid("reference is not valid JSON")
    if not isinstance(data, dict):
        return ReferenceValidationResult.invalid("reference must be a JSON object")

    service_url = data.get("serviceUrl")
    if not isinstance(service_url, str) or not service_url:
        return ReferenceValidationResult.invalid("ServiceUrl is required")

    conversation = data.get("conversation")
    if not isinstance(conversation, dict):
        return ReferenceValidationResult.invalid("Conversation is required")
    if not conversation.get("id"):
        return ReferenceValidationResult.invalid("Conversation.Id is required")

    if not _is_http_url(service_url):
        return ReferenceValidationResult.invalid(
            "ServiceUrl must be a valid HTTP/HTTPS URL"
        )

    return ReferenceValidationResult.valid()


def _status_code_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, DeliveryError):
        return exc.status_code
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    return None


class ConversationReferenceValidator:
    """Validation plus failure classification driven by settings."""

    def __init__(
        self,
        *,
        stale_after: Optional[timedelta] = None,
        expired_status_codes: Optional[Iterable[int]] = None,
        expired_error_patterns: Optional[Iterable[str]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.stale_after = stale_after or timedelta(days=settings.reference_stale_days)
        self.expired_status_codes = frozenset(
            expired_status_codes
            if expired_status_codes is not None
            else settings.expired_status_codes
        )
        patterns = (
            expired_error_patterns
            if expired_error_patterns is not None
            else settings.expired_error_patterns
        )
        self.expired_error_patterns = tuple(p.lower() for p in patterns if p)

    def validate(self, reference: Optional[str]) -> ReferenceValidationResult:
        result = validate_reference(reference)
        if result.status != ReferenceStatus.VALID:
            logger.debug("Conversation reference rejected: %s", result.message)
        return result

    def check_staleness(
        self,
        last_activity_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> Optional[ReferenceValidationResult]:
        """Return a PossiblyStale result when activity is older than the threshold."""
        last = as_utc(last_activity_at)
        if last is None:
            return None
        age = (now or utcnow()) - last
        if age > self.stale_after:
            return ReferenceValidationResult.possibly_stale(age)
        return None

    def evaluate(
        self,
        reference: Optional[str],
        last_activity_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ReferenceValidationResult:
        """Structural validation, downgraded to PossiblyStale for old references."""
        result = self.validate(reference)
        if result.status != ReferenceStatus.VALID:
            return result
        return self.check_staleness(last_activity_at, now) or result

    def ensure_sendable(
        self,
        reference: Optional[str],
        last_activity_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ReferenceValidationResult:
        """Like ``evaluate`` but raises ReferenceInvalidError when sending is pointless."""
        result = self.evaluate(reference, last_activity_at, now)
        if not result.can_attempt_send:
            raise ReferenceInvalidError(result)
        return result

    def is_expired_failure(self, exc: BaseException) -> bool:
        if isinstance(exc, DeliveryError):
            if exc.is_expired:
                return True
            if exc.is_credentials_failure:
                return False
        status_code = _status_code_of(exc)
        if status_code is not None and status_code in self.expired_status_codes:
            logger.debug("Failure indicates expired reference (HTTP %s)", status_code)
            return True

        messages = [str(exc)]
        if exc.__cause__ is not None:
            messages.append(str(exc.__cause__))
        for text in messages:
            lowered = text.lower()
            for pattern in self.expired_error_patterns:
                if pattern in lowered:
                    logger.debug("Failure message matches expiry pattern %r", pattern)
                    return True
        return False

    def classify_failure(
        self, exc: BaseException
    ) -> Optional[ReferenceValidationResult]:
        """Expired result for removal-type failures, None for anything else."""
        if not self.is_expired_failure(exc):
            return None
        if isinstance(exc, DeliveryError):
            exc.classification = DeliveryClassification.EXPIRED
        status_code = _status_code_of(exc)
        detail = str(exc)
        if status_code is not None:
            detail = f"HTTP {status_code} - {exc}"
        return ReferenceValidationResult.expired(detail)
