"""
Command to fan a COBRA message out to the external channels of an event.

Each destination is validated, formatted and sent independently. Sends run
concurrently with bounded parallelism and a per-call timeout; a failure on
one channel never blocks or rolls back the others. Failures classified as
an expired reference deactivate the mapping.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.adapters.base import BasePlatformAdapter
from app.commands.base_relay import BaseRelayCommand
from app.config import Settings
from app.core.exceptions import DeliveryError, ReferenceInvalidError
from app.core.reference_validator import (
    ConversationReferenceValidator,
    ReferenceValidationResult,
)
from app.core.registry import AdapterRegistry
from app.infra.logging_config import get_logger
from app.models.channel_mapping import ChannelMapping
from app.models.chat_thread import ChatThread
from app.schemas.chat import AnnouncementPriority
from app.schemas.relay import (
    BroadcastResult,
    ChannelOutcome,
    ChannelOutcomeStatus,
    OutboundMessage,
    OutboundSendResult,
    Platform,
)
from app.services.channel_mapping_service import ChannelMappingService

logger = get_logger("broadcast")

EXPIRED_REFERENCE_USER = "ExpiredReference"

ANNOUNCEMENT_HEADERS = {
    AnnouncementPriority.NORMAL: "[ANNOUNCEMENT]",
    AnnouncementPriority.HIGH: "[HIGH PRIORITY ANNOUNCEMENT]",
    AnnouncementPriority.URGENT: "[URGENT ANNOUNCEMENT]",
}


def format_message(
    mapping: ChannelMapping,
    message: str,
    sender_name: str,
    source_thread: Optional[ChatThread] = None,
    event_name: Optional[str] = None,
) -> str:
    """
    ``[<sender>] <message>``, prefixed with the source channel when the
    destination is linked to a different thread than the one posted in.
    """
    text = f"[{sender_name}] {message}"
    needs_context = (
        source_thread is not None
        and mapping.chat_thread_id is not None
        and mapping.chat_thread_id != source_thread.id
    )
    if not needs_context:
        return text
    if event_name:
        return f"[{event_name}: {source_thread.name}] {text}"
    return f"[{source_thread.name}] {text}"


def format_announcement(
    title: str,
    message: str,
    sender_name: str,
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL,
) -> str:
    header = ANNOUNCEMENT_HEADERS[AnnouncementPriority(priority)]
    return f"{header} {title}\n\n{message}\n\n- {sender_name}"


@dataclass
class _Delivery:
    """Snapshot of one destination, taken before sends run concurrently."""

    mapping_id: UUID
    platform: Platform
    name: str
    outbound: OutboundMessage
    validation: ReferenceValidationResult
    adapter: Optional[BasePlatformAdapter]


class BroadcastCommand(BaseRelayCommand):
    def __init__(
        self,
        db: Session,
        registry: AdapterRegistry,
        validator: Optional[ConversationReferenceValidator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(db, registry, settings)
        self.validator = validator or ConversationReferenceValidator(
            settings=self.settings
        )
        self.mapping_service = ChannelMappingService(db)

    async def send(
        self,
        event_id: UUID,
        message: str,
        sender_name: str,
        thread_id: Optional[UUID] = None,
        source_thread: Optional[ChatThread] = None,
        event_name: Optional[str] = None,
    ) -> BroadcastResult:
        """
        Send a message to the channel linked to ``thread_id``, or to every
        active channel of the event when no thread is given.
        """
        if thread_id is not None:
            mapping = self.mapping_service.get_mapping_for_thread(thread_id)
            candidates = [mapping] if mapping is not None else []
        else:
            candidates = self.mapping_service.get_active_mappings_for_event(event_id)

        deliveries = [
            self._prepare(
                mapping,
                format_message(mapping, message, sender_name, source_thread, event_name),
            )
            for mapping in candidates
        ]
        result = await self._dispatch(deliveries)
        logger.info(
            "Broadcast for event %s: %d/%d channels reached",
            event_id,
            result.sent_count,
            len(result.outcomes),
        )
        return result

    async def broadcast_announcement(
        self,
        event_id: UUID,
        title: str,
        message: str,
        sender_name: str,
        priority: AnnouncementPriority = AnnouncementPriority.NORMAL,
    ) -> BroadcastResult:
        """Send an announcement to every active channel of the event."""
        text = format_announcement(title, message, sender_name, priority)
        candidates = self.mapping_service.get_active_mappings_for_event(event_id)
        result = await self._dispatch([self._prepare(m, text) for m in candidates])
        logger.info(
            "Announcement for event %s reached %d/%d channels",
            event_id,
            result.sent_count,
            len(result.outcomes),
        )
        return result

    def _prepare(self, mapping: ChannelMapping, text: str) -> _Delivery:
        platform = Platform(mapping.platform)
        try:
            validation = self.validator.ensure_sendable(
                mapping.conversation_reference, mapping.last_activity_at
            )
        except ReferenceInvalidError as e:
            validation = e.result
        return _Delivery(
            mapping_id=mapping.id,
            platform=platform,
            name=mapping.external_group_name,
            outbound=OutboundMessage(
                platform=platform,
                mapping_id=mapping.id,
                external_group_id=mapping.external_group_id,
                text=text,
                bot_id=mapping.bot_id,
                conversation_reference=mapping.conversation_reference,
            ),
            validation=validation,
            adapter=self.registry.get(platform),
        )

    async def _dispatch(self, deliveries: List[_Delivery]) -> BroadcastResult:
        semaphore = asyncio.Semaphore(max(self.settings.broadcast_max_parallel, 1))
        timeout = self.settings.platform_timeout_seconds

        async def deliver(delivery: _Delivery) -> OutboundSendResult:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        delivery.adapter.send(delivery.outbound), timeout=timeout
                    )
                except asyncio.TimeoutError as e:
                    raise DeliveryError(
                        f"{delivery.platform.value} send timed out after {timeout}s",
                        platform=delivery.platform.value,
                    ) from e

        sendable = [
            d for d in deliveries if d.validation.can_attempt_send and d.adapter
        ]
        results = await asyncio.gather(
            *(deliver(d) for d in sendable), return_exceptions=True
        )
        sent = {d.mapping_id: r for d, r in zip(sendable, results)}

        # Database writes stay sequential on the request session.
        outcomes = []
        for delivery in deliveries:
            if not delivery.validation.can_attempt_send:
                outcomes.append(self._skipped(delivery))
            elif delivery.adapter is None:
                outcomes.append(
                    self._outcome(
                        delivery,
                        ChannelOutcomeStatus.FAILED,
                        error=f"Platform {delivery.platform.value} is not enabled",
                    )
                )
            else:
                outcomes.append(self._record(delivery, sent[delivery.mapping_id]))
        return BroadcastResult(outcomes=outcomes)

    def _skipped(self, delivery: _Delivery) -> ChannelOutcome:
        logger.warning(
            "Skipping %s channel %s: %s",
            delivery.platform.value,
            delivery.mapping_id,
            delivery.validation.message,
        )
        return self._outcome(
            delivery,
            ChannelOutcomeStatus.SKIPPED_INVALID_REFERENCE,
            error=delivery.validation.message,
        )

    def _record(self, delivery: _Delivery, result: object) -> ChannelOutcome:
        if not isinstance(result, BaseException):
            logger.info(
                "Sent to %s channel %s", delivery.platform.value, delivery.mapping_id
            )
            return self._outcome(
                delivery,
                ChannelOutcomeStatus.SENT,
                platform_message_id=result.platform_message_id,
            )

        expired = self.validator.classify_failure(result)
        if expired is None:
            logger.error(
                "Failed to send to %s channel %s: %s",
                delivery.platform.value,
                delivery.mapping_id,
                result,
            )
            return self._outcome(
                delivery, ChannelOutcomeStatus.FAILED, error=str(result)
            )

        self.mapping_service.deactivate_mapping(
            delivery.mapping_id, modified_by=EXPIRED_REFERENCE_USER
        )
        logger.warning(
            "Deactivated %s channel %s after expired reference: %s",
            delivery.platform.value,
            delivery.mapping_id,
            expired.message,
        )
        return self._outcome(
            delivery,
            ChannelOutcomeStatus.FAILED,
            reference_status=expired.status.value,
            error=expired.message,
            deactivated=True,
        )

    @staticmethod
    def _outcome(
        delivery: _Delivery,
        status: ChannelOutcomeStatus,
        platform_message_id: Optional[str] = None,
        reference_status: Optional[str] = None,
        error: Optional[str] = None,
        deactivated: bool = False,
    ) -> ChannelOutcome:
        return ChannelOutcome(
            mapping_id=delivery.mapping_id,
            platform=delivery.platform,
            external_group_name=delivery.name,
            status=status,
            platform_message_id=platform_message_id,
            reference_status=reference_status or delivery.validation.status.value,
            error=error,
            deactivated=deactivated,
        )
