"""
Command to process an inbound platform callback.

Authenticates the callback against its mapping, deduplicates by platform
message id, refreshes the mapping, stores the message on the owning thread
and notifies live subscribers. Conversations seen for the first time are
parked as unlinked mappings until someone links them to an event.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.adapters.base import BasePlatformAdapter
from app.commands.base_relay import BaseRelayCommand
from app.config import Settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    MappingNotFoundError,
)
from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry
from app.infra.logging_config import get_logger
from app.models.channel_mapping import ChannelMapping
from app.models.chat_thread import ChatThread
from app.schemas.chat import ChatMessageRead
from app.schemas.relay import InboundMessage, Platform
from app.services.channel_mapping_service import ChannelMappingService
from app.services.chat_message_service import ChatMessageService
from app.services.chat_thread_service import ChatThreadService

STATUS_ACCEPTED = "accepted"
STATUS_DUPLICATE = "duplicate"
STATUS_IGNORED = "ignored"
STATUS_PARKED = "parked"

logger = get_logger("webhooks")


class ProcessInboundWebhookCommand(BaseRelayCommand):
    def __init__(
        self,
        db: Session,
        registry: AdapterRegistry,
        notifier: Optional[ThreadNotifier] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        super().__init__(db, registry, settings)
        self.notifier = notifier
        self.mapping_service = ChannelMappingService(db)
        self.message_service = ChatMessageService(db)
        self.thread_service = ChatThreadService(db)

    async def execute(
        self,
        platform: Platform,
        mapping_id: UUID,
        payload: dict[str, Any],
        secret: Optional[str],
    ) -> dict[str, str]:
        """
        Handle a callback addressed to a specific mapping.

        Raises:
            PlatformNotEnabledError: no adapter for ``platform``.
            MappingNotFoundError: unknown mapping, or one on another platform.
            AuthenticationError: wrong secret, inactive mapping, or a payload
                for a conversation the mapping does not own.
            MalformedPayloadError: the body could not be parsed.
        """
        adapter = self.get_adapter(platform)
        mapping = self.mapping_service.get_mapping(mapping_id)
        if mapping is None or mapping.platform != platform.value:
            logger.info("Webhook rejected: unknown mapping %s", mapping_id)
            raise MappingNotFoundError(f"Mapping {mapping_id} not found")
        if not adapter.verify_webhook(mapping.webhook_secret, secret):
            logger.warning("Webhook rejected: secret mismatch for mapping %s", mapping_id)
            raise AuthenticationError("Invalid webhook credentials")
        if not mapping.is_active:
            logger.warning("Webhook rejected: mapping %s is inactive", mapping_id)
            raise AuthenticationError("Invalid webhook credentials")

        inbound = adapter.parse_webhook(payload)
        if inbound.external_group_id != mapping.external_group_id:
            logger.warning(
                "Webhook rejected: mapping %s received payload for conversation %s",
                mapping_id,
                inbound.external_group_id,
            )
            raise AuthenticationError("Invalid webhook credentials")

        return await self._process(mapping, inbound)

    async def execute_unmapped(
        self, platform: Platform, payload: dict[str, Any]
    ) -> dict[str, str]:
        """Handle a platform-level callback, resolving the mapping by conversation id."""
        adapter: BasePlatformAdapter = self.get_adapter(platform)
        inbound = adapter.parse_webhook(payload)

        mapping = self.mapping_service.get_mapping_by_group(
            platform, inbound.external_group_id
        )
        if mapping is None:
            if inbound.is_from_bot:
                return {"status": STATUS_IGNORED}
            try:
                mapping = self.mapping_service.create_unlinked_mapping(
                    inbound, created_by=self.settings.system_user_name
                )
            except ConflictError:
                # Concurrent first contact; the other callback parked it.
                mapping = self.mapping_service.get_active_mapping(
                    platform, inbound.external_group_id
                )
                if mapping is None:
                    raise
                logger.info(
                    "Conversation %s was parked concurrently as mapping %s",
                    inbound.external_group_id,
                    mapping.id,
                )
            else:
                logger.info(
                    "Parked new %s conversation %s as mapping %s",
                    platform.value,
                    inbound.external_group_id,
                    mapping.id,
                )
        elif not mapping.is_active:
            logger.info(
                "Ignoring callback for inactive mapping %s (%s)",
                mapping.id,
                inbound.external_group_id,
            )
            return {"status": STATUS_IGNORED}

        return await self._process(mapping, inbound)

    async def _process(
        self, mapping: ChannelMapping, inbound: InboundMessage
    ) -> dict[str, str]:
        if inbound.is_from_bot or inbound.kind == "system":
            logger.debug("Ignoring %s callback on mapping %s", inbound.kind, mapping.id)
            return {"status": STATUS_IGNORED}

        modified_by = self.settings.system_user_name
        if inbound.kind != "message":
            self.mapping_service.refresh_from_inbound(mapping, inbound, modified_by)
            return {"status": STATUS_ACCEPTED}
        if not inbound.text and not inbound.attachment_url:
            return {"status": STATUS_IGNORED}

        thread = self._resolve_thread(mapping)
        if thread is None:
            self.mapping_service.refresh_from_inbound(mapping, inbound, modified_by)
            logger.info(
                "Mapping %s is not linked; message %s parked",
                mapping.id,
                inbound.message_id,
            )
            return {"status": STATUS_PARKED}

        if self.message_service.get_external_message(inbound.message_id, thread.id):
            logger.info(
                "Duplicate %s message %s on thread %s",
                inbound.platform.value,
                inbound.message_id,
                thread.id,
            )
            return {"status": STATUS_DUPLICATE}

        self.mapping_service.refresh_from_inbound(mapping, inbound, modified_by)
        message, created = self.message_service.create_external_message(
            thread.id, mapping, inbound
        )
        if not created:
            return {"status": STATUS_DUPLICATE}

        logger.info(
            "Accepted %s message %s into thread %s",
            inbound.platform.value,
            inbound.message_id,
            thread.id,
        )
        await self._notify(thread.id, ChatMessageRead.model_validate(message))
        return {"status": STATUS_ACCEPTED, "message_id": str(message.id)}

    def _resolve_thread(self, mapping: ChannelMapping) -> Optional[ChatThread]:
        """Linked thread if any, else the default thread of the mapping's event."""
        if mapping.chat_thread_id is not None:
            thread = self.thread_service.get_thread(mapping.chat_thread_id)
            if thread is not None:
                return thread
        if mapping.event_id is not None:
            return self.thread_service.get_default_thread(mapping.event_id)
        return None

    async def _notify(self, thread_id: UUID, message: ChatMessageRead) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.publish(thread_id, message)
        except Exception:
            logger.exception("Failed to notify subscribers of thread %s", thread_id)
