"""
Commands that create or retire the external side of a channel.

GroupMe groups can be provisioned on demand: the relay creates the group,
registers a bot whose callback points back at the mapping-scoped webhook
route, and stores the mapping. Teams conversations only appear through bot
installation, so they cannot be provisioned here.
"""

from __future__ import annotations

import uuid
from typing import Optional
from uuid import UUID

from app.adapters.groupme import GroupMeAdapter
from app.commands.base_relay import BaseRelayCommand
from app.core.exceptions import (
    DeliveryError,
    PlatformNotEnabledError,
    ProvisioningNotSupportedError,
)
from app.infra.logging_config import get_logger
from app.models.channel_mapping import ChannelMapping
from app.schemas.channel_mapping import ChannelMappingCreate, ExternalChannelCreate
from app.schemas.relay import Platform
from app.services.channel_mapping_service import (
    ChannelMappingService,
    generate_webhook_secret,
)

logger = get_logger("channels")

DEFAULT_GROUP_NAME = "COBRA Event"


def default_group_name(event_name: Optional[str]) -> str:
    return f"COBRA: {event_name}" if event_name else DEFAULT_GROUP_NAME


class CreateExternalChannelCommand(BaseRelayCommand):
    async def execute(
        self, data: ExternalChannelCreate, created_by: str
    ) -> ChannelMapping:
        """
        Provision a group on the platform and map it to the event.

        Raises:
            ProvisioningNotSupportedError: the platform has no provisioning API.
            PlatformNotEnabledError: the platform adapter is not configured.
            DeliveryError: the platform rejected group or bot creation.
        """
        if data.platform != Platform.GROUPME:
            raise ProvisioningNotSupportedError(
                f"Channels cannot be provisioned on {data.platform.value}"
            )
        adapter = self.get_adapter(data.platform)
        if not isinstance(adapter, GroupMeAdapter):
            raise PlatformNotEnabledError(
                f"Platform {data.platform.value} has no provisioning-capable adapter"
            )

        mapping_id = uuid.uuid4()
        secret = generate_webhook_secret()
        name = data.custom_group_name or default_group_name(data.event_name)

        group_id, share_url = await adapter.create_group(name)
        callback_url = (
            f"{self.settings.public_base_url.rstrip('/')}/webhooks/"
            f"{Platform.GROUPME.value}/{mapping_id}?token={secret}"
        )
        bot_id = await adapter.create_bot(
            group_id, self.settings.groupme_bot_name, callback_url
        )

        mapping = ChannelMappingService(self.db).create_mapping(
            ChannelMappingCreate(
                platform=Platform.GROUPME,
                external_group_id=group_id,
                external_group_name=name,
                event_id=data.event_id,
                bot_id=bot_id,
                share_url=share_url,
                conversation_reference=adapter.build_reference(group_id, bot_id),
            ),
            created_by=created_by,
            webhook_secret=secret,
            mapping_id=mapping_id,
        )
        logger.info(
            "Provisioned GroupMe group %s (bot %s) for event %s",
            group_id,
            bot_id,
            data.event_id,
        )
        return mapping


class DeactivateChannelCommand(BaseRelayCommand):
    async def execute(
        self, mapping_id: UUID, modified_by: str, archive: bool = False
    ) -> Optional[ChannelMapping]:
        """
        Deactivate a mapping; with ``archive`` also remove the GroupMe bot.

        Archiving is best effort: the mapping stays deactivated if the
        platform call fails.
        """
        mapping = ChannelMappingService(self.db).deactivate_mapping(
            mapping_id, modified_by
        )
        if mapping is None or not archive:
            return mapping
        if mapping.platform != Platform.GROUPME.value or not mapping.bot_id:
            return mapping

        adapter = self.registry.get(Platform.GROUPME)
        if not isinstance(adapter, GroupMeAdapter):
            logger.warning("Cannot archive mapping %s: GroupMe is disabled", mapping_id)
            return mapping
        try:
            await adapter.destroy_bot(mapping.bot_id)
            logger.info("Destroyed GroupMe bot %s for mapping %s", mapping.bot_id, mapping_id)
        except DeliveryError as e:
            logger.warning("Failed to destroy GroupMe bot for mapping %s: %s", mapping_id, e)
        return mapping
