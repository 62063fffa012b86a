"""Pydantic schemas for channel mappings and conversation references."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.relay import Platform


class ChannelMappingCreate(BaseModel):
    """Register an existing external conversation."""

    platform: Platform
    external_group_id: str = Field(..., min_length=1, max_length=512)
    external_group_name: str = Field(..., min_length=1, max_length=255)
    event_id: Optional[UUID] = None
    chat_thread_id: Optional[UUID] = None
    bot_id: Optional[str] = None
    share_url: Optional[str] = None
    conversation_reference: Optional[str] = None
    tenant_id: Optional[str] = None
    installed_by_name: Optional[str] = None
    is_emulator_or_test: bool = False


class ExternalChannelCreate(BaseModel):
    """Provision a new group on the platform and map it to an event."""

    event_id: UUID
    platform: Platform
    custom_group_name: Optional[str] = Field(None, max_length=255)
    event_name: Optional[str] = None


class ChannelMappingRename(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=255)


class ChannelMappingLink(BaseModel):
    chat_thread_id: UUID


class ChannelMappingRead(BaseModel):
    """Mapping as exposed to the admin UI (no secret, no raw reference)."""

    id: UUID
    event_id: Optional[UUID]
    chat_thread_id: Optional[UUID]
    platform: Platform
    external_group_id: str
    external_group_name: str
    share_url: Optional[str] = None
    tenant_id: Optional[str] = None
    installed_by_name: Optional[str] = None
    is_emulator_or_test: bool
    is_active: bool
    has_conversation_reference: bool
    last_activity_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CleanupResponse(BaseModel):
    deleted_count: int
    deleted_mapping_ids: list[UUID] = Field(default_factory=list)


class StoreConversationReferenceRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    conversation_reference: str = Field(..., min_length=1)
    platform: Platform = Platform.TEAMS
    tenant_id: Optional[str] = None
    channel_name: Optional[str] = None
    installed_by_name: Optional[str] = None
    is_emulator: bool = False


class StoreConversationReferenceResponse(BaseModel):
    mapping_id: UUID
    is_new_mapping: bool


class ConversationReferenceRead(BaseModel):
    mapping_id: UUID
    conversation_reference: Optional[str] = None
    is_active: bool


class AvailableConnectorRead(BaseModel):
    """Connector that can be linked to a channel of the given event."""

    mapping_id: UUID
    display_name: str
    conversation_id: str
    platform: Platform
    tenant_id: Optional[str] = None
    last_activity_at: Optional[datetime] = None
    installed_by_name: Optional[str] = None
    created_at: datetime
    is_linked_to_this_event: bool = False
    linked_channel_name: Optional[str] = None
