"""
Bot Framework activity schemas (the subset Teams sends for messages).

Field names follow the camelCase wire format via aliases.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class ChannelAccount(BaseModel):
    id: str
    name: Optional[str] = None
    aad_object_id: Optional[str] = Field(None, alias="aadObjectId")
    role: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class ConversationAccount(BaseModel):
    id: str
    name: Optional[str] = None
    conversation_type: Optional[str] = Field(None, alias="conversationType")
    tenant_id: Optional[str] = Field(None, alias="tenantId")
    is_group: Optional[bool] = Field(None, alias="isGroup")

    model_config = {"populate_by_name": True, "extra": "allow"}


class TeamsAttachment(BaseModel):
    content_type: Optional[str] = Field(None, alias="contentType")
    content_url: Optional[str] = Field(None, alias="contentUrl")
    name: Optional[str] = None

    model_config = {"populate_by_name": True, "extra": "allow"}


class TeamsActivity(BaseModel):
    """Inbound activity (root object)."""

    type: str
    id: Optional[str] = None
    timestamp: Optional[str] = None
    service_url: Optional[str] = Field(None, alias="serviceUrl")
    channel_id: Optional[str] = Field(None, alias="channelId")
    from_: Optional[ChannelAccount] = Field(None, alias="from")
    recipient: Optional[ChannelAccount] = None
    conversation: Optional[ConversationAccount] = None
    text: Optional[str] = None
    locale: Optional[str] = None
    attachments: list[TeamsAttachment] = Field(default_factory=list)
    channel_data: Optional[dict[str, Any]] = Field(None, alias="channelData")

    model_config = {"populate_by_name": True, "extra": "allow"}


class ConversationReference(BaseModel):
    """
    Addressing data needed to continue a conversation proactively.
    Serialized to JSON and stored on the mapping.
    """

    activity_id: Optional[str] = Field(None, alias="activityId")
    user: Optional[ChannelAccount] = None
    bot: Optional[ChannelAccount] = None
    conversation: Optional[ConversationAccount] = None
    channel_id: Optional[str] = Field(None, alias="channelId")
    locale: Optional[str] = None
    service_url: Optional[str] = Field(None, alias="serviceUrl")

    model_config = {"populate_by_name": True, "extra": "allow"}
