"""Pydantic schemas for chat messages and relay requests."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.relay import ChannelOutcome


class ChatMessageRead(BaseModel):
    """Message as broadcast to live subscribers and returned by the API."""

    id: UUID
    chat_thread_id: UUID
    created_at: datetime
    created_by: str
    message: str
    is_external_message: bool
    external_source: Optional[str] = None
    external_sender_name: Optional[str] = None
    external_attachment_url: Optional[str] = None
    external_timestamp: Optional[datetime] = None
    promoted_to_logbook_id: Optional[UUID] = None

    model_config = {"from_attributes": True}


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)
    sender_name: str = Field(..., min_length=1, max_length=255)
    chat_thread_id: Optional[UUID] = None
    event_name: Optional[str] = None


class SendMessageResponse(BaseModel):
    message: ChatMessageRead
    outcomes: list[ChannelOutcome] = Field(default_factory=list)


class AnnouncementPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AnnouncementRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    sender_name: str = Field(..., min_length=1, max_length=255)
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL


class AnnouncementResponse(BaseModel):
    channels_reached: int
    outcomes: list[ChannelOutcome] = Field(default_factory=list)


class PromoteMessageRequest(BaseModel):
    logbook_entry_id: UUID
    promoted_by: str = Field(..., min_length=1, max_length=255)
