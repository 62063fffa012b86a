"""
ChannelMapping model: link between a COBRA event/thread and one external
platform conversation (GroupMe group, Teams channel or chat).

Mappings are deactivated, never deleted. Only one active mapping may exist
per (platform, external_group_id).
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin


class ChannelMapping(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "channel_mappings"

    __table_args__ = (
        Index(
            "uq_channel_mappings_active_platform_group",
            "platform",
            "external_group_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_channel_mappings_event_active", "event_id", "is_active"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), nullable=True)  # null until linked
    chat_thread_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("chat_threads.id", ondelete="SET NULL"),
        nullable=True,
    )
    platform = Column(String(32), nullable=False)  # 'groupme' | 'teams' | ...
    external_group_id = Column(String(512), nullable=False)
    external_group_name = Column(String(255), nullable=False)
    share_url = Column(String(1024), nullable=True)
    bot_id = Column(String(255), nullable=True)
    webhook_secret = Column(String(255), nullable=False)
    conversation_reference = Column(Text, nullable=True)  # serialized JSON, opaque
    tenant_id = Column(String(255), nullable=True)
    installed_by_name = Column(String(255), nullable=True)
    is_emulator_or_test = Column(Boolean, default=False, nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(255), nullable=True)
    modified_by = Column(String(255), nullable=True)

    chat_thread = relationship("ChatThread", back_populates="channel_mapping")
    messages = relationship("ChatMessage", back_populates="channel_mapping")

    @property
    def has_conversation_reference(self) -> bool:
        return bool(self.conversation_reference)

    @property
    def is_linked(self) -> bool:
        return self.event_id is not None or self.chat_thread_id is not None
