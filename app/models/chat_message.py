"""
ChatMessage model: one message in a thread, native or mirrored from an
external platform.

External messages carry the platform message id; the pair
(external_message_id, chat_thread_id) is unique so repeated webhook
deliveries cannot insert twice. NULL ids (native messages) never collide.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin


class ChatMessage(Base, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "chat_messages"

    __table_args__ = (
        UniqueConstraint(
            "external_message_id",
            "chat_thread_id",
            name="uq_chat_messages_external_message_thread",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_thread_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("chat_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message = Column(Text, nullable=False)
    created_by = Column(String(255), nullable=False)

    external_source = Column(String(32), nullable=True)
    external_message_id = Column(String(255), nullable=True)
    external_sender_name = Column(String(255), nullable=True)
    external_sender_id = Column(String(255), nullable=True)
    external_timestamp = Column(DateTime(timezone=True), nullable=True)
    external_attachment_url = Column(String(2048), nullable=True)
    external_channel_mapping_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("channel_mappings.id", ondelete="SET NULL"),
        nullable=True,
    )

    promoted_to_logbook_id = Column(Uuid(as_uuid=True), nullable=True)
    promoted_at = Column(DateTime(timezone=True), nullable=True)
    promoted_by = Column(String(255), nullable=True)

    chat_thread = relationship("ChatThread", back_populates="messages")
    channel_mapping = relationship("ChannelMapping", back_populates="messages")

    @property
    def is_external_message(self) -> bool:
        return self.external_source is not None
