"""ChatThread model: a COBRA chat channel inside an event."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, Index, String, Uuid
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import SoftDeleteMixin, TimestampMixin


class ChatThread(Base, TimestampMixin, SoftDeleteMixin):
    """
    Minimal thread record. Thread management belongs to the chat tool; the relay
    only needs ownership (event) and the default-thread flag.
    """

    __tablename__ = "chat_threads"

    __table_args__ = (
        Index(
            "ix_chat_threads_event_default", "event_id", "is_default_event_thread"
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    is_default_event_thread = Column(Boolean, default=False, nullable=False)

    messages = relationship("ChatMessage", back_populates="chat_thread")
    channel_mapping = relationship(
        "ChannelMapping", back_populates="chat_thread", uselist=False
    )
