"""Service for chat messages: native posts, mirrored external messages, promotion."""

from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError
from app.infra.logging_config import get_logger
from app.models.channel_mapping import ChannelMapping
from app.models.chat_message import ChatMessage
from app.schemas.relay import InboundMessage
from app.utils.time import utcnow

logger = get_logger("chat_messages")


class ChatMessageService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_message(self, message_id: UUID) -> Optional[ChatMessage]:
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.id == message_id, ChatMessage.is_active.is_(True))
            .first()
        )

    def get_external_message(
        self, external_message_id: str, thread_id: UUID
    ) -> Optional[ChatMessage]:
        return (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.external_message_id == external_message_id,
                ChatMessage.chat_thread_id == thread_id,
            )
            .first()
        )

    def get_messages(self, thread_id: UUID, limit: int = 100) -> List[ChatMessage]:
        """Most recent messages of a thread, oldest first."""
        rows = (
            self.db.query(ChatMessage)
            .filter(
                ChatMessage.chat_thread_id == thread_id,
                ChatMessage.is_active.is_(True),
            )
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))

    def create_native_message(
        self, thread_id: UUID, message: str, sender_name: str
    ) -> ChatMessage:
        chat_message = ChatMessage(
            chat_thread_id=thread_id, message=message, created_by=sender_name
        )
        self.db.add(chat_message)
        self.db.commit()
        self.db.refresh(chat_message)
        return chat_message

    def create_external_message(
        self, thread_id: UUID, mapping: ChannelMapping, inbound: InboundMessage
    ) -> Tuple[ChatMessage, bool]:
        """
        Store an inbound platform message in a thread.

        Returns (message, created). A redelivery of an already stored platform
        message returns the existing row with created=False.
        """
        existing = self.get_external_message(inbound.message_id, thread_id)
        if existing is not None:
            return existing, False

        sender = inbound.sender_name or "Unknown"
        chat_message = ChatMessage(
            chat_thread_id=thread_id,
            message=inbound.text,
            created_by=f"{sender} (via {inbound.platform.value.capitalize()})",
            external_source=inbound.platform.value,
            external_message_id=inbound.message_id,
            external_sender_name=sender,
            external_sender_id=inbound.sender_id,
            external_timestamp=inbound.timestamp or utcnow(),
            external_attachment_url=inbound.attachment_url,
            external_channel_mapping_id=mapping.id,
        )
        self.db.add(chat_message)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent delivery of the same message.
            self.db.rollback()
            existing = self.get_external_message(inbound.message_id, thread_id)
            if existing is None:
                raise
            logger.info(
                "Duplicate %s message %s for thread %s",
                inbound.platform.value,
                inbound.message_id,
                thread_id,
            )
            return existing, False
        self.db.refresh(chat_message)
        return chat_message, True

    def promote_message(
        self, message_id: UUID, logbook_entry_id: UUID, promoted_by: str
    ) -> Optional[ChatMessage]:
        """Mark a message as promoted to a logbook entry. Re-promoting to the same entry is a no-op."""
        chat_message = self.get_message(message_id)
        if chat_message is None:
            return None
        if chat_message.promoted_to_logbook_id is not None:
            if chat_message.promoted_to_logbook_id == logbook_entry_id:
                return chat_message
            raise ConflictError(
                f"Message {message_id} is already promoted to logbook entry "
                f"{chat_message.promoted_to_logbook_id}",
                existing_id=chat_message.promoted_to_logbook_id,
            )
        chat_message.promoted_to_logbook_id = logbook_entry_id
        chat_message.promoted_at = utcnow()
        chat_message.promoted_by = promoted_by
        self.db.commit()
        self.db.refresh(chat_message)
        return chat_message
