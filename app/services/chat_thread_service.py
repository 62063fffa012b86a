"""Thread lookups needed by the relay. Thread management lives in the chat tool."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.chat_thread import ChatThread


class ChatThreadService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_thread(self, thread_id: UUID) -> Optional[ChatThread]:
        return (
            self.db.query(ChatThread)
            .filter(ChatThread.id == thread_id, ChatThread.is_active.is_(True))
            .first()
        )

    def get_default_thread(self, event_id: UUID) -> Optional[ChatThread]:
        return (
            self.db.query(ChatThread)
            .filter(
                ChatThread.event_id == event_id,
                ChatThread.is_default_event_thread.is_(True),
                ChatThread.is_active.is_(True),
            )
            .first()
        )

    def create_thread(
        self, event_id: UUID, name: str, is_default_event_thread: bool = False
    ) -> ChatThread:
        thread = ChatThread(
            event_id=event_id,
            name=name,
            is_default_event_thread=is_default_event_thread,
        )
        self.db.add(thread)
        self.db.commit()
        self.db.refresh(thread)
        return thread
