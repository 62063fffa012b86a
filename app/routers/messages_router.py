"""Messaging API: post to an event, announce, read threads, promote to logbook."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.commands.outbound.broadcast_command import BroadcastCommand
from app.core.exceptions import ConflictError
from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry
from app.db import get_db
from app.models.chat_thread import ChatThread
from app.routers.utils.dependencies import (
    get_adapter_registry,
    get_notifier,
    get_thread_by_id,
    require_api_key,
)
from app.schemas.chat import (
    AnnouncementRequest,
    AnnouncementResponse,
    ChatMessageRead,
    PromoteMessageRequest,
    SendMessageRequest,
    SendMessageResponse,
)
from app.services.chat_message_service import ChatMessageService
from app.services.chat_thread_service import ChatThreadService

router = APIRouter(
    prefix="",
    tags=["messages"],
    dependencies=[Depends(require_api_key)],
    responses={404: {"description": "Not found"}},
)


@router.post(
    "/events/{event_id}/messages",
    response_model=SendMessageResponse,
    status_code=201,
)
async def send_event_message(
    event_id: UUID,
    data: SendMessageRequest,
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
    notifier: ThreadNotifier = Depends(get_notifier),
) -> SendMessageResponse:
    """
    Store a message in the thread (or the event's default thread), notify
    live subscribers, then relay it to the external channels.
    """
    threads = ChatThreadService(db)
    if data.chat_thread_id is not None:
        thread = threads.get_thread(data.chat_thread_id)
        if thread is None or thread.event_id != event_id:
            raise HTTPException(status_code=404, detail="Chat thread not found")
    else:
        thread = threads.get_default_thread(event_id)
        if thread is None:
            raise HTTPException(
                status_code=404, detail="Event has no default chat thread"
            )

    message = ChatMessageService(db).create_native_message(
        thread.id, data.message, data.sender_name
    )
    message_read = ChatMessageRead.model_validate(message)
    await notifier.publish(thread.id, message_read)

    result = await BroadcastCommand(db, registry).send(
        event_id,
        data.message,
        data.sender_name,
        thread_id=data.chat_thread_id,
        source_thread=thread,
        event_name=data.event_name,
    )
    return SendMessageResponse(message=message_read, outcomes=result.outcomes)


@router.post(
    "/events/{event_id}/announcements", response_model=AnnouncementResponse
)
async def send_event_announcement(
    event_id: UUID,
    data: AnnouncementRequest,
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
) -> AnnouncementResponse:
    """Broadcast an announcement to every active external channel of the event."""
    result = await BroadcastCommand(db, registry).broadcast_announcement(
        event_id,
        data.title,
        data.message,
        data.sender_name,
        priority=data.priority,
    )
    return AnnouncementResponse(
        channels_reached=result.sent_count, outcomes=result.outcomes
    )


@router.get(
    "/chat-threads/{thread_id}/messages", response_model=List[ChatMessageRead]
)
def list_thread_messages(
    limit: int = Query(100, ge=1, le=500),
    thread: ChatThread = Depends(get_thread_by_id),
    db: Session = Depends(get_db),
) -> List[ChatMessageRead]:
    messages = ChatMessageService(db).get_messages(thread.id, limit=limit)
    return [ChatMessageRead.model_validate(m) for m in messages]


@router.post(
    "/chat-messages/{message_id}/promote", response_model=ChatMessageRead
)
def promote_chat_message(
    message_id: UUID,
    data: PromoteMessageRequest,
    db: Session = Depends(get_db),
) -> ChatMessageRead:
    """Record that a message was promoted to a logbook entry."""
    try:
        message = ChatMessageService(db).promote_message(
            message_id, data.logbook_entry_id, data.promoted_by
        )
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if message is None:
        raise HTTPException(status_code=404, detail="Chat message not found")
    return ChatMessageRead.model_validate(message)
