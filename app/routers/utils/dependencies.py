import hmac
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.app_state import state
from app.core.notifier import ThreadNotifier
from app.core.registry import AdapterRegistry
from app.db import get_db
from app.models.channel_mapping import ChannelMapping
from app.models.chat_thread import ChatThread
from app.services.channel_mapping_service import ChannelMappingService
from app.services.chat_thread_service import ChatThreadService


def get_adapter_registry() -> AdapterRegistry:
    """FastAPI dependency returning the process-wide adapter registry."""
    return state.registry


def get_notifier() -> ThreadNotifier:
    return state.notifier


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Reject requests without the shared relay key. No key configured means open."""
    expected = get_settings().relay_api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(expected.encode(), x_api_key.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_mapping_by_id(
    mapping_id: UUID,
    db: Session = Depends(get_db),
) -> ChannelMapping:
    """FastAPI dependency to get a channel mapping by ID."""
    mapping = ChannelMappingService(db).get_mapping(mapping_id)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Channel mapping not found")
    return mapping


def get_thread_by_id(
    thread_id: UUID,
    db: Session = Depends(get_db),
) -> ChatThread:
    """FastAPI dependency to get an active chat thread by ID."""
    thread = ChatThreadService(db).get_thread(thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="Chat thread not found")
    return thread


def get_actor(x_user_name: Optional[str] = Header(None)) -> str:
    """Name recorded in created_by/modified_by for management calls."""
    return x_user_name or get_settings().system_user_name
