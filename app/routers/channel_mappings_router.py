"""Channel mappings API: admin management of external connectors."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from sqlalchemy.orm import Session

from app.commands.channels.channel_commands import (
    CreateExternalChannelCommand,
    DeactivateChannelCommand,
)
from app.core.exceptions import (
    ConflictError,
    DeliveryError,
    PlatformNotEnabledError,
    ProvisioningNotSupportedError,
)
from app.core.registry import AdapterRegistry
from app.db import get_db
from app.models.channel_mapping import ChannelMapping
from app.models.chat_thread import ChatThread
from app.routers.utils.dependencies import (
    get_actor,
    get_adapter_registry,
    get_mapping_by_id,
    get_thread_by_id,
    require_api_key,
)
from app.schemas.channel_mapping import (
    AvailableConnectorRead,
    ChannelMappingCreate,
    ChannelMappingLink,
    ChannelMappingRead,
    ChannelMappingRename,
    CleanupResponse,
    ConversationReferenceRead,
    ExternalChannelCreate,
    StoreConversationReferenceRequest,
    StoreConversationReferenceResponse,
)
from app.schemas.relay import Platform
from app.services.channel_mapping_service import ChannelMappingService
from app.services.chat_thread_service import ChatThreadService

router = APIRouter(
    prefix="",
    tags=["channel-mappings"],
    dependencies=[Depends(require_api_key)],
    responses={404: {"description": "Not found"}},
)


def _conflict(e: ConflictError) -> HTTPException:
    detail = {"message": str(e)}
    if e.existing_id is not None:
        detail["existing_mapping_id"] = str(e.existing_id)
    return HTTPException(status_code=409, detail=detail)


@router.get("/channel-mappings", response_model=Page[ChannelMappingRead])
def list_channel_mappings(
    platform: Optional[Platform] = Query(None),
    is_active: Optional[bool] = Query(None),
    is_emulator: Optional[bool] = Query(None),
    stale_days: Optional[int] = Query(None, ge=1),
    event_id: Optional[UUID] = Query(None),
    params: Params = Depends(),
    db: Session = Depends(get_db),
) -> Page[ChannelMappingRead]:
    """List mappings, most recently active first."""
    query = ChannelMappingService(db).get_mappings_query(
        platform=platform,
        is_active=is_active,
        is_emulator=is_emulator,
        stale_days=stale_days,
        event_id=event_id,
    )
    return paginate(query, params=params)


@router.post(
    "/channel-mappings", response_model=ChannelMappingRead, status_code=201
)
def create_channel_mapping(
    data: ChannelMappingCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ChannelMapping:
    """Register an existing external conversation."""
    try:
        return ChannelMappingService(db).create_mapping(data, created_by=actor)
    except ConflictError as e:
        raise _conflict(e) from e


@router.post(
    "/channel-mappings/external",
    response_model=ChannelMappingRead,
    status_code=201,
)
async def create_external_channel(
    data: ExternalChannelCreate,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
) -> ChannelMapping:
    """Provision a new group on the platform and map it to the event."""
    command = CreateExternalChannelCommand(db, registry)
    try:
        return await command.execute(data, created_by=actor)
    except ProvisioningNotSupportedError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except PlatformNotEnabledError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except DeliveryError as e:
        raise HTTPException(
            status_code=502, detail="Platform rejected channel provisioning"
        ) from e
    except ConflictError as e:
        raise _conflict(e) from e


@router.put(
    "/channel-mappings/conversation-reference",
    response_model=StoreConversationReferenceResponse,
)
def store_conversation_reference(
    data: StoreConversationReferenceRequest,
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> StoreConversationReferenceResponse:
    """Upsert the reference for a conversation; unknown conversations become unlinked mappings."""
    mapping, is_new = ChannelMappingService(db).upsert_conversation_reference(
        data, modified_by=actor
    )
    return StoreConversationReferenceResponse(
        mapping_id=mapping.id, is_new_mapping=is_new
    )


@router.get(
    "/channel-mappings/conversation-reference/{conversation_id}",
    response_model=ConversationReferenceRead,
)
def get_conversation_reference(
    conversation_id: str,
    platform: Platform = Query(Platform.TEAMS),
    db: Session = Depends(get_db),
) -> ConversationReferenceRead:
    mapping = ChannelMappingService(db).get_mapping_by_group(platform, conversation_id)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return ConversationReferenceRead(
        mapping_id=mapping.id,
        conversation_reference=mapping.conversation_reference,
        is_active=mapping.is_active,
    )


@router.delete("/channel-mappings/stale", response_model=CleanupResponse)
def cleanup_stale_mappings(
    inactive_days: int = Query(30, ge=1),
    platform: Optional[Platform] = Query(None),
    db: Session = Depends(get_db),
) -> CleanupResponse:
    """Deactivate mappings with no activity for ``inactive_days``."""
    ids = ChannelMappingService(db).deactivate_stale(inactive_days, platform=platform)
    return CleanupResponse(deleted_count=len(ids), deleted_mapping_ids=ids)


@router.get("/channel-mappings/{mapping_id}", response_model=ChannelMappingRead)
def get_channel_mapping(
    mapping: ChannelMapping = Depends(get_mapping_by_id),
) -> ChannelMapping:
    return mapping


@router.patch(
    "/channel-mappings/{mapping_id}/name", response_model=ChannelMappingRead
)
def rename_channel_mapping(
    data: ChannelMappingRename,
    mapping: ChannelMapping = Depends(get_mapping_by_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ChannelMapping:
    return ChannelMappingService(db).rename_mapping(
        mapping.id, data.display_name, modified_by=actor
    )


@router.delete("/channel-mappings/{mapping_id}", response_model=ChannelMappingRead)
async def deactivate_channel_mapping(
    mapping_id: UUID,
    archive: bool = Query(False),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
    registry: AdapterRegistry = Depends(get_adapter_registry),
) -> ChannelMapping:
    """Deactivate a mapping. Deactivating an inactive mapping is a no-op."""
    mapping = await DeactivateChannelCommand(db, registry).execute(
        mapping_id, modified_by=actor, archive=archive
    )
    if mapping is None:
        raise HTTPException(status_code=404, detail="Channel mapping not found")
    return mapping


@router.post(
    "/channel-mappings/{mapping_id}/reactivate", response_model=ChannelMappingRead
)
def reactivate_channel_mapping(
    mapping: ChannelMapping = Depends(get_mapping_by_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ChannelMapping:
    try:
        return ChannelMappingService(db).reactivate_mapping(mapping.id, modified_by=actor)
    except ConflictError as e:
        raise _conflict(e) from e


@router.post("/channel-mappings/{mapping_id}/link", response_model=ChannelMappingRead)
def link_channel_mapping(
    data: ChannelMappingLink,
    mapping: ChannelMapping = Depends(get_mapping_by_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ChannelMapping:
    """Link a mapping to a chat thread (and that thread's event)."""
    if not mapping.is_active:
        raise HTTPException(status_code=409, detail="Channel mapping is inactive")
    thread = ChatThreadService(db).get_thread(data.chat_thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="Chat thread not found")
    try:
        return ChannelMappingService(db).link_to_thread(
            mapping.id, thread, modified_by=actor
        )
    except ConflictError as e:
        raise _conflict(e) from e


@router.post("/chat-threads/{thread_id}/unlink", response_model=ChannelMappingRead)
def unlink_chat_thread(
    thread: ChatThread = Depends(get_thread_by_id),
    actor: str = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ChannelMapping:
    """Detach the external channel from a thread; the mapping stays active and unlinked."""
    mapping = ChannelMappingService(db).unlink_thread(thread.id, modified_by=actor)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Thread has no linked channel")
    return mapping


@router.get(
    "/events/{event_id}/available-connectors",
    response_model=List[AvailableConnectorRead],
)
def list_available_connectors(
    event_id: UUID,
    db: Session = Depends(get_db),
) -> List[AvailableConnectorRead]:
    """Connectors that can be linked to a channel of this event."""
    connectors = ChannelMappingService(db).get_available_connectors(event_id)
    return [
        AvailableConnectorRead(
            mapping_id=mapping.id,
            display_name=mapping.external_group_name,
            conversation_id=mapping.external_group_id,
            platform=Platform(mapping.platform),
            tenant_id=mapping.tenant_id,
            last_activity_at=mapping.last_activity_at,
            installed_by_name=mapping.installed_by_name,
            created_at=mapping.created_at,
            is_linked_to_this_event=mapping.event_id == event_id,
            linked_channel_name=thread.name if thread is not None else None,
        )
        for mapping, thread in connectors
    ]
