"""
Service for channel mappings: the durable source of truth for which external
conversation belongs to which COBRA event/thread and how to reach it.

Mappings are never deleted. At most one active mapping may exist per
(platform, external_group_id); the partial unique index enforces it and
write paths translate violations into ConflictError.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from app.core.exceptions import ConflictError
from app.infra.logging_config import get_logger
from app.models.channel_mapping import ChannelMapping
from app.models.chat_thread import ChatThread
from app.schemas.channel_mapping import (
    ChannelMappingCreate,
    StoreConversationReferenceRequest,
)
from app.schemas.relay import InboundMessage, Platform
from app.services.soft_delete_service import SoftDeleteService
from app.utils.time import utcnow

logger = get_logger("channel_mappings")

WEBHOOK_SECRET_BYTES = 32


def generate_webhook_secret() -> str:
    return secrets.token_urlsafe(WEBHOOK_SECRET_BYTES)


def _default_group_name(platform: Platform, is_emulator: bool) -> str:
    if platform == Platform.TEAMS:
        return "Teams Emulator" if is_emulator else "Teams Channel"
    return f"{platform.value.capitalize()} Conversation"


class ChannelMappingService(SoftDeleteService[ChannelMapping]):
    """Store and lifecycle of ChannelMapping rows."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, ChannelMapping)

    # --- lookups ---

    def get_mapping(self, mapping_id: UUID) -> Optional[ChannelMapping]:
        """Fetch a mapping by ID, active or not."""
        return self.get_record(mapping_id)

    def get_active_mapping(
        self, platform: Platform, external_group_id: str
    ) -> Optional[ChannelMapping]:
        return (
            self.db.query(ChannelMapping)
            .filter(
                ChannelMapping.platform == Platform(platform).value,
                ChannelMapping.external_group_id == external_group_id,
                ChannelMapping.is_active.is_(True),
            )
            .first()
        )

    def get_mapping_by_group(
        self, platform: Platform, external_group_id: str
    ) -> Optional[ChannelMapping]:
        """Active mapping if there is one, else the most recently touched inactive one."""
        active = self.get_active_mapping(platform, external_group_id)
        if active is not None:
            return active
        return (
            self.db.query(ChannelMapping)
            .filter(
                ChannelMapping.platform == Platform(platform).value,
                ChannelMapping.external_group_id == external_group_id,
            )
            .order_by(ChannelMapping.updated_at.desc())
            .first()
        )

    def get_mapping_for_thread(self, thread_id: UUID) -> Optional[ChannelMapping]:
        return (
            self.db.query(ChannelMapping)
            .filter(
                ChannelMapping.chat_thread_id == thread_id,
                ChannelMapping.is_active.is_(True),
            )
            .first()
        )

    def get_active_mappings_for_event(self, event_id: UUID) -> List[ChannelMapping]:
        return (
            self.db.query(ChannelMapping)
            .filter(
                ChannelMapping.event_id == event_id,
                ChannelMapping.is_active.is_(True),
            )
            .order_by(ChannelMapping.created_at.asc())
            .all()
        )

    def get_mappings_query(
        self,
        platform: Optional[Platform] = None,
        is_active: Optional[bool] = None,
        is_emulator: Optional[bool] = None,
        stale_days: Optional[int] = None,
        event_id: Optional[UUID] = None,
    ) -> Query[ChannelMapping]:
        """Filtered query for the admin list (for pagination)."""
        q = self.db.query(ChannelMapping)
        if platform is not None:
            q = q.filter(ChannelMapping.platform == Platform(platform).value)
        if is_active is not None:
            q = q.filter(ChannelMapping.is_active.is_(is_active))
        if is_emulator is not None:
            q = q.filter(ChannelMapping.is_emulator_or_test.is_(is_emulator))
        if event_id is not None:
            q = q.filter(ChannelMapping.event_id == event_id)
        if stale_days is not None:
            cutoff = utcnow() - timedelta(days=stale_days)
            q = q.filter(
                or_(
                    ChannelMapping.last_activity_at.is_(None),
                    ChannelMapping.last_activity_at < cutoff,
                )
            )
        return q.order_by(
            ChannelMapping.last_activity_at.desc(), ChannelMapping.created_at.desc()
        )

    # --- writes ---

    def _ensure_unclaimed(
        self,
        platform: Platform,
        external_group_id: str,
        exclude_id: Optional[UUID] = None,
    ) -> None:
        existing = self.get_active_mapping(platform, external_group_id)
        if existing is not None and existing.id != exclude_id:
            raise ConflictError(
                f"An active {Platform(platform).value} mapping already exists "
                f"for conversation {external_group_id!r}",
                existing_id=existing.id,
            )

    def _commit_unique(self, platform: Platform, external_group_id: str) -> None:
        """Commit; a lost race on the unique index becomes ConflictError."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.get_active_mapping(platform, external_group_id)
            raise ConflictError(
                f"An active {Platform(platform).value} mapping already exists "
                f"for conversation {external_group_id!r}",
                existing_id=existing.id if existing else None,
            ) from e

    def create_mapping(
        self,
        data: ChannelMappingCreate,
        created_by: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        mapping_id: Optional[UUID] = None,
    ) -> ChannelMapping:
        """Create a mapping. Raises ConflictError if the conversation is already mapped."""
        self._ensure_unclaimed(data.platform, data.external_group_id)
        mapping = ChannelMapping(
            platform=data.platform.value,
            external_group_id=data.external_group_id,
            external_group_name=data.external_group_name,
            event_id=data.event_id,
            chat_thread_id=data.chat_thread_id,
            bot_id=data.bot_id,
            share_url=data.share_url,
            webhook_secret=webhook_secret or generate_webhook_secret(),
            conversation_reference=data.conversation_reference,
            tenant_id=data.tenant_id,
            installed_by_name=data.installed_by_name,
            is_emulator_or_test=data.is_emulator_or_test,
            created_by=created_by,
            modified_by=created_by,
        )
        if mapping_id is not None:
            mapping.id = mapping_id
        self.db.add(mapping)
        self._commit_unique(data.platform, data.external_group_id)
        self.db.refresh(mapping)
        logger.info(
            "Created %s mapping %s for conversation %s",
            mapping.platform,
            mapping.id,
            mapping.external_group_id,
        )
        return mapping

    def create_unlinked_mapping(
        self, inbound: InboundMessage, created_by: str
    ) -> ChannelMapping:
        """Park a conversation seen for the first time until someone links it."""
        data = ChannelMappingCreate(
            platform=inbound.platform,
            external_group_id=inbound.external_group_id,
            external_group_name=inbound.group_name
            or _default_group_name(inbound.platform, inbound.is_emulator),
            conversation_reference=inbound.conversation_reference,
            tenant_id=inbound.tenant_id,
            installed_by_name=inbound.installed_by_name,
            is_emulator_or_test=inbound.is_emulator,
        )
        mapping = self.create_mapping(data, created_by=created_by)
        mapping.last_activity_at = utcnow()
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def refresh_from_inbound(
        self, mapping: ChannelMapping, inbound: InboundMessage, modified_by: str
    ) -> ChannelMapping:
        """
        Record activity on the mapping. The reference is replaced only when the
        callback carried one; installed_by_name is first-writer-wins.
        """
        if inbound.conversation_reference:
            mapping.conversation_reference = inbound.conversation_reference
        if inbound.tenant_id:
            mapping.tenant_id = inbound.tenant_id
        if inbound.platform == Platform.TEAMS:
            mapping.is_emulator_or_test = inbound.is_emulator
        if not mapping.installed_by_name and inbound.installed_by_name:
            mapping.installed_by_name = inbound.installed_by_name
        mapping.last_activity_at = utcnow()
        mapping.modified_by = modified_by
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def upsert_conversation_reference(
        self, request: StoreConversationReferenceRequest, modified_by: str
    ) -> Tuple[ChannelMapping, bool]:
        """Store the latest reference for a conversation, creating an unlinked mapping if needed."""
        mapping = self.get_mapping_by_group(request.platform, request.conversation_id)
        is_new = mapping is None
        if mapping is None:
            data = ChannelMappingCreate(
                platform=request.platform,
                external_group_id=request.conversation_id,
                external_group_name=request.channel_name
                or _default_group_name(request.platform, request.is_emulator),
                is_emulator_or_test=request.is_emulator,
            )
            try:
                mapping = self.create_mapping(data, created_by=modified_by)
            except ConflictError:
                # Concurrent first contact; the other writer created it.
                mapping = self.get_active_mapping(
                    request.platform, request.conversation_id
                )
                if mapping is None:
                    raise
                is_new = False

        mapping.conversation_reference = request.conversation_reference
        mapping.tenant_id = request.tenant_id
        mapping.is_emulator_or_test = request.is_emulator
        mapping.last_activity_at = utcnow()
        mapping.modified_by = modified_by
        if not mapping.installed_by_name and request.installed_by_name:
            mapping.installed_by_name = request.installed_by_name
        self.db.commit()
        self.db.refresh(mapping)
        return mapping, is_new

    def rename_mapping(
        self, mapping_id: UUID, display_name: str, modified_by: str
    ) -> Optional[ChannelMapping]:
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return None
        mapping.external_group_name = display_name
        mapping.modified_by = modified_by
        self.db.commit()
        self.db.refresh(mapping)
        logger.info("Renamed mapping %s to %r", mapping_id, display_name)
        return mapping

    def deactivate_mapping(
        self, mapping_id: UUID, modified_by: str
    ) -> Optional[ChannelMapping]:
        """Deactivate a mapping. Already inactive is a no-op; None if it does not exist."""
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return None
        if self.soft_delete(mapping, modified_by):
            logger.info("Deactivated mapping %s (%s)", mapping_id, modified_by)
        return mapping

    def reactivate_mapping(
        self, mapping_id: UUID, modified_by: str
    ) -> Optional[ChannelMapping]:
        """Reactivate a mapping. Raises ConflictError if another mapping now owns the conversation."""
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return None
        if mapping.is_active:
            return mapping
        self._ensure_unclaimed(
            Platform(mapping.platform), mapping.external_group_id, exclude_id=mapping.id
        )
        mapping.is_active = True
        mapping.modified_by = modified_by
        self._commit_unique(Platform(mapping.platform), mapping.external_group_id)
        self.db.refresh(mapping)
        logger.info("Reactivated mapping %s", mapping_id)
        return mapping

    def deactivate_stale(
        self,
        inactive_days: int,
        platform: Optional[Platform] = None,
        modified_by: str = "stale-cleanup",
    ) -> List[UUID]:
        """Deactivate active mappings with no activity for ``inactive_days``."""
        stale = self.get_mappings_query(
            platform=platform, is_active=True, stale_days=inactive_days
        ).all()
        ids = []
        for mapping in stale:
            mapping.is_active = False
            mapping.modified_by = modified_by
            ids.append(mapping.id)
        self.db.commit()
        logger.info(
            "Cleaned up %d stale mappings (inactive for %d+ days)", len(ids), inactive_days
        )
        return ids

    def link_to_thread(
        self, mapping_id: UUID, thread: ChatThread, modified_by: str
    ) -> Optional[ChannelMapping]:
        """Attach a mapping to a thread (and its event). A thread holds at most one mapping."""
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return None
        current = self.get_mapping_for_thread(thread.id)
        if current is not None and current.id != mapping.id:
            raise ConflictError(
                f"Thread {thread.id} is already linked to mapping {current.id}",
                existing_id=current.id,
            )
        mapping.chat_thread_id = thread.id
        mapping.event_id = thread.event_id
        mapping.modified_by = modified_by
        self.db.commit()
        self.db.refresh(mapping)
        logger.info("Linked mapping %s to thread %s", mapping.id, thread.id)
        return mapping

    def unlink_thread(
        self, thread_id: UUID, modified_by: str
    ) -> Optional[ChannelMapping]:
        """Detach whatever mapping the thread has; the mapping returns to the unlinked pool."""
        mapping = self.get_mapping_for_thread(thread_id)
        if mapping is None:
            return None
        mapping.chat_thread_id = None
        mapping.event_id = None
        mapping.modified_by = modified_by
        self.db.commit()
        self.db.refresh(mapping)
        logger.info("Unlinked mapping %s from thread %s", mapping.id, thread_id)
        return mapping

    def get_available_connectors(
        self, event_id: UUID
    ) -> List[Tuple[ChannelMapping, Optional[ChatThread]]]:
        """Active, addressable, non-emulator connectors with their thread in this event (if any)."""
        mappings = (
            self.db.query(ChannelMapping)
            .filter(
                ChannelMapping.is_active.is_(True),
                ChannelMapping.conversation_reference.isnot(None),
                ChannelMapping.is_emulator_or_test.is_(False),
            )
            .order_by(ChannelMapping.external_group_name.asc())
            .all()
        )
        result = []
        for mapping in mappings:
            thread = mapping.chat_thread if mapping.event_id == event_id else None
            result.append((mapping, thread))
        return result
