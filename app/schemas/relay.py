"""
Normalized message contracts for the relay.

Adapters convert platform callbacks into ``InboundMessage`` and receive
``OutboundMessage`` for delivery. Nothing outside the adapters looks at
platform payloads directly.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Platform(str, Enum):
    """External platforms. Signal and Slack are reserved, no adapter yet."""

    GROUPME = "groupme"
    SIGNAL = "signal"
    TEAMS = "teams"
    SLACK = "slack"


class InboundMessage(BaseModel):
    """Normalized inbound message (adapter → core)."""

    platform: Platform
    external_group_id: str
    message_id: str
    text: str = ""
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    timestamp: Optional[datetime] = None
    attachment_url: Optional[str] = None
    # message | install | system; only "message" is stored in a thread.
    kind: str = "message"
    is_from_bot: bool = False
    # Present when the callback carries fresh addressing data (Teams).
    conversation_reference: Optional[str] = None
    group_name: Optional[str] = None
    tenant_id: Optional[str] = None
    installed_by_name: Optional[str] = None
    is_emulator: bool = False


class OutboundMessage(BaseModel):
    """Normalized outbound message (core → adapter)."""

    platform: Platform
    mapping_id: UUID
    external_group_id: str
    text: str
    bot_id: Optional[str] = None
    conversation_reference: Optional[str] = None


class OutboundSendResult(BaseModel):
    """Result of sending an outbound message."""

    success: bool
    platform_message_id: Optional[str] = None


class ChannelOutcomeStatus(str, Enum):
    SENT = "sent"
    SKIPPED_INVALID_REFERENCE = "skipped-invalid-reference"
    FAILED = "failed"


class ChannelOutcome(BaseModel):
    """Per-channel result of a broadcast."""

    mapping_id: UUID
    platform: Platform
    external_group_name: str
    status: ChannelOutcomeStatus
    platform_message_id: Optional[str] = None
    reference_status: Optional[str] = None
    error: Optional[str] = None
    deactivated: bool = False


class BroadcastResult(BaseModel):
    outcomes: list[ChannelOutcome] = Field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ChannelOutcomeStatus.SENT)
