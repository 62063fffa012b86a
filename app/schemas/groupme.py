"""
GroupMe bot callback payload schemas.

Matches the JSON GroupMe POSTs to a bot's callback URL for every group message.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class GroupMeAttachment(BaseModel):
    """Attachment entry; only ``image`` attachments carry a ``url``."""

    type: str
    url: Optional[str] = None

    model_config = {"extra": "allow"}


class GroupMeCallback(BaseModel):
    """Bot callback payload (root object)."""

    id: str
    group_id: str
    name: str
    text: Optional[str] = None
    created_at: Optional[int] = None  # unix seconds
    sender_type: str = "user"  # user | bot | system
    sender_id: Optional[str] = None
    user_id: Optional[str] = None
    source_guid: Optional[str] = None
    system: bool = False
    attachments: list[GroupMeAttachment] = Field(default_factory=list)

    model_config = {"extra": "allow"}
