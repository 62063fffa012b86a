"""Platform adapters for external chat integrations."""

from app.adapters.base import BasePlatformAdapter
from app.adapters.groupme import GroupMeAdapter
from app.adapters.teams import TeamsAdapter

__all__ = ["BasePlatformAdapter", "GroupMeAdapter", "TeamsAdapter"]
