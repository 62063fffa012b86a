from app.commands.channels.channel_commands import (
    CreateExternalChannelCommand,
    DeactivateChannelCommand,
)

__all__ = ["CreateExternalChannelCommand", "DeactivateChannelCommand"]
