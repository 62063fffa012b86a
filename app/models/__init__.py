from app.models.channel_mapping import ChannelMapping
from app.models.chat_message import ChatMessage
from app.models.chat_thread import ChatThread

__all__ = [
    "ChannelMapping",
    "ChatMessage",
    "ChatThread",
]
