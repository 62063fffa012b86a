from app.services.channel_mapping_service import ChannelMappingService
from app.services.chat_message_service import ChatMessageService
from app.services.chat_thread_service import ChatThreadService

__all__ = [
    "ChannelMappingService",
    "ChatMessageService",
    "ChatThreadService",
]
