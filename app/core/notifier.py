"""
In-process fan-out of new chat messages to live subscribers of a thread.

The websocket/SignalR transport lives outside the relay; it subscribes here.
Delivery is at-least-once from the relay's point of view and clients
de-duplicate by message id.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, Set
from uuid import UUID

from app.infra.logging_config import get_logger
from app.schemas.chat import ChatMessageRead

logger = get_logger("notifier")

DEFAULT_QUEUE_SIZE = 100


class ThreadNotifier:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: Dict[UUID, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, thread_id: UUID) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[thread_id].add(queue)
        return queue

    def unsubscribe(self, thread_id: UUID, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(thread_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[thread_id]

    def subscriber_count(self, thread_id: UUID) -> int:
        return len(self._subscribers.get(thread_id, ()))

    async def publish(self, thread_id: UUID, message: ChatMessageRead) -> int:
        """Push to every subscriber; a full queue drops that subscriber's copy."""
        delivered = 0
        for queue in list(self._subscribers.get(thread_id, ())):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full for thread %s; dropping message %s",
                    thread_id,
                    message.id,
                )
        return delivered
