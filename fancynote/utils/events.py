"""Server-Sent Events fan-out of note status changes."""

import asyncio
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

KEEPALIVE = ": ping\n\n"


def status_event_name(note_id: int) -> str:
    return f"note-status-{note_id}"


def format_event(event_name: str, data: str) -> str:
    return f"event: {event_name}\ndata: {data}\n\n"


class EventManager:
    """
    Per-user fan-out for SSE connections.

    Each open connection owns a queue; publishing puts the formatted event
    on every queue of that user. Users without open connections simply
    miss the event, clients re-read the note on reconnect.
    """

    def __init__(self):
        self.user_queues: dict[int, set[asyncio.Queue]] = {}

    def connections(self, user_id: int) -> int:
        return len(self.user_queues.get(user_id, ()))

    def open(self, user_id: int) -> asyncio.Queue:
        """Register a connection and return the queue it reads from."""
        queue: asyncio.Queue[str] = asyncio.Queue()
        self.user_queues.setdefault(user_id, set()).add(queue)
        logger.info(f"[SSE] Stream opened for user {user_id} ({self.connections(user_id)} open)")
        return queue

    def close(self, user_id: int, queue: asyncio.Queue) -> None:
        queues = self.user_queues.get(user_id)
        if queues is not None:
            queues.discard(queue)
            if not queues:
                del self.user_queues[user_id]
        logger.info(f"[SSE] Stream closed for user {user_id}")

    async def subscribe(self, user_id: int) -> AsyncIterator[str]:
        """Stream a user's events, starting with a keepalive comment."""
        queue = self.open(user_id)
        try:
            yield KEEPALIVE
            while True:
                yield await queue.get()
        finally:
            self.close(user_id, queue)

    async def broadcast(self, user_id: int, event_name: str, data: str) -> None:
        queues = self.user_queues.get(user_id)
        if not queues:
            logger.debug(f"[SSE] Dropping '{event_name}' for user {user_id}, no open streams")
            return
        message = format_event(event_name, data)
        for queue in queues:
            await queue.put(message)

    async def publish_status(self, user_id: int, note_id: int, status: str) -> None:
        """Report a note's processing stage to its owner."""
        await self.broadcast(user_id, status_event_name(note_id), status)


event_manager = EventManager()
