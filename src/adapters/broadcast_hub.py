"""In-process broadcast adapter.

Implements the core BroadcastPort by fanning messages out to per-account
subscriber queues. A web transport drains a queue per connected browser;
the pipeline itself never holds subscriber references.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from core.models import ChatMessage

LOGGER = logging.getLogger(__name__)


class BroadcastHub:
    """Publish/subscribe hub with subscribers grouped by account."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, account_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(account_id, set()).add(queue)
        LOGGER.debug("Subscriber added for account %s", account_id)
        return queue

    def unsubscribe(self, account_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(account_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[account_id]

    def subscriber_count(self, account_id: Optional[str] = None) -> int:
        if account_id is not None:
            return len(self._subscribers.get(account_id, ()))
        return sum(len(queues) for queues in self._subscribers.values())

    async def publish(self, account_id: str, message: ChatMessage) -> None:
        """Deliver a message to every subscriber of the account.

        A full queue means a stalled client; its oldest message is dropped so
        the others keep flowing.
        """

        for queue in list(self._subscribers.get(account_id, ())):
            if queue.full():
                queue.get_nowait()
                LOGGER.warning("Subscriber queue full for account %s, dropped oldest message", account_id)
            queue.put_nowait(message)
