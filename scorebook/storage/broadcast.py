"""
In-process change feed for match documents.

Every write to the store is pushed to each queue subscribed to that match id;
the SSE endpoint drains one queue per connected client.
"""

import asyncio
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)

subscribers: dict[str, list[asyncio.Queue]] = defaultdict(list)


def subscribe(match_id: str) -> asyncio.Queue:
    queue: asyncio.Queue = asyncio.Queue()
    subscribers[match_id].append(queue)
    logger.debug(f"Match {match_id}: subscriber added ({len(subscribers[match_id])} total)")
    return queue


def unsubscribe(match_id: str, queue: asyncio.Queue) -> None:
    queues = subscribers.get(match_id, [])
    if queue in queues:
        queues.remove(queue)
    if not queues:
        subscribers.pop(match_id, None)


async def publish(match_id: str, data: dict) -> None:
    """Push the latest match document to every subscriber of that match."""
    for queue in subscribers.get(match_id, []):
        await queue.put(data)
