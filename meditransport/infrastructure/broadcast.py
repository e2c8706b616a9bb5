"""
Per-ride real-time broadcast.

Every ride has one topic, ``ride:{id}``.  Producers call ``publish``;
WebSocket handlers iterate ``subscribe`` and forward events to clients.

Backends
--------
* ``InMemoryBroadcaster`` -- single-process fan-out over asyncio queues.
* ``RedisBroadcaster``    -- Redis PUBLISH / SUBSCRIBE so every API
  process sees every event.

The backend is picked once at startup from ``settings.broadcast_backend``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis

from meditransport.config import settings

logger = logging.getLogger(__name__)


def ride_channel(ride_id: int) -> str:
    return f"ride:{ride_id}"


class Broadcaster(ABC):
    @abstractmethod
    async def publish(self, ride_id: int, event: dict[str, Any]) -> None: ...

    @abstractmethod
    def subscribe(self, ride_id: int) -> AsyncIterator[dict[str, Any]]: ...

    async def close(self) -> None:
        return None


class InMemoryBroadcaster(Broadcaster):
    def __init__(self, queue_size: int = 100) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()
        self._queue_size = queue_size

    def subscriber_count(self, ride_id: int) -> int:
        return len(self._subscribers.get(ride_channel(ride_id), set()))

    async def publish(self, ride_id: int, event: dict[str, Any]) -> None:
        async with self._lock:
            queues = list(self._subscribers.get(ride_channel(ride_id), set()))
        for queue in queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for slow subscriber on ride %s", ride_id)

    async def subscribe(self, ride_id: int) -> AsyncIterator[dict[str, Any]]:
        key = ride_channel(ride_id)
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            self._subscribers.setdefault(key, set()).add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                queues = self._subscribers.get(key)
                if queues is not None:
                    queues.discard(queue)
                    if not queues:
                        self._subscribers.pop(key, None)


class RedisBroadcaster(Broadcaster):
    def __init__(self, client: aioredis.Redis) -> None:
        self.redis = client

    async def publish(self, ride_id: int, event: dict[str, Any]) -> None:
        await self.redis.publish(ride_channel(ride_id), json.dumps(event, default=str))

    async def subscribe(self, ride_id: int) -> AsyncIterator[dict[str, Any]]:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(ride_channel(ride_id))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                yield json.loads(message["data"])
        finally:
            await pubsub.unsubscribe(ride_channel(ride_id))
            await pubsub.aclose()

    async def close(self) -> None:
        await self.redis.aclose()


_broadcaster: Optional[Broadcaster] = None


def get_broadcaster() -> Broadcaster:
    global _broadcaster
    if _broadcaster is None:
        if settings.broadcast_backend == "redis":
            from meditransport.infrastructure.redis_client import get_redis

            _broadcaster = RedisBroadcaster(get_redis())
        else:
            _broadcaster = InMemoryBroadcaster()
        logger.info("Broadcast backend: %s", settings.broadcast_backend)
    return _broadcaster


async def close_broadcaster() -> None:
    global _broadcaster
    if _broadcaster is not None:
        await _broadcaster.close()
        _broadcaster = None


async def publish_safely(
    broadcaster: Broadcaster, ride_id: int, event: dict[str, Any]
) -> bool:
    """Publish, logging instead of raising: a lost event never fails a write."""
    try:
        await broadcaster.publish(ride_id, event)
        return True
    except Exception:
        logger.exception("Broadcast to ride %s failed", ride_id)
        return False
