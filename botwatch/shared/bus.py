"""Redis pub/sub bus carrying agent heartbeats and metrics to the dashboard."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable

import redis.asyncio as aioredis

from botwatch.shared.logger import get_logger

HEARTBEAT_CHANNEL = "agents/heartbeat"
METRICS_CHANNEL = "agents/metrics"


def make_envelope(channel: str, payload: dict[str, Any], sender: str) -> dict[str, Any]:
    """Wrap a payload in the envelope every bus message carries."""
    return {
        "from": sender,
        "channel": channel,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }


class RedisBus:
    """Thin async wrapper around Redis pub/sub with JSON envelope."""

    def __init__(self, redis_url: str = "redis://localhost:6379"):
        self._redis_url = redis_url
        self._publisher = None
        self._subscriber = None
        self._pubsub = None
        self._handlers: dict[str, Callable] = {}
        self._listen_task = None
        self.logger = get_logger("bus")

    async def connect(self):
        self._publisher = aioredis.from_url(self._redis_url)
        self._subscriber = aioredis.from_url(self._redis_url)
        self._pubsub = self._subscriber.pubsub()

    async def disconnect(self):
        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None
        if self._pubsub:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        if self._subscriber:
            await self._subscriber.aclose()
            self._subscriber = None
        if self._publisher:
            await self._publisher.aclose()
            self._publisher = None

    async def publish(self, channel: str, payload: dict[str, Any], sender: str = "unknown"):
        envelope = make_envelope(channel, payload, sender)
        await self._publisher.publish(channel, json.dumps(envelope))

    async def subscribe(self, channel: str, handler: Callable):
        self._handlers[channel] = handler
        await self._pubsub.subscribe(channel)
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.create_task(self._listen())

    async def unsubscribe(self, channel: str):
        self._handlers.pop(channel, None)
        await self._pubsub.unsubscribe(channel)

    async def _listen(self):
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                channel = message["channel"]
                if isinstance(channel, bytes):
                    channel = channel.decode()
                try:
                    data = json.loads(message["data"])
                except (json.JSONDecodeError, UnicodeDecodeError):
                    self.logger.warning(f"Dropping undecodable message on {channel}")
                    continue
                handler = self._handlers.get(channel)
                if handler:
                    if asyncio.iscoroutinefunction(handler):
                        await handler(channel, data)
                    else:
                        handler(channel, data)
        except asyncio.CancelledError:
            pass
