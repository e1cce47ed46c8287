"""Agent-side reporter: publishes heartbeats and metrics onto the bus."""

import asyncio
from datetime import datetime
from typing import Any

from botwatch.shared.bus import HEARTBEAT_CHANNEL, METRICS_CHANNEL, RedisBus
from botwatch.shared.logger import get_logger


class AgentReporter:
    """Publishes liveness and telemetry for one named agent.

    Provides:
    - a single heartbeat or a background heartbeat loop
    - metric events with optional value, tags and explicit timestamp
    """

    def __init__(
        self,
        name: str,
        bus=None,
        redis_url: str = "redis://localhost:6379",
        heartbeat_interval: float = 30,
    ):
        self.name = name
        self.bus = bus if bus is not None else RedisBus(redis_url=redis_url)
        self.logger = get_logger(f"reporter.{name}")
        self._heartbeat_interval = heartbeat_interval
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self):
        """Connect to the bus and start the heartbeat loop in the background."""
        await self.bus.connect()
        self._running = True
        self._task = asyncio.create_task(self._heartbeat_loop())
        self.logger.info(f"Reporter for {self.name} started")

    async def stop(self):
        """Stop the heartbeat loop and disconnect."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.bus.disconnect()
        self.logger.info(f"Reporter for {self.name} stopped")

    async def heartbeat(self):
        """Publish a single heartbeat to the bus."""
        await self.bus.publish(HEARTBEAT_CHANNEL, {"agent": self.name}, sender=self.name)

    async def metric(
        self,
        event_id: str,
        value: float | None = None,
        tags: dict[str, str] | None = None,
        timestamp: datetime | None = None,
    ):
        """Publish one metric event."""
        payload: dict[str, Any] = {
            "agent": self.name,
            "event_id": event_id,
            "tags": dict(tags or {}),
        }
        if value is not None:
            payload["value"] = value
        if timestamp is not None:
            payload["timestamp"] = timestamp.isoformat()
        await self.bus.publish(METRICS_CHANNEL, payload, sender=self.name)

    async def _heartbeat_loop(self):
        while self._running:
            try:
                await self.heartbeat()
            except Exception as e:
                self.logger.error(f"Heartbeat failed: {e}")
            await asyncio.sleep(self._heartbeat_interval)
