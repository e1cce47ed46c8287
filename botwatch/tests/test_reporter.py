"""Tests for the agent-side reporter."""

import asyncio

import pytest
from unittest.mock import AsyncMock
from botwatch.shared.bus import HEARTBEAT_CHANNEL, METRICS_CHANNEL
from botwatch.shared.reporter import AgentReporter
from botwatch.tests.mock_bus import MockBus


@pytest.mark.asyncio
async def test_heartbeat_publishes_agent_name():
    bus = MockBus()
    reporter = AgentReporter("bot1", bus=bus)
    await reporter.heartbeat()
    channel, envelope = bus.get_published()[0]
    assert channel == HEARTBEAT_CHANNEL
    assert envelope["from"] == "bot1"
    assert envelope["payload"] == {"agent": "bot1"}


@pytest.mark.asyncio
async def test_metric_omits_missing_value():
    bus = MockBus()
    reporter = AgentReporter("bot1", bus=bus)
    await reporter.metric("joins", tags={"guild": "a"})
    _, envelope = bus.get_published(METRICS_CHANNEL)[0]
    assert envelope["payload"] == {"agent": "bot1", "event_id": "joins", "tags": {"guild": "a"}}


@pytest.mark.asyncio
async def test_start_runs_heartbeat_loop():
    bus = MockBus()
    reporter = AgentReporter("bot1", bus=bus, heartbeat_interval=0.01)
    await reporter.start()
    await asyncio.sleep(0.05)
    await reporter.stop()
    assert len(bus.get_published(HEARTBEAT_CHANNEL)) >= 2
    assert bus.connected is False


@pytest.mark.asyncio
async def test_heartbeat_loop_survives_publish_errors():
    bus = MockBus()
    bus.publish = AsyncMock(side_effect=ConnectionError("redis down"))
    reporter = AgentReporter("bot1", bus=bus, heartbeat_interval=0.01)
    await reporter.start()
    await asyncio.sleep(0.05)
    await reporter.stop()
    assert bus.publish.call_count >= 2
