"""Tests for the HTTP JSON API."""

from unittest.mock import patch

import pytest
from aiohttp.test_utils import TestClient as AioTestClient, TestServer as AioTestServer

from botwatch.dashboard.api import BadRequest, create_app, parse_timestamp
from botwatch.dashboard.locks import LockPoisonedError
from botwatch.dashboard.state import AppState

SETTINGS = {"chart_bucket_count": 10}


@pytest.fixture
def state(tmp_path):
    return AppState(data_dir=tmp_path)


@pytest.fixture
async def client(state):
    c = AioTestClient(AioTestServer(create_app(state, SETTINGS)))
    await c.start_server()
    yield c
    await c.close()


class TestParseTimestamp:
    def test_number(self):
        assert parse_timestamp(12) == 12.0

    def test_iso_with_z(self):
        assert parse_timestamp("1970-01-01T00:01:00Z") == 60.0

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("1970-01-01T00:01:00") == 60.0

    @pytest.mark.parametrize("raw", ["yesterday", True, [1], float("nan"), float("inf"), 1e13])
    def test_rejects_garbage(self, raw):
        with pytest.raises(BadRequest):
            parse_timestamp(raw)


@pytest.mark.asyncio
async def test_heartbeat(client, state):
    resp = await client.post("/heartbeat", json={"name": "bot1"})
    assert resp.status == 200
    body = await resp.json()
    assert body["name"] == "bot1"
    assert "last_heartbeat" in body
    assert state.get_agent("bot1") is not None


@pytest.mark.asyncio
async def test_heartbeat_requires_name(client):
    resp = await client.post("/heartbeat", json={})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_heartbeat_rejects_invalid_json(client):
    resp = await client.post("/heartbeat", data="{nope", headers={"Content-Type": "application/json"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_record_metric(client, state):
    resp = await client.post("/metrics", json={
        "bot_name": "bot1",
        "event_id": "latency",
        "value": 42,
        "tags": {"region": "eu"},
        "timestamp": "2026-01-01T00:00:00Z",
    })
    assert resp.status == 201
    body = await resp.json()
    assert body["status"] == "recorded"
    assert body["timestamp"].startswith("2026-01-01T00:00:00")
    assert state.event_ids("bot1") == ["latency"]
    assert state.get_agent("bot1") is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"event_id": "x"},
    {"bot_name": "bot1"},
    {"bot_name": "bot1", "event_id": "x", "value": "fast"},
    {"bot_name": "bot1", "event_id": "x", "tags": ["a"]},
    ["not", "an", "object"],
    {"bot_name": "bot1", "event_id": "x", "timestamp": float("nan")},
    {"bot_name": "bot1", "event_id": "x", "timestamp": float("inf")},
    {"bot_name": "bot1", "event_id": "x", "timestamp": 1e13},
    {"bot_name": "bot1", "event_id": "x", "timestamp": 10 ** 400},
    {"bot_name": "bot1", "event_id": "x", "value": float("nan")},
    {"bot_name": "bot1", "event_id": "x", "value": float("-inf")},
])
async def test_record_metric_validation(client, state, body):
    resp = await client.post("/metrics", json=body)
    assert resp.status == 400
    assert state.event_ids("bot1") == []
    assert state.get_agent("bot1") is None


@pytest.mark.asyncio
async def test_bot_list_and_detail(client):
    await client.post("/heartbeat", json={"name": "bot1"})

    resp = await client.get("/bots")
    bots = (await resp.json())["bots"]
    assert [b["name"] for b in bots] == ["bot1"]

    resp = await client.get("/bot/bot1?window=1h")
    detail = await resp.json()
    assert detail["online"] is True
    assert detail["window"] == "1h"
    assert len(detail["uptime"]["buckets"]) == 10


@pytest.mark.asyncio
async def test_detail_unknown_bot(client):
    resp = await client.get("/bot/ghost")
    assert resp.status == 404


@pytest.mark.asyncio
async def test_chart_lifecycle(client):
    await client.post("/metrics", json={"bot_name": "bot1", "event_id": "latency", "value": 5})
    await client.post("/metrics", json={"bot_name": "bot1", "event_id": "cmd", "tags": {"g": "a"}})

    resp = await client.get("/bot/bot1/events")
    assert (await resp.json())["event_ids"] == ["cmd", "latency"]

    resp = await client.get("/bot/bot1/chart-types", params={"event_id": "cmd"})
    types = [t["key"] for t in (await resp.json())["chart_types"]]
    assert types == ["event_count_bar", "single_value"]

    resp = await client.post("/bot/bot1/charts", json={"event_id": "cmd", "chart_type": "value_sum_bar"})
    assert resp.status == 400

    resp = await client.post("/bot/bot1/charts", json={"event_id": "cmd", "chart_type": "event_count_bar"})
    charts = (await resp.json())["charts"]
    assert len(charts) == 1

    resp = await client.post("/bot/bot1/charts/0/filter", json={"tag_key": "g", "tag_value": "a"})
    charts = (await resp.json())["charts"]
    assert charts[0]["tag_filters"] == {"g": "a"}

    resp = await client.post("/bot/bot1/charts/0/filter", json={"tag_key": "g", "tag_value": ""})
    charts = (await resp.json())["charts"]
    assert charts[0]["tag_filters"] == {}

    resp = await client.delete("/bot/bot1/charts/0")
    assert (await resp.json())["charts"] == []


@pytest.mark.asyncio
async def test_add_chart_unknown_type(client):
    resp = await client.post("/bot/bot1/charts", json={"event_id": "cmd", "chart_type": "pie"})
    assert resp.status == 400


@pytest.mark.asyncio
async def test_remove_bot(client, state):
    await client.post("/heartbeat", json={"name": "bot1"})
    await client.post("/metrics", json={"bot_name": "bot1", "event_id": "cmd"})

    resp = await client.delete("/bot/bot1")
    assert resp.status == 200
    assert state.get_agent("bot1") is None
    assert state.event_ids("bot1") == []


@pytest.mark.asyncio
async def test_poisoned_lock_terminates(client, state):
    with patch.object(state, "log_heartbeat", side_effect=LockPoisonedError("registry")), \
         patch("botwatch.dashboard.api.fatal") as mock_fatal:
        resp = await client.post("/heartbeat", json={"name": "bot1"})
    mock_fatal.assert_called_once()
    assert resp.status == 500
