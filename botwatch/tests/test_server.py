"""Tests for the dashboard launcher."""

import asyncio
import json

import pytest
from unittest.mock import patch
from botwatch.dashboard.server import DashboardServer
from botwatch.dashboard.state import AppState


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "botwatch.json"
    path.write_text(json.dumps({
        "data_dir": str(tmp_path / "data"),
        "host": "127.0.0.1",
        "port": 0,
    }))
    return str(path)


class TestDashboardServer:
    def test_defaults_without_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        server = DashboardServer()
        assert server.config["port"] == 8000
        assert server._ingestor is None

    def test_config_overrides_defaults(self, config_file):
        server = DashboardServer(config_path=config_file)
        assert server.config["port"] == 0
        assert server.config["prune_interval_seconds"] == 3600

    def test_redis_url_enables_ingestion(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text(json.dumps({"data_dir": str(tmp_path), "redis_url": "redis://localhost:6379"}))
        server = DashboardServer(config_path=str(path))
        assert server._ingestor is not None

    @pytest.mark.asyncio
    async def test_start_restores_and_stops(self, config_file, tmp_path):
        AppState(data_dir=tmp_path / "data").log_heartbeat("bot1")

        server = DashboardServer(config_path=config_file)
        with patch("botwatch.dashboard.server.run_pruner") as mock_pruner:
            mock_pruner.side_effect = lambda *a, **kw: asyncio.sleep(3600)
            task = asyncio.create_task(server.start())
            await asyncio.sleep(0.2)
            assert server.state.get_agent("bot1") is not None
            server.request_shutdown()
            await asyncio.wait_for(task, timeout=5)

        mock_pruner.assert_called_once()
        assert server._tasks == []
        assert server._runner is None
