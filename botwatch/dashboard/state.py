"""Shared application state: both stores and the locks that guard them.

Lock ordering: an operation that needs both stores takes the registry lock,
releases it, and only then takes the metrics lock. Nothing holds a lock
across an ``await``.
"""

import os
from pathlib import Path
from typing import Any

from botwatch.dashboard.locks import LockPoisonedError, RWLock
from botwatch.dashboard.metrics import MetricStore
from botwatch.dashboard.registry import AgentRecord, LivenessRegistry
from botwatch.dashboard.storage import DurableLog, JsonLinesLog
from botwatch.shared.logger import get_logger

HEARTBEATS_DIR = "heartbeats"
METRICS_DIR = "metrics"
DASHBOARDS_DIR = "dashboards"

logger = get_logger("state")


def fatal(exc: LockPoisonedError):
    """Terminate the process; a poisoned store cannot be trusted."""
    logger.critical(f"Store lock poisoned, terminating: {exc}")
    os._exit(70)


class AppState:
    """Owns the liveness registry and metric store of one dashboard process."""

    def __init__(
        self,
        data_dir: str | Path = "data",
        heartbeat_log: DurableLog | None = None,
        metric_log: DurableLog | None = None,
    ):
        self.data_dir = Path(data_dir)
        self.dashboards_dir = self.data_dir / DASHBOARDS_DIR
        self._heartbeat_log = heartbeat_log or JsonLinesLog(self.data_dir / HEARTBEATS_DIR)
        self._metric_log = metric_log or JsonLinesLog(self.data_dir / METRICS_DIR)

        self.registry = LivenessRegistry(self._heartbeat_log)
        self.metrics = MetricStore(self._metric_log)
        self.registry_lock = RWLock("registry")
        self.metrics_lock = RWLock("metrics")

    def restore(self) -> dict[str, int]:
        """Load both stores from their durable logs.

        Agents that only ever sent metrics are registered so they are listed.
        """
        metric_agents = self._metric_log.discover_keys()
        with self.registry_lock.write():
            heartbeat_agents = self.registry.load()
            for name in metric_agents:
                self.registry.ensure_registered(name)
        with self.metrics_lock.write():
            loaded = self.metrics.load()

        counts = {"heartbeat_agents": heartbeat_agents, "metric_agents": loaded}
        logger.info("Restored state from disk", extra={"log_data": counts})
        return counts

    def log_heartbeat(self, name: str) -> AgentRecord:
        with self.registry_lock.write():
            return self.registry.log_heartbeat(name).copy()

    def record_metric(
        self,
        bot_name: str,
        event_id: str,
        value: float | None = None,
        tags: dict[str, str] | None = None,
        timestamp: float | None = None,
    ) -> float:
        """Register the agent if needed, then append the event."""
        with self.registry_lock.write():
            self.registry.ensure_registered(bot_name)
        with self.metrics_lock.write():
            return self.metrics.record(bot_name, event_id, value, tags, timestamp)

    def get_agent(self, name: str) -> AgentRecord | None:
        with self.registry_lock.read():
            record = self.registry.get(name)
            return record.copy() if record else None

    def agent_status(self, grace_period: float) -> dict[str, dict[str, Any]]:
        with self.registry_lock.read():
            return self.registry.status(grace_period)

    def is_online(self, name: str, grace_period: float) -> bool:
        with self.registry_lock.read():
            return self.registry.is_online(name, grace_period)

    def event_ids(self, name: str) -> list[str]:
        with self.metrics_lock.read():
            return self.metrics.event_ids(name)

    def has_values(self, name: str, event_id: str) -> bool:
        with self.metrics_lock.read():
            return self.metrics.has_values(name, event_id)

    def remove_agent(self, name: str):
        """Administrative removal from both stores."""
        with self.registry_lock.write():
            self.registry.remove(name)
        with self.metrics_lock.write():
            self.metrics.remove_bot(name)
        logger.info(f"Removed agent {name}")
