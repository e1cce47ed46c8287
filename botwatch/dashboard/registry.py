"""Liveness registry for monitored agents.

Tracks, per agent name, the last heartbeat and a time-ordered history of
heartbeat timestamps. Every heartbeat is appended to the agent's durable log;
pruning rewrites or deletes those logs to match memory.

Not thread-safe on its own: ``AppState`` guards it with an ``RWLock``.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from botwatch.dashboard.storage import DurableLog
from botwatch.shared.logger import get_logger


@dataclass
class AgentRecord:
    name: str
    last_heartbeat: float
    heartbeat_history: deque[float] = field(default_factory=deque)

    def copy(self) -> "AgentRecord":
        return AgentRecord(self.name, self.last_heartbeat, deque(self.heartbeat_history))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "last_heartbeat": self.last_heartbeat,
            "heartbeats": len(self.heartbeat_history),
        }


class LivenessRegistry:
    """Track agent heartbeats and detect stale agents."""

    def __init__(self, log: DurableLog):
        self._log = log
        self._agents: dict[str, AgentRecord] = {}
        self.logger = get_logger("registry")

    def load(self) -> int:
        """Restore heartbeat history from the durable log. Returns agents loaded."""
        loaded = 0
        for name in self._log.discover_keys():
            try:
                records = self._log.load_all(name)
            except OSError as e:
                self.logger.warning(f"Failed to read heartbeats for {name}: {e}")
                continue
            history = sorted(
                float(r["timestamp"])
                for r in records
                if isinstance(r, dict) and isinstance(r.get("timestamp"), (int, float))
            )
            if not history:
                continue
            self._agents[name] = AgentRecord(
                name=name,
                last_heartbeat=history[-1],
                heartbeat_history=deque(history),
            )
            loaded += 1
        return loaded

    def log_heartbeat(self, name: str) -> AgentRecord:
        """Record a heartbeat at the current time."""
        now = time.time()
        record = self._agents.get(name)
        if record is None:
            record = AgentRecord(name=name, last_heartbeat=now)
            self._agents[name] = record
        record.heartbeat_history.append(now)
        record.last_heartbeat = now

        try:
            self._log.append_record(name, {"timestamp": now})
        except OSError as e:
            self.logger.warning(f"Failed to persist heartbeat for {name}: {e}")
        return record

    def ensure_registered(self, name: str) -> AgentRecord:
        """Register an agent without recording a heartbeat."""
        record = self._agents.get(name)
        if record is None:
            record = AgentRecord(name=name, last_heartbeat=time.time())
            self._agents[name] = record
        return record

    def get(self, name: str) -> AgentRecord | None:
        return self._agents.get(name)

    def names(self) -> list[str]:
        return sorted(self._agents)

    def is_online(self, name: str, grace_period: float) -> bool:
        """Check if an agent heartbeated within ``grace_period`` seconds."""
        record = self._agents.get(name)
        if record is None:
            return False
        return (time.time() - record.last_heartbeat) < grace_period

    def status(self, grace_period: float) -> dict[str, dict]:
        """Get status of all known agents."""
        now = time.time()
        return {
            name: {
                "online": (now - record.last_heartbeat) < grace_period,
                "last_heartbeat": record.last_heartbeat,
                "age_seconds": round(now - record.last_heartbeat, 1),
            }
            for name, record in sorted(self._agents.items())
        }

    def remove(self, name: str):
        """Forget an agent and delete its durable log."""
        self._agents.pop(name, None)
        try:
            self._log.delete_key(name)
        except OSError as e:
            self.logger.warning(f"Failed to delete heartbeats for {name}: {e}")

    def stale_names(self, max_age: float) -> set[str]:
        """Names whose last heartbeat is older than ``max_age`` seconds."""
        cutoff = time.time() - max_age
        return {name for name, r in self._agents.items() if r.last_heartbeat < cutoff}

    def prune_history(self, retention: float) -> set[str]:
        """Drop heartbeats older than ``retention`` seconds.

        Agents whose history empties are removed; trimmed agents have their
        durable log rewritten. Agents that never heartbeated are left alone.
        Returns the names removed.
        """
        cutoff = time.time() - retention
        removed = set()
        for name, record in list(self._agents.items()):
            history = record.heartbeat_history
            if not history:
                continue
            trimmed = 0
            while history and history[0] < cutoff:
                history.popleft()
                trimmed += 1
            if not trimmed:
                continue
            if not history:
                self.remove(name)
                removed.add(name)
                continue
            try:
                self._log.rewrite_all(name, [{"timestamp": ts} for ts in history])
            except OSError as e:
                self.logger.warning(f"Failed to rewrite heartbeats for {name}: {e}")
        return removed
