"""Per-agent metric event store.

Each agent owns one oldest-first deque of events. Filtering by event id and
tags happens at query time. Explicit client timestamps are stored as given,
so the deque is only approximately ordered; queries scan the whole deque and
never depend on ordering.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from botwatch.dashboard.storage import DurableLog
from botwatch.shared.logger import get_logger


@dataclass
class MetricEvent:
    event_id: str
    timestamp: float
    value: float | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def has_value(self) -> bool:
        return self.value is not None

    def matches(self, tag_filters: dict[str, str]) -> bool:
        """True if every filter key is present with exactly that value."""
        return all(self.tags.get(k) == v for k, v in tag_filters.items())

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "value": self.value,
            "tags": dict(self.tags),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricEvent":
        value = data.get("value")
        return cls(
            event_id=str(data["event_id"]),
            timestamp=float(data["timestamp"]),
            value=float(value) if value is not None else None,
            tags={str(k): str(v) for k, v in (data.get("tags") or {}).items()},
        )


class MetricStore:
    """In-memory metric events, mirrored to a durable log."""

    def __init__(self, log: DurableLog):
        self._log = log
        self._metrics: dict[str, deque[MetricEvent]] = {}
        self.logger = get_logger("metrics")

    def load(self) -> int:
        """Restore events from the durable log. Returns agents loaded."""
        loaded = 0
        for name in self._log.discover_keys():
            try:
                records = self._log.load_all(name)
            except OSError as e:
                self.logger.warning(f"Failed to read metrics for {name}: {e}")
                continue
            events = deque()
            for record in records:
                try:
                    events.append(MetricEvent.from_dict(record))
                except (KeyError, TypeError, ValueError, AttributeError):
                    self.logger.warning(f"Skipping malformed metric record for {name}")
            if events:
                self._metrics[name] = events
                loaded += 1
        return loaded

    def agents(self) -> list[str]:
        return sorted(self._metrics)

    def record(
        self,
        bot_name: str,
        event_id: str,
        value: float | None = None,
        tags: dict[str, str] | None = None,
        timestamp: float | None = None,
    ) -> float:
        """Append one event and return the timestamp used."""
        ts = timestamp if timestamp is not None else time.time()
        event = MetricEvent(event_id=event_id, timestamp=ts, value=value, tags=dict(tags or {}))
        self._metrics.setdefault(bot_name, deque()).append(event)

        try:
            self._log.append_record(bot_name, event.to_dict())
        except OSError as e:
            self.logger.warning(f"Failed to persist metric for {bot_name}: {e}")
        return ts

    def query_window(
        self,
        bot_name: str,
        event_id: str,
        start: float,
        end: float,
        tag_filters: dict[str, str] | None = None,
    ) -> list[MetricEvent]:
        """Events with ``event_id`` in ``[start, end]`` matching every tag filter."""
        events = self._metrics.get(bot_name)
        if not events:
            return []
        filters = tag_filters or {}
        return [
            e
            for e in events
            if e.event_id == event_id and start <= e.timestamp <= end and e.matches(filters)
        ]

    def event_ids(self, bot_name: str) -> list[str]:
        events = self._metrics.get(bot_name, ())
        return sorted({e.event_id for e in events})

    def available_tags(self, bot_name: str, event_id: str) -> dict[str, list[str]]:
        """Distinct values seen for each tag key on ``event_id``."""
        seen: dict[str, set[str]] = {}
        for e in self._metrics.get(bot_name, ()):
            if e.event_id != event_id:
                continue
            for k, v in e.tags.items():
                seen.setdefault(k, set()).add(v)
        return {k: sorted(values) for k, values in sorted(seen.items())}

    def has_values(self, bot_name: str, event_id: str) -> bool:
        return any(
            e.event_id == event_id and e.has_value for e in self._metrics.get(bot_name, ())
        )

    def prune(self, retention: float) -> set[str]:
        """Drop events older than ``retention`` seconds from the head of each deque.

        Best effort: an out-of-order event behind a newer one survives until
        everything in front of it has aged out. Returns agents removed.
        """
        cutoff = time.time() - retention
        removed = set()
        for name, events in list(self._metrics.items()):
            trimmed = 0
            while events and events[0].timestamp < cutoff:
                events.popleft()
                trimmed += 1
            if not events:
                self.remove_bot(name)
                removed.add(name)
            elif trimmed:
                try:
                    self._log.rewrite_all(name, [e.to_dict() for e in events])
                except OSError as e:
                    self.logger.warning(f"Failed to rewrite metrics for {name}: {e}")
        return removed

    def remove_bot(self, name: str):
        """Forget an agent's events and delete its durable log."""
        self._metrics.pop(name, None)
        try:
            self._log.delete_key(name)
        except OSError as e:
            self.logger.warning(f"Failed to delete metrics for {name}: {e}")
