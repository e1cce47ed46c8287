"""Per-agent dashboard layout: which charts to draw and how.

Stored as one JSON file per agent under the dashboards directory.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote


class ChartType(str, Enum):
    """Chart visualisations.

    EVENT_COUNT_BAR and SINGLE_VALUE work for any event. VALUE_SUM_BAR and
    VALUE_AVERAGE_LINE need events that carry numeric values.
    """

    EVENT_COUNT_BAR = "event_count_bar"
    VALUE_SUM_BAR = "value_sum_bar"
    VALUE_AVERAGE_LINE = "value_average_line"
    SINGLE_VALUE = "single_value"

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES[self]

    @property
    def needs_values(self) -> bool:
        return self in (ChartType.VALUE_SUM_BAR, ChartType.VALUE_AVERAGE_LINE)

    @classmethod
    def valid_for(cls, has_values: bool) -> list["ChartType"]:
        """Chart types legal for an event id, given whether it carries values."""
        if has_values:
            return list(cls)
        return [t for t in cls if not t.needs_values]


DISPLAY_NAMES = {
    ChartType.EVENT_COUNT_BAR: "Event Count (Bar)",
    ChartType.VALUE_SUM_BAR: "Value Sum (Bar)",
    ChartType.VALUE_AVERAGE_LINE: "Value Average (Line)",
    ChartType.SINGLE_VALUE: "Single Value",
}


@dataclass
class ChartConfig:
    event_id: str
    chart_type: ChartType
    tag_filters: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "chart_type": self.chart_type.value,
            "tag_filters": dict(self.tag_filters),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChartConfig":
        return cls(
            event_id=data["event_id"],
            chart_type=ChartType(data["chart_type"]),
            tag_filters=dict(data.get("tag_filters") or {}),
        )

    def set_filter(self, tag_key: str, tag_value: str):
        """Set a tag filter; an empty value clears it."""
        if tag_value:
            self.tag_filters[tag_key] = tag_value
        else:
            self.tag_filters.pop(tag_key, None)


@dataclass
class DashboardConfig:
    charts: list[ChartConfig] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"charts": [c.to_dict() for c in self.charts]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashboardConfig":
        return cls(charts=[ChartConfig.from_dict(c) for c in data.get("charts", [])])


def config_path(dashboards_dir: str | Path, bot_name: str) -> Path:
    return Path(dashboards_dir) / f"{quote(bot_name, safe='')}.json"


def load(dashboards_dir: str | Path, bot_name: str) -> DashboardConfig:
    """Load an agent's dashboard config; a missing file yields an empty one.

    Raises:
        ValueError: If the file exists but is not a valid config.
    """
    path = config_path(dashboards_dir, bot_name)
    if not path.exists():
        return DashboardConfig()
    try:
        return DashboardConfig.from_dict(json.loads(path.read_text()))
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Invalid dashboard config {path}: {e}") from e


def save(dashboards_dir: str | Path, bot_name: str, config: DashboardConfig):
    path = config_path(dashboards_dir, bot_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2))


def delete(dashboards_dir: str | Path, bot_name: str):
    config_path(dashboards_dir, bot_name).unlink(missing_ok=True)
