"""Chart-ready series for an agent's dashboard.

Pulls a time window of heartbeats and metric events out of ``AppState`` and
runs them through ``charts`` according to the agent's dashboard config.
Output is plain dicts for the JSON API.
"""

import time
from datetime import datetime, timezone
from typing import Any

from botwatch.dashboard import charts, dashboard_config
from botwatch.dashboard.dashboard_config import ChartConfig, ChartType, DashboardConfig
from botwatch.dashboard.metrics import MetricStore
from botwatch.dashboard.state import AppState
from botwatch.shared.config import DEFAULT_CONFIG
from botwatch.shared.logger import get_logger

logger = get_logger("views")

# (key, label, seconds). The largest window matches the default retention.
TIME_WINDOWS = [
    ("1h", "1h", 3600),
    ("6h", "6h", 3600 * 6),
    ("12h", "12h", 3600 * 12),
    ("1d", "1d", 86400),
    ("2d", "2d", 86400 * 2),
    ("3d", "3d", 86400 * 3),
    ("7d", "7d (all)", 86400 * 7),
]
DEFAULT_WINDOW = "1d"


def parse_window(window: str | None) -> tuple[int, str]:
    """Resolve a window key to ``(seconds, key)``, falling back to the default."""
    key = window or DEFAULT_WINDOW
    for k, _, secs in TIME_WINDOWS:
        if k == key:
            return secs, k
    return 86400, DEFAULT_WINDOW


def format_relative(seconds_ago: float) -> str:
    seconds_ago = int(seconds_ago)
    if seconds_ago < 60:
        return f"{seconds_ago}s ago"
    if seconds_ago < 3600:
        return f"{seconds_ago // 60}m ago"
    if seconds_ago < 86400:
        return f"{seconds_ago // 3600}h ago"
    return f"{seconds_ago // 86400}d ago"


def isoformat(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


def _points(series: charts.Series) -> list[dict[str, Any]]:
    return [{"time": isoformat(ts), "value": v} for ts, v in series]


def load_dashboard(state: AppState, name: str) -> DashboardConfig:
    try:
        return dashboard_config.load(state.dashboards_dir, name)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load dashboard config for {name}: {e}")
        return DashboardConfig()


def build_uptime(state: AppState, name: str, start: float, end: float, num_buckets: int) -> dict:
    with state.registry_lock.read():
        record = state.registry.get(name)
        heartbeats = list(record.heartbeat_history) if record else []

    buckets = charts.uptime_buckets(heartbeats, start, end, num_buckets)
    return {
        "has_data": charts.any_heartbeats(heartbeats, start, end),
        "buckets": [{"time": isoformat(ts), "online": up} for ts, up in buckets],
    }


def build_chart(
    metrics: MetricStore,
    name: str,
    index: int,
    chart: ChartConfig,
    start: float,
    end: float,
    num_buckets: int,
    min_bucket_seconds: int,
) -> dict:
    """Series for one configured chart. Caller holds the metrics read lock."""
    events = metrics.query_window(name, chart.event_id, start, end, chart.tag_filters)
    result: dict[str, Any] = {
        "index": index,
        "event_id": chart.event_id,
        "chart_type": chart.chart_type.value,
        "label": f"{chart.event_id} - {chart.chart_type.display_name}",
        "tag_filters": dict(chart.tag_filters),
        "available_tags": metrics.available_tags(name, chart.event_id),
    }

    if chart.chart_type is ChartType.SINGLE_VALUE:
        if metrics.has_values(name, chart.event_id):
            result["value"] = float(sum(e.value for e in events if e.value is not None))
        else:
            result["value"] = float(len(events))
        return result

    bucketed = charts.bucket_events(events, start, end, num_buckets, min_bucket_seconds)
    if chart.chart_type is ChartType.EVENT_COUNT_BAR:
        series = charts.aggregate_count(bucketed)
    elif chart.chart_type is ChartType.VALUE_SUM_BAR:
        series = charts.aggregate_sum(bucketed)
    else:
        series = charts.aggregate_average(bucketed)
    result["series"] = _points(series)
    return result


def build_charts(
    state: AppState, name: str, window: str | None = None, settings: dict | None = None
) -> dict:
    """Uptime strip plus every configured chart for one window."""
    settings = {**DEFAULT_CONFIG, **(settings or {})}
    window_secs, active = parse_window(window)
    end = time.time()
    start = end - window_secs
    num_buckets = settings["chart_bucket_count"]
    min_bucket = settings["min_bucket_seconds"]

    uptime = build_uptime(state, name, start, end, num_buckets)
    config = load_dashboard(state, name)

    with state.metrics_lock.read():
        chart_data = [
            build_chart(state.metrics, name, idx, chart, start, end, num_buckets, min_bucket)
            for idx, chart in enumerate(config.charts)
        ]

    return {
        "window": active,
        "windows": [{"key": k, "label": label} for k, label, _ in TIME_WINDOWS],
        "start": isoformat(start),
        "end": isoformat(end),
        "uptime": uptime,
        "charts": chart_data,
    }


def build_bot_detail(
    state: AppState, name: str, window: str | None = None, settings: dict | None = None
) -> dict | None:
    """Status and charts for one agent; None if the agent is unknown."""
    settings = {**DEFAULT_CONFIG, **(settings or {})}
    with state.registry_lock.read():
        record = state.registry.get(name)
        if record is None:
            return None
        online = state.registry.is_online(name, settings["online_grace_seconds"])
        last_heartbeat = record.last_heartbeat

    detail = {
        "name": name,
        "online": online,
        "last_heartbeat": isoformat(last_heartbeat),
        "last_seen": format_relative(time.time() - last_heartbeat),
    }
    detail.update(build_charts(state, name, window, settings))
    return detail


def build_bot_list(state: AppState, settings: dict | None = None) -> list[dict]:
    settings = {**DEFAULT_CONFIG, **(settings or {})}
    status = state.agent_status(settings["online_grace_seconds"])
    return [
        {
            "name": name,
            "online": s["online"],
            "last_heartbeat": isoformat(s["last_heartbeat"]),
            "last_seen": format_relative(s["age_seconds"]),
        }
        for name, s in status.items()
    ]
