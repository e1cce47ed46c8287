"""HTTP JSON API for ingestion and dashboard queries."""

import math
from datetime import datetime, timezone
from typing import Any

from aiohttp import web

from botwatch.dashboard import dashboard_config, views
from botwatch.dashboard.dashboard_config import ChartConfig, ChartType
from botwatch.dashboard.locks import LockPoisonedError
from botwatch.dashboard.state import AppState, fatal
from botwatch.shared.config import DEFAULT_CONFIG
from botwatch.shared.logger import get_logger

logger = get_logger("api")

STATE_KEY = web.AppKey("state", AppState)
SETTINGS_KEY = web.AppKey("settings", dict)


class BadRequest(ValueError):
    """Malformed request body or parameters."""


def parse_timestamp(raw: Any) -> float | None:
    """Accept epoch seconds or an ISO-8601 string; naive times are UTC."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise BadRequest("timestamp must be a number or ISO-8601 string")
    if isinstance(raw, (int, float)):
        return _representable(_finite(raw, "timestamp"))
    if isinstance(raw, str):
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as e:
            raise BadRequest(f"invalid timestamp: {raw}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return _representable(dt.timestamp())
    raise BadRequest("timestamp must be a number or ISO-8601 string")


def _finite(raw: int | float, field: str) -> float:
    try:
        number = float(raw)
    except OverflowError as e:
        raise BadRequest(f"{field} out of range") from e
    if not math.isfinite(number):
        raise BadRequest(f"{field} must be finite")
    return number


def _representable(ts: float) -> float:
    """Reject timestamps that cannot be rendered back as a UTC datetime."""
    try:
        datetime.fromtimestamp(ts, timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise BadRequest(f"timestamp out of range: {ts}") from e
    return ts


def parse_metric(data: Any) -> dict[str, Any]:
    """Validate a metric payload from HTTP or the bus."""
    if not isinstance(data, dict):
        raise BadRequest("body must be a JSON object")
    bot_name = data.get("bot_name", data.get("agent"))
    event_id = data.get("event_id")
    if not isinstance(bot_name, str) or not bot_name:
        raise BadRequest("bot_name is required")
    if not isinstance(event_id, str) or not event_id:
        raise BadRequest("event_id is required")

    value = data.get("value")
    if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise BadRequest("value must be a number")

    tags = data.get("tags") or {}
    if not isinstance(tags, dict):
        raise BadRequest("tags must be an object")

    return {
        "bot_name": bot_name,
        "event_id": event_id,
        "value": _finite(value, "value") if value is not None else None,
        "tags": {str(k): str(v) for k, v in tags.items()},
        "timestamp": parse_timestamp(data.get("timestamp")),
    }


async def _json_body(request: web.Request) -> Any:
    try:
        return await request.json()
    except ValueError as e:
        raise BadRequest("body must be valid JSON") from e


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except BadRequest as e:
        return web.json_response({"error": str(e)}, status=400)
    except LockPoisonedError as e:
        fatal(e)
        raise


async def heartbeat(request: web.Request) -> web.Response:
    data = await _json_body(request)
    name = data.get("name") if isinstance(data, dict) else None
    if not isinstance(name, str) or not name:
        raise BadRequest("name is required")

    record = request.app[STATE_KEY].log_heartbeat(name)
    return web.json_response({
        "name": record.name,
        "last_heartbeat": views.isoformat(record.last_heartbeat),
    })


async def record_metric(request: web.Request) -> web.Response:
    metric = parse_metric(await _json_body(request))
    ts = request.app[STATE_KEY].record_metric(**metric)
    return web.json_response(
        {"status": "recorded", "timestamp": views.isoformat(ts)}, status=201
    )


async def bot_list(request: web.Request) -> web.Response:
    bots = views.build_bot_list(request.app[STATE_KEY], request.app[SETTINGS_KEY])
    return web.json_response({"bots": bots})


async def bot_detail(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    detail = views.build_bot_detail(
        request.app[STATE_KEY], name, request.query.get("window"), request.app[SETTINGS_KEY]
    )
    if detail is None:
        raise web.HTTPNotFound(text=f"Unknown bot: {name}")
    return web.json_response(detail)


async def bot_charts(request: web.Request) -> web.Response:
    return _charts_response(request, request.match_info["name"])


async def remove_bot(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    name = request.match_info["name"]
    state.remove_agent(name)
    dashboard_config.delete(state.dashboards_dir, name)
    return web.json_response({"status": "removed", "name": name})


async def event_ids(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    return web.json_response({"event_ids": request.app[STATE_KEY].event_ids(name)})


async def chart_types(request: web.Request) -> web.Response:
    name = request.match_info["name"]
    event_id = request.query.get("event_id")
    if not event_id:
        raise BadRequest("event_id is required")
    has_values = request.app[STATE_KEY].has_values(name, event_id)
    return web.json_response({
        "event_id": event_id,
        "has_values": has_values,
        "chart_types": [
            {"key": t.value, "label": t.display_name} for t in ChartType.valid_for(has_values)
        ],
    })


async def add_chart(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    name = request.match_info["name"]
    data = await _json_body(request)
    if not isinstance(data, dict) or not isinstance(data.get("event_id"), str):
        raise BadRequest("event_id is required")
    try:
        chart_type = ChartType(data.get("chart_type"))
    except ValueError as e:
        raise BadRequest(f"unknown chart_type: {data.get('chart_type')}") from e
    if chart_type not in ChartType.valid_for(state.has_values(name, data["event_id"])):
        raise BadRequest(f"{chart_type.display_name} needs valued events")

    config = _load_config(state, name)
    config.charts.append(ChartConfig(event_id=data["event_id"], chart_type=chart_type))
    _save_config(state, name, config)
    return _charts_response(request, name)


async def remove_chart(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    name = request.match_info["name"]
    index = int(request.match_info["index"])
    config = _load_config(state, name)
    if index < len(config.charts):
        config.charts.pop(index)
        _save_config(state, name, config)
    return _charts_response(request, name)


async def update_chart_filter(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    name = request.match_info["name"]
    index = int(request.match_info["index"])
    data = await _json_body(request)
    if not isinstance(data, dict) or not isinstance(data.get("tag_key"), str):
        raise BadRequest("tag_key is required")

    config = _load_config(state, name)
    if index < len(config.charts):
        config.charts[index].set_filter(data["tag_key"], str(data.get("tag_value") or ""))
        _save_config(state, name, config)
    return _charts_response(request, name)


def _charts_response(request: web.Request, name: str) -> web.Response:
    return web.json_response(views.build_charts(
        request.app[STATE_KEY], name, request.query.get("window"), request.app[SETTINGS_KEY]
    ))


def _load_config(state: AppState, name: str) -> dashboard_config.DashboardConfig:
    try:
        return dashboard_config.load(state.dashboards_dir, name)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load dashboard config for {name}: {e}")
        raise web.HTTPInternalServerError(text="dashboard config unreadable") from e


def _save_config(state: AppState, name: str, config: dashboard_config.DashboardConfig):
    try:
        dashboard_config.save(state.dashboards_dir, name, config)
    except OSError as e:
        logger.warning(f"Failed to save dashboard config for {name}: {e}")


def create_app(state: AppState, settings: dict | None = None) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app[STATE_KEY] = state
    app[SETTINGS_KEY] = {**DEFAULT_CONFIG, **(settings or {})}
    app.add_routes([
        web.post("/heartbeat", heartbeat),
        web.post("/metrics", record_metric),
        web.get("/bots", bot_list),
        web.get("/bot/{name}", bot_detail),
        web.delete("/bot/{name}", remove_bot),
        web.get("/bot/{name}/charts", bot_charts),
        web.post("/bot/{name}/charts", add_chart),
        web.delete(r"/bot/{name}/charts/{index:\d+}", remove_chart),
        web.post(r"/bot/{name}/charts/{index:\d+}/filter", update_chart_filter),
        web.get("/bot/{name}/events", event_ids),
        web.get("/bot/{name}/chart-types", chart_types),
    ])
    return app
