"""Feed heartbeats and metrics published on the bus into the stores."""

from botwatch.dashboard.api import BadRequest, parse_metric
from botwatch.dashboard.locks import LockPoisonedError
from botwatch.dashboard.state import AppState, fatal
from botwatch.shared.bus import HEARTBEAT_CHANNEL, METRICS_CHANNEL
from botwatch.shared.logger import get_logger


class BusIngestor:
    """Subscribes to agent channels and records what arrives."""

    def __init__(self, state: AppState, bus):
        self._state = state
        self.bus = bus
        self.logger = get_logger("ingest")

    async def start(self):
        await self.bus.connect()
        await self.bus.subscribe(HEARTBEAT_CHANNEL, self._on_heartbeat)
        await self.bus.subscribe(METRICS_CHANNEL, self._on_metric)
        self.logger.info("Listening for agent heartbeats and metrics")

    async def stop(self):
        await self.bus.disconnect()

    async def _on_heartbeat(self, channel: str, message: dict):
        payload = message.get("payload", {})
        agent = payload.get("agent") if isinstance(payload, dict) else None
        if not isinstance(agent, str) or not agent:
            self.logger.warning(f"Heartbeat without agent name from {message.get('from')}")
            return
        try:
            self._state.log_heartbeat(agent)
        except LockPoisonedError as e:
            fatal(e)

    async def _on_metric(self, channel: str, message: dict):
        try:
            metric = parse_metric(message.get("payload"))
        except BadRequest as e:
            self.logger.warning(f"Dropping metric from {message.get('from')}: {e}")
            return
        try:
            self._state.record_metric(**metric)
        except LockPoisonedError as e:
            fatal(e)
