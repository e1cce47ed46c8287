"""Dashboard launcher: state, pruner, bus ingestion and HTTP API in one loop."""

import asyncio
import signal
import sys
from pathlib import Path

from aiohttp import web

from botwatch.dashboard.api import create_app
from botwatch.dashboard.background import run_pruner
from botwatch.dashboard.ingest import BusIngestor
from botwatch.dashboard.locks import LockPoisonedError
from botwatch.dashboard.state import AppState, fatal
from botwatch.shared.bus import RedisBus
from botwatch.shared.config import DEFAULT_CONFIG, load_config
from botwatch.shared.logger import get_logger, redirect_logs

logger = get_logger("server")


class DashboardServer:
    """Runs every dashboard component until a shutdown signal arrives."""

    def __init__(self, config_path: str | None = None, state: AppState | None = None):
        if config_path:
            self.config = load_config(config_path, defaults=DEFAULT_CONFIG)
        else:
            self.config = dict(DEFAULT_CONFIG)
        if self.config.get("log_file"):
            redirect_logs(self.config["log_file"])

        self.state = state or AppState(data_dir=self.config["data_dir"])
        self._shutdown_event = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._runner: web.AppRunner | None = None
        self._ingestor: BusIngestor | None = None

        if self.config.get("redis_url"):
            self._ingestor = BusIngestor(self.state, RedisBus(redis_url=self.config["redis_url"]))

    async def start(self):
        """Restore state, start all components, block until shutdown."""
        try:
            self.state.restore()
        except LockPoisonedError as e:
            fatal(e)

        self._install_signal_handlers()
        self._tasks.append(asyncio.create_task(run_pruner(
            self.state,
            interval=self.config["prune_interval_seconds"],
            retention=self.config["data_retention_seconds"],
        )))

        if self._ingestor:
            try:
                await self._ingestor.start()
            except Exception as e:
                logger.error(f"Bus ingestion unavailable: {e}")
                self._ingestor = None

        self._runner = web.AppRunner(create_app(self.state, self.config))
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config["host"], self.config["port"])
        await site.start()
        logger.info(f"Dashboard listening on {self.config['host']}:{self.config['port']}")

        await self._shutdown_event.wait()
        await self.stop()

    async def stop(self):
        """Stop all components gracefully."""
        logger.info("Shutting down dashboard...")
        if self._ingestor:
            try:
                await self._ingestor.stop()
            except Exception as e:
                logger.error(f"Error stopping bus ingestion: {e}")
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Dashboard stopped")

    def request_shutdown(self):
        self._shutdown_event.set()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except NotImplementedError:
                pass  # Windows fallback below
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, lambda s, f: self._shutdown_event.set())


def main():
    config_path = sys.argv[1] if len(sys.argv) > 1 else None
    if config_path is None:
        default = Path.cwd() / "botwatch.json"
        if default.exists():
            config_path = str(default)

    server = DashboardServer(config_path=config_path)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nDashboard shutting down...")


if __name__ == "__main__":
    main()
