"""Background retention pruning for the dashboard stores."""

import asyncio
from dataclasses import dataclass, field

from botwatch.dashboard import dashboard_config
from botwatch.dashboard.locks import LockPoisonedError
from botwatch.dashboard.state import AppState, fatal
from botwatch.shared.logger import get_logger

logger = get_logger("pruner")


@dataclass
class PruneReport:
    history_emptied: set[str] = field(default_factory=set)
    stale: set[str] = field(default_factory=set)
    metrics_emptied: set[str] = field(default_factory=set)

    @property
    def removed_agents(self) -> set[str]:
        return self.history_emptied | self.stale

    def to_dict(self) -> dict:
        return {
            "history_emptied": sorted(self.history_emptied),
            "stale": sorted(self.stale),
            "metrics_emptied": sorted(self.metrics_emptied),
        }


def prune_once(state: AppState, retention: float) -> PruneReport:
    """Run one two-phase prune over both stores.

    Phase one trims heartbeat history, dropping agents whose history empties.
    Phase two drops agents whose last heartbeat is itself past retention,
    which history trimming misses for agents with no history left to age
    out or with history newer than their last heartbeat. Every agent dropped
    from the registry loses its metrics and dashboard config too, and metrics
    are then pruned on their own.
    """
    report = PruneReport()

    with state.registry_lock.write():
        report.history_emptied = state.registry.prune_history(retention)
        report.stale = state.registry.stale_names(retention)
        for name in report.stale:
            state.registry.remove(name)

    with state.metrics_lock.write():
        for name in report.removed_agents:
            state.metrics.remove_bot(name)
        report.metrics_emptied = state.metrics.prune(retention)

    for name in report.removed_agents:
        try:
            dashboard_config.delete(state.dashboards_dir, name)
        except OSError as e:
            logger.warning(f"Failed to delete dashboard config for {name}: {e}")

    return report


async def run_pruner(state: AppState, interval: float, retention: float):
    """Prune immediately, then every ``interval`` seconds, forever."""
    while True:
        try:
            report = prune_once(state, retention)
            logger.info("Prune cycle complete", extra={"log_data": report.to_dict()})
        except LockPoisonedError as e:
            fatal(e)
        except Exception as e:
            logger.error(f"Prune cycle failed: {e}")
        await asyncio.sleep(interval)
