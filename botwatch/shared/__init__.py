"""Shared utilities for botwatch agents and the dashboard."""

from botwatch.shared.bus import RedisBus
from botwatch.shared.logger import get_logger
from botwatch.shared.config import load_config, DEFAULT_CONFIG
from botwatch.shared.reporter import AgentReporter

__all__ = ["RedisBus", "get_logger", "load_config", "DEFAULT_CONFIG", "AgentReporter"]
