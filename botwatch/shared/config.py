"""Configuration loader and behavioural defaults for botwatch."""

import json
from pathlib import Path
from typing import Any

DAY = 86400

DEFAULT_CONFIG: dict[str, Any] = {
    "data_dir": "data",
    "data_retention_seconds": 7 * DAY,
    "online_grace_seconds": 300,
    "prune_interval_seconds": 3600,
    "chart_bucket_count": 100,
    "min_bucket_seconds": 1,
    "host": "0.0.0.0",
    "port": 8000,
    "redis_url": None,
    "log_file": None,
}


def load_config(config_path: str, defaults: dict[str, Any] | None = None) -> dict[str, Any]:
    """Load configuration from a JSON file, merging with optional defaults.

    Args:
        config_path: Path to the JSON configuration file.
        defaults: Optional dictionary of default values. File values override defaults.

    Returns:
        Merged configuration dictionary.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = json.load(f)

    if defaults:
        merged = {**defaults, **config}
        return merged

    return config
