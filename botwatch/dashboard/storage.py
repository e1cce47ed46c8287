"""Durable per-agent record logs.

The in-memory stores mirror every mutation into a ``DurableLog`` so that
state survives restarts. Reads are always served from memory; the log is
only read back at start-up.

``JsonLinesLog`` keeps one ``<quoted-name>.jsonl`` file per agent. Appends
write a single line and fsync it, so a crash can at worst leave a torn last
line, which ``load_all`` skips. Rewrites go through a temp file and
``os.replace`` so readers never observe a half-written file.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from botwatch.shared.logger import get_logger

SUFFIX = ".jsonl"


class DurableLog(ABC):
    """Append-only record log keyed by agent name."""

    @abstractmethod
    def discover_keys(self) -> set[str]:
        """Return every agent name with persisted data."""
        ...

    @abstractmethod
    def append_record(self, key: str, record: dict[str, Any]):
        """Append one record to the agent's log."""
        ...

    @abstractmethod
    def load_all(self, key: str) -> list[dict[str, Any]]:
        """Return all records for an agent in write order."""
        ...

    @abstractmethod
    def rewrite_all(self, key: str, records: list[dict[str, Any]]):
        """Atomically replace the agent's full record set."""
        ...

    @abstractmethod
    def delete_key(self, key: str):
        """Remove all data for an agent. Idempotent."""
        ...


class JsonLinesLog(DurableLog):
    """One JSON-lines file per agent under a directory."""

    def __init__(self, directory: str | Path):
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.logger = get_logger("storage")

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}{SUFFIX}"

    def discover_keys(self) -> set[str]:
        return {unquote(p.name[: -len(SUFFIX)]) for p in self._dir.glob(f"*{SUFFIX}")}

    def append_record(self, key: str, record: dict[str, Any]):
        line = json.dumps(record, separators=(",", ":")) + "\n"
        with open(self.path_for(key), "a+b") as f:
            # Terminate a torn trailing line so this record starts on its own.
            if f.seek(0, os.SEEK_END) > 0:
                f.seek(-1, os.SEEK_END)
                if f.read(1) != b"\n":
                    f.write(b"\n")
            f.write(line.encode("utf-8"))
            f.flush()
            os.fsync(f.fileno())

    def load_all(self, key: str) -> list[dict[str, Any]]:
        path = self.path_for(key)
        if not path.exists():
            return []

        records = []
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    self.logger.warning(f"Skipping corrupt record {path.name}:{lineno}")
        return records

    def rewrite_all(self, key: str, records: list[dict[str, Any]]):
        path = self.path_for(key)
        fd, temp_path = tempfile.mkstemp(dir=self._dir, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record, separators=(",", ":")) + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def delete_key(self, key: str):
        self.path_for(key).unlink(missing_ok=True)
