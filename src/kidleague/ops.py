"""Operational logging for KidLeague."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .clock import utcnow

LOGGER = logging.getLogger(__package__ or "kidleague")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


class StructuredLogger:
    """Write JSON lines log entries for admin inspection.

    Every entry is mirrored to the ``kidleague`` standard library logger at the
    matching level so host applications can route it with ordinary handlers.
    """

    def __init__(self, *, path: Path | None = None, logger: logging.Logger | None = None) -> None:
        self.path = path
        self._logger = logger or LOGGER
        self._entries: list[dict] = []

    def log(self, event_type: str, *, level: str = "info", **fields: object) -> dict:
        if level not in _LEVELS:
            raise ValueError(f"Unknown log level: {level!r}")
        entry = {"timestamp": utcnow().isoformat(), "level": level, "event": event_type, **fields}
        self._entries.append(entry)
        line = json.dumps(entry, default=_json_default, sort_keys=True)
        self._logger.log(_LEVELS[level], line)
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        return entry

    def debug(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="debug", **fields)

    def warning(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="warning", **fields)

    def error(self, event_type: str, **fields: object) -> dict:
        return self.log(event_type, level="error", **fields)

    def tail(self, limit: int = 50) -> tuple[dict, ...]:
        return tuple(self._entries[-limit:])

    def events(self, event_type: str, *, level: str | None = None) -> tuple[dict, ...]:
        return tuple(
            entry
            for entry in self._entries
            if entry["event"] == event_type and (level is None or entry["level"] == level)
        )


__all__ = ["LOGGER", "StructuredLogger"]
