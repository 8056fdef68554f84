"""
Health file writer for the meter daemon.

Writes a JSON health file at a configurable path with two fields:
- last_poll_ts: ISO timestamp of the most recent status update.
- status: The latest :class:`~meter.src.models.MeterStatus` (or null).

The file is overwritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-112)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meter.src.models import MeterStatus


class HealthWriter:
    """Writes meter health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_poll_ts: str | None = None
        self._status: dict[str, object] | None = None

    def record_status(self, status: MeterStatus) -> None:
        """Store the latest meter status and write health file.

        Args:
            status: Current derived measurements of the meter.
        """
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._status = status.model_dump(mode="json")
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "last_poll_ts": self._last_poll_ts,
            "status": self._status,
        }
        self.path.write_text(json.dumps(data))
