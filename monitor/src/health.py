"""
Poll status tracker for the polling orchestrator.

Keeps the orchestrator's lifecycle state and the outcome of its most recent
iterations in memory, so the ``/health`` endpoint can report whether the
cache is being refreshed. Optionally mirrors the status to a JSON file after
every change, a simple liveness signal for Docker HEALTHCHECK or external
monitoring.

Fields:
- state: current PollingState value.
- last_poll_ts: ISO timestamp of the most recent completed iteration.
- last_success_ts: ISO timestamp of the most recent iteration whose plant
  fetch succeeded.
- plant_count: number of plants written by the last successful iteration.
- consecutive_failures: iterations in a row whose plant fetch failed.
- last_error: message of the most recent failure, if any.

CHANGELOG:
- 2026-10-07: Track orchestrator state and failure streak (STORY-012)
- 2026-10-07: Initial creation from the edge health writer (STORY-012)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PollingState(StrEnum):
    """Lifecycle of the polling orchestrator."""

    STARTING = "starting"
    POLLING = "polling"
    SLEEPING = "sleeping"
    STOPPING = "stopping"
    STOPPED = "stopped"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class PollStatus:
    """In-memory poll status with an optional JSON mirror on disk.

    Each mutating method updates the in-memory state and, when a path is
    configured, immediately rewrites the file so it always reflects the
    latest status.

    Args:
        path: Filesystem path for the health JSON file, or ``None`` to keep
            the status in memory only.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.path = Path(path) if path is not None else None
        self._clock = clock
        self._state = PollingState.STOPPED
        self._last_poll_ts: str | None = None
        self._last_success_ts: str | None = None
        self._plant_count: int = 0
        self._consecutive_failures: int = 0
        self._last_error: str | None = None

    @property
    def state(self) -> PollingState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def set_state(self, state: PollingState) -> None:
        """Record a lifecycle transition and write the health file."""
        self._state = state
        self._write()

    def record_success(self, plant_count: int) -> None:
        """Record an iteration whose plant fetch succeeded.

        Args:
            plant_count: Number of plants written to the cache.
        """
        now = self._clock().isoformat()
        self._last_poll_ts = now
        self._last_success_ts = now
        self._plant_count = plant_count
        self._consecutive_failures = 0
        self._last_error = None
        self._write()

    def record_failure(self, error: str) -> None:
        """Record an iteration that could not refresh the plant list."""
        self._last_poll_ts = self._clock().isoformat()
        self._consecutive_failures += 1
        self._last_error = error
        self._write()

    def snapshot(self) -> dict[str, Any]:
        """Return the current status as a JSON-serialisable dict."""
        return {
            "state": self._state.value,
            "last_poll_ts": self._last_poll_ts,
            "last_success_ts": self._last_success_ts,
            "plant_count": self._plant_count,
            "consecutive_failures": self._consecutive_failures,
            "last_error": self._last_error,
        }

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        if self.path is None:
            return
        try:
            self.path.write_text(json.dumps(self.snapshot()))
        except OSError:
            logger.warning("Failed to write health file %s", self.path, exc_info=True)
