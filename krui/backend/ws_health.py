"""Websocket health tracking primitives."""

from __future__ import annotations

from dataclasses import dataclass
import time
from typing import Any


@dataclass
class LinkHealthTracker:
    """Track connection state transitions, frame activity and reconnects."""

    endpoint: str
    status: str = "disconnected"
    last_status_at: float | None = None
    connected_since: float | None = None
    last_frame_at: float | None = None
    frames_total: int = 0
    sessions_total: int = 0
    connect_failures: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None

    def update_status(self, status: str, *, timestamp: float | None = None) -> bool:
        """Update the tracked status and return True if it changed."""

        if status == self.status:
            return False
        self.status = status
        self.last_status_at = timestamp or time.time()
        return True

    def mark_connected(self, *, timestamp: float | None = None) -> None:
        """Record a successful connection attempt."""

        self.connected_since = timestamp or time.time()
        self.sessions_total += 1
        self.consecutive_failures = 0
        self.last_error = None

    def mark_disconnected(self) -> None:
        """Record the end of a session."""

        self.connected_since = None

    def mark_failure(self, error: str) -> int:
        """Record a failed connection attempt and return the failure streak."""

        self.connect_failures += 1
        self.consecutive_failures += 1
        self.last_error = error
        return self.consecutive_failures

    def mark_frame(self, *, timestamp: float | None = None) -> None:
        """Record an inbound frame."""

        self.frames_total += 1
        self.last_frame_at = timestamp or time.time()

    def uptime(self, *, now: float | None = None) -> float:
        """Return seconds spent in the current session."""

        if self.connected_since is None:
            return 0.0
        current = now or time.time()
        return max(0.0, current - self.connected_since)

    def snapshot(self, *, now: float | None = None) -> dict[str, Any]:
        """Return a serializable snapshot of the tracker state."""

        current = now or time.time()
        return {
            "endpoint": self.endpoint,
            "status": self.status,
            "last_status_at": self.last_status_at,
            "uptime": self.uptime(now=current),
            "last_frame_at": self.last_frame_at,
            "frames_total": self.frames_total,
            "sessions_total": self.sessions_total,
            "connect_failures": self.connect_failures,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


__all__ = ["LinkHealthTracker"]
