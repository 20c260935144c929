"""
Status Manager for the event relay bridge.

Writes bridge state and counters to status.json so operators (or a
supervising process) can inspect a running bridge without attaching to it.
Uses atomic file writes to prevent partial reads.
"""

from typing import Any, Dict, Optional
from datetime import datetime
import json
import os
import tempfile

from .interfaces import FileSystemInterface, ClockInterface, BridgeState


class StatusManager:
    """
    Manages the status.json file with bridge state.

    The bridge hands over a snapshot dict (see EventBridge.snapshot()); this
    class adds session timing and a derived health string and writes it out
    with temp file + rename.
    """

    def __init__(
        self,
        filesystem: FileSystemInterface,
        clock: ClockInterface,
        status_path: str,
    ):
        self._fs = filesystem
        self._clock = clock
        self._status_path = status_path
        self._started: Optional[datetime] = None
        self._updates = 0

        status_dir = os.path.dirname(status_path)
        if status_dir:
            self._fs.ensure_dir(status_dir)

    @property
    def status_path(self) -> str:
        return self._status_path

    @property
    def updates(self) -> int:
        """Number of status writes performed."""
        return self._updates

    def start_session(self) -> None:
        """Mark the start of a bridge session (resets uptime)."""
        self._started = self._clock.now()

    def update(self, snapshot: Dict[str, Any]) -> None:
        """Write the snapshot plus session info to status.json."""
        now = self._clock.now()
        uptime = (now - self._started).total_seconds() if self._started else 0

        status = {
            "session": {
                "started": self._started.isoformat() if self._started else None,
                "uptime_seconds": int(uptime),
            },
            "health": self._compute_health_status(snapshot),
            "last_updated": now.isoformat(),
        }
        status.update(snapshot)

        self._atomic_write(json.dumps(status, indent=2))
        self._updates += 1

    @staticmethod
    def _compute_health_status(snapshot: Dict[str, Any]) -> str:
        if snapshot.get("state") != BridgeState.RUNNING.value:
            return "stopped"
        if not snapshot.get("connection", {}).get("connected"):
            return "disconnected"
        return "healthy"

    def _atomic_write(self, content: str) -> None:
        """Write content atomically using temp file + rename."""
        status_dir = os.path.dirname(self._status_path)
        if not status_dir:
            status_dir = "."

        # Temp file in the same directory keeps the rename on one filesystem
        try:
            fd, temp_path = tempfile.mkstemp(
                suffix=".tmp",
                prefix="status_",
                dir=status_dir
            )
            try:
                os.write(fd, content.encode("utf-8"))
            finally:
                os.close(fd)

            os.replace(temp_path, self._status_path)
        except OSError:
            # Fallback to non-atomic write (e.g. in-memory filesystem in tests)
            self._fs.write_file(self._status_path, content)
