"""Keep the set of currently active sessions up to date from watcher events."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from codex_monitor.models import ActiveSession, SessionSummary
from codex_monitor.parsers.titles import originator_display_name, project_name
from codex_monitor.watcher.session_watcher import WatchListener

logger = logging.getLogger("codex_monitor.watcher")


class ActiveSessionTracker(WatchListener):
    """Mirror of the watcher's active set, readable from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[Path, ActiveSession] = {}
        self.last_error: Optional[str] = None

    def _update(self, path: Path, summary: Optional[SessionSummary], event: str) -> None:
        with self._lock:
            previous = self._sessions.get(path)
            if summary is None and previous is not None:
                # Keep the last known summary until a parse succeeds again.
                summary = previous.summary
            self._sessions[path] = ActiveSession(
                path=str(path),
                summary=summary,
                project=project_name(summary.cwd) if summary else "Unknown",
                originator=originator_display_name(summary.originator) if summary else "Unknown",
                lastEvent=event,
                updatedAt=datetime.now(timezone.utc),
            )

    def on_session_active(self, path: Path, summary: Optional[SessionSummary]) -> None:
        self._update(path, summary, "active")

    def on_session_modified(self, path: Path, summary: Optional[SessionSummary]) -> None:
        self._update(path, summary, "modified")

    def on_session_inactive(self, path: Path, summary: Optional[SessionSummary]) -> None:
        with self._lock:
            self._sessions.pop(path, None)

    def on_watch_error(self, error: Exception) -> None:
        self.last_error = str(error)

    def get(self, path: Path) -> Optional[ActiveSession]:
        with self._lock:
            return self._sessions.get(path)

    def list(self) -> list[ActiveSession]:
        """Active sessions, most recently ended first."""
        with self._lock:
            sessions = list(self._sessions.values())

        def _sort_key(session: ActiveSession) -> tuple[float, str]:
            end = session.summary.endTime.timestamp() if session.summary else 0.0
            return (end, session.path)

        return sorted(sessions, key=_sort_key, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
