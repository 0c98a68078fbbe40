"""Application-level owner of the session watcher."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from codex_monitor import config
from codex_monitor.errors import InvalidWatchTarget
from codex_monitor.scanner import SessionScanner
from codex_monitor.watcher.backends import WatchBackend, create_backend
from codex_monitor.watcher.session_watcher import SessionWatcher
from codex_monitor.watcher.tracker import ActiveSessionTracker

logger = logging.getLogger("codex_monitor.watcher")


class WatchService:
    """Starts one SessionWatcher feeding an ActiveSessionTracker."""

    def __init__(self) -> None:
        self.tracker = ActiveSessionTracker()
        self._watcher: Optional[SessionWatcher] = None

    async def start(
        self,
        scanner: SessionScanner,
        watched_file: Optional[Path] = None,
        backend: Optional[WatchBackend] = None,
    ) -> bool:
        """Start watching; returns False when the sessions root is missing."""
        if self._watcher is not None and self._watcher.is_running:
            logger.warning("Watch service already running")
            return True

        watcher = SessionWatcher(
            scanner,
            watched_file=watched_file,
            active_window=config.ACTIVE_WINDOW_SECONDS,
            debounce=config.DEBOUNCE_MS / 1000,
            poll_interval=config.POLL_INTERVAL_SECONDS,
            backend=backend or create_backend(config.WATCH_BACKEND),
        )
        watcher.add_listener(self.tracker)
        try:
            await watcher.start()
        except InvalidWatchTarget as e:
            logger.error("%s", e)
            return False
        self._watcher = watcher
        return True

    async def stop(self) -> None:
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        self.tracker.clear()

    @property
    def is_running(self) -> bool:
        return self._watcher is not None and self._watcher.is_running

    @property
    def watcher(self) -> Optional[SessionWatcher]:
        return self._watcher


# Singleton instance
watch_service = WatchService()
