"""Session file watching."""

from codex_monitor.watcher.backends import (
    PollingBackend,
    WatchBackend,
    WatchHandle,
    WatchfilesBackend,
    create_backend,
)
from codex_monitor.watcher.session_watcher import SessionWatcher, WatchEvent, WatchListener
from codex_monitor.watcher.tracker import ActiveSessionTracker

__all__ = [
    "ActiveSessionTracker",
    "PollingBackend",
    "SessionWatcher",
    "WatchBackend",
    "WatchEvent",
    "WatchHandle",
    "WatchListener",
    "WatchfilesBackend",
    "create_backend",
]
