"""Debounced watcher for recently active session files.

All watcher state (watched files, last-seen modification times, cached
summaries) is owned by a single worker task that drains a job queue.
Backend callbacks only schedule work: they are marshaled onto the event loop,
coalesced behind a short debounce timer and then queued for the worker.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from codex_monitor import config
from codex_monitor.date_utils import epoch_to_datetime
from codex_monitor.errors import InvalidWatchTarget
from codex_monitor.models import FileIdentity, SessionSummary
from codex_monitor.observability import record_watch_event
from codex_monitor.parsers.sessions import load_summary
from codex_monitor.scanner import SessionScanner, file_identity
from codex_monitor.watcher.backends import WatchBackend, WatchHandle, create_backend

logger = logging.getLogger("codex_monitor.watcher")

UpdateHandler = Callable[[Path, Optional[SessionSummary]], None]
ErrorHandler = Callable[[Exception], None]


class WatchEvent(str, Enum):
    ACTIVE = "active"
    MODIFIED = "modified"
    INACTIVE = "inactive"


class WatchListener:
    """Typed observer; override the notifications you care about."""

    def on_session_active(self, path: Path, summary: Optional[SessionSummary]) -> None:
        pass

    def on_session_modified(self, path: Path, summary: Optional[SessionSummary]) -> None:
        pass

    def on_session_inactive(self, path: Path, summary: Optional[SessionSummary]) -> None:
        pass

    def on_watch_error(self, error: Exception) -> None:
        pass


class _UpdateReason(Enum):
    BOOTSTRAP = "bootstrap"
    DIRECTORY = "directory"
    FILE = "file"
    POLL = "poll"


@dataclass
class _Job:
    reason: _UpdateReason
    files: frozenset[Path] = frozenset()
    snapshot: dict[Path, float] = field(default_factory=dict)


@dataclass
class _FileWatch:
    handle: WatchHandle
    identity: Optional[FileIdentity]


def _rotated(previous: Optional[FileIdentity], current: Optional[FileIdentity]) -> bool:
    # An unresolvable identity never counts as a rotation.
    if previous is None or current is None:
        return False
    return previous != current


class SessionWatcher:
    """Emit active/modified/inactive notifications for session files.

    Without ``watched_file`` every file under the scanner root whose
    modification time falls inside ``active_window`` seconds is watched.
    With ``watched_file`` only that file is watched, regardless of age, and
    the polling fallback is disabled.
    """

    def __init__(
        self,
        scanner: SessionScanner,
        watched_file: Optional[Path] = None,
        active_window: float = config.ACTIVE_WINDOW_SECONDS,
        debounce: float = config.DEBOUNCE_MS / 1000,
        poll_interval: float = config.POLL_INTERVAL_SECONDS,
        backend: Optional[WatchBackend] = None,
        clock: Callable[[], float] = time.time,
        on_active: Optional[UpdateHandler] = None,
        on_modified: Optional[UpdateHandler] = None,
        on_inactive: Optional[UpdateHandler] = None,
        on_error: Optional[ErrorHandler] = None,
    ):
        self.scanner = scanner
        self.watched_file = Path(watched_file).expanduser() if watched_file else None
        self.active_window = float(active_window)
        self.debounce = max(0.0, float(debounce))
        self.poll_interval = float(poll_interval)
        self.backend = backend or create_backend(config.WATCH_BACKEND)
        self._clock = clock

        self._handlers: dict[WatchEvent, list[UpdateHandler]] = {event: [] for event in WatchEvent}
        self._error_handlers: list[ErrorHandler] = []
        for event, handler in (
            (WatchEvent.ACTIVE, on_active),
            (WatchEvent.MODIFIED, on_modified),
            (WatchEvent.INACTIVE, on_inactive),
        ):
            if handler is not None:
                self._handlers[event].append(handler)
        if on_error is not None:
            self._error_handlers.append(on_error)

        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[_Job]] = None
        self._worker: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._directory_handle: Optional[WatchHandle] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._pending_directory = False
        self._pending_files: set[Path] = set()

        self._snapshot: dict[Path, float] = {}
        self._watchers: dict[Path, _FileWatch] = {}
        self._cached: dict[Path, SessionSummary] = {}

    # ── observer registration ──────────────────────────────────────

    def subscribe(self, event: WatchEvent, handler: UpdateHandler) -> None:
        self._handlers[WatchEvent(event)].append(handler)

    def subscribe_errors(self, handler: ErrorHandler) -> None:
        self._error_handlers.append(handler)

    def add_listener(self, listener: WatchListener) -> None:
        self.subscribe(WatchEvent.ACTIVE, listener.on_session_active)
        self.subscribe(WatchEvent.MODIFIED, listener.on_session_modified)
        self.subscribe(WatchEvent.INACTIVE, listener.on_session_inactive)
        self.subscribe_errors(listener.on_watch_error)

    # ── read-only views ────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def root(self) -> Path:
        if self.watched_file is not None:
            return self.watched_file.parent
        return self.scanner.root

    @property
    def watched_paths(self) -> list[Path]:
        return sorted(self._watchers)

    def cached_summary(self, path: Path) -> Optional[SessionSummary]:
        return self._cached.get(path)

    # ── lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to changes and schedule the initial watch bootstrap.

        Raises InvalidWatchTarget when the watch root (or pinned file) is
        missing. Returns before any notification is delivered.
        """
        if self._running:
            logger.warning("Session watcher already running")
            return

        initial = await asyncio.to_thread(self._initial_snapshot)

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._queue = asyncio.Queue()
        self._running = True
        self._worker = loop.create_task(self._run_worker())
        self._directory_handle = self.backend.watch_directory(
            self.root,
            self.scanner.suffix,
            self._on_directory_event,
            on_error=self._on_backend_error,
        )
        self._queue.put_nowait(_Job(_UpdateReason.BOOTSTRAP, snapshot=initial))
        if self.poll_interval > 0:
            self._poll_task = loop.create_task(self._run_poll())
        logger.info(
            "Session watcher started on %s (backend=%s window=%ss pinned=%s)",
            self.root,
            self.backend.name,
            self.active_window,
            self.watched_file is not None,
        )

    async def stop(self) -> None:
        """Cancel timers and close every OS watch. Safe to call repeatedly."""
        if not self._running and self._worker is None:
            return
        self._running = False

        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        self._pending_directory = False
        self._pending_files.clear()

        handles: list[WatchHandle] = []
        if self._directory_handle is not None:
            self._directory_handle.close()
            handles.append(self._directory_handle)
            self._directory_handle = None
        for watch in self._watchers.values():
            watch.handle.close()
            handles.append(watch.handle)
        self._watchers.clear()

        current = asyncio.current_task()
        tasks = [task for task in (self._poll_task, self._worker) if task is not None and task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*(handle.wait_closed() for handle in handles), *tasks, return_exceptions=True)

        self._poll_task = None
        self._worker = None
        self._queue = None
        self._snapshot.clear()
        self._cached.clear()
        logger.info("Session watcher stopped")

    async def wait_until_idle(self) -> None:
        """Wait for pending debounced work and queued jobs to finish."""
        while self._running and self._queue is not None:
            await asyncio.sleep(0)
            if self._pending_directory or self._pending_files:
                await asyncio.sleep(self.debounce or 0.01)
                continue
            await self._queue.join()
            if not (self._pending_directory or self._pending_files):
                return

    def _initial_snapshot(self) -> dict[Path, float]:
        if self.watched_file is None:
            return self.scanner.snapshot()

        pinned = self.watched_file
        if not self.scanner.is_session_file(pinned):
            raise InvalidWatchTarget(str(pinned))
        if not pinned.parent.exists():
            raise InvalidWatchTarget(str(pinned.parent))
        modified = self.scanner.file_mtime(pinned)
        if modified is None:
            raise InvalidWatchTarget(str(pinned))
        return {pinned: modified}

    # ── notification entry points (any thread) ─────────────────────

    def _call_soon(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or not self._running:
            return
        loop.call_soon_threadsafe(callback, *args)

    def _on_directory_event(self) -> None:
        self._call_soon(self._schedule_update, _UpdateReason.DIRECTORY, None)

    def _on_file_event(self, path: Path) -> None:
        self._call_soon(self._schedule_update, _UpdateReason.FILE, path)

    def _on_backend_error(self, error: Exception) -> None:
        self._call_soon(self._report_error, error)

    # ── scheduling (event loop) ────────────────────────────────────

    def _schedule_update(self, reason: _UpdateReason, path: Optional[Path]) -> None:
        if not self._running or self._loop is None:
            return
        if reason is _UpdateReason.DIRECTORY:
            self._pending_directory = True
        elif path is not None:
            self._pending_files.add(path)

        # A later notification replaces the pending timer; reasons accumulate.
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = self._loop.call_later(self.debounce, self._flush_pending)

    def _flush_pending(self) -> None:
        self._debounce_handle = None
        if not self._running or self._queue is None:
            return
        reason = _UpdateReason.DIRECTORY if self._pending_directory else _UpdateReason.FILE
        job = _Job(reason, files=frozenset(self._pending_files))
        self._pending_directory = False
        self._pending_files.clear()
        self._queue.put_nowait(job)

    async def _run_poll(self) -> None:
        while self._running:
            await asyncio.sleep(self.poll_interval)
            if self._queue is not None:
                self._queue.put_nowait(_Job(_UpdateReason.POLL))

    async def _run_worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            try:
                await self._perform(job)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._report_error(exc)
            finally:
                queue.task_done()

    # ── evaluation (worker only) ───────────────────────────────────

    async def _perform(self, job: _Job) -> None:
        logger.debug("Watcher evaluation reason=%s files=%d", job.reason.value, len(job.files))
        if job.reason is _UpdateReason.BOOTSTRAP:
            await self._bootstrap(job.snapshot)
            return
        if job.reason is _UpdateReason.POLL and self.watched_file is not None:
            return

        rescan = job.reason in (_UpdateReason.DIRECTORY, _UpdateReason.POLL)
        installed: set[Path] = set()
        if rescan:
            installed = await self._refresh_watchers()
        # Paths (re)installed in this pass already got their active event.
        skip = frozenset(installed)
        await self._notify_updates(job.files - skip, check_all=rescan, skip=skip)

    async def _bootstrap(self, initial: dict[Path, float]) -> None:
        if self.watched_file is not None:
            candidates = list(initial.items())
        else:
            cutoff = self._clock() - self.active_window
            candidates = [(path, modified) for path, modified in sorted(initial.items()) if modified >= cutoff]

        for path, modified in candidates:
            if self._install_watch(path):
                self._snapshot[path] = modified
                await self._notify_active(path)

    async def _refresh_watchers(self) -> set[Path]:
        """Reconcile watches with disk; returns the paths installed in this pass."""
        installed: set[Path] = set()
        if self.watched_file is not None:
            return installed
        latest = await asyncio.to_thread(self.scanner.snapshot)
        cutoff = self._clock() - self.active_window

        # Gone from disk: drop silently.
        for path in sorted(set(self._watchers) - set(latest)):
            logger.debug("Session file disappeared: %s", path)
            self._remove_watch(path)

        for path, modified in sorted(latest.items()):
            if modified < cutoff:
                continue
            identity = file_identity(path)
            watch = self._watchers.get(path)
            if watch is not None:
                if not _rotated(watch.identity, identity):
                    continue
                logger.info("Session file replaced on disk: %s", path)
                self._remove_watch(path)
            if self._install_watch(path, identity):
                installed.add(path)
                self._snapshot[path] = modified
                await self._notify_active(path)

        for path in sorted(self._watchers):
            modified = latest.get(path)
            if modified is not None and modified < cutoff:
                summary = self._cached.get(path)
                self._remove_watch(path)
                self._emit(WatchEvent.INACTIVE, path, summary)
        return installed

    async def _notify_updates(
        self,
        forced: frozenset[Path],
        check_all: bool,
        skip: frozenset[Path] = frozenset(),
    ) -> None:
        if check_all:
            targets = sorted(path for path in self._watchers if path not in skip)
        else:
            targets = sorted(path for path in forced if path in self._watchers)

        for path in targets:
            try:
                if path in forced:
                    await self._refresh_forced(path)
                else:
                    await self._refresh_if_needed(path)
            except Exception as exc:
                self._report_error(exc)

    async def _refresh_if_needed(self, path: Path) -> None:
        modified = self.scanner.file_mtime(path)
        if modified is None:
            return
        previous = self._snapshot.get(path)
        if previous is not None and modified <= previous:
            return
        self._snapshot[path] = modified
        summary = await self._resummarize(path)
        self._emit(WatchEvent.MODIFIED, path, summary)

    async def _refresh_forced(self, path: Path) -> None:
        summary = await self._resummarize(path)
        modified = self.scanner.file_mtime(path)
        self._snapshot[path] = modified if modified is not None else self._clock()
        self._emit(WatchEvent.MODIFIED, path, summary)

    async def _notify_active(self, path: Path) -> None:
        summary = await self._resummarize(path)
        self._emit(WatchEvent.ACTIVE, path, summary)

    async def _resummarize(self, path: Path) -> Optional[SessionSummary]:
        """Re-parse ``path`` and refresh the cache.

        When the parse fails (typically a half-written trailing line) the last
        good summary is reused with its end time moved to now. That value is an
        approximation and is replaced by the next successful parse.
        """
        try:
            summary = await asyncio.to_thread(load_summary, path)
        except Exception as exc:
            self._report_error(exc)
            cached = self._cached.get(path)
            if cached is None:
                return None
            now = epoch_to_datetime(self._clock())
            updated = cached.model_copy(update={"endTime": max(cached.startTime, now)})
            self._cached[path] = updated
            return updated

        if summary is None:
            self._cached.pop(path, None)
            return None
        self._cached[path] = summary
        return summary

    def _install_watch(self, path: Path, identity: Optional[FileIdentity] = None) -> bool:
        if path in self._watchers:
            return False
        try:
            handle = self.backend.watch_file(path, self._on_file_event, on_error=self._on_backend_error)
        except Exception as exc:
            self._report_error(exc)
            return False
        self._watchers[path] = _FileWatch(
            handle=handle,
            identity=identity if identity is not None else file_identity(path),
        )
        logger.debug("Watching %s", path)
        return True

    def _remove_watch(self, path: Path) -> None:
        watch = self._watchers.pop(path, None)
        if watch is not None:
            watch.handle.close()
        self._snapshot.pop(path, None)
        self._cached.pop(path, None)
        logger.debug("Stopped watching %s", path)

    # ── delivery ───────────────────────────────────────────────────

    def _emit(self, event: WatchEvent, path: Path, summary: Optional[SessionSummary]) -> None:
        record_watch_event(event.value)
        logger.debug("Session %s: %s", event.value, path)
        for handler in list(self._handlers[event]):
            try:
                handler(path, summary)
            except Exception as exc:
                self._report_error(exc)

    def _report_error(self, error: Exception) -> None:
        logger.warning("Session watcher error: %s", error)
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception:
                logger.exception("Session watcher error handler failed")
