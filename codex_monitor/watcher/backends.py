"""Change-notification backends used by the session watcher.

A backend exposes two subscriptions: a coalesced "something changed below
this directory" signal and a per-file "this file changed" signal. Callbacks
may fire on any thread; consumers marshal them onto their own loop.
"""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from watchfiles import Change, DefaultFilter, awatch

logger = logging.getLogger("codex_monitor.watcher")

DirectoryCallback = Callable[[], None]
FileCallback = Callable[[Path], None]
ErrorCallback = Callable[[Exception], None]


class WatchHandle(ABC):
    """An open OS-level subscription. ``close()`` is idempotent."""

    @abstractmethod
    def close(self) -> None:
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    async def wait_closed(self) -> None:
        return None


class WatchBackend(ABC):
    name = "abstract"

    @abstractmethod
    def watch_directory(
        self,
        root: Path,
        suffix: str,
        on_change: DirectoryCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> WatchHandle:
        ...

    @abstractmethod
    def watch_file(
        self,
        path: Path,
        on_change: FileCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> WatchHandle:
        ...


class _TaskHandle(WatchHandle):
    """Handle over a background task that exits once ``stop_event`` is set."""

    def __init__(self, task: asyncio.Task, stop_event: asyncio.Event):
        self._task = task
        self._stop_event = stop_event
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()
        self._task.cancel()

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_closed(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            pass


def _report(on_error: Optional[ErrorCallback], exc: Exception, context: str) -> None:
    logger.error("%s: %s", context, exc)
    if on_error is not None:
        on_error(exc)


# ── watchfiles ──────────────────────────────────────────────────────

class SessionFileFilter(DefaultFilter):
    """Only report non-hidden files carrying the session suffix."""

    def __init__(self, suffix: str):
        self.suffix = suffix
        super().__init__()

    def __call__(self, change: Change, path: str) -> bool:
        name = os.path.basename(path)
        if name.startswith(".") or not name.endswith(self.suffix):
            return False
        return super().__call__(change, path)


class WatchfilesBackend(WatchBackend):
    """Native notifications through ``watchfiles`` (inotify, kqueue, FSEvents, ReadDirectoryChangesW)."""

    name = "watchfiles"

    def __init__(self, debounce_ms: int = 50, step_ms: int = 25):
        self.debounce_ms = debounce_ms
        self.step_ms = step_ms

    def watch_directory(self, root, suffix, on_change, on_error=None):
        stop_event = asyncio.Event()
        task = asyncio.get_running_loop().create_task(
            self._directory_loop(root, SessionFileFilter(suffix), on_change, on_error, stop_event)
        )
        return _TaskHandle(task, stop_event)

    def watch_file(self, path, on_change, on_error=None):
        stop_event = asyncio.Event()
        task = asyncio.get_running_loop().create_task(
            self._file_loop(path, on_change, on_error, stop_event)
        )
        return _TaskHandle(task, stop_event)

    async def _directory_loop(self, root, watch_filter, on_change, on_error, stop_event) -> None:
        try:
            async for changes in awatch(
                root,
                watch_filter=watch_filter,
                stop_event=stop_event,
                debounce=self.debounce_ms,
                step=self.step_ms,
                recursive=True,
            ):
                if changes:
                    logger.debug("Directory watch saw %d changes under %s", len(changes), root)
                    on_change()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _report(on_error, exc, f"Directory watch on {root} failed")

    async def _file_loop(self, path, on_change, on_error, stop_event) -> None:
        try:
            async for changes in awatch(
                path,
                stop_event=stop_event,
                debounce=self.debounce_ms,
                step=self.step_ms,
                recursive=False,
            ):
                if any(change != Change.deleted for change, _ in changes):
                    on_change(path)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _report(on_error, exc, f"File watch on {path} failed")


# ── polling ─────────────────────────────────────────────────────────

def _file_signature(path: Path) -> tuple[int, int, int] | None:
    try:
        stats = os.stat(path)
    except OSError:
        return None
    return (int(stats.st_ino), int(stats.st_size), int(stats.st_mtime_ns))


def _directory_signature(root: Path, suffix: str) -> dict[str, tuple[int, int, int]]:
    signature: dict[str, tuple[int, int, int]] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for name in filenames:
            if name.startswith(".") or not name.endswith(suffix):
                continue
            path = os.path.join(dirpath, name)
            stat_sig = _file_signature(Path(path))
            if stat_sig is not None:
                signature[path] = stat_sig
    return signature


class PollingBackend(WatchBackend):
    """Stat-based polling for platforms without native notification."""

    name = "polling"

    def __init__(self, interval: float = 0.5):
        self.interval = interval

    def watch_directory(self, root, suffix, on_change, on_error=None):
        stop_event = asyncio.Event()
        task = asyncio.get_running_loop().create_task(
            self._directory_loop(root, suffix, on_change, on_error, stop_event)
        )
        return _TaskHandle(task, stop_event)

    def watch_file(self, path, on_change, on_error=None):
        stop_event = asyncio.Event()
        task = asyncio.get_running_loop().create_task(
            self._file_loop(path, on_change, on_error, stop_event)
        )
        return _TaskHandle(task, stop_event)

    async def _sleep_or_stop(self, stop_event: asyncio.Event) -> bool:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _directory_loop(self, root, suffix, on_change, on_error, stop_event) -> None:
        try:
            previous = await asyncio.to_thread(_directory_signature, root, suffix)
            while not await self._sleep_or_stop(stop_event):
                current = await asyncio.to_thread(_directory_signature, root, suffix)
                if current != previous:
                    previous = current
                    on_change()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _report(on_error, exc, f"Directory poll on {root} failed")

    async def _file_loop(self, path, on_change, on_error, stop_event) -> None:
        try:
            previous = _file_signature(path)
            while not await self._sleep_or_stop(stop_event):
                current = _file_signature(path)
                if current != previous:
                    previous = current
                    if current is not None:
                        on_change(path)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _report(on_error, exc, f"File poll on {path} failed")


def create_backend(name: str) -> WatchBackend:
    normalized = (name or "").strip().lower()
    if normalized == WatchfilesBackend.name:
        return WatchfilesBackend()
    if normalized == PollingBackend.name:
        return PollingBackend()
    raise ValueError(f"Unknown watch backend: {name}")
