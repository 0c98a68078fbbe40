"""Enumerate session files under a date-partitioned sessions root."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from codex_monitor import config
from codex_monitor.date_utils import date_path
from codex_monitor.errors import InvalidRoot, InvalidWatchTarget, SessionNotFound
from codex_monitor.models import FileIdentity, SessionSummary
from codex_monitor.parsers.sessions import load_summary

logger = logging.getLogger("codex_monitor.scanner")


def file_identity(path: Path) -> FileIdentity | None:
    """Return the (device, inode) pair for ``path`` or None if stat fails."""
    try:
        stats = os.stat(path)
    except OSError:
        return None
    return FileIdentity(device=int(stats.st_dev), inode=int(stats.st_ino))


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


class SessionScanner:
    """Read-only view over the session files below ``root``.

    Every method re-walks the filesystem; nothing is cached.
    """

    def __init__(self, root: Path | str, suffix: str = config.SESSION_SUFFIX):
        self.root = Path(root).expanduser()
        self.suffix = suffix if suffix.startswith(".") else f".{suffix}"

    def _target(self, subpath: Optional[str]) -> Path:
        """Resolve ``subpath`` below the root; raises InvalidRoot if it escapes."""
        if not subpath:
            return self.root
        target = self.root / subpath.strip("/")
        try:
            target.resolve().relative_to(self.root.resolve())
        except ValueError:
            raise InvalidRoot(subpath)
        return target

    def is_session_file(self, path: Path) -> bool:
        return path.suffix == self.suffix and not _is_hidden(path.name)

    def _walk(self, target: Path) -> Iterator[Path]:
        if target.is_file():
            if self.is_session_file(target):
                yield target
            return
        for dirpath, dirnames, filenames in os.walk(target):
            dirnames[:] = sorted(d for d in dirnames if not _is_hidden(d))
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if not self.is_session_file(path):
                    continue
                try:
                    if not path.is_file():
                        continue
                except OSError:
                    continue
                yield path

    def scan_files(self, subpath: str = "") -> list[Path]:
        """List session files under ``root/subpath``; raises InvalidRoot if missing."""
        target = self._target(subpath)
        if not target.exists():
            raise InvalidRoot(str(target))
        return sorted(self._walk(target))

    def all_files(self) -> list[Path]:
        if not self.root.exists():
            return []
        return sorted(self._walk(self.root))

    def snapshot(self, subpath: Optional[str] = None) -> dict[Path, float]:
        """Map each session file to its modification time (epoch seconds).

        Files that vanish between listing and stat are skipped.
        """
        try:
            target = self._target(subpath)
        except InvalidRoot as exc:
            raise InvalidWatchTarget(exc.path) from exc
        if not target.exists():
            raise InvalidWatchTarget(str(target))

        result: dict[Path, float] = {}
        for path in self._walk(target):
            modified = self.file_mtime(path)
            if modified is not None:
                result[path] = modified
        return result

    def file_mtime(self, path: Path) -> float | None:
        try:
            return path.stat().st_mtime
        except OSError:
            return None

    def find_file(self, session_id: str) -> Path:
        """Resolve a session id to the first file whose name contains it."""
        needle = (session_id or "").strip()
        if needle:
            for path in self.all_files():
                if needle in path.name:
                    return path
        raise SessionNotFound(session_id)

    def today_path(self, now: Optional[datetime] = None) -> str:
        return date_path(now)

    def recent_summaries(self, subpath: str = "", limit: int = 10) -> list[tuple[Path, SessionSummary]]:
        """Summaries for the newest ``limit`` files under ``subpath``."""
        mtimes: dict[Path, float] = {}
        for path in self.scan_files(subpath):
            modified = self.file_mtime(path)
            if modified is not None:
                mtimes[path] = modified
        newest = sorted(mtimes.items(), key=lambda item: (item[1], str(item[0])), reverse=True)
        results: list[tuple[Path, SessionSummary]] = []
        for path, _modified in newest[: max(0, limit)]:
            summary = load_summary(path)
            if summary is not None:
                results.append((path, summary))
        logger.debug("Loaded %d summaries under %s", len(results), self._target(subpath))
        return results
