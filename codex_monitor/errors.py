"""Error types raised by the scanner, parser and watcher."""
from __future__ import annotations

_EXCERPT_LIMIT = 120


class SessionError(Exception):
    """Base class for session log failures. ``str()`` is a single line."""

    prefix = "Session error"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"{self.prefix}: {detail}")


class InvalidRoot(SessionError):
    prefix = "Invalid sessions path"

    @property
    def path(self) -> str:
        return self.detail


class SessionNotFound(SessionError):
    prefix = "Session not found"

    @property
    def session_id(self) -> str:
        return self.detail


class MalformedRecord(SessionError):
    """A session line that could not be decoded into a record."""

    prefix = "Malformed record"

    def __init__(self, line: str):
        self.excerpt = line[:_EXCERPT_LIMIT]
        super().__init__(self.excerpt)


class InvalidWatchTarget(SessionError):
    prefix = "Invalid watch path"

    @property
    def path(self) -> str:
        return self.detail
