"""Pydantic models for session logs and watcher state."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# A decoded JSON value. The runtime type is the variant tag:
# str | int | float | bool | None | dict | list.
JSONValue = Union[str, int, float, bool, None, dict[str, Any], list[Any]]


# ── Raw log models ──────────────────────────────────────────────────

class LogRecord(BaseModel):
    """One decoded line of a session file."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class FileIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    device: int
    inode: int


# ── Session models ──────────────────────────────────────────────────

class SessionSummary(BaseModel):
    id: str
    startTime: datetime
    endTime: datetime
    cwd: str = ""
    title: str = ""
    originator: str = ""
    messageCount: int = 0


class SessionMessage(BaseModel):
    role: str  # "user" | "assistant" | "developer" | ...
    timestamp: datetime
    text: str = ""


# ── Export models ───────────────────────────────────────────────────

class SessionSummaryExport(BaseModel):
    id: str
    start: str
    end: str
    cwd: str = ""
    title: str = ""
    originator: str = ""
    messageCount: int = 0


class SessionMessageExport(BaseModel):
    index: int
    role: str
    timestamp: str
    text: str = ""


class SessionExport(BaseModel):
    summary: Optional[SessionSummaryExport] = None
    messages: list[SessionMessageExport] = Field(default_factory=list)


class SessionListItem(BaseModel):
    path: str
    project: str = "Unknown"
    originator: str = "Unknown"
    summary: SessionSummary


# ── Watcher-facing models ───────────────────────────────────────────

class ActiveSession(BaseModel):
    path: str
    summary: Optional[SessionSummary] = None
    project: str = "Unknown"
    originator: str = "Unknown"
    lastEvent: str = "active"  # "active" | "modified"
    updatedAt: datetime
