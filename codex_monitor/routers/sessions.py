"""API router for browsing session logs and the live active set."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from codex_monitor import config
from codex_monitor.errors import InvalidRoot, MalformedRecord, SessionError, SessionNotFound
from codex_monitor.models import (
    ActiveSession,
    SessionExport,
    SessionListItem,
    SessionMessageExport,
)
from codex_monitor.parsers.ranges import RangeParseError, parse_ranges, select_messages
from codex_monitor.parsers.sessions import export_messages, load_messages, load_session
from codex_monitor.parsers.titles import originator_display_name, project_name
from codex_monitor.scanner import SessionScanner
from codex_monitor.watcher.service import watch_service

logger = logging.getLogger("codex_monitor.api")

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def get_scanner() -> SessionScanner:
    return SessionScanner(config.SESSIONS_DIR, config.SESSION_SUFFIX)


def _http_error(exc: SessionError) -> HTTPException:
    if isinstance(exc, MalformedRecord):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=404, detail=str(exc))


def _parse_ranges_param(ranges: Optional[str]) -> list[tuple[int, int]]:
    try:
        return parse_ranges(ranges or "")
    except RangeParseError as e:
        raise HTTPException(status_code=400, detail=str(e))


@sessions_router.get("", response_model=list[SessionListItem])
async def list_sessions(
    path: Optional[str] = Query(None, description="Date path such as 2025/01/31; defaults to today"),
    limit: int = Query(10, ge=1, le=500),
):
    """Return the newest sessions under a date path."""
    scanner = get_scanner()
    subpath = path or scanner.today_path()
    try:
        recent = await asyncio.to_thread(scanner.recent_summaries, subpath, limit)
    except InvalidRoot as e:
        raise _http_error(e)
    except MalformedRecord as e:
        logger.warning("Failed to list sessions under %s: %s", subpath, e)
        raise _http_error(e)

    return [
        SessionListItem(
            path=str(file_path),
            project=project_name(summary.cwd),
            originator=originator_display_name(summary.originator),
            summary=summary,
        )
        for file_path, summary in recent
    ]


@sessions_router.get("/active", response_model=list[ActiveSession])
async def list_active_sessions():
    """Return the sessions currently tracked by the watcher."""
    return watch_service.tracker.list()


@sessions_router.get("/{session_id}", response_model=SessionExport)
async def get_session(
    session_id: str,
    ranges: Optional[str] = Query(None, description="Message ranges like 1...3,25...28"),
    strip_instructions: bool = Query(False, description="Remove <INSTRUCTIONS> blocks from message text"),
):
    """Return a session's summary and (optionally filtered) messages."""
    selected_ranges = _parse_ranges_param(ranges)
    scanner = get_scanner()
    try:
        file_path = await asyncio.to_thread(scanner.find_file, session_id)
        return await asyncio.to_thread(load_session, file_path, strip_instructions, selected_ranges)
    except (SessionNotFound, MalformedRecord) as e:
        raise _http_error(e)


@sessions_router.get("/{session_id}/messages", response_model=list[SessionMessageExport])
async def get_session_messages(
    session_id: str,
    ranges: Optional[str] = Query(None, description="Message ranges like 1...3,25...28"),
    strip_instructions: bool = Query(True, description="Remove <INSTRUCTIONS> blocks from message text"),
):
    selected_ranges = _parse_ranges_param(ranges)
    scanner = get_scanner()
    try:
        file_path = await asyncio.to_thread(scanner.find_file, session_id)
        messages = await asyncio.to_thread(load_messages, file_path)
    except (SessionNotFound, MalformedRecord) as e:
        raise _http_error(e)
    return export_messages(select_messages(messages, selected_ranges), strip_instructions)
