"""Fold session JSONL files into summaries and message lists."""
from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

from codex_monitor.date_utils import format_datetime, parse_timestamp
from codex_monitor.errors import MalformedRecord
from codex_monitor.models import (
    LogRecord,
    SessionExport,
    SessionMessage,
    SessionMessageExport,
    SessionSummary,
    SessionSummaryExport,
)
from codex_monitor.observability import record_parser_failure, record_summary_load, start_span
from codex_monitor.parsers.ranges import select_messages
from codex_monitor.parsers.records import (
    RESPONSE_ITEM,
    SESSION_META,
    decode_record,
    extract_text,
    read_lines,
    string_field,
)
from codex_monitor.parsers.titles import extract_user_title, make_title, strip_instructions_block

logger = logging.getLogger("codex_monitor.parser")


def _decode_all(path: Path, lines: list[str], parser: str) -> list[LogRecord]:
    records: list[LogRecord] = []
    for line in lines:
        try:
            records.append(decode_record(line))
        except MalformedRecord as exc:
            record_parser_failure(parser)
            logger.debug("Malformed record in %s: %s", path, exc.excerpt)
            raise
    return records


def _title_source(record: LogRecord) -> Optional[str]:
    if string_field(record.payload, "role") != "user":
        return None
    if "content" not in record.payload:
        return None
    message = extract_text(record.payload["content"])
    if message is None:
        return None
    return extract_user_title(message.strip())


def load_summary(path: Path) -> SessionSummary | None:
    """Summarize a session file.

    Returns None for an empty file, or when the file never names a session id
    or never carries a parseable timestamp. A single undecodable line raises
    MalformedRecord for the whole file.
    """
    started = time.perf_counter()
    with start_span("session.load_summary", {"path": str(path)}):
        lines = read_lines(path)
        if not lines:
            record_summary_load("empty", (time.perf_counter() - started) * 1000)
            return None

        session_id: Optional[str] = None
        cwd = ""
        originator = ""
        start_time: Optional[datetime] = None
        end_time: Optional[datetime] = None
        title_source: Optional[str] = None
        message_count = 0

        for record in _decode_all(path, lines, "summary"):
            parsed = parse_timestamp(record.timestamp)
            if parsed is not None:
                if start_time is None:
                    start_time = parsed
                end_time = parsed

            if record.type == SESSION_META:
                # Later metadata records overwrite earlier ones.
                session_id = string_field(record.payload, "id")
                cwd = string_field(record.payload, "cwd") or cwd
                originator = string_field(record.payload, "originator") or originator
                continue

            if record.type != RESPONSE_ITEM:
                continue
            if string_field(record.payload, "type") == "message":
                message_count += 1
            if title_source is None:
                title_source = _title_source(record)

    if session_id is None or start_time is None or end_time is None:
        record_summary_load("incomplete", (time.perf_counter() - started) * 1000)
        return None

    record_summary_load("success", (time.perf_counter() - started) * 1000)
    return SessionSummary(
        id=session_id,
        startTime=start_time,
        endTime=max(start_time, end_time),
        cwd=cwd,
        title=make_title(title_source),
        originator=originator,
        messageCount=message_count,
    )


def load_messages(path: Path) -> list[SessionMessage]:
    """Return every response item with a role, text and timestamp, in file order."""
    messages: list[SessionMessage] = []
    for record in _decode_all(path, read_lines(path), "messages"):
        if record.type != RESPONSE_ITEM:
            continue
        role = string_field(record.payload, "role")
        if role is None or "content" not in record.payload:
            continue
        text = extract_text(record.payload["content"])
        if text is None:
            continue
        timestamp = parse_timestamp(record.timestamp)
        if timestamp is None:
            continue
        messages.append(SessionMessage(role=role, timestamp=timestamp, text=text.strip()))
    return messages


def export_summary(summary: SessionSummary) -> SessionSummaryExport:
    return SessionSummaryExport(
        id=summary.id,
        start=format_datetime(summary.startTime),
        end=format_datetime(summary.endTime),
        cwd=summary.cwd,
        title=summary.title,
        originator=summary.originator,
        messageCount=summary.messageCount,
    )


def export_messages(
    indexed: list[tuple[int, SessionMessage]],
    strip_instructions: bool = False,
) -> list[SessionMessageExport]:
    return [
        SessionMessageExport(
            index=index,
            role=message.role,
            timestamp=format_datetime(message.timestamp),
            text=strip_instructions_block(message.text) if strip_instructions else message.text,
        )
        for index, message in indexed
    ]


def load_session(
    path: Path,
    strip_instructions: bool = False,
    ranges: Optional[list[tuple[int, int]]] = None,
) -> SessionExport:
    """Summary and messages of one file in export shape.

    ``ranges`` selects messages by 1-based position; empty or None keeps all.
    """
    summary = load_summary(path)
    messages = load_messages(path)
    return SessionExport(
        summary=export_summary(summary) if summary else None,
        messages=export_messages(select_messages(messages, ranges or []), strip_instructions),
    )
