"""Line-level decoding of session JSONL files."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from codex_monitor.errors import MalformedRecord
from codex_monitor.models import JSONValue, LogRecord

SESSION_META = "session_meta"
RESPONSE_ITEM = "response_item"

_ENVELOPE_KEYS = {"timestamp", "type"}


def read_lines(path: Path) -> list[str]:
    """Read ``path`` as UTF-8 and return its non-empty lines.

    Undecodable bytes raise MalformedRecord carrying the offending line.
    """
    raw = path.read_bytes()
    try:
        contents = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        start = raw.rfind(b"\n", 0, exc.start) + 1
        end = raw.find(b"\n", exc.start)
        line = raw[start:end if end >= 0 else len(raw)]
        raise MalformedRecord(line.decode("utf-8", errors="backslashreplace")) from exc
    return [line for line in contents.splitlines() if line.strip()]


def decode_record(line: str) -> LogRecord:
    """Decode one line into a LogRecord.

    The payload is the nested ``payload`` object when the line has one,
    otherwise every field besides ``timestamp`` and ``type``.
    """
    try:
        raw = json.loads(line)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise MalformedRecord(line) from exc

    if not isinstance(raw, dict):
        raise MalformedRecord(line)
    timestamp = raw.get("timestamp")
    record_type = raw.get("type")
    if not isinstance(timestamp, str) or not isinstance(record_type, str):
        raise MalformedRecord(line)

    nested = raw.get("payload")
    if isinstance(nested, dict):
        payload: dict[str, Any] = nested
    else:
        payload = {key: value for key, value in raw.items() if key not in _ENVELOPE_KEYS}
    return LogRecord(timestamp=timestamp, type=record_type, payload=payload)


def string_field(payload: dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def extract_text(value: JSONValue) -> Optional[str]:
    """Recover message text from a ``content`` value.

    Accepts a string, an object with ``text``/``content``, or an array of
    strings and such objects (joined with no separator).
    """
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts: list[str] = []
        for item in value:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                text = _object_text(item)
                if text is not None:
                    parts.append(text)
        return "".join(parts) if parts else None
    if isinstance(value, dict):
        return _object_text(value)
    return None


def _object_text(value: dict[str, Any]) -> Optional[str]:
    text = string_field(value, "text")
    if text is not None:
        return text
    return string_field(value, "content")
