"""Message index ranges such as ``1...3,25...28``."""
from __future__ import annotations

from codex_monitor.models import SessionMessage


class RangeParseError(ValueError):
    pass


def _positive(token: str) -> int | None:
    try:
        value = int(token.strip())
    except ValueError:
        return None
    return value if value >= 1 else None


def parse_ranges(value: str) -> list[tuple[int, int]]:
    """Parse comma-separated 1-based indexes and inclusive ``a...b`` spans."""
    trimmed = (value or "").strip()
    if not trimmed:
        return []

    ranges: list[tuple[int, int]] = []
    for part in trimmed.split(","):
        token = part.strip()
        if not token:
            continue
        if "..." in token:
            bounds = token.split("...")
            if len(bounds) != 2:
                raise RangeParseError(f"Invalid range segment: {token}")
            lower, upper = _positive(bounds[0]), _positive(bounds[1])
            if lower is None or upper is None:
                raise RangeParseError(f"Invalid range numbers: {token}")
            ranges.append((min(lower, upper), max(lower, upper)))
        else:
            index = _positive(token)
            if index is None:
                raise RangeParseError(f"Invalid message index: {token}")
            ranges.append((index, index))
    return ranges


def select_messages(
    messages: list[SessionMessage],
    ranges: list[tuple[int, int]],
) -> list[tuple[int, SessionMessage]]:
    indexed = list(enumerate(messages, start=1))
    if not ranges:
        return indexed
    return [
        (position, message)
        for position, message in indexed
        if any(lower <= position <= upper for lower, upper in ranges)
    ]
