"""Derive a display title from the first user message of a session."""
from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Optional

from codex_monitor import config

# User messages injected by the client rather than typed by the user.
_SKIPPABLE_PREFIXES = (
    "# AGENTS.md instructions",
    "<environment_context>",
)
_REQUEST_HEADER = "## My request for Codex:"
_SECTION_PREFIX = "## "

_ABSOLUTE_PATH_PATTERN = re.compile(r"/Users/[^\s]+?\.[A-Za-z0-9]+(?::\d+(?::\d+)?)?")
_INSTRUCTIONS_START = "<INSTRUCTIONS>"
_INSTRUCTIONS_END = "</INSTRUCTIONS>"

_ORIGINATOR_ALIASES = {
    "codex_vscode": "VS.CODE",
    "codex_cli": "CLI",
    "codex_tui": "CLI",
}


def is_skippable_user_message(text: str) -> bool:
    return text.startswith(_SKIPPABLE_PREFIXES)


def extract_request_section(text: str) -> Optional[str]:
    """Return the body under the ``## My request for Codex:`` header, if any.

    The body runs until the next ``## `` header. Blank lines are dropped the
    same way the line split drops them.
    """
    lines = [line for line in text.splitlines() if line]
    header_index = next(
        (idx for idx, line in enumerate(lines) if line.strip() == _REQUEST_HEADER),
        None,
    )
    if header_index is None:
        return None

    collected: list[str] = []
    for line in lines[header_index + 1:]:
        if line.strip().startswith(_SECTION_PREFIX):
            break
        collected.append(line)
    result = "\n".join(collected).strip()
    return result or None


def extract_user_title(text: str) -> Optional[str]:
    """Return the title source for a trimmed user message, or None if ineligible."""
    if is_skippable_user_message(text):
        return None
    request = extract_request_section(text)
    if request:
        return request
    return text or None


def strip_file_paths(text: str) -> str:
    return _ABSOLUTE_PATH_PATTERN.sub("", text)


def normalize_whitespace(text: str) -> str:
    return text.replace("\n", " ").replace("\r", " ").strip()


def truncate(text: str, limit: int = config.TITLE_LIMIT) -> str:
    if len(text) <= limit or limit <= 3:
        return text
    return text[: limit - 3] + "..."


def make_title(source: Optional[str], limit: int = config.TITLE_LIMIT) -> str:
    text = source if source is not None else config.NO_USER_MESSAGE_TITLE
    return truncate(normalize_whitespace(strip_file_paths(text)), limit)


def strip_instructions_block(text: str) -> str:
    """Remove every ``<INSTRUCTIONS>...</INSTRUCTIONS>`` block and trim."""
    result = text
    while True:
        start = result.find(_INSTRUCTIONS_START)
        if start < 0:
            break
        end = result.find(_INSTRUCTIONS_END, start + len(_INSTRUCTIONS_START))
        if end < 0:
            break
        result = result[:start] + result[end + len(_INSTRUCTIONS_END):]
    return result.strip()


def project_name(cwd: str) -> str:
    trimmed = (cwd or "").strip()
    if not trimmed:
        return "Unknown"
    return PurePosixPath(trimmed).name or trimmed


def originator_display_name(originator: str, limit: int = 24) -> str:
    """Short label for the client that wrote a session."""
    trimmed = (originator or "").strip()
    if not trimmed:
        return "Unknown"
    alias = _ORIGINATOR_ALIASES.get(trimmed.lower())
    if alias:
        return alias

    display = trimmed
    for separator in ("/", ".", ":"):
        if separator in trimmed:
            parts = [part for part in trimmed.split(separator) if part]
            if parts:
                display = parts[-1]
            break
    return truncate(normalize_whitespace(display), limit)
