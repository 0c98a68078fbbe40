"""Observability helpers."""

from codex_monitor.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_parser_failure,
    record_summary_load,
    record_watch_event,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_parser_failure",
    "record_summary_load",
    "record_watch_event",
]
