"""Codex Monitor configuration."""
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Session log layout: <SESSIONS_DIR>/YYYY/MM/DD/<name><SESSION_SUFFIX>
SESSIONS_DIR = Path(os.getenv("CODEX_MONITOR_SESSIONS_DIR", str(Path.home() / ".codex" / "sessions"))).expanduser()
SESSION_SUFFIX = os.getenv("CODEX_MONITOR_SESSION_SUFFIX", ".jsonl")

# Watcher tuning
WATCH_ENABLED = _env_bool("CODEX_MONITOR_WATCH_ENABLED", True)
WATCH_BACKEND = os.getenv("CODEX_MONITOR_WATCH_BACKEND", "watchfiles")
ACTIVE_WINDOW_SECONDS = _env_float("CODEX_MONITOR_ACTIVE_WINDOW_SECONDS", 30.0)
DEBOUNCE_MS = _env_int("CODEX_MONITOR_DEBOUNCE_MS", 200)
POLL_INTERVAL_SECONDS = _env_float("CODEX_MONITOR_POLL_INTERVAL_SECONDS", 5.0)

# Titles
TITLE_LIMIT = 200
NO_USER_MESSAGE_TITLE = "(no user message)"

# Observability
OTEL_ENABLED = _env_bool("CODEX_MONITOR_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CODEX_MONITOR_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CODEX_MONITOR_OTEL_SERVICE_NAME", "codex-monitor")
PROM_PORT = _env_int("CODEX_MONITOR_PROM_PORT", 0)

# Server settings
HOST = os.getenv("CODEX_MONITOR_HOST", "127.0.0.1")
PORT = _env_int("CODEX_MONITOR_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("CODEX_MONITOR_FRONTEND_ORIGIN", "http://localhost:3000")
