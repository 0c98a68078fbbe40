"""Codex Monitor FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codex_monitor import config
from codex_monitor.routers.sessions import get_scanner, sessions_router
from codex_monitor.watcher.service import watch_service
from codex_monitor.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("codex_monitor")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Codex Monitor starting up (sessions=%s)", config.SESSIONS_DIR)
    initialize_observability(app)

    if config.WATCH_ENABLED:
        started = await watch_service.start(get_scanner())
        if not started:
            logger.warning("Session watcher not started; active sessions will be empty")

    yield

    logger.info("Codex Monitor shutting down")
    await watch_service.stop()
    shutdown_observability(app)


app = FastAPI(
    title="Codex Monitor API",
    description="Summaries and live activity for Codex session logs",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the local frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "sessionsDir": str(config.SESSIONS_DIR),
        "watcher": "running" if watch_service.is_running else "stopped",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
