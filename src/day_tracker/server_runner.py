"""Helpers to launch the local API server."""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .config import TrackerSettings
from .paths import get_db_path
from .session import TrackingSession
from .webapp import create_app

logger = logging.getLogger(__name__)


def build_dashboard(
    db_path: Optional[Path] = None, settings: Optional[TrackerSettings] = None
) -> FastAPI:
    """Open a tracking session on the database and wrap it in the API app.

    The session restores today's activities and breaks before the app is
    returned; the app closes it on shutdown.
    """
    resolved = Path(db_path or get_db_path())
    session = TrackingSession.open(resolved, settings)
    logger.info(
        "Tracking into %s (workday %s, %s of breaks allowed).",
        resolved,
        session.settings.workday_duration,
        session.settings.allowed_break_duration,
    )
    return create_app(db_path=resolved, session=session)


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Start the API with the background collector and block until it exits."""
    app = build_dashboard(db_path, settings)

    if open_browser:
        threading.Thread(
            target=_open_docs_after_delay, args=(f"http://{host}:{port}/docs",), daemon=True
        ).start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _open_docs_after_delay(url: str) -> None:
    time.sleep(1.0)
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
