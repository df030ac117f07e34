"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from carassist.config import AppConfig
from carassist.recording.event_logger import AlertLogger
from carassist.web.routes import create_router
from carassist.web.websocket import SessionManager, create_ws_router


def create_app(config: AppConfig, alert_logger: AlertLogger) -> FastAPI:
    """Create and configure the FastAPI application.

    Raises ConfigurationError if the policy or palette is invalid, so a bad
    configuration is rejected before the server starts.
    """
    app = FastAPI(title="CarAssist", version="0.1.0")

    sessions = SessionManager(config, alert_logger)
    app.state.sessions = sessions

    app.include_router(create_router(sessions))
    app.include_router(create_ws_router(sessions))

    return app
