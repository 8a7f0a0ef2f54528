"""FastAPI application exposing the web client."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .config import Settings, get_settings
from .dispatch import Dispatcher
from .renderer import Renderer
from .routes import build_routes
from .service import ClientFactory, Service
from .session import AbstractSessionStore, InMemorySessionStore, SessionManager

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[AbstractSessionStore] = None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    """Wire the session store, service and route table into an app.

    Run with ``uvicorn fedweb.main:create_app --factory``.
    """

    settings = settings or get_settings()
    logging.getLogger("fedweb").setLevel(settings.log_level.upper())

    sessions = SessionManager(
        store if store is not None else InMemorySessionStore(),
        ttl_seconds=settings.session_ttl_seconds,
    )
    renderer = Renderer(settings)
    service = Service(settings, sessions, renderer, client_factory)
    dispatcher = Dispatcher(sessions, service, renderer, settings)

    app = FastAPI(
        title=settings.client_name, docs_url=None, redoc_url=None, openapi_url=None
    )
    app.state.sessions = sessions
    app.state.settings = settings

    routes = build_routes()
    dispatcher.mount(app, routes)
    if settings.static_dir:
        app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

    logger.info(
        "Registered %d routes for %s", len(routes), settings.client_website
    )
    return app
