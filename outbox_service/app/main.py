"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from outbox_service.app.exception_handlers import configure_exception_handlers
from outbox_service.app.lifespan import lifespan
from outbox_service.app.router import setup_routers
from outbox_service.core.settings import get_app_settings


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = get_app_settings()

    app = FastAPI(
        title=app_settings.title,
        description=app_settings.description,
        version=app_settings.version,
        docs_url=app_settings.get_docs_url(),
        redoc_url=None,
        openapi_url=None if app_settings.disable_docs else "/openapi.json",
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    # Exception handlers before routers
    configure_exception_handlers(app)
    setup_routers(app, app_settings)

    return app
