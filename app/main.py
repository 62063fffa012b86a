"""
FastAPI application factory for the relay service.

Run with: uvicorn --factory app.main:create_app
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi_pagination import add_pagination

from app.config import get_settings
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers import (
    channel_mappings_router,
    messages_router,
    system,
    webhooks,
)


def create_app(testing: bool = False) -> FastAPI:
    """Build the app. ``testing`` skips logging setup so pytest keeps its capture handlers."""
    settings = get_settings()
    if not testing:
        LoggingConfig(settings)

    app = FastAPI(
        title="COBRA Relay API",
        description="Relay between COBRA chat threads and external chat platforms",
        version="0.1.0",
    )

    app.include_router(webhooks.router)
    app.include_router(channel_mappings_router.router)
    app.include_router(messages_router.router)
    app.include_router(system.router)

    add_pagination(app)

    get_logger("app").info(
        "Relay API created (environment=%s)", settings.environment
    )
    return app

