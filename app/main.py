"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi_pagination import add_pagination
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers import (
    conversations_router,
    data_deletion_router,
    dead_letters_router,
    queue_router,
    system,
    webhooks,
)
from app.tasks import process_pending_messages

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Starting %s (%s)", settings.app_name, settings.environment)
    if not settings.meta_app_secret:
        logger.warning("META_APP_SECRET is not set; webhook signatures are not checked")
    if settings.queue_drain_on_startup:
        # messages left pending by the previous process
        await drain_queue()
    yield
    logger.info("Shutting down %s", settings.app_name)


async def drain_queue() -> int:
    """Run pending queued messages until none are left. Never raises."""
    total = 0
    try:
        while True:
            processed = await process_pending_messages()
            total += processed
            if processed == 0:
                break
    except SQLAlchemyError as e:
        logger.error("Queue drain stopped: %s", e)
    if total:
        logger.info("Drained %d queued message(s) on startup", total)
    return total


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    LoggingConfig()

    app = FastAPI(
        title=settings.app_name,
        description="Relays Meta Messenger and Instagram messages through Voiceflow",
        lifespan=None if testing else lifespan,
    )
    app.include_router(webhooks.router)
    app.include_router(conversations_router.conversations_router)
    app.include_router(queue_router.queue_router)
    app.include_router(dead_letters_router.dead_letters_router)
    app.include_router(data_deletion_router.data_deletion_router)
    app.include_router(system.router)
    add_pagination(app)
    return app


app = create_app()
