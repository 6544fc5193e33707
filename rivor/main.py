"""ASGI entry point for the Rivor automation service.

    uvicorn rivor.main:app
    python -m rivor.main

The lifespan brings up the database, the event bus with its subscribers,
and (unless disabled) the follow-up poller; shutdown runs in reverse.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request

from rivor.api.errors import register_error_handlers
from rivor.api.routes import router
from rivor.automation.subscribers import register_subscribers
from rivor.config import settings
from rivor.db.engine import db_lifespan
from rivor.events.audit import audit_on_event
from rivor.events.bus import emit, start_event_system, stop_event_system, subscribe
from rivor.schemas.events import EventType, SystemEvent
from rivor.worker import FollowUpPoller

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Route stdlib and structlog output through one stdout handler."""
    level = level or settings.log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        stream=sys.stdout,
        force=True,
    )
    renderer = structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Rivor automation starting (env=%s)", settings.environment)
    async with db_lifespan():
        await start_event_system()
        subscribe(audit_on_event)
        register_subscribers()

        poller: FollowUpPoller | None = None
        if settings.automation.poller_enabled:
            poller = FollowUpPoller()
            await poller.start()
        else:
            logger.warning("Follow-up poller disabled by AUTOMATION_POLLER_ENABLED")
        app.state.poller = poller
        await emit(SystemEvent(
            event_type=EventType.SERVICE_STARTED,
            data={"environment": settings.environment, "poller": poller is not None},
            source_module="main",
        ))

        try:
            yield
        finally:
            await emit(SystemEvent(event_type=EventType.SERVICE_STOPPING, source_module="main"))
            if poller is not None:
                await poller.stop()
            await stop_event_system()
    logger.info("Rivor automation stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Rivor Automation API",
        description="Appointment scheduling and follow-up sequence automation",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(router)
    register_error_handlers(application)

    @application.get("/health")
    async def health(request: Request) -> dict[str, str]:
        poller = getattr(request.app.state, "poller", None)
        return {
            "status": "ok",
            "environment": settings.environment,
            "poller": "running" if poller is not None and poller.running else "stopped",
        }

    return application


configure_logging()
app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "rivor.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
