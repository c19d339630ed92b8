from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from order_intake.api.middleware.request_context import RequestContextMiddleware
from order_intake.api.routes import api_router
from order_intake.config import get_settings
from order_intake.ops.events import LOG_FORMAT, configure_ops_event_logging, iso_now
from order_intake.scheduler.main import build_scheduler

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

settings = get_settings()
configure_ops_event_logging(max_size=settings.ops_event_buffer_size)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler(settings=settings)
        scheduler.start()
        logger.info(
            "Intake scheduled for hours %s at :%02d and %s at :%02d (%s)",
            settings.schedule_primary_hours,
            settings.schedule_primary_minute,
            settings.schedule_secondary_hours,
            settings.schedule_secondary_minute,
            settings.timezone,
        )
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Order Intake", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy", "timestamp": iso_now()}
