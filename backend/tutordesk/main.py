# backend/tutordesk/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import settings
from .database import init_db
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import prometheus
from .routes.v1 import (
    billing as billing_v1,
    lessons as lessons_v1,
    rates as rates_v1,
    schedule as schedule_v1,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "tutordesk API"
API_DESCRIPTION = "Scheduling, rate calculation and monthly billing for a tutoring business."


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(
        f"Environment: {settings.environment}, business timezone: {settings.business_timezone}"
    )
    init_db()
    yield
    logger.info(f"{API_TITLE} shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)
    if settings.prometheus_enabled:
        app.add_middleware(PrometheusMiddleware)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(rates_v1.router, prefix="/rates")
    api_v1.include_router(lessons_v1.router, prefix="/lessons")
    api_v1.include_router(schedule_v1.router, prefix="/schedule")
    api_v1.include_router(billing_v1.router, prefix="/billing")
    app.include_router(api_v1)
    app.include_router(prometheus.router)
    return app


app = create_app()
