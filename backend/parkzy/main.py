# backend/parkzy/main.py
"""FastAPI entry point for the Parkzy booking API."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Response

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION
from .database import init_db
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import api_router

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(f"Starting {API_TITLE} ({settings.environment})")
    if not settings.is_production:
        init_db()
    if not settings.stripe_configured:
        logger.warning("STRIPE_SECRET_KEY is not set - payment calls will fail")
    yield
    logger.info(f"Shutting down {API_TITLE}")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    def health() -> Dict[str, str]:
        return {"status": "healthy", "service": settings.app_name, "version": API_VERSION}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type(),
        )

    return app


app = create_app()
