"""FastAPI application bootstrap and router wiring."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adinsight.api.routers import analysis, health, jobs, uploads
from adinsight.core.config import get_settings
from adinsight.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    from adinsight.db.session import init_db

    init_db()
    logger.info("Database tables ready")
    yield


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
    app.include_router(analysis.router, prefix="/api/analysis", tags=["analysis"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])

    return app


app = create_app()
