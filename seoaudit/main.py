"""
Technical SEO Audit Engine - Main Application Entry Point
FastAPI application with lifespan management.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from seoaudit.api.v1.routes import audits, health
from seoaudit.core.config import get_settings
from seoaudit.core.logging import configure_logging

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Manage application lifecycle: startup and shutdown."""
    configure_logging()
    logger.info("Starting Technical SEO Audit Engine", version=settings.APP_VERSION, env=settings.ENV)

    if not settings.PAGESPEED_API_KEY:
        logger.warning("PAGESPEED_API_KEY not set; PageSpeed requests are subject to keyless quota")

    yield

    logger.info("Application shutdown complete")


def create_application() -> FastAPI:
    app = FastAPI(
        title="Technical SEO Audit API",
        description="Concurrent technical SEO audits with weighted scoring and prioritized recommendations.",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.ENV != "production" else None,
        redoc_url="/redoc" if settings.ENV != "production" else None,
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def bind_request_id(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["x-request-id"] = request_id
        return response

    # Routers
    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(audits.router, prefix="/api/v1/audits", tags=["Audits"])

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "request_id": request.headers.get("x-request-id")},
        )

    return app


app = create_application()


def serve() -> None:
    """Console entry point: run the API under uvicorn."""
    uvicorn.run("seoaudit.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
