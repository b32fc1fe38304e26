"""
FastAPI Application Entry Point

Main application with lifecycle management for the event emitter loop
and the outbound HTTP client.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from slotwise.api import api_router
from slotwise.constants.constants import TRACE_HEADER_NAME, normalize_trace_id
from slotwise.core.config import is_production, settings
from slotwise.core.errors import AppError, error_payload, issues_from_pydantic
from slotwise.core.logging import bind_request_context, setup_logging
from slotwise.services.container import Services

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service container (tests); built from settings otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.
        Starts the emitter loop on startup; flushes it and closes HTTP clients on shutdown.
        """
        setup_logging()
        logger.info(f"{settings.APP_NAME} starting up ({settings.APP_ENV})...")

        container = services or Services()
        if services is None and settings.CATALOG_PATH:
            shops = container.registry.load_file(settings.CATALOG_PATH)
            logger.info(f"Loaded {len(shops)} shops from {settings.CATALOG_PATH}")
        app.state.services = container

        stop = asyncio.Event()
        emitter_task = asyncio.create_task(container.emitter.run(stop))

        yield

        logger.info(f"{settings.APP_NAME} shutting down...")
        stop.set()
        await emitter_task

        from slotwise.tools import aclose_all_clients
        await aclose_all_clients()
        logger.info(f"{settings.APP_NAME} shutdown complete")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Delivery and pickup slot scheduling with ranked recommendations",
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url=None if is_production() else "/docs",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def trace_context(request: Request, call_next):
        trace_id = normalize_trace_id(request.headers.get(TRACE_HEADER_NAME))
        bind_request_context(trace_id=trace_id)
        response = await call_next(request)
        response.headers[TRACE_HEADER_NAME] = trace_id
        return response

    # ==================== Error Handlers ====================

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_payload("validation_error", "Invalid request", issues_from_pydantic(exc.errors())),
        )

    @app.exception_handler(PydanticValidationError)
    async def model_validation_handler(request: Request, exc: PydanticValidationError):
        return JSONResponse(
            status_code=400,
            content=error_payload("validation_error", "Invalid request", issues_from_pydantic(exc.errors())),
        )

    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Service identity."""
        return {
            "service": settings.APP_NAME,
            "status": "running",
            "version": settings.APP_VERSION,
        }

    @app.get("/health")
    async def health(request: Request):
        """Detailed health check."""
        container: Services = request.app.state.services
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "components": {
                "api": "ok",
                "shops": len(container.registry.shop_ids()),
                "pendingEvents": container.emitter.pending_count(),
                "deadLetters": len(container.emitter.dead_letters()),
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
