"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rcti_engine import __version__
from rcti_engine.api.routes import deductions_router, health_router, rctis_router
from rcti_engine.database import create_tables
from rcti_engine.errors import ConflictError, NotFoundError, RctiError, ValidationError
from rcti_engine.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    await create_tables()
    yield


def _error(status_code: int, exc: Exception, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": code})


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="RCTI Engine API",
        description="Recipient Created Tax Invoices and driver deduction ledger",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc, "VALIDATION_ERROR")

    @app.exception_handler(ConflictError)
    async def conflict_error_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "CONFLICT")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, "NOT_FOUND")

    @app.exception_handler(RctiError)
    async def engine_error_handler(request: Request, exc: RctiError) -> JSONResponse:
        """Persistence failures and anything else raised by the engine."""
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "A storage error occurred", "code": "INTERNAL_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(rctis_router, prefix="/api/v1")
    app.include_router(deductions_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
