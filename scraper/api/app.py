"""FastAPI application entry point for the listing scraper."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scraper.api.rate_limit import SlidingWindowRateLimiter
from scraper.api.routes import router
from scraper.config.settings import ServiceConfig
from scraper.extraction.record import ErrorSource, ExtractionRequest
from scraper.jobs.service import JobService
from scraper.service.extractor import ExtractionService
from scraper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app(
    config: ServiceConfig | None = None,
    extractor: ExtractionService | None = None,
) -> FastAPI:
    """Factory function for creating the FastAPI application."""
    config = config or (extractor.config if extractor else ServiceConfig())
    configure_logging(config.log_level)

    extractor = extractor or ExtractionService(config)
    jobs = JobService(extractor, config=config.jobs)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await jobs.repository.shutdown()

    app = FastAPI(
        title="Realtor Scraper",
        description="Property listing extraction service",
        version="1.0.0",
        lifespan=lifespan,
    )

    cors_origins = config.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials="*" not in cors_origins and bool(cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.extractor = extractor
    app.state.jobs = jobs
    app.state.rate_limiter = SlidingWindowRateLimiter(config.rate_limit)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
        # Scraping callers always get a record back, never a transport error.
        emit_structured_error(
            logger,
            code=ErrorCode.UNHANDLED_EXCEPTION,
            message=str(exc),
            suppressed=False,
            details={"path": request.url.path},
        )
        response = extractor.error_response(
            ExtractionRequest(), ErrorSource.UNHANDLED, str(exc) or repr(exc)
        )
        return JSONResponse(status_code=200, content=response.to_payload())

    app.include_router(router)
    return app


app = create_app()
