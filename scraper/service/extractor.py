"""Extraction Service: drives one browser session through a request's stages.

The service turns every scraping failure into a well-formed response. A
request moves RECEIVED -> VALIDATED -> BROWSER_LAUNCHED -> NAVIGATED ->
EXTRACTED -> CLEANED_UP -> RESPONDED; failures jump to CLEANED_UP with a
``source`` naming the stage that failed. The browser session is closed exactly
once on every path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from scraper.browser.session import BrowserSession
from scraper.config.settings import ServiceConfig
from scraper.config.url_policy import validate_listing_url
from scraper.extraction.cascade import ExtractionCascade
from scraper.extraction.page import ListingPage
from scraper.extraction.record import (
    ErrorSource,
    ExtractionRequest,
    ExtractionResponse,
    PropertyRecord,
)
from scraper.service.stages import Stage, StageTracker
from scraper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class Session(Protocol):
    async def start(self) -> None: ...
    async def navigate(self, url: str) -> None: ...
    async def dismiss_consent(self) -> bool: ...
    async def wait_until_ready(self) -> str | None: ...
    async def capture(self) -> ListingPage: ...
    async def close(self) -> None: ...


SessionFactory = Callable[[ServiceConfig], Session]

_ERROR_CODES = {
    ErrorSource.LAUNCH: ErrorCode.BROWSER_LAUNCH_FAILED,
    ErrorSource.NAVIGATION: ErrorCode.NAVIGATION_FAILED,
    ErrorSource.EVALUATE: ErrorCode.EXTRACTION_FAILED,
}


class ExtractionServiceError(Exception):
    """A failure inside one stage, tagged with the response ``source``."""

    def __init__(self, source: ErrorSource, message: str) -> None:
        super().__init__(message)
        self.source = source
        self.message = message


def default_session_factory(config: ServiceConfig) -> BrowserSession:
    return BrowserSession(config.browser, config.timeouts)


class ExtractionService:
    """Runs extraction requests, at most ``max_concurrent_sessions`` at a time."""

    def __init__(
        self,
        config: ServiceConfig | None = None,
        session_factory: SessionFactory | None = None,
        cascade: ExtractionCascade | None = None,
    ) -> None:
        self._config = config or ServiceConfig()
        self._session_factory = session_factory or default_session_factory
        self._cascade = cascade or ExtractionCascade(self._config.extraction)
        self._semaphore = asyncio.Semaphore(self._config.max_concurrent_sessions)

    @property
    def config(self) -> ServiceConfig:
        return self._config

    async def extract(self, request: ExtractionRequest) -> ExtractionResponse:
        """Extract one listing. Never raises."""
        try:
            return await self._run(request)
        except Exception as e:
            emit_structured_error(
                logger,
                code=ErrorCode.UNHANDLED_EXCEPTION,
                message=str(e),
                suppressed=False,
                request_id=request.request_id,
                url=request.url,
            )
            return self.error_response(request, ErrorSource.UNHANDLED, str(e) or repr(e))

    def error_response(
        self, request: ExtractionRequest, source: ErrorSource, message: str
    ) -> ExtractionResponse:
        record = PropertyRecord(source=source.value, url=request.url)
        return ExtractionResponse.build(
            record,
            self._config.extraction.required_fields,
            error=message,
            request_id=request.request_id,
            user_id=request.user_id,
        )

    def _advance(self, tracker: StageTracker, stage: Stage, request_id: str) -> None:
        tracker.advance(stage)
        logger.debug("request %s -> %s", request_id, stage.value)

    async def _run(self, request: ExtractionRequest) -> ExtractionResponse:
        tracker = StageTracker()
        url = (request.url or "").strip()
        reason = "Missing listing URL" if not url else None
        if url:
            verdict = validate_listing_url(url, self._config.url_policy)
            if not verdict.allowed:
                reason = verdict.reason
        if reason is not None:
            logger.info("request %s rejected: %s", request.request_id, reason)
            self._advance(tracker, Stage.RESPONDED, request.request_id)
            return self.error_response(request, ErrorSource.VALIDATION, reason)
        self._advance(tracker, Stage.VALIDATED, request.request_id)

        async with self._semaphore:
            session: Session | None = None
            try:
                try:
                    session = self._session_factory(self._config)
                    await session.start()
                except Exception as e:
                    raise ExtractionServiceError(ErrorSource.LAUNCH, str(e) or repr(e)) from e
                self._advance(tracker, Stage.BROWSER_LAUNCHED, request.request_id)
                record = await self._navigate_and_extract(session, url, request, tracker)
            except ExtractionServiceError as e:
                emit_structured_error(
                    logger,
                    code=_ERROR_CODES[e.source],
                    message=e.message,
                    suppressed=False,
                    request_id=request.request_id,
                    stage=tracker.stage.value,
                    url=url,
                )
                response = self.error_response(request, e.source, e.message)
            else:
                response = ExtractionResponse.build(
                    record,
                    self._config.extraction.required_fields,
                    request_id=request.request_id,
                    user_id=request.user_id,
                )
            finally:
                if session is not None:
                    await self._close(session, request.request_id)
                self._advance(tracker, Stage.CLEANED_UP, request.request_id)

        if response.partial and response.error is None:
            logger.warning(
                "partial extraction for %s (source=%s, missing=%s)",
                url,
                response.source,
                response.missing,
            )
        self._advance(tracker, Stage.RESPONDED, request.request_id)
        return response

    async def _navigate_and_extract(
        self,
        session: Session,
        url: str,
        request: ExtractionRequest,
        tracker: StageTracker,
    ) -> PropertyRecord:
        try:
            await session.navigate(url)
        except Exception as e:
            raise ExtractionServiceError(ErrorSource.NAVIGATION, str(e) or repr(e)) from e
        self._advance(tracker, Stage.NAVIGATED, request.request_id)

        try:
            await session.dismiss_consent()
            ready = await session.wait_until_ready()
            logger.debug("request %s ready signal: %s", request.request_id, ready)
            page = await asyncio.wait_for(
                session.capture(), timeout=self._config.timeouts.capture_timeout_s
            )
            record = self._cascade.run(page, request_id=request.request_id)
        except Exception as e:
            raise ExtractionServiceError(ErrorSource.EVALUATE, str(e) or repr(e)) from e
        self._advance(tracker, Stage.EXTRACTED, request.request_id)
        return record

    async def _close(self, session: Session, request_id: str) -> None:
        try:
            await session.close()
        except Exception as e:
            emit_structured_error(
                logger,
                code=ErrorCode.BROWSER_CLEANUP_FAILED,
                message=str(e),
                suppressed=True,
                request_id=request_id,
                stage=Stage.CLEANED_UP.value,
            )

