"""Service layer for asynchronous import jobs."""

from __future__ import annotations

import asyncio
import logging

from scraper.config.settings import JobConfig
from scraper.extraction.record import ErrorSource, ExtractionRequest, ExtractionResponse
from scraper.jobs.repository import ImportJob, JobRepository, JobStatus
from scraper.service.extractor import ExtractionService
from scraper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

# Failures worth retrying later: the page or the browser was unavailable.
RETRYABLE_SOURCES = {ErrorSource.LAUNCH.value, ErrorSource.NAVIGATION.value}
FAILED_SOURCES = {source.value for source in ErrorSource}


class JobService:
    def __init__(
        self,
        extractor: ExtractionService,
        repository: JobRepository | None = None,
        config: JobConfig | None = None,
    ) -> None:
        self._extractor = extractor
        self._config = config or JobConfig()
        self._repository = repository or JobRepository(
            max_completed_jobs=self._config.max_completed_jobs,
            ttl_seconds=self._config.ttl_seconds,
        )

    @property
    def repository(self) -> JobRepository:
        return self._repository

    def submit(self, request: ExtractionRequest) -> ImportJob:
        """Queue an extraction and return its job record immediately."""
        job = self._repository.create(url=request.url, user_id=request.user_id)
        task = asyncio.create_task(self._run(job.job_id, request))
        self._repository.set_task(job.job_id, task)
        logger.info("job %s queued for %s", job.job_id, request.url)
        return job

    def get(self, job_id: str) -> ImportJob | None:
        return self._repository.get(job_id)

    async def _run(self, job_id: str, request: ExtractionRequest) -> None:
        self._repository.update(job_id, status=JobStatus.WORKING)
        try:
            response = await self._extractor.extract(request)
        except Exception as e:
            emit_structured_error(
                logger,
                code=ErrorCode.JOB_FAILED,
                message=str(e),
                suppressed=False,
                request_id=request.request_id,
                url=request.url,
                details={"job_id": job_id},
            )
            self._repository.update(job_id, status=JobStatus.ERROR, error=str(e) or repr(e))
            return
        self._repository.update(job_id, **self.outcome(response))

    def outcome(self, response: ExtractionResponse) -> dict:
        """Job fields for a finished extraction. Partial records still count as success."""
        payload = response.to_payload()
        if response.source not in FAILED_SOURCES:
            return {"status": JobStatus.SUCCESS, "result": payload}
        retry_after = (
            self._config.retry_after_s if response.source in RETRYABLE_SOURCES else None
        )
        return {
            "status": JobStatus.ERROR,
            "result": payload,
            "error": response.error or response.source,
            "retry_after_seconds": retry_after,
        }
