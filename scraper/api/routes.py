"""HTTP routes for the listing import service.

- ``GET /``            health check, or job status with ``?id=<jobId>``
- ``POST /``, ``/import``, ``/importPropertyFromText``
                       extract the listing named by ``text``; 200 with the
                       record in sync mode, 202 with a job id in async mode
"""

from __future__ import annotations

import logging
import re
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from scraper.api.rate_limit import SlidingWindowRateLimiter
from scraper.extraction.record import ExtractionRequest
from scraper.jobs.service import JobService
from scraper.service.extractor import ExtractionService

logger = logging.getLogger(__name__)

router = APIRouter()

_URL_IN_TEXT = re.compile(r"https?://\S+", re.IGNORECASE)


class ImportRequest(BaseModel):
    """Request body shared by the import endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    text: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    request_id: str | None = Field(default=None, alias="requestId")


def listing_url_from_text(text: str | None) -> str | None:
    """The first http(s) URL in ``text``, or the trimmed text when there is none."""
    if not text or not text.strip():
        return None
    match = _URL_IN_TEXT.search(text)
    if match:
        return match.group(0).rstrip(".,;)\"'>")
    return text.strip()


def _caller_key(body: ImportRequest, request: Request) -> str:
    if body.user_id:
        return f"user:{body.user_id}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def rate_limited_response(retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "rate_limited", "retryAfterSeconds": retry_after},
        headers={"Retry-After": str(retry_after)},
    )


# --- Endpoints ---


@router.get("/")
async def health_or_job_status(
    request: Request, job_id: str | None = Query(default=None, alias="id")
) -> dict[str, Any]:
    """Health check; with ``?id=`` the status of an import job."""
    if job_id is None:
        return {"ok": True}
    jobs: JobService = request.app.state.jobs
    job = jobs.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job.to_payload()


@router.post("/")
@router.post("/import")
@router.post("/importPropertyFromText")
async def import_listing(body: ImportRequest, request: Request) -> JSONResponse:
    """Extract one listing.

    Scraping failures never change the status code: they come back as a 200
    record whose ``source`` names the failing stage. Only the rate limiter
    answers with a non-2xx status.
    """
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter
    caller = _caller_key(body, request)
    retry_after = limiter.check(caller)
    if retry_after:
        logger.info("rate limited %s for %ss", caller, retry_after)
        return rate_limited_response(retry_after)

    fields: dict[str, Any] = {"url": listing_url_from_text(body.text), "user_id": body.user_id}
    if body.request_id:
        fields["request_id"] = body.request_id
    extraction_request = ExtractionRequest(**fields)

    extractor: ExtractionService = request.app.state.extractor
    if extractor.config.job_mode == "async":
        jobs: JobService = request.app.state.jobs
        job = jobs.submit(extraction_request)
        return JSONResponse(status_code=202, content={"jobId": job.job_id})

    response = await extractor.extract(extraction_request)
    return JSONResponse(status_code=200, content=response.to_payload())
