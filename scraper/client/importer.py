"""Client-side orchestrator for the listing import service.

Wraps the HTTP surface with the behaviour callers need:

- one import per owner and listing URL at a time (single-flight on
  ``userId`` plus the normalised URL)
- 429 handling that waits ``retryAfterSeconds`` with a per-second countdown
  and retries a bounded number of times
- job polling every ``poll_interval_s`` until a terminal status or timeout,
  reporting each status to ``on_status``
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable

import httpx

from scraper.client.singleflight import SingleFlight

logger = logging.getLogger(__name__)

TERMINAL_JOB_STATUSES = {"success", "error"}


def normalize_listing_key(url: str, user_id: str | None = None) -> str:
    """Single-flight key: the owner plus the normalised URL.

    Imports are only shared within one owner, since the record is saved under
    the ``userId`` it was requested with.
    """
    return f"{user_id or ''}:{url.strip().lower()}"


class ImportClientError(Exception):
    """Base error for the import client."""


class RateLimitedError(ImportClientError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Rate limited; retry after {retry_after}s")
        self.retry_after = retry_after


class JobFailedError(ImportClientError):
    def __init__(self, job: dict[str, Any]) -> None:
        super().__init__(job.get("error") or "Import job failed")
        self.job = job
        self.retry_after: int | None = job.get("retryAfterSeconds")


class JobTimeoutError(ImportClientError):
    def __init__(self, job_id: str, waited_s: float) -> None:
        super().__init__(f"Job {job_id} did not finish within {waited_s:g}s")
        self.job_id = job_id


def _retry_after(response: httpx.Response) -> int:
    try:
        body = response.json()
    except ValueError:
        body = {}
    value = body.get("retryAfterSeconds") if isinstance(body, dict) else None
    if value is None:
        value = response.headers.get("Retry-After")
    try:
        return max(1, math.ceil(float(value)))
    except (TypeError, ValueError):
        return 1


class ListingImportClient:
    """Async client for ``POST /import`` and ``GET /?id=``."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 150.0,
        max_rate_limit_retries: int = 3,
        poll_interval_s: float = 2.0,
        poll_timeout_s: float = 120.0,
        on_rate_limit: Callable[[int], None] | None = None,
        on_status: Callable[[dict[str, Any]], None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._max_rate_limit_retries = max_rate_limit_retries
        self._poll_interval_s = poll_interval_s
        self._poll_timeout_s = poll_timeout_s
        self._on_rate_limit = on_rate_limit
        self._on_status = on_status
        self._sleep = sleep
        self._flight: SingleFlight[dict[str, Any]] = SingleFlight()

    async def __aenter__(self) -> ListingImportClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def in_flight(self, url: str, user_id: str | None = None) -> bool:
        return self._flight.in_flight(normalize_listing_key(url, user_id))

    # --- Public API ---

    async def import_listing(self, url: str, user_id: str | None = None) -> dict[str, Any]:
        """Import a listing through the synchronous endpoint."""
        return await self._flight.do(
            normalize_listing_key(url, user_id), lambda: self._import_sync(url, user_id)
        )

    async def import_via_job(self, url: str, user_id: str | None = None) -> dict[str, Any]:
        """Import a listing through an asynchronous job and wait for its result."""
        return await self._flight.do(
            normalize_listing_key(url, user_id), lambda: self._import_job(url, user_id)
        )

    async def create_job(self, url: str, user_id: str | None = None) -> str:
        response = await self._post_import(url, user_id)
        if response.status_code != 202:
            raise ImportClientError(
                f"Expected 202 with a job id, got {response.status_code}"
            )
        return response.json()["jobId"]

    async def get_job(self, job_id: str) -> dict[str, Any]:
        response = await self._client.get("/", params={"id": job_id})
        response.raise_for_status()
        return response.json()

    async def poll_job(self, job_id: str) -> dict[str, Any]:
        """Poll until the job reaches ``success`` or ``error``.

        Every polled job, terminal or not, is passed to ``on_status``.
        """
        max_polls = max(1, math.ceil(self._poll_timeout_s / self._poll_interval_s))
        for attempt in range(max_polls):
            job = await self.get_job(job_id)
            if self._on_status is not None:
                self._on_status(job)
            if job.get("status") in TERMINAL_JOB_STATUSES:
                return job
            logger.debug("job %s is %s (poll %d)", job_id, job.get("status"), attempt + 1)
            await self._sleep(self._poll_interval_s)
        raise JobTimeoutError(job_id, self._poll_timeout_s)

    # --- Internals ---

    async def _import_sync(self, url: str, user_id: str | None) -> dict[str, Any]:
        response = await self._post_import(url, user_id)
        if response.status_code == 202:
            return await self._await_job(response.json()["jobId"])
        return response.json()

    async def _import_job(self, url: str, user_id: str | None) -> dict[str, Any]:
        response = await self._post_import(url, user_id)
        if response.status_code == 200:
            # Server runs in sync mode and answered with the record directly.
            return response.json()
        if response.status_code != 202:
            raise ImportClientError(
                f"Expected 202 with a job id, got {response.status_code}"
            )
        return await self._await_job(response.json()["jobId"])

    async def _await_job(self, job_id: str) -> dict[str, Any]:
        job = await self.poll_job(job_id)
        if job.get("status") == "error":
            raise JobFailedError(job)
        return job.get("result") or {}

    async def _post_import(self, url: str, user_id: str | None) -> httpx.Response:
        payload: dict[str, Any] = {"text": url}
        if user_id:
            payload["userId"] = user_id

        retries = 0
        while True:
            response = await self._client.post("/import", json=payload)
            if response.status_code != 429:
                response.raise_for_status()
                return response
            retry_after = _retry_after(response)
            if retries >= self._max_rate_limit_retries:
                raise RateLimitedError(retry_after)
            retries += 1
            logger.info(
                "rate limited importing %s; retry %d in %ss", url, retries, retry_after
            )
            await self._countdown(retry_after)

    async def _countdown(self, seconds: int) -> None:
        for remaining in range(seconds, 0, -1):
            if self._on_rate_limit is not None:
                self._on_rate_limit(remaining)
            await self._sleep(1)
