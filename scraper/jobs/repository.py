"""In-memory job repository with retention for finished import jobs."""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    WORKING = "working"
    SUCCESS = "success"
    ERROR = "error"


TERMINAL_STATUSES = {JobStatus.SUCCESS, JobStatus.ERROR}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ImportJob(BaseModel):
    """Status record for one asynchronous listing import."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}", alias="jobId")
    status: JobStatus = JobStatus.QUEUED
    url: str | None = None
    user_id: str | None = Field(default=None, alias="userId")
    result: dict[str, Any] | None = None
    error: str | None = None
    retry_after_seconds: int | None = Field(default=None, alias="retryAfterSeconds")
    created_at: datetime = Field(default_factory=_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_now, alias="updatedAt")

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class JobRepository:
    """Keeps every live job plus a bounded window of finished ones."""

    def __init__(
        self,
        max_completed_jobs: int | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._max_completed_jobs = max_completed_jobs
        self._ttl_seconds = ttl_seconds
        self._jobs: dict[str, ImportJob] = {}
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def create(self, url: str | None, user_id: str | None = None) -> ImportJob:
        self._evict_completed()
        job = ImportJob(url=url, user_id=user_id)
        self._jobs[job.job_id] = job
        return job

    def get(self, job_id: str) -> ImportJob | None:
        self._evict_completed()
        return self._jobs.get(job_id)

    def set_task(self, job_id: str, task: asyncio.Task[Any]) -> None:
        self._tasks[job_id] = task

    def update(self, job_id: str, **changes: Any) -> ImportJob | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        updated = job.model_copy(update={**changes, "updated_at": _now()})
        self._jobs[job_id] = updated
        if updated.finished:
            self._tasks.pop(job_id, None)
        return updated

    async def shutdown(self) -> None:
        """Cancel jobs still in flight."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _evict_completed(self) -> None:
        finished = [job for job in self._jobs.values() if job.finished]
        if not finished:
            return

        now = time.time()
        if self._ttl_seconds is not None and self._ttl_seconds >= 0:
            for job in finished:
                if now - job.updated_at.timestamp() > self._ttl_seconds:
                    self._jobs.pop(job.job_id, None)

        if self._max_completed_jobs is not None and self._max_completed_jobs >= 0:
            # Oldest first; ties keep insertion order.
            remaining = sorted(
                (job for job in self._jobs.values() if job.finished),
                key=lambda job: job.updated_at,
            )
            excess = len(remaining) - self._max_completed_jobs
            for job in remaining[: max(excess, 0)]:
                self._jobs.pop(job.job_id, None)
