"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from urllib.parse import urlsplit


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    BROWSER_LAUNCH_FAILED = "BROWSER_LAUNCH_FAILED"
    BROWSER_CLEANUP_FAILED = "BROWSER_CLEANUP_FAILED"
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    CONSENT_DISMISS_FAILED = "CONSENT_DISMISS_FAILED"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    STRATEGY_FAILED = "STRATEGY_FAILED"
    UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"
    JOB_FAILED = "JOB_FAILED"


# Failures that a retry of the same listing may clear.
TRANSIENT_CODES = frozenset(
    {ErrorCode.NAVIGATION_FAILED, ErrorCode.CONSENT_DISMISS_FAILED, ErrorCode.STRATEGY_FAILED}
)


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    request_id: str | None = None,
    stage: str | None = None,
    url: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging.

    ``url`` is the listing being scraped, when there is one. Its host is also
    logged as ``listing_host`` so events can be grouped per portal.
    """
    logger.error(
        "scraper_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "transient": code in TRANSIENT_CODES,
            "request_id": request_id,
            "stage": stage,
            "listing_url": url,
            "listing_host": listing_host(url),
            "details": details or {},
        },
    )


def listing_host(url: str | None) -> str | None:
    """Lowercase host of a listing URL without ``www.``, or None."""
    if not url:
        return None
    host = (urlsplit(url.strip()).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None
