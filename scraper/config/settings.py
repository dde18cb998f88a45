"""Realtor scraper configuration settings."""

from __future__ import annotations

import os
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)

# Flags that let Chromium run headless inside a small container.
DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-ipc-flooding-protection",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-sync",
    "--hide-scrollbars",
    "--mute-audio",
    "--no-first-run",
]

REQUIRED_FIELDS = ["address", "price", "bedrooms", "bathrooms", "description"]


def _csv_env(var_name: str) -> list[str]:
    raw = os.getenv(var_name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


def _bool_env(var_name: str, default: bool) -> bool:
    raw = os.getenv(var_name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


class BrowserConfig(BaseModel):
    """Headless browser configuration."""

    headless: bool = Field(default_factory=lambda: _bool_env("SCRAPER_HEADLESS", True))
    executable_path: str | None = Field(
        default_factory=lambda: os.getenv("PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH")
        or os.getenv("PUPPETEER_EXECUTABLE_PATH")
        or None
    )
    viewport_width: int = 1366
    viewport_height: int = 900
    user_agent: str = Field(
        default_factory=lambda: os.getenv("SCRAPER_USER_AGENT", DEFAULT_USER_AGENT)
    )
    locale: str = "en-CA"
    accept_language: str = "en-CA,en;q=0.9"
    extra_headers: dict[str, str] = Field(
        default_factory=lambda: {
            "sec-ch-ua-platform": '"Windows"',
            "upgrade-insecure-requests": "1",
            "cache-control": "no-cache",
        }
    )
    launch_args: list[str] = Field(default_factory=lambda: list(DEFAULT_LAUNCH_ARGS))


class TimeoutConfig(BaseModel):
    """Timeout budgets for a single extraction."""

    navigation_timeout_s: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_NAVIGATION_TIMEOUT_S", "60"))
    )
    retry_delay_ms: int = 800
    ready_timeout_s: int = 10
    capture_timeout_s: int = 30

    @field_validator("navigation_timeout_s")
    @classmethod
    def _validate_navigation_timeout(cls, value: int) -> int:
        if value < 1:
            raise ValueError("SCRAPER_NAVIGATION_TIMEOUT_S must be >= 1")
        return value


class ExtractionConfig(BaseModel):
    """Extraction cascade policy."""

    required_fields: list[str] = Field(
        default_factory=lambda: _csv_env("SCRAPER_REQUIRED_FIELDS") or list(REQUIRED_FIELDS)
    )
    max_images: int = 12

    @field_validator("required_fields")
    @classmethod
    def _validate_required_fields(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in REQUIRED_FIELDS]
        if unknown:
            raise ValueError(f"Unknown required fields: {', '.join(unknown)}")
        return value


class URLPolicyConfig(BaseModel):
    """Which listing URLs the service agrees to open."""

    allowed_schemes: list[str] = Field(default_factory=lambda: ["http", "https"])
    block_local_hostnames: bool = True
    block_private_ips: bool = Field(
        default_factory=lambda: _bool_env("SCRAPER_BLOCK_PRIVATE_IPS", True)
    )


class RateLimitConfig(BaseModel):
    """Per-caller sliding window limits."""

    enabled: bool = Field(default_factory=lambda: _bool_env("SCRAPER_RATE_LIMIT", True))
    max_requests: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_RATE_LIMIT_MAX", "20"))
    )
    window_s: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_RATE_LIMIT_WINDOW_S", "60"))
    )

    @field_validator("max_requests", "window_s")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("rate limit values must be >= 1")
        return value


class JobConfig(BaseModel):
    """Asynchronous job retention."""

    max_completed_jobs: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_MAX_COMPLETED_JOBS", "200"))
    )
    ttl_seconds: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_JOB_TTL_SECONDS", "3600"))
    )
    retry_after_s: int = 30


class ServiceConfig(BaseModel):
    """Root configuration for the extraction service."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    url_policy: URLPolicyConfig = Field(default_factory=URLPolicyConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    jobs: JobConfig = Field(default_factory=JobConfig)
    job_mode: Literal["sync", "async"] = Field(
        default_factory=lambda: os.getenv("SCRAPER_JOB_MODE", "sync").strip().lower(),
        validate_default=True,
    )
    max_concurrent_sessions: int = Field(
        default_factory=lambda: int(os.getenv("SCRAPER_MAX_CONCURRENT_SESSIONS", "1"))
    )
    allowed_origins: list[str] = Field(
        default_factory=lambda: _csv_env("SCRAPER_ALLOWED_ORIGINS")
    )
    log_level: str = Field(default_factory=lambda: os.getenv("SCRAPER_LOG_LEVEL", "INFO"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8080")))

    @field_validator("allowed_origins")
    @classmethod
    def _validate_allowed_origins(cls, value: list[str]) -> list[str]:
        for origin in value:
            if origin == "*":
                continue
            parsed = urlparse(origin)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValueError(f"Invalid CORS origin: {origin}")
        return value

    @field_validator("max_concurrent_sessions")
    @classmethod
    def _validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("SCRAPER_MAX_CONCURRENT_SESSIONS must be >= 1")
        return value

    @field_validator("port")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"Invalid PORT number: {value}")
        return value
