"""Tests for configuration models and listing URL policy."""

from __future__ import annotations

import pytest

from scraper.config.settings import (
    ExtractionConfig,
    RateLimitConfig,
    ServiceConfig,
    TimeoutConfig,
    URLPolicyConfig,
)
from scraper.config.url_policy import validate_listing_url


def test_service_config_defaults(monkeypatch):
    for var in ("SCRAPER_JOB_MODE", "SCRAPER_MAX_CONCURRENT_SESSIONS", "PORT"):
        monkeypatch.delenv(var, raising=False)
    cfg = ServiceConfig()
    assert cfg.job_mode == "sync"
    assert cfg.max_concurrent_sessions == 1
    assert cfg.port == 8080
    assert cfg.browser.headless is True


def test_job_mode_from_env(monkeypatch):
    monkeypatch.setenv("SCRAPER_JOB_MODE", " Async ")
    assert ServiceConfig().job_mode == "async"


def test_job_mode_rejects_unknown(monkeypatch):
    monkeypatch.setenv("SCRAPER_JOB_MODE", "batch")
    with pytest.raises(ValueError):
        ServiceConfig()


def test_required_fields_from_env(monkeypatch):
    monkeypatch.setenv("SCRAPER_REQUIRED_FIELDS", "address, price")
    assert ExtractionConfig().required_fields == ["address", "price"]


def test_required_fields_reject_unknown():
    with pytest.raises(ValueError):
        ExtractionConfig(required_fields=["address", "garage"])


def test_rejects_invalid_origin():
    with pytest.raises(ValueError):
        ServiceConfig(allowed_origins=["localhost:3000"])


def test_allows_wildcard_origin():
    assert ServiceConfig(allowed_origins=["*"]).allowed_origins == ["*"]


def test_rejects_non_positive_concurrency():
    with pytest.raises(ValueError):
        ServiceConfig(max_concurrent_sessions=0)


def test_rejects_non_positive_rate_window():
    with pytest.raises(ValueError):
        RateLimitConfig(window_s=0)


def test_rejects_non_positive_navigation_timeout():
    with pytest.raises(ValueError):
        TimeoutConfig(navigation_timeout_s=0)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.realtor.ca/real-estate/123/main-street",
        "http://listings.example.com/homes/1",
        "  https://listings.example.com/homes/1  ",
    ],
)
def test_accepts_public_listing_urls(url):
    assert validate_listing_url(url, URLPolicyConfig()).allowed


@pytest.mark.parametrize(
    "url, reason",
    [
        ("file:///etc/passwd", "Scheme"),
        ("javascript:alert(1)", "Scheme"),
        ("https:///no-host", "hostname"),
        ("http://localhost:3000/", "blocked"),
        ("http://printer.local/", "blocked"),
        ("http://127.0.0.1/", "not a public address"),
        ("http://10.0.0.8/", "not a public address"),
        ("http://[fe80::1]/", "not a public address"),
    ],
)
def test_rejects_unsafe_urls(url, reason):
    result = validate_listing_url(url, URLPolicyConfig())
    assert not result.allowed
    assert reason in result.reason


def test_private_ips_allowed_when_policy_relaxed():
    policy = URLPolicyConfig(block_private_ips=False)
    assert validate_listing_url("http://10.0.0.8/", policy).allowed
