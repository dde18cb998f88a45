"""Shared fixtures: listing pages and fake browser sessions.

No test launches a real browser; the service is driven through
``FakeSessionFactory``, which records every session it hands out.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from scraper.config.settings import RateLimitConfig, ServiceConfig
from scraper.extraction.page import ListingPage

LISTING_URL = "https://listings.example.com/homes/123-main-street"

LD_JSON_LISTING = {
    "@context": "https://schema.org",
    "@type": "SingleFamilyResidence",
    "name": "Bright family home",
    "description": "Renovated three bedroom home close to the lake.",
    "address": {
        "@type": "PostalAddress",
        "streetAddress": "123 Main Street",
        "addressLocality": "Kingsville",
        "addressRegion": "on",
        "postalCode": "n9y2k4",
    },
    "numberOfBedrooms": 3,
    "numberOfBathroomsTotal": "2.5",
    "floorSize": {"@type": "QuantitativeValue", "value": "1,850", "unitCode": "FTK"},
    "image": ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"],
    "offers": {"@type": "Offer", "price": "649,900", "priceCurrency": "CAD"},
}


def listing_html(ld_json: dict | None = None, body: str = "", head: str = "") -> str:
    script = ""
    if ld_json is not None:
        script = f'<script type="application/ld+json">{json.dumps(ld_json)}</script>'
    return (
        "<html><head><title>Listing Details</title>"
        f"{head}{script}</head><body>{body}</body></html>"
    )


class FakeSession:
    """Stands in for ``BrowserSession``; fails at the stage named by ``fail_on``."""

    def __init__(self, page: ListingPage, fail_on: str | None = None, delay: float = 0.0):
        self._page = page
        self._fail_on = fail_on
        self._delay = delay
        self.started = False
        self.close_count = 0
        self.navigated_to: list[str] = []

    async def start(self) -> None:
        if self._fail_on == "start":
            raise RuntimeError("Failed to launch the browser process")
        self.started = True

    async def navigate(self, url: str) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail_on == "navigate":
            raise TimeoutError("Timeout 60000ms exceeded")
        self.navigated_to.append(url)

    async def dismiss_consent(self) -> bool:
        return False

    async def wait_until_ready(self) -> str | None:
        return "dom"

    async def capture(self) -> ListingPage:
        if self._fail_on == "capture":
            raise RuntimeError("Execution context was destroyed")
        return self._page

    async def close(self) -> None:
        self.close_count += 1


class FakeSessionFactory:
    def __init__(
        self,
        html: str | None = None,
        url: str = LISTING_URL,
        fail_on: str | None = None,
        delay: float = 0.0,
    ) -> None:
        self.html = html if html is not None else listing_html(LD_JSON_LISTING)
        self.url = url
        self.fail_on = fail_on
        self.delay = delay
        self.sessions: list[FakeSession] = []

    def __call__(self, config: ServiceConfig) -> FakeSession:
        session = FakeSession(
            ListingPage(html=self.html, url=self.url), fail_on=self.fail_on, delay=self.delay
        )
        self.sessions.append(session)
        return session

    @property
    def launches(self) -> int:
        return sum(1 for s in self.sessions if s.started)


class FakeButton:
    def __init__(self):
        self.clicks = 0

    async def click(self, timeout=None):
        self.clicks += 1


class FakePage:
    """The slice of ``playwright.async_api.Page`` that ``BrowserSession`` uses."""

    def __init__(self, html="<html></html>", failing_waits=(), present=(), buttons=None):
        self.html = html
        self.url = "about:blank"
        self.failing_waits = set(failing_waits)
        self.present = set(present)
        self.buttons = buttons or {}
        self.goto_calls: list[str] = []
        self.close_count = 0

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append(wait_until)
        if wait_until in self.failing_waits:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded.")
        self.url = url

    async def wait_for_selector(self, selector, state=None, timeout=None):
        if selector in self.present:
            return object()
        raise PlaywrightTimeoutError(f"waiting for {selector} failed")

    async def content(self):
        return self.html

    async def title(self):
        return "Listing title"

    async def inner_text(self, selector, timeout=None):
        return "visible body text"

    async def query_selector(self, selector):
        return self.buttons.get(selector)

    async def close(self):
        self.close_count += 1


@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(
        job_mode="sync",
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()
