"""Browser Session Manager: one headless Chromium session per extraction.

The session renders the listing page and hands back what it saw. It makes no
extraction decisions. Every session is closed exactly once, whatever happened
before, and cleanup failures are logged rather than raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from scraper.browser.obstruction import (
    CONSENT_TEXT_SELECTORS,
    ObstructionType,
    detect_obstruction,
)
from scraper.config.settings import BrowserConfig, TimeoutConfig
from scraper.extraction.page import ListingPage
from scraper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)

# Selectors raced by wait_until_ready(), keyed by the name reported back.
READY_SELECTORS = {
    "hydration": "script#__NEXT_DATA__",
    "dom": '[class*="price"], [data-testid*="price"]',
}


class NavigationError(Exception):
    """Raised when the listing page cannot be loaded after the relaxed retry."""


class SessionNotStartedError(RuntimeError):
    """Raised when a page operation is attempted before ``start()``."""


class BrowserSession:
    """Playwright-backed Chromium session.

    Contract:
    - ``start()`` launches the browser and opens one isolated page
    - ``navigate()`` retries once with a relaxed wait condition
    - ``wait_until_ready()`` and ``dismiss_consent()`` never raise
    - ``close()`` is idempotent and never raises
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        timeouts: TimeoutConfig | None = None,
    ) -> None:
        self._config = config or BrowserConfig()
        self._timeouts = timeouts or TimeoutConfig()
        self._playwright: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._closed = False

    @property
    def page(self) -> Page | None:
        return self._page

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_page(self) -> Page:
        if self._page is None:
            raise SessionNotStartedError("Browser session not started")
        return self._page

    async def start(self) -> None:
        """Launch Chromium and create an isolated context and page."""
        self._playwright = await async_playwright().start()
        launch_kwargs: dict[str, Any] = {
            "headless": self._config.headless,
            "args": self._config.launch_args,
        }
        if self._config.executable_path:
            launch_kwargs["executable_path"] = self._config.executable_path
        self._browser = await self._playwright.chromium.launch(**launch_kwargs)
        self._context = await self._browser.new_context(
            viewport={
                "width": self._config.viewport_width,
                "height": self._config.viewport_height,
            },
            user_agent=self._config.user_agent,
            locale=self._config.locale,
            extra_http_headers={
                "Accept-Language": self._config.accept_language,
                **self._config.extra_headers,
            },
        )
        self._page = await self._context.new_page()
        self._page.set_default_timeout(self._timeouts.navigation_timeout_s * 1000)
        logger.debug("browser session started (headless=%s)", self._config.headless)

    async def navigate(self, url: str) -> None:
        """Load ``url``, waiting for network idle, then once more for DOM ready."""
        page = self._require_page()
        timeout_ms = self._timeouts.navigation_timeout_s * 1000
        try:
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            return
        except Exception as first_error:
            logger.warning(
                "navigation to %s did not reach network idle (%s); retrying", url, first_error
            )

        await asyncio.sleep(self._timeouts.retry_delay_ms / 1000)
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except Exception as e:
            raise NavigationError(str(e)) from e

    async def _wait_for(self, selector: str, timeout_ms: int) -> None:
        page = self._require_page()
        await page.wait_for_selector(selector, state="attached", timeout=timeout_ms)

    async def wait_until_ready(self) -> str | None:
        """Race the hydration payload against a price-bearing element.

        Returns the name of whichever appeared first, or ``None`` when neither
        did within ``ready_timeout_s``.
        """
        if self._page is None:
            return None
        timeout_s = self._timeouts.ready_timeout_s
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        pending = {
            asyncio.create_task(self._wait_for(selector, timeout_s * 1000), name=name)
            for name, selector in READY_SELECTORS.items()
        }
        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return None
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if not task.cancelled() and task.exception() is None:
                        return task.get_name()
            return None
        finally:
            for task in pending:
                task.cancel()

    async def dismiss_consent(self) -> bool:
        """Click a consent banner button if one is present. Returns True on click."""
        if self._page is None:
            return False
        try:
            html = await self._page.content()
            result = detect_obstruction(html)
            if result.obstruction_type == ObstructionType.HARD_BLOCK:
                logger.warning("page looks blocked by %s", result.vendor)
                return False
            candidates = list(CONSENT_TEXT_SELECTORS)
            if result.obstruction_type == ObstructionType.CONSENT_GATE and result.selector:
                candidates.insert(0, result.selector)
            for selector in candidates:
                button = await self._page.query_selector(selector)
                if button is None:
                    continue
                await button.click(timeout=2000)
                logger.info("dismissed consent banner via %s", selector)
                return True
        except Exception as e:
            emit_structured_error(
                logger,
                code=ErrorCode.CONSENT_DISMISS_FAILED,
                message=str(e),
                suppressed=True,
                stage="navigated",
                url=self._page.url,
            )
        return False

    async def capture(self) -> ListingPage:
        """Snapshot the rendered page for the extraction cascade."""
        page = self._require_page()
        html = await page.content()
        title = await page.title()
        try:
            body_text = await page.inner_text("body", timeout=5000)
        except Exception:
            body_text = ""
        return ListingPage(html=html, url=page.url, title=title, body_text=body_text)

    async def close(self) -> None:
        """Release page, context, browser and driver. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        for name, resource, method in (
            ("page", self._page, "close"),
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                emit_structured_error(
                    logger,
                    code=ErrorCode.BROWSER_CLEANUP_FAILED,
                    message=str(e),
                    suppressed=True,
                    stage="cleaned_up",
                    details={"resource": name},
                )
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
