"""Tests for the import client: single-flight, 429 countdown and job polling."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from conftest import LISTING_URL, FakeSessionFactory

from scraper.api.app import create_app
from scraper.client.importer import (
    ImportClientError,
    JobFailedError,
    JobTimeoutError,
    ListingImportClient,
    RateLimitedError,
    normalize_listing_key,
)
from scraper.client.singleflight import SingleFlight
from scraper.service.extractor import ExtractionService

RECORD = {"source": "ld+json", "price": 649900, "success": True}


class FakeSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _mock_client(handler, **kwargs) -> ListingImportClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return ListingImportClient("http://test", client=http, **kwargs)


def _asgi_client(app, **kwargs) -> ListingImportClient:
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return ListingImportClient("http://test", client=http, **kwargs)


class TestSingleFlightAgainstService:
    @pytest.mark.asyncio
    async def test_concurrent_equivalent_urls_share_one_launch(self, service_config):
        factory = FakeSessionFactory(delay=0.05)
        app = create_app(service_config, ExtractionService(service_config, session_factory=factory))
        client = _asgi_client(app)

        first, second = await asyncio.gather(
            client.import_listing(LISTING_URL),
            client.import_listing(f"  {LISTING_URL.upper()}  "),
        )

        assert factory.launches == 1
        assert first == second
        assert first["price"] == 649900
        assert not client.in_flight(LISTING_URL)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_different_owners_are_not_shared(self, service_config):
        factory = FakeSessionFactory(delay=0.05)
        app = create_app(service_config, ExtractionService(service_config, session_factory=factory))
        client = _asgi_client(app)

        alice, bob = await asyncio.gather(
            client.import_listing(LISTING_URL, user_id="alice"),
            client.import_listing(LISTING_URL, user_id="bob"),
        )

        assert factory.launches == 2
        assert alice["userId"] == "alice"
        assert bob["userId"] == "bob"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_sequential_calls_run_again(self, service_config):
        factory = FakeSessionFactory()
        app = create_app(service_config, ExtractionService(service_config, session_factory=factory))
        client = _asgi_client(app)
        await client.import_listing(LISTING_URL)
        await client.import_listing(LISTING_URL)
        assert factory.launches == 2
        await client.aclose()

    @pytest.mark.asyncio
    async def test_job_mode_end_to_end(self, service_config):
        config = service_config.model_copy(update={"job_mode": "async"})
        factory = FakeSessionFactory()
        app = create_app(config, ExtractionService(config, session_factory=factory))
        client = _asgi_client(app, poll_interval_s=0.01, poll_timeout_s=2)

        result = await client.import_via_job(LISTING_URL, user_id="u1")

        assert result["source"] == "ld+json"
        assert result["userId"] == "u1"
        assert factory.launches == 1
        await client.aclose()


class TestRateLimitRetry:
    @pytest.mark.asyncio
    async def test_waits_with_countdown_then_retries(self):
        posts = []

        def handler(request: httpx.Request) -> httpx.Response:
            posts.append(request)
            if len(posts) == 1:
                return httpx.Response(
                    429, json={"error": "rate_limited", "retryAfterSeconds": 3}
                )
            return httpx.Response(200, json=RECORD)

        sleep = FakeSleep()
        ticks: list[int] = []
        client = _mock_client(handler, sleep=sleep, on_rate_limit=ticks.append)

        assert await client.import_listing(LISTING_URL, user_id="u1") == RECORD
        assert len(posts) == 2
        assert ticks == [3, 2, 1]
        assert sleep.calls == [1, 1, 1]
        assert b'"userId":"u1"' in posts[0].content.replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_header_is_used_when_body_has_no_hint(self):
        calls = 0

        def handler(request):
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(429, headers={"Retry-After": "2"}, text="slow down")
            return httpx.Response(200, json=RECORD)

        sleep = FakeSleep()
        await _mock_client(handler, sleep=sleep).import_listing(LISTING_URL)
        assert sleep.calls == [1, 1]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        def handler(request):
            return httpx.Response(429, json={"retryAfterSeconds": 2})

        sleep = FakeSleep()
        client = _mock_client(handler, sleep=sleep, max_rate_limit_retries=2)
        with pytest.raises(RateLimitedError) as excinfo:
            await client.import_listing(LISTING_URL)
        assert excinfo.value.retry_after == 2
        assert len(sleep.calls) == 4

    @pytest.mark.asyncio
    async def test_server_errors_raise(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(httpx.HTTPStatusError):
            await _mock_client(handler).import_listing(LISTING_URL)


class TestJobPolling:
    @staticmethod
    def _job_handler(statuses, final):
        polls = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(202, json={"jobId": "job_abc"})
            assert request.url.params["id"] == "job_abc"
            polls.append(request)
            if len(polls) <= len(statuses):
                return httpx.Response(200, json={"jobId": "job_abc", "status": statuses[len(polls) - 1]})
            return httpx.Response(200, json={"jobId": "job_abc", **final})

        return handler, polls

    @pytest.mark.asyncio
    async def test_polls_until_success(self):
        handler, polls = self._job_handler(
            ["queued", "working"], {"status": "success", "result": RECORD}
        )
        sleep = FakeSleep()
        client = _mock_client(handler, sleep=sleep, poll_interval_s=2.0)

        assert await client.import_via_job(LISTING_URL) == RECORD
        assert len(polls) == 3
        assert sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_every_status_is_reported(self):
        handler, _ = self._job_handler(
            ["queued", "working"], {"status": "success", "result": RECORD}
        )
        seen: list[str] = []
        client = _mock_client(
            handler, sleep=FakeSleep(), on_status=lambda job: seen.append(job["status"])
        )
        await client.import_via_job(LISTING_URL)
        assert seen == ["queued", "working", "success"]

    @pytest.mark.asyncio
    async def test_error_job_raises_with_retry_hint(self):
        handler, _ = self._job_handler(
            [], {"status": "error", "error": "Navigation failed", "retryAfterSeconds": 30}
        )
        with pytest.raises(JobFailedError) as excinfo:
            await _mock_client(handler, sleep=FakeSleep()).import_via_job(LISTING_URL)
        assert excinfo.value.retry_after == 30
        assert "Navigation failed" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_times_out(self):
        handler, polls = self._job_handler(["working"] * 50, {"status": "success"})
        client = _mock_client(
            handler, sleep=FakeSleep(), poll_interval_s=2.0, poll_timeout_s=6.0
        )
        with pytest.raises(JobTimeoutError):
            await client.import_via_job(LISTING_URL)
        assert len(polls) == 3

    @pytest.mark.asyncio
    async def test_sync_endpoint_follows_job(self):
        handler, _ = self._job_handler([], {"status": "success", "result": RECORD})
        assert await _mock_client(handler, sleep=FakeSleep()).import_listing(LISTING_URL) == RECORD

    @pytest.mark.asyncio
    async def test_create_job_requires_202(self):
        def handler(request):
            return httpx.Response(200, json=RECORD)

        with pytest.raises(ImportClientError):
            await _mock_client(handler).create_job(LISTING_URL)


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_shares_exception(self):
        flight: SingleFlight[int] = SingleFlight()
        runs = 0

        async def fail():
            nonlocal runs
            runs += 1
            await asyncio.sleep(0.01)
            raise ValueError("boom")

        results = await asyncio.gather(
            flight.do("k", fail), flight.do("k", fail), return_exceptions=True
        )
        assert runs == 1
        assert all(isinstance(r, ValueError) for r in results)
        assert not flight.in_flight("k")

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_others(self):
        flight: SingleFlight[str] = SingleFlight()

        async def slow():
            await asyncio.sleep(0.05)
            return "done"

        first = asyncio.create_task(flight.do("k", slow))
        second = asyncio.create_task(flight.do("k", slow))
        await asyncio.sleep(0)
        first.cancel()

        assert await second == "done"
        with pytest.raises(asyncio.CancelledError):
            await first

    @pytest.mark.asyncio
    async def test_distinct_keys_run_separately(self):
        flight: SingleFlight[str] = SingleFlight()
        runs = []

        async def work(key):
            runs.append(key)
            return key

        assert await asyncio.gather(
            flight.do("a", lambda: work("a")), flight.do("b", lambda: work("b"))
        ) == ["a", "b"]
        assert sorted(runs) == ["a", "b"]

    def test_key_normalisation(self):
        assert normalize_listing_key("  HTTPS://Example.com/A ") == ":https://example.com/a"
        assert normalize_listing_key("https://example.com/a", "u1") == "u1:https://example.com/a"
