"""Tests for collectors.signins -- chunked, retried sign-in aggregation."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from m365_license_lifecycle.collectors import (
    SignInAggregationError,
    SignInAggregator,
    SignInCollector,
    build_chunks,
)
from m365_license_lifecycle.collectors.signins import lookback_days
from m365_license_lifecycle.config import RetryPolicy
from m365_license_lifecycle.graph.client import GraphClient
from m365_license_lifecycle.lifecycle import SignInLookup

NEXT_PAGE = "https://graph.microsoft.com/v1.0/auditLogs/signIns?page=2"


def _event(upn, when):
    return {"userPrincipalName": upn, "createdDateTime": when}


def _filter(request):
    return request.url.params.get("$filter", "")


def _aggregate(handler, now, **kwargs):
    async def _main():
        transport = httpx.MockTransport(handler)
        async with GraphClient("t", transport=transport, initial_backoff=0) as client:
            aggregator = SignInAggregator(client, now=now, **kwargs)
            try:
                await aggregator.aggregate()
            except SignInAggregationError as e:
                return aggregator, e
            return aggregator, None
    return asyncio.run(_main())


class TestLookbackWindow:
    @pytest.mark.parametrize("threshold, expected", [
        (1, 30), (30, 30), (90, 90), (365, 365), (400, 365), (3650, 365),
    ])
    def test_clamped(self, threshold, expected):
        assert lookback_days(threshold) == expected


class TestBuildChunks:
    def test_ninety_days_is_three_chunks(self, now):
        chunks = build_chunks(now, 90, 30)
        assert len(chunks) == 3
        assert chunks[0] == (now - timedelta(days=30), now)
        assert chunks[-1][0] == now - timedelta(days=90)

    def test_newest_first_without_gaps(self, now):
        chunks = build_chunks(now, 365, 30)
        assert len(chunks) == 13
        for (start, _), (_, older_end) in zip(chunks, chunks[1:]):
            assert older_end == start
        assert chunks[0][1] == now
        assert chunks[-1][0] == now - timedelta(days=365)

    def test_oldest_chunk_is_remainder(self, now):
        start, end = build_chunks(now, 365, 30)[-1]
        assert end - start == timedelta(days=5)

    def test_window_smaller_than_chunk(self, now):
        assert build_chunks(now, 20, 30) == [(now - timedelta(days=20), now)]


class TestSignInAggregator:
    def test_folds_newest_across_chunks_and_pages(self, now):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json={"value": [
                    _event("A@x.com", "2024-05-30T00:00:00Z"),
                ]})
            if "ge 2024-05-02T00:00:00Z" in _filter(request):
                return httpx.Response(200, json={
                    "value": [
                        _event("a@x.com", "2024-05-10T09:00:00.1234567Z"),
                        _event(None, "2024-05-10T09:00:00Z"),
                    ],
                    "@odata.nextLink": NEXT_PAGE,
                })
            if "ge 2024-04-02T00:00:00Z" in _filter(request):
                return httpx.Response(200, json={"value": [
                    _event("b@x.com", "2024-04-20T00:00:00Z"),
                    _event("a@x.com", "2024-04-03T00:00:00Z"),
                ]})
            return httpx.Response(200, json={"value": []})

        aggregator, error = _aggregate(handler, now, threshold_days=90)

        assert error is None
        assert aggregator.lookup.get("a@x.com") == datetime(2024, 5, 30, tzinfo=timezone.utc)
        assert aggregator.lookup.get("b@x.com") == datetime(2024, 4, 20, tzinfo=timezone.utc)
        assert aggregator.events_seen == 5
        assert aggregator.events_discarded == 1
        assert aggregator.chunks_completed == 3
        assert len(requests) == 4

    def test_query_shape(self, now):
        filters = []

        def handler(request):
            filters.append((_filter(request), request.url.params.get("$top")))
            return httpx.Response(200, json={"value": []})

        _aggregate(handler, now, threshold_days=30)
        assert filters == [(
            "createdDateTime ge 2024-05-02T00:00:00Z and createdDateTime lt 2024-06-01T00:00:00Z",
            "999",
        )]

    def test_failing_chunk_keeps_earlier_data(self, now, sleeps):
        attempts = {"second": 0}

        def handler(request):
            if "ge 2024-05-02" in _filter(request):
                return httpx.Response(200, json={"value": [_event("a@x.com", "2024-05-20T00:00:00Z")]})
            attempts["second"] += 1
            return httpx.Response(500, json={"error": {"message": "boom"}})

        aggregator, error = _aggregate(
            handler, now, threshold_days=90, retry=RetryPolicy(), sleep=sleeps,
        )

        assert isinstance(error, SignInAggregationError)
        assert attempts["second"] == 3
        assert sleeps.calls == [5.0, 10.0]
        assert aggregator.chunks_completed == 1
        assert "a@x.com" in aggregator.lookup

    def test_transient_failure_recovers(self, now, sleeps):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"value": [_event("a@x.com", "2024-05-20T00:00:00Z")]})

        aggregator, error = _aggregate(handler, now, threshold_days=30, sleep=sleeps)
        assert error is None
        assert sleeps.calls == [5.0]
        assert len(aggregator.lookup) == 1

    def test_truncated_body_retried_then_aborts(self, now, sleeps):
        attempts = {"second": 0}

        def handler(request):
            if "ge 2024-05-02" in _filter(request):
                return httpx.Response(200, json={"value": [_event("a@x.com", "2024-05-20T00:00:00Z")]})
            attempts["second"] += 1
            return httpx.Response(200, content=b'{"value": [trunc')

        aggregator, error = _aggregate(handler, now, threshold_days=90, sleep=sleeps)

        assert isinstance(error, SignInAggregationError)
        assert attempts["second"] == 3
        assert aggregator.chunks_completed == 1
        assert "a@x.com" in aggregator.lookup

    def test_throttled_chunk_bounded_by_policy(self, now, sleeps):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(429, headers={"Retry-After": "0"})

        _, error = _aggregate(
            handler, now, threshold_days=30, retry=RetryPolicy(max_attempts=3), sleep=sleeps,
        )
        assert isinstance(error, SignInAggregationError)
        assert calls["n"] == 3
        assert sleeps.calls == [5.0, 10.0]

    def test_permission_denied_not_retried(self, now, sleeps):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(403, json={"error": {"message": "Forbidden"}})

        _, error = _aggregate(handler, now, threshold_days=30, sleep=sleeps)
        assert isinstance(error, SignInAggregationError)
        assert calls["n"] == 1
        assert sleeps.calls == []


class TestSignInCollector:
    def test_skip_flag(self, engine_config):
        engine_config.lifecycle.skip_sign_in_lookup = True
        result = asyncio.run(SignInCollector(graph=None, config=engine_config).execute())
        assert result.data["sign_ins"] is None
        assert result.metadata["skipped"]

    def test_degrades_on_failure(self, engine_config, fast_retry, run_graph):
        engine_config.lifecycle.inactive_threshold_days = 30
        engine_config.lifecycle.retry = fast_retry

        def handler(request):
            return httpx.Response(500, json={"error": {"message": "down"}})

        result = run_graph(handler, lambda c: SignInCollector(c, engine_config).execute())
        assert isinstance(result.data["sign_ins"], SignInLookup)
        assert len(result.data["sign_ins"]) == 0
        assert any("Sign-in aggregation failed" in w for w in result.warnings)
        assert result.metadata["window_days"] == 30

    def test_partial_data_survives_malformed_chunk(self, engine_config, fast_retry, run_graph):
        engine_config.lifecycle.inactive_threshold_days = 90
        engine_config.lifecycle.retry = fast_retry
        filters = []

        def handler(request):
            filters.append(_filter(request))
            if _filter(request) == filters[0]:
                return httpx.Response(200, json={"value": [_event("a@x.com", "2024-05-20T00:00:00Z")]})
            return httpx.Response(200, content=b'{"value": [trunc')

        result = run_graph(handler, lambda c: SignInCollector(c, engine_config).execute())

        assert len(filters) == 4
        assert len(set(filters[1:])) == 1
        assert "a@x.com" in result.data["sign_ins"]
        assert any("Sign-in aggregation failed" in w for w in result.warnings)
        assert result.metadata["events_seen"] == 1
