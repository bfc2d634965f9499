"""
Sign-In Collector
Folds auditLogs/signIns into the newest sign-in per identity.

The lookback window (inactivity threshold clamped to 30..365 days) is cut
into fixed 30-day chunks queried one after another, newest first, so large
tenants do not hit request timeouts. Each chunk runs under the retry
policy; a chunk that fails every attempt aborts the aggregation, keeping
whatever earlier chunks produced.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from ..config import (
    MAX_LOOKBACK_DAYS,
    MIN_LOOKBACK_DAYS,
    SIGN_IN_CHUNK_DAYS,
    SIGN_IN_PAGE_SIZE,
    RetryPolicy,
)
from ..graph.client import GraphClient
from ..graph.retry import RetryExhausted, call_with_retry
from ..lifecycle.models import SignInLookup
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_license_lifecycle.collectors.signins")


class SignInAggregationError(Exception):
    """Raised when a sign-in chunk failed after all retries."""
    pass


def lookback_days(threshold_days: int) -> int:
    return max(MIN_LOOKBACK_DAYS, min(threshold_days, MAX_LOOKBACK_DAYS))


def build_chunks(
    now: datetime,
    window_days: int,
    chunk_days: int = SIGN_IN_CHUNK_DAYS,
) -> list[tuple[datetime, datetime]]:
    """
    Split [now - window_days, now) into consecutive chunks, newest first.
    The oldest chunk is shorter when the window is not a multiple of
    chunk_days.
    """
    start_of_window = now - timedelta(days=window_days)
    chunks = []
    end = now
    while end > start_of_window:
        start = max(end - timedelta(days=chunk_days), start_of_window)
        chunks.append((start, end))
        end = start
    return chunks


def _graph_time(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SignInAggregator:
    """Chunked, retried sign-in fold. `lookup` holds partial results on failure."""

    def __init__(
        self,
        graph: GraphClient,
        threshold_days: int,
        chunk_days: int = SIGN_IN_CHUNK_DAYS,
        retry: Optional[RetryPolicy] = None,
        now: Optional[datetime] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.graph = graph
        self.threshold_days = threshold_days
        self.chunk_days = chunk_days
        self.retry = retry or RetryPolicy()
        self.now = now or datetime.now(timezone.utc)
        self.sleep = sleep
        self.lookup = SignInLookup()
        self.events_seen = 0
        self.events_discarded = 0
        self.chunks_completed = 0

    @property
    def window_days(self) -> int:
        return lookback_days(self.threshold_days)

    def chunks(self) -> list[tuple[datetime, datetime]]:
        return build_chunks(self.now, self.window_days, self.chunk_days)

    async def _fetch_chunk(self, start: datetime, end: datetime) -> tuple[SignInLookup, int, int]:
        chunk_lookup = SignInLookup()
        seen = discarded = 0
        params = {
            "$filter": (
                f"createdDateTime ge {_graph_time(start)} "
                f"and createdDateTime lt {_graph_time(end)}"
            ),
            "$top": str(SIGN_IN_PAGE_SIZE),
        }
        async for event in self.graph.get_all_pages_stream(
            "auditLogs/signIns", params=params, max_retries=0
        ):
            seen += 1
            if not chunk_lookup.record(event.get("userPrincipalName"), event.get("createdDateTime")):
                discarded += 1
        return chunk_lookup, seen, discarded

    async def aggregate(self) -> SignInLookup:
        chunks = self.chunks()
        logger.info(
            f"[signins] Querying {self.window_days} days of sign-ins in {len(chunks)} chunk(s)"
        )
        for index, (start, end) in enumerate(chunks, start=1):
            label = f"Sign-in chunk {index}/{len(chunks)} ({start:%Y-%m-%d} → {end:%Y-%m-%d})"
            try:
                chunk_lookup, seen, discarded = await call_with_retry(
                    lambda s=start, e=end: self._fetch_chunk(s, e),
                    self.retry,
                    label,
                    sleep=self.sleep,
                )
            except RetryExhausted as e:
                raise SignInAggregationError(str(e)) from e

            self.lookup.merge(chunk_lookup)
            self.events_seen += seen
            self.events_discarded += discarded
            self.chunks_completed += 1
            logger.debug(f"[signins] {label}: {seen} events, {len(chunk_lookup)} identities")

        return self.lookup


class SignInCollector(BaseCollector):
    name = "signins"
    description = "Most recent sign-in per identity"

    async def collect(self, result: CollectorResult):
        lifecycle = self.config.lifecycle
        if lifecycle.skip_sign_in_lookup:
            result.data["sign_ins"] = None
            result.mark_skipped("sign-in lookup disabled; every user counts as active")
            return

        aggregator = SignInAggregator(
            self.graph,
            threshold_days=lifecycle.inactive_threshold_days,
            chunk_days=lifecycle.sign_in_chunk_days,
            retry=lifecycle.retry,
        )
        try:
            await aggregator.aggregate()
        except Exception as e:
            result.add_warning(
                f"Sign-in aggregation failed: {type(e).__name__}: {e}. Continuing with "
                f"{aggregator.chunks_completed} completed chunk(s); users without "
                f"data count as never signed in"
            )

        result.metadata["endpoints_queried"] += aggregator.chunks_completed
        result.metadata["events_seen"] = aggregator.events_seen
        result.metadata["events_discarded"] = aggregator.events_discarded
        result.metadata["window_days"] = aggregator.window_days
        result.add_data("sign_ins", aggregator.lookup)
