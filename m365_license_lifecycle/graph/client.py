"""
Async Graph API client with pagination and throttling retry.
Requests are awaited one at a time; the report never overlaps calls.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, Optional

import httpx

from ..config import (
    GRAPH_BASE_URL,
    GRAPH_API_VERSION,
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    DEFAULT_PAGE_SIZE,
    MAX_PAGES_PER_ENDPOINT,
)

logger = logging.getLogger("m365_license_lifecycle.graph")


class GraphAPIError(Exception):
    """Raised when Graph API returns a non-recoverable error."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"Graph API Error {status_code} for {url}: {message}")


class GraphClient:
    """
    Async Microsoft Graph API client.
    Features:
      - Automatic pagination with @odata.nextLink
      - Exponential backoff on 429/503/504, honouring Retry-After
      - Streaming generators for large result sets
    """

    def __init__(
        self,
        access_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
    ):
        self.access_token = access_token
        self._transport = transport
        self._initial_backoff = initial_backoff
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(120.0, connect=30.0),
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Accept": "application/json",
                "ConsistencyLevel": "eventual",
            },
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        """Build full Graph URL from relative endpoint."""
        if endpoint.startswith("http"):
            return endpoint
        endpoint = endpoint.lstrip("/")
        return f"{GRAPH_BASE_URL}/{GRAPH_API_VERSION}/{endpoint}"

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> dict:
        """Execute a single GET request with throttle handling."""
        url = self._build_url(endpoint)
        return await self._execute_with_retry(url, params=params)

    async def get_all_pages(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        skip_top: bool = False,
    ) -> list[dict]:
        """
        Fetch all pages of a paginated endpoint into a list.
        Set skip_top=True for endpoints that don't support $top.
        """
        items = []
        async for item in self.get_all_pages_stream(endpoint, params, skip_top=skip_top):
            items.append(item)
        return items

    async def get_all_pages_stream(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        skip_top: bool = False,
        max_retries: int = MAX_RETRIES,
    ) -> AsyncGenerator[dict, None]:
        """
        Stream all pages of a paginated endpoint as an async generator,
        one item at a time.

        max_retries bounds the throttling retries per page. Callers that
        wrap the whole stream in their own RetryPolicy pass 0.
        """
        params = dict(params or {})
        if not skip_top and "$top" not in params:
            params["$top"] = str(DEFAULT_PAGE_SIZE)

        url: Optional[str] = self._build_url(endpoint)
        query: Optional[dict] = params
        pages = 0

        while url and pages < MAX_PAGES_PER_ENDPOINT:
            data = await self._execute_with_retry(url, params=query, max_retries=max_retries)

            for item in data.get("value", []):
                yield item

            # nextLink already carries every query parameter
            url = data.get("@odata.nextLink")
            query = None
            pages += 1

        if pages >= MAX_PAGES_PER_ENDPOINT:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_ENDPOINT} pages) "
                f"for endpoint: {endpoint}"
            )

    async def fetch_text(self, url: str, timeout: float = 30.0) -> str:
        """Plain unauthenticated GET for public downloads (SKU catalog)."""
        async with httpx.AsyncClient(
            timeout=timeout, transport=self._transport, follow_redirects=True
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text

    async def _execute_with_retry(
        self,
        url: str,
        params: Optional[dict] = None,
        max_retries: int = MAX_RETRIES,
    ) -> dict:
        """Execute GET with exponential backoff on throttling."""
        backoff = self._initial_backoff
        last_status = 429

        for attempt in range(max_retries + 1):
            try:
                response = await self._execute_raw(url, params=params)
                self._request_count += 1

                if response.status_code == 200:
                    if not response.content or not response.content.strip():
                        return {"value": []}
                    return response.json()

                if response.status_code == 204:
                    return {}

                if response.status_code in (429, 503, 504):
                    self._throttle_count += 1
                    last_status = response.status_code
                    if attempt == max_retries:
                        break
                    retry_after = float(response.headers.get("Retry-After", backoff))
                    wait_time = min(max(retry_after, backoff), MAX_BACKOFF_SECONDS)
                    logger.warning(
                        f"Throttled ({response.status_code}) on {url}. "
                        f"Retry {attempt + 1}/{max_retries} in {wait_time:.1f}s"
                    )
                    await asyncio.sleep(wait_time)
                    backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                    continue

                raise GraphAPIError(response.status_code, _error_message(response), url)

            except httpx.TimeoutException:
                logger.warning(f"Timeout on {url}, attempt {attempt + 1}/{max_retries + 1}")
                if attempt == max_retries:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

            except httpx.ConnectError as e:
                logger.warning(f"Connection error on {url}: {e}")
                if attempt == max_retries:
                    raise
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)

        raise GraphAPIError(
            last_status, f"Still throttled after {max_retries + 1} attempt(s)", url
        )

    async def _execute_raw(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        """Execute raw HTTP GET."""
        if not self._client:
            raise RuntimeError("GraphClient not initialized. Use 'async with' context.")
        return await self._client.get(url, params=params)

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json() if response.content else {}
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return body.get("error", {}).get("message", response.text[:200])
    return response.text[:200]
