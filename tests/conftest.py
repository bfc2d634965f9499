"""Shared fixtures -- directory users, a fixed clock and a mocked Graph transport."""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from m365_license_lifecycle.config import EngineConfig, RetryPolicy
from m365_license_lifecycle.graph.client import GraphClient
from m365_license_lifecycle.lifecycle import DirectoryUser, LicenseResolver, SkuCatalog

E3_ID = "05e9a617-0261-4cee-bb44-138d3ef5d965"
E5_ID = "06ebc4ee-1bb5-47dd-8120-11324bc54e06"
VISIO_ID = "c5928f49-12ba-48f7-ada3-0d743a3601d5"


@pytest.fixture
def skus():
    return {"E3": E3_ID, "E5": E5_ID, "VISIO": VISIO_ID}


@pytest.fixture
def now():
    return datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def make_user():
    def _make(upn, sku_ids=(E3_ID,), mail=None, display_name=None, user_id=None):
        return DirectoryUser(
            id=user_id or f"id-{upn}",
            display_name=display_name or upn.split("@")[0].title(),
            user_principal_name=upn,
            mail=mail if mail is not None else upn,
            account_enabled=True,
            user_type="Member",
            sku_ids=tuple(sku_ids),
        )
    return _make


@pytest.fixture
def resolver():
    catalog = SkuCatalog(
        by_part_number={
            "SPE_E3": "Microsoft 365 E3",
            "SPE_E5": "Microsoft 365 E5",
        },
    )
    return LicenseResolver(
        {E3_ID: "SPE_E3", E5_ID: "SPE_E5", VISIO_ID: "VISIOCLIENT"},
        catalog,
    )


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def sleeps():
    """Records requested backoff delays without waiting."""
    calls = []

    async def _sleep(delay):
        calls.append(delay)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def engine_config(tmp_path):
    config = EngineConfig()
    config.output.base_dir = str(tmp_path / "out")
    config.catalog.download = False
    return config


@pytest.fixture
def run_graph():
    """
    Run a coroutine factory against a GraphClient backed by a handler:
    run_graph(handler, lambda client: client.get_all_pages("users")).
    """
    def _run(handler, factory):
        async def _main():
            transport = httpx.MockTransport(handler)
            async with GraphClient("test-token", transport=transport, initial_backoff=0) as client:
                return await factory(client)
        return asyncio.run(_main())
    return _run
