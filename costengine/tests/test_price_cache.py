"""
Tests for the layered price cache.
"""

import pytest
from unittest.mock import Mock, AsyncMock

from costengine.pricing.azure_retail_prices_client import AzureRetailPricesError
from costengine.pricing.meter_keys import anf_query
from costengine.pricing.price_cache import PriceCache, resolve_prices
from costengine.pricing.price_store import InMemoryPriceStore


STANDARD_ITEMS = [
    {"meterName": "Standard Capacity", "skuName": "Standard", "retailPrice": 0.000203,
     "unitOfMeasure": "1 GiB/Hour", "currencyCode": "USD", "type": "Consumption"},
    {"meterName": "Standard Double Encrypted Capacity", "skuName": "Standard", "retailPrice": 0.000264,
     "unitOfMeasure": "1 GiB/Hour", "currencyCode": "USD", "type": "Consumption"},
    {"meterName": "Standard Capacity", "skuName": "Standard", "retailPrice": 0.00015,
     "unitOfMeasure": "1 GiB/Hour", "currencyCode": "USD", "type": "Reservation"},
    {"meterName": "Standard Snapshot Replication", "skuName": "Standard", "retailPrice": 0.1,
     "type": "Consumption"},
]


@pytest.fixture
def retail_client():
    client = Mock()
    client.query = AsyncMock(return_value=STANDARD_ITEMS)
    return client


@pytest.fixture
def price_cache(retail_client, clock):
    return PriceCache(
        client=retail_client,
        store=InMemoryPriceStore(),
        memory_ttl_seconds=60,
        durable_ttl_seconds=86400,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_miss_refreshes_from_upstream(price_cache, retail_client):
    """A cold cache queries the price list and caches recognized consumption meters."""
    price = await price_cache.resolve("eastus", "anf-standard-capacity", anf_query("eastus", "Standard"))

    assert price.unit_price == pytest.approx(0.000203)
    assert retail_client.query.await_count == 1
    assert price_cache.store.count() == 2


@pytest.mark.asyncio
async def test_memory_hit_avoids_upstream(price_cache, retail_client):
    query = anf_query("eastus", "Standard")
    await price_cache.resolve("eastus", "anf-standard-capacity", query)
    await price_cache.resolve("eastus", "anf-standard-capacity-doubleencrypted", query)

    assert retail_client.query.await_count == 1


@pytest.mark.asyncio
async def test_durable_hit_after_memory_expiry(price_cache, retail_client, clock):
    """Once the memory entry expires the durable layer answers without a refresh."""
    query = anf_query("eastus", "Standard")
    await price_cache.resolve("eastus", "anf-standard-capacity", query)

    clock.advance(minutes=5)
    price = await price_cache.resolve("eastus", "anf-standard-capacity", query)

    assert price.unit_price == pytest.approx(0.000203)
    assert retail_client.query.await_count == 1


@pytest.mark.asyncio
async def test_zero_priced_entry_forces_refresh(price_cache, retail_client, price_factory):
    """A cached price of zero is never returned as a hit."""
    await price_cache.store.upsert(price_factory("anf-standard-capacity", 0.0))

    price = await price_cache.resolve("eastus", "anf-standard-capacity", anf_query("eastus", "Standard"))

    assert price.unit_price == pytest.approx(0.000203)
    assert retail_client.query.await_count == 1


@pytest.mark.asyncio
async def test_expired_entry_served_degraded_when_upstream_fails(price_cache, retail_client, clock, price_factory):
    """Upstream failure falls back to the expired entry marked degraded."""
    await price_cache.store.upsert(price_factory("anf-standard-capacity", 0.0002, fetched_at=clock.now, ttl_hours=24))
    clock.advance(days=2)
    retail_client.query.side_effect = AzureRetailPricesError("unavailable")

    price = await price_cache.resolve("eastus", "anf-standard-capacity", anf_query("eastus", "Standard"))

    assert price is not None
    assert price.degraded is True
    assert price.unit_price == pytest.approx(0.0002)


@pytest.mark.asyncio
async def test_no_price_anywhere_returns_none(price_cache, retail_client):
    retail_client.query.return_value = []

    price = await price_cache.resolve("eastus", "anf-standard-capacity", anf_query("eastus", "Standard"))

    assert price is None


@pytest.mark.asyncio
async def test_resolve_without_query_does_not_call_upstream(price_cache, retail_client):
    assert await price_cache.resolve("eastus", "anf-standard-capacity") is None
    retail_client.query.assert_not_awaited()


@pytest.mark.asyncio
async def test_durable_store_failure_does_not_abort_resolution(retail_client, clock):
    """Errors from the durable layer are logged and the upstream is used."""
    store = Mock()
    store.get = AsyncMock(side_effect=OSError("disk gone"))
    store.upsert = AsyncMock(side_effect=OSError("disk gone"))
    cache = PriceCache(client=retail_client, store=store, clock=clock)

    price = await cache.resolve("eastus", "anf-standard-capacity", anf_query("eastus", "Standard"))

    assert price.unit_price == pytest.approx(0.000203)


@pytest.mark.asyncio
async def test_resolve_prices_shares_one_refresh_per_query(price_cache, retail_client):
    """Keys populated by the same query trigger a single upstream call on a cold cache."""
    query = anf_query("eastus", "Standard")

    prices = await resolve_prices(price_cache, "eastus", {
        "capacity": ("anf-standard-capacity", query),
        "double": ("anf-standard-capacity-doubleencrypted", query),
    })

    assert prices["capacity"].unit_price == pytest.approx(0.000203)
    assert prices["double"].unit_price == pytest.approx(0.000264)
    assert retail_client.query.await_count == 1
