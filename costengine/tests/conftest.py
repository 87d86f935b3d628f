"""
Shared pytest fixtures for cost engine tests.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
from unittest.mock import Mock, AsyncMock
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from costengine.domain.cost_models import MeterPrice
from costengine.pricing.meter_keys import (
    ANF_CAPACITY,
    ANF_CAPACITY_DOUBLE_ENCRYPTED,
    ANF_COOL_STORAGE,
    ANF_COOL_TRANSFER,
    ANF_THROUGHPUT,
    anf_cool_meter_key,
    anf_meter_key,
    azure_files_meter_key,
    managed_disk_meter_key,
)
from costengine.resilience.circuit_breaker import reset_circuit_breakers


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for TTL and expiry tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def fresh_circuit_breakers():
    """Breakers are process-wide; start every test closed."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def clock():
    return FakeClock()


def make_price(meter_key: str, unit_price: float, region: str = "eastus",
               fetched_at: datetime = NOW, ttl_hours: int = 24, unit_of_measure: str = "1 GiB/Hour") -> MeterPrice:
    return MeterPrice(
        region=region,
        meter_key=meter_key,
        unit_price=unit_price,
        unit_of_measure=unit_of_measure,
        currency="USD",
        source_meter_name=meter_key,
        fetched_at=fetched_at,
        expires_at=fetched_at + timedelta(hours=ttl_hours),
        resource_type="ANF",
    )


# Hourly retail unit prices used across engine and API tests
ANF_UNIT_PRICES = {
    anf_meter_key("Standard", ANF_CAPACITY): 0.000203,
    anf_meter_key("Standard", ANF_CAPACITY_DOUBLE_ENCRYPTED): 0.000264,
    anf_meter_key("Premium", ANF_CAPACITY): 0.000403,
    anf_meter_key("Premium", ANF_CAPACITY_DOUBLE_ENCRYPTED): 0.000524,
    anf_meter_key("Ultra", ANF_CAPACITY): 0.000538,
    anf_meter_key("Ultra", ANF_CAPACITY_DOUBLE_ENCRYPTED): 0.000699,
    anf_meter_key("Flexible", ANF_CAPACITY): 0.000169,
    anf_meter_key("Flexible", ANF_THROUGHPUT): 0.0075,
    anf_cool_meter_key(ANF_COOL_STORAGE): 0.0000479,
    anf_cool_meter_key(ANF_COOL_TRANSFER): 0.01,
}

# Azure Files and managed disk retail prices with their units of measure
STORAGE_UNIT_PRICES = {
    azure_files_meter_key("Hot", "LRS", "storage"): (0.0255, "1 GB/Month"),
    azure_files_meter_key("Hot", "LRS", "writeoperations"): (0.065, "10K"),
    azure_files_meter_key("Hot", "LRS", "readoperations"): (0.0052, "10K"),
    azure_files_meter_key("Hot", "LRS", "listoperations"): (0.065, "10K"),
    azure_files_meter_key("ProvisionedV1", "LRS", "storage"): (0.16, "1 GiB/Month"),
    azure_files_meter_key("snapshot", "LRS", "storage"): (0.0255, "1 GB/Month"),
    managed_disk_meter_key("P30", "LRS"): (122.88, "1/Month"),
    managed_disk_meter_key("E10", "LRS"): (9.60, "1/Month"),
    managed_disk_meter_key("E10", "LRS", "operations"): (0.002, "10K"),
    managed_disk_meter_key("snapshot", "LRS"): (0.05, "1 GB/Month"),
    managed_disk_meter_key("v2", "LRS", "capacity"): (0.00011, "1 GiB/Hour"),
    managed_disk_meter_key("v2", "LRS", "iops"): (0.0000068, "1/Hour"),
    managed_disk_meter_key("v2", "LRS", "throughput"): (0.000055, "1/Hour"),
}


@pytest.fixture
def fake_price_cache():
    """Price cache resolving from the fixed price tables; keys missing from `prices` resolve to None."""
    prices = dict(ANF_UNIT_PRICES)
    units = {}
    for meter_key, (unit_price, unit_of_measure) in STORAGE_UNIT_PRICES.items():
        prices[meter_key] = unit_price
        units[meter_key] = unit_of_measure

    async def resolve(region, meter_key, query=None):
        if meter_key not in prices:
            return None
        return make_price(meter_key, prices[meter_key], region=region,
                          unit_of_measure=units.get(meter_key, "1 GiB/Hour"))

    cache = Mock()
    cache.prices = prices
    cache.resolve = AsyncMock(side_effect=resolve)
    cache.stats = Mock(return_value={"memory_entries": 0})
    return cache


@pytest.fixture
def client(fake_price_cache):
    """FastAPI test client with the retail price list replaced by fixed prices."""
    from costengine.main import create_app
    from costengine.services.cost_formula_engine import CostFormulaEngine
    from costengine.services.storage_cost_calculators import AzureFilesCostCalculator, ManagedDiskCostCalculator

    app = create_app()
    app.state.price_cache = fake_price_cache
    app.state.cost_engine = CostFormulaEngine(fake_price_cache, clock=lambda: NOW)
    app.state.azure_files_calculator = AzureFilesCostCalculator(fake_price_cache, clock=lambda: NOW)
    app.state.managed_disk_calculator = ManagedDiskCostCalculator(fake_price_cache, clock=lambda: NOW)
    app.state.cost_management_client = Mock()
    app.state.cost_management_client.query_meter_costs = AsyncMock(return_value=[])
    return TestClient(app)


@pytest.fixture
def price_factory():
    """Builds MeterPrice entries: price_factory(meter_key, unit_price, fetched_at=..., ttl_hours=...)."""
    return make_price
