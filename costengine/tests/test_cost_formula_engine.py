"""
Tests for the cost formula engine.
"""

import pytest
from unittest.mock import Mock, AsyncMock
from datetime import datetime, timedelta, timezone

from costengine.domain.cost_inputs import AnfCostInputs
from costengine.domain.cost_models import EstimateState
from costengine.domain.permutations import PermutationId, get_permutation
from costengine.pricing.price_cache import PriceCache
from costengine.pricing.price_store import InMemoryPriceStore
from costengine.services.cost_formula_engine import (
    STRATEGIES,
    CostFormulaEngine,
    FormulaContext,
    PermutationPricing,
    price_regular,
)


START = datetime(2024, 5, 1, tzinfo=timezone.utc)


@pytest.fixture
def engine(fake_price_cache):
    return CostFormulaEngine(fake_price_cache, clock=lambda: datetime(2024, 6, 1, 15, 30, tzinfo=timezone.utc))


def _components(estimate):
    return {component.component_type: component for component in estimate.components}


def test_every_permutation_has_a_strategy():
    assert set(STRATEGIES) == set(PermutationId)


@pytest.mark.asyncio
async def test_standard_regular_capacity_cost(engine):
    """Capacity x unit price x hours, with included throughput noted."""
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=100, period_start=START)

    estimate = await engine.calculate(get_permutation(1), inputs)

    assert estimate.total == pytest.approx(14.616)
    assert estimate.billing_hours == 720
    assert estimate.included_throughput_mibps == pytest.approx(1.5625)
    assert estimate.state == EstimateState.RETAIL
    assert estimate.period_end == START + timedelta(days=30)
    capacity = _components(estimate)["capacity"]
    assert capacity.name == "Capacity"
    assert capacity.billing_hours == 720
    assert any("Included throughput: 1.56 MiB/s (16 MiB/s per TiB)" in note for note in estimate.notes)


@pytest.mark.asyncio
async def test_capacity_below_minimum_is_billed_at_minimum(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=10, period_start=START)

    estimate = await engine.calculate(get_permutation(1), inputs)

    assert estimate.billed_capacity_gib == 50
    assert estimate.total == pytest.approx(50 * 0.000203 * 720)
    assert estimate.validation_errors
    assert any("below the 50 GiB minimum" in note for note in estimate.notes)


@pytest.mark.asyncio
async def test_double_encrypted_uses_its_own_price(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=1000, period_start=START)

    estimate = await engine.calculate(get_permutation(2), inputs)

    component = _components(estimate)["capacity"]
    assert component.name == "Capacity (Double Encrypted)"
    assert component.unit_price == pytest.approx(0.000264)
    assert estimate.total == pytest.approx(190.08)
    assert "Double encryption enabled" in estimate.notes


@pytest.mark.asyncio
async def test_cool_access_prices_tiers_and_transfers(engine):
    """Hot and cool capacity are hourly; tiering and retrieval are per GiB."""
    inputs = AnfCostInputs(
        region="eastus",
        provisioned_capacity_gib=3000,
        hot_capacity_gib=1000,
        cool_capacity_gib=2000,
        data_tiered_to_cool_gib=100,
        data_retrieved_from_cool_gib=50,
        period_start=START,
    )

    estimate = await engine.calculate(get_permutation(6), inputs)

    components = _components(estimate)
    assert components["capacity_hot"].cost == pytest.approx(1000 * 0.000403 * 720)
    assert components["capacity_cool"].cost == pytest.approx(2000 * 0.0000479 * 720)
    assert components["cool_tiering"].cost == pytest.approx(1.0)
    assert components["cool_tiering"].billing_hours is None
    assert components["cool_retrieval"].cost == pytest.approx(0.5)
    assert estimate.total == pytest.approx(290.16 + 68.976 + 1.5)
    assert any("throughput reduced" in note for note in estimate.notes)


@pytest.mark.asyncio
async def test_cool_access_tops_up_hot_tier_to_minimum(engine):
    inputs = AnfCostInputs(
        region="eastus",
        provisioned_capacity_gib=2400,
        hot_capacity_gib=200,
        cool_capacity_gib=1000,
        period_start=START,
    )

    estimate = await engine.calculate(get_permutation(3), inputs)

    assert _components(estimate)["capacity_hot"].quantity == pytest.approx(1400)


@pytest.mark.asyncio
async def test_cool_access_below_minimum_is_raised_to_2400(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=10, period_start=START)

    estimate = await engine.calculate(get_permutation(3), inputs)

    assert estimate.billed_capacity_gib == 2400
    assert _components(estimate)["capacity_hot"].quantity == pytest.approx(2400)
    assert "capacity_cool" not in _components(estimate)
    assert any("hot/cool capacity breakdown" in error for error in estimate.validation_errors)


@pytest.mark.asyncio
async def test_flexible_throughput_within_base_is_free(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=1000,
                           required_throughput_mibps=100, period_start=START)

    estimate = await engine.calculate(get_permutation(10), inputs)

    assert "throughput" not in _components(estimate)
    assert estimate.included_throughput_mibps == 128
    assert estimate.required_throughput_mibps == 100


@pytest.mark.asyncio
async def test_flexible_throughput_above_base_is_priced(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=1000,
                           required_throughput_mibps=200, period_start=START)

    estimate = await engine.calculate(get_permutation(10), inputs)

    throughput = _components(estimate)["throughput"]
    assert throughput.quantity == pytest.approx(72)
    assert throughput.cost == pytest.approx(72 * 0.0075 * 720)


@pytest.mark.asyncio
async def test_missing_price_omits_component_with_warning(engine, fake_price_cache):
    """A missing unit price never aborts the estimate."""
    del fake_price_cache.prices["anf-coolaccess-cooltransfer"]
    inputs = AnfCostInputs(
        region="eastus",
        provisioned_capacity_gib=3000,
        hot_capacity_gib=1000,
        cool_capacity_gib=2000,
        data_tiered_to_cool_gib=100,
        period_start=START,
    )

    estimate = await engine.calculate(get_permutation(11), inputs)

    assert "cool_tiering" not in _components(estimate)
    assert "capacity_cool" in _components(estimate)
    assert any("Data tiered to cool" in warning for warning in estimate.warnings)


@pytest.mark.asyncio
async def test_default_period_ends_at_midnight_utc(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=100, billing_period_days=7)

    estimate = await engine.calculate(get_permutation(1), inputs)

    assert estimate.period_end == datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert estimate.period_start == datetime(2024, 5, 25, tzinfo=timezone.utc)
    assert estimate.billing_days == 7


@pytest.mark.asyncio
async def test_estimate_total_never_negative(engine):
    for permutation_id in PermutationId:
        inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=5000, hot_capacity_gib=3000,
                               cool_capacity_gib=2000, required_throughput_mibps=300, period_start=START)
        estimate = await engine.calculate(get_permutation(permutation_id), inputs)
        assert estimate.total >= 0
        assert estimate.total == pytest.approx(sum(c.cost for c in estimate.components))


def test_strategy_is_pure_function_of_context(price_factory):
    """Strategies can be called directly with hand-built pricing."""
    context = FormulaContext(
        permutation=get_permutation(7),
        inputs=AnfCostInputs(region="eastus", provisioned_capacity_gib=1024),
        pricing=PermutationPricing(capacity=price_factory("anf-ultra-capacity", 0.0005)),
        billed_capacity_gib=1024,
        hours=720,
    )

    result = price_regular(context)

    assert result.components[0].cost == pytest.approx(1024 * 0.0005 * 720)
    assert result.included_throughput_mibps == pytest.approx(128)
    assert result.warnings == []


@pytest.mark.asyncio
async def test_zero_day_period_bills_no_hourly_charges(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=100, billing_period_days=0, period_start=START)

    estimate = await engine.calculate(get_permutation(1), inputs)

    assert estimate.total == 0
    assert estimate.components == []
    assert "Billing period must be at least one day" in estimate.validation_errors


@pytest.mark.asyncio
async def test_negative_period_is_reported_not_raised(engine):
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=3000, hot_capacity_gib=2000,
                           cool_capacity_gib=1000, data_tiered_to_cool_gib=50, required_throughput_mibps=200,
                           billing_period_days=-3, period_start=START)

    estimate = await engine.calculate(get_permutation(11), inputs)

    assert estimate.billing_hours == 0
    assert estimate.period_end == START
    assert "Billing period must be at least one day" in estimate.validation_errors
    # tiering is charged per GiB moved, not per hour
    assert set(_components(estimate)) == {"cool_tiering"}
    assert estimate.total == pytest.approx(50 * 0.01)


@pytest.mark.asyncio
async def test_cold_cache_queries_each_price_list_once(clock):
    """Keys sharing a price list query trigger a single upstream request."""
    flexible_items = [
        {"meterName": "Flexible Capacity", "retailPrice": 0.000169, "type": "Consumption"},
        {"meterName": "Flexible Throughput", "retailPrice": 0.0075, "type": "Consumption"},
    ]
    cool_items = [
        {"meterName": "Cool Capacity", "retailPrice": 0.0000479, "type": "Consumption"},
        {"meterName": "Cool Data Transfer", "retailPrice": 0.01, "type": "Consumption"},
    ]
    retail_client = Mock()
    retail_client.query = AsyncMock(
        side_effect=lambda expression: cool_items if "Cool Access" in expression else flexible_items
    )
    cache = PriceCache(client=retail_client, store=InMemoryPriceStore(), clock=clock)

    pricing = await CostFormulaEngine(cache, clock=clock).resolve_pricing(get_permutation(11), "East US")

    assert retail_client.query.await_count == 2
    assert pricing.capacity.unit_price == pytest.approx(0.000169)
    assert pricing.flexible_throughput.unit_price == pytest.approx(0.0075)
    assert pricing.cool_capacity.unit_price == pytest.approx(0.0000479)
    assert pricing.cool_transfer.unit_price == pytest.approx(0.01)
