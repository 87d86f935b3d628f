"""
Tests for cool data assumption resolution.
"""

import pytest
from unittest.mock import AsyncMock

from costengine.domain.assumption_models import (
    AssumptionSource,
    AssumptionValidationError,
    CoolDataAssumptions,
)
from costengine.domain.cost_inputs import AnfCostInputs
from costengine.services.cool_data_assumptions import AssumptionStore, CoolDataAssumptionsResolver


@pytest.fixture
def resolver(clock):
    return CoolDataAssumptionsResolver(store=AssumptionStore(), cache_ttl_seconds=300, clock=clock)


@pytest.mark.asyncio
async def test_defaults_when_nothing_saved(resolver):
    assumptions = await resolver.resolve("job-1", "vol-1")

    assert assumptions.cool_data_percentage == 80
    assert assumptions.cool_retrieval_percentage == 15
    assert assumptions.source == AssumptionSource.GLOBAL


@pytest.mark.asyncio
async def test_volume_overrides_job_overrides_global(resolver):
    """The most specific explicit record wins, without blending."""
    await resolver.set_global(CoolDataAssumptions(70, 10))
    await resolver.set_job("job-1", CoolDataAssumptions(60, 20))
    await resolver.set_volume("job-1", "vol-1", CoolDataAssumptions(40, 5))

    volume = await resolver.resolve("job-1", "vol-1")
    job = await resolver.resolve("job-1", "vol-2")
    other_job = await resolver.resolve("job-2", "vol-1")

    assert (volume.cool_data_percentage, volume.source) == (40, AssumptionSource.VOLUME)
    assert (job.cool_data_percentage, job.source) == (60, AssumptionSource.JOB)
    assert (other_job.cool_data_percentage, other_job.source) == (70, AssumptionSource.GLOBAL)


@pytest.mark.asyncio
async def test_clearing_falls_back_to_next_level(resolver):
    await resolver.set_job("job-1", CoolDataAssumptions(60, 20))
    await resolver.set_volume("job-1", "vol-1", CoolDataAssumptions(40, 5))

    assert await resolver.clear_volume("job-1", "vol-1") is True
    assert (await resolver.resolve("job-1", "vol-1")).source == AssumptionSource.JOB

    assert await resolver.clear_job("job-1") is True
    assert await resolver.clear_job("job-1") is False
    assert (await resolver.resolve("job-1", "vol-1")).source == AssumptionSource.GLOBAL


@pytest.mark.asyncio
@pytest.mark.parametrize("cool,retrieval", [(101, 10), (50, -1)])
async def test_invalid_percentages_are_rejected(resolver, cool, retrieval):
    with pytest.raises(AssumptionValidationError):
        await resolver.set_job("job-1", CoolDataAssumptions(cool, retrieval))


@pytest.mark.asyncio
async def test_global_assumptions_are_cached_until_ttl(clock):
    store = AssumptionStore()
    store.get_global = AsyncMock(return_value=None)
    resolver = CoolDataAssumptionsResolver(store=store, cache_ttl_seconds=300, clock=clock)

    await resolver.get_global()
    await resolver.get_global()
    assert store.get_global.await_count == 1

    clock.advance(seconds=301)
    await resolver.get_global()
    assert store.get_global.await_count == 2


@pytest.mark.asyncio
async def test_set_global_invalidates_cache(resolver):
    await resolver.get_global()
    await resolver.set_global(CoolDataAssumptions(50, 25), modified_by="ops")

    current = await resolver.get_global()

    assert current.cool_data_percentage == 50
    assert current.last_modified_by == "ops"


def test_assumptions_fill_missing_breakdown():
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=4000)

    filled = inputs.with_cool_assumptions(CoolDataAssumptions(80, 15))

    assert filled.cool_capacity_gib == pytest.approx(3200)
    assert filled.hot_capacity_gib == pytest.approx(800)
    assert filled.data_retrieved_from_cool_gib == pytest.approx(480)


def test_explicit_breakdown_is_kept():
    inputs = AnfCostInputs(region="eastus", provisioned_capacity_gib=4000,
                           hot_capacity_gib=1000, cool_capacity_gib=3000)

    assert inputs.with_cool_assumptions(CoolDataAssumptions(80, 15)) is inputs
