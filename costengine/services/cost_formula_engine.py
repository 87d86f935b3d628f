"""
Cost formula engine for tiered-capacity volumes.
Prices one volume under one of the eleven permutations using unit prices from the price cache.
"""
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging

from costengine.domain.cost_inputs import AnfCostInputs
from costengine.domain.cost_models import CostComponent, CostEstimate, MeterPrice
from costengine.domain.permutations import (
    PermutationConfig,
    PermutationId,
    FLEXIBLE_BASE_THROUGHPUT_MIBPS,
    INCLUDED_THROUGHPUT_PER_TIB,
    get_permutation,
)
from costengine.pricing.meter_keys import (
    ANF_CAPACITY,
    ANF_CAPACITY_DOUBLE_ENCRYPTED,
    ANF_COOL_STORAGE,
    ANF_COOL_TRANSFER,
    ANF_THROUGHPUT,
    PriceQuery,
    anf_cool_meter_key,
    anf_cool_query,
    anf_meter_key,
    anf_query,
    normalize_region,
)
from costengine.pricing.price_cache import PriceCache, resolve_prices


logger = logging.getLogger(__name__)


@dataclass
class PermutationPricing:
    """Unit prices needed by one permutation; None means no usable price was found."""
    capacity: Optional[MeterPrice] = None  # $/GiB/hour
    double_encrypted_capacity: Optional[MeterPrice] = None  # $/GiB/hour
    cool_capacity: Optional[MeterPrice] = None  # $/GiB/hour
    cool_transfer: Optional[MeterPrice] = None  # $/GiB moved
    flexible_throughput: Optional[MeterPrice] = None  # $/MiB/s/hour


@dataclass
class FormulaContext:
    """Everything a strategy reads. Strategies never perform I/O."""
    permutation: PermutationConfig
    inputs: AnfCostInputs
    pricing: PermutationPricing
    billed_capacity_gib: float
    hours: int


@dataclass
class StrategyResult:
    components: List[CostComponent] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    included_throughput_mibps: float = 0.0
    required_throughput_mibps: Optional[float] = None

    def add(self, component: Optional[CostComponent]) -> None:
        if component is not None:
            self.components.append(component)


def _priced_component(
    result: StrategyResult,
    price: Optional[MeterPrice],
    name: str,
    component_type: str,
    label: str,
    quantity: float,
    unit: str,
    hours: Optional[int]
) -> Optional[CostComponent]:
    """
    Build one component, or record a warning when its price is missing.

    Quantities that are not positive produce no component, and neither do
    hourly charges over an empty period.
    """
    if quantity <= 0 or (hours is not None and hours <= 0):
        return None
    if price is None or not price.is_usable:
        result.warnings.append(f"No retail price available for {label}; component omitted")
        return None
    if price.degraded:
        result.warnings.append(f"Price for {label} served from an expired cache entry")

    if hours is not None:
        cost = quantity * price.unit_price * hours
        description = f"{label} ({quantity:,.2f} {unit} @ ${price.unit_price:.6f}/{unit}/hour)"
    else:
        cost = quantity * price.unit_price
        description = f"{label} ({quantity:,.2f} {unit} @ ${price.unit_price:.4f}/{unit})"
    return CostComponent(
        name=name,
        component_type=component_type,
        description=description,
        quantity=quantity,
        unit=unit,
        unit_price=price.unit_price,
        billing_hours=hours,
        cost=cost,
        is_estimated=True,
    )


def _included_throughput_note(ctx: FormulaContext) -> Tuple[float, str]:
    included = ctx.permutation.included_throughput(ctx.billed_capacity_gib)
    per_tib = ctx.permutation.throughput_per_tib
    return included, f"Included throughput: {included:,.2f} MiB/s ({per_tib:.0f} MiB/s per TiB)"


def _hot_cool_split(ctx: FormulaContext, result: StrategyResult) -> Tuple[float, float]:
    cool = ctx.inputs.cool_capacity_gib or 0.0
    hot = ctx.inputs.hot_capacity_gib
    if hot is None:
        hot = max(ctx.billed_capacity_gib - cool, 0.0)
    if hot + cool < ctx.billed_capacity_gib:
        shortfall = ctx.billed_capacity_gib - (hot + cool)
        result.notes.append(
            f"Hot tier billed up to minimum capacity: {shortfall:,.2f} GiB added to hot capacity"
        )
        hot += shortfall
    return hot, cool


def _add_cool_tier(ctx: FormulaContext, result: StrategyResult, tier_label: str) -> None:
    hot, cool = _hot_cool_split(ctx, result)
    result.add(_priced_component(
        result, ctx.pricing.capacity, "Hot Tier Capacity", "capacity_hot",
        f"{tier_label} hot capacity", hot, "GiB", ctx.hours,
    ))
    result.add(_priced_component(
        result, ctx.pricing.cool_capacity, "Cool Tier Capacity", "capacity_cool",
        f"{tier_label} cool capacity", cool, "GiB", ctx.hours,
    ))
    # Moving data between tiers is charged per GiB, not per hour
    result.add(_priced_component(
        result, ctx.pricing.cool_transfer, "Data Tiering", "cool_tiering",
        "Data tiered to cool", ctx.inputs.data_tiered_to_cool_gib or 0.0, "GiB", None,
    ))
    result.add(_priced_component(
        result, ctx.pricing.cool_transfer, "Data Retrieval", "cool_retrieval",
        "Data retrieved from cool", ctx.inputs.data_retrieved_from_cool_gib or 0.0, "GiB", None,
    ))


def _add_flexible_throughput(ctx: FormulaContext, result: StrategyResult) -> None:
    required = ctx.inputs.required_throughput_mibps or 0.0
    above_base = required - FLEXIBLE_BASE_THROUGHPUT_MIBPS
    result.add(_priced_component(
        result, ctx.pricing.flexible_throughput, "Throughput", "throughput",
        "Throughput above base", above_base, "MiB/s", ctx.hours,
    ))
    result.included_throughput_mibps = FLEXIBLE_BASE_THROUGHPUT_MIBPS
    result.required_throughput_mibps = required
    result.notes.append(
        f"Base included throughput: {FLEXIBLE_BASE_THROUGHPUT_MIBPS:.0f} MiB/s (flat, not per TiB)"
    )
    result.notes.append(f"Required throughput: {required:,.2f} MiB/s")


# ==================== Strategies ====================
# Each strategy is a pure function of the context. Tier-specific numbers
# (included throughput per TiB) come from the permutation itself.

def price_regular(ctx: FormulaContext) -> StrategyResult:
    """Permutations 1, 4, 7: capacity x unit price x hours."""
    result = StrategyResult()
    tier = ctx.permutation.base_tier.value
    result.add(_priced_component(
        result, ctx.pricing.capacity, "Capacity", "capacity",
        f"{tier} capacity", ctx.billed_capacity_gib, "GiB", ctx.hours,
    ))
    result.included_throughput_mibps, note = _included_throughput_note(ctx)
    result.notes.append(note)
    return result


def price_double_encrypted(ctx: FormulaContext) -> StrategyResult:
    """Permutations 2, 5, 8: capacity x double-encrypted unit price x hours."""
    result = StrategyResult()
    tier = ctx.permutation.base_tier.value
    result.add(_priced_component(
        result, ctx.pricing.double_encrypted_capacity, "Capacity (Double Encrypted)", "capacity",
        f"{tier} double encrypted capacity", ctx.billed_capacity_gib, "GiB", ctx.hours,
    ))
    result.included_throughput_mibps, note = _included_throughput_note(ctx)
    result.notes.append(note)
    result.notes.append("Double encryption enabled")
    result.notes.append("Double encryption cannot be combined with Cool Access")
    return result


def price_cool_access(ctx: FormulaContext) -> StrategyResult:
    """Permutations 3, 6, 9: hot and cool capacity priced separately, plus tiering and retrieval."""
    result = StrategyResult()
    tier = ctx.permutation.base_tier
    _add_cool_tier(ctx, result, tier.value)

    included, _ = _included_throughput_note(ctx)
    per_tib = ctx.permutation.throughput_per_tib
    result.included_throughput_mibps = included
    if per_tib < INCLUDED_THROUGHPUT_PER_TIB[tier]:
        result.notes.append(
            f"Cool access enabled - throughput reduced to {included:,.2f} MiB/s ({per_tib:.0f} MiB/s per TiB)"
        )
    else:
        result.notes.append(
            f"Cool access enabled - included throughput {included:,.2f} MiB/s ({per_tib:.0f} MiB/s per TiB, no reduction)"
        )
    return result


def price_flexible_regular(ctx: FormulaContext) -> StrategyResult:
    """Permutation 10: capacity plus throughput above the flat 128 MiB/s base."""
    result = StrategyResult()
    result.add(_priced_component(
        result, ctx.pricing.capacity, "Capacity", "capacity",
        "Flexible capacity", ctx.billed_capacity_gib, "GiB", ctx.hours,
    ))
    _add_flexible_throughput(ctx, result)
    return result


def price_flexible_cool_access(ctx: FormulaContext) -> StrategyResult:
    """Permutation 11: cool tiering with throughput priced independently."""
    result = StrategyResult()
    _add_cool_tier(ctx, result, "Flexible")
    _add_flexible_throughput(ctx, result)
    result.notes.append("Cool access enabled with independent throughput pricing")
    return result


Strategy = Callable[[FormulaContext], StrategyResult]

STRATEGIES: Dict[PermutationId, Strategy] = {
    PermutationId.STANDARD_REGULAR: price_regular,
    PermutationId.STANDARD_DOUBLE_ENCRYPTED: price_double_encrypted,
    PermutationId.STANDARD_COOL_ACCESS: price_cool_access,
    PermutationId.PREMIUM_REGULAR: price_regular,
    PermutationId.PREMIUM_DOUBLE_ENCRYPTED: price_double_encrypted,
    PermutationId.PREMIUM_COOL_ACCESS: price_cool_access,
    PermutationId.ULTRA_REGULAR: price_regular,
    PermutationId.ULTRA_DOUBLE_ENCRYPTED: price_double_encrypted,
    PermutationId.ULTRA_COOL_ACCESS: price_cool_access,
    PermutationId.FLEXIBLE_REGULAR: price_flexible_regular,
    PermutationId.FLEXIBLE_COOL_ACCESS: price_flexible_cool_access,
}

_unhandled = set(PermutationId) - set(STRATEGIES)
if _unhandled:
    raise RuntimeError(f"No pricing strategy for permutations: {sorted(int(p) for p in _unhandled)}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def billing_period(days: int, start: Optional[datetime], now: datetime) -> Tuple[datetime, datetime]:
    """Explicit start, or the trailing period ending at today's midnight UTC."""
    length = timedelta(days=max(days, 0))
    if start is not None:
        return start, start + length
    end = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return end - length, end


class CostFormulaEngine:
    """Service that turns permutation + quantities into an itemized retail CostEstimate."""

    def __init__(self, price_cache: PriceCache, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize engine.

        Args:
            price_cache: Shared price cache used to resolve unit prices
            clock: Time source for default billing periods
        """
        self.price_cache = price_cache
        self._clock = clock or _utcnow

    async def calculate(self, permutation: PermutationConfig, inputs: AnfCostInputs) -> CostEstimate:
        """
        Calculate the retail cost of one volume for one billing period.

        Missing prices and invalid inputs never abort the calculation: the
        affected component is omitted and the problem is recorded on the
        estimate.

        Args:
            permutation: Pricing variant of the volume
            inputs: Capacities, moved data, throughput and billing period

        Returns:
            CostEstimate in the RETAIL state
        """
        validation_errors = inputs.validate(permutation)
        if validation_errors:
            logger.warning(
                f"Cost calculation validation failed for {inputs.resource_name or inputs.resource_id}: "
                f"{', '.join(validation_errors)}"
            )

        notes: List[str] = []
        billed_capacity = inputs.provisioned_capacity_gib
        minimum = permutation.minimum_capacity_gib
        if billed_capacity < minimum:
            notes.append(
                f"Provisioned capacity {billed_capacity:,.2f} GiB is below the {minimum:,.0f} GiB minimum; "
                f"billed at {minimum:,.0f} GiB (shortfall {minimum - billed_capacity:,.2f} GiB)"
            )
            billed_capacity = minimum

        pricing = await self.resolve_pricing(permutation, inputs.region)
        context = FormulaContext(
            permutation=permutation,
            inputs=inputs,
            pricing=pricing,
            billed_capacity_gib=billed_capacity,
            hours=inputs.billing_period_hours,
        )
        result = STRATEGIES[permutation.id](context)
        notes.extend(result.notes)
        notes.append("Snapshots consume volume capacity (no separate charge)")

        period_start, period_end = billing_period(inputs.billing_period_days, inputs.period_start, self._clock())
        estimate = CostEstimate(
            resource_id=inputs.resource_id,
            resource_name=inputs.resource_name,
            resource_type="ANF",
            region=normalize_region(inputs.region),
            period_start=period_start,
            period_end=period_end,
            billing_hours=inputs.billing_period_hours,
            components=result.components,
            permutation_id=int(permutation.id),
            permutation_name=permutation.name,
            notes=notes,
            warnings=result.warnings,
            validation_errors=validation_errors,
            billed_capacity_gib=billed_capacity,
            included_throughput_mibps=result.included_throughput_mibps,
            required_throughput_mibps=result.required_throughput_mibps,
        )

        logger.info(
            f"Calculated ANF cost for {inputs.resource_name or inputs.resource_id} "
            f"(permutation {int(permutation.id)}): ${estimate.total:.2f} for {inputs.billing_period_days} days"
        )
        return estimate

    async def calculate_by_id(self, permutation_id: int, inputs: AnfCostInputs) -> CostEstimate:
        return await self.calculate(get_permutation(permutation_id), inputs)

    async def resolve_pricing(self, permutation: PermutationConfig, region: str) -> PermutationPricing:
        """Resolve every unit price the permutation needs, one upstream query per price list."""
        level = permutation.base_tier.value
        level_query = anf_query(region, level)
        wanted: Dict[str, Tuple[str, PriceQuery]] = {}

        if permutation.double_encryption:
            wanted["double_encrypted_capacity"] = (anf_meter_key(level, ANF_CAPACITY_DOUBLE_ENCRYPTED), level_query)
        else:
            wanted["capacity"] = (anf_meter_key(level, ANF_CAPACITY), level_query)
        if permutation.cool_access:
            cool_query = anf_cool_query(region)
            wanted["cool_capacity"] = (anf_cool_meter_key(ANF_COOL_STORAGE), cool_query)
            wanted["cool_transfer"] = (anf_cool_meter_key(ANF_COOL_TRANSFER), cool_query)
        if permutation.is_flexible:
            wanted["flexible_throughput"] = (anf_meter_key(level, ANF_THROUGHPUT), level_query)

        prices = await resolve_prices(self.price_cache, normalize_region(region), wanted)
        return PermutationPricing(**prices)
