"""
Retail cost calculators for Azure Files shares and managed disks.

Unlike ANF volumes these resources are priced from monthly retail meters
(per GiB, per disk or per 10K transactions), prorated over the billing
period. Prices listed per hour are billed per hour instead.
"""
from typing import Callable, Dict, List, Optional, Tuple
from datetime import datetime, timezone
import logging

from costengine.core.config import config
from costengine.domain.cost_inputs import (
    AzureFilesCostInputs,
    ManagedDiskCostInputs,
    PROVISIONED_FILES_MIN_GIB,
)
from costengine.domain.cost_models import CostComponent, CostEstimate, MeterPrice
from costengine.pricing.meter_keys import (
    PriceQuery,
    azure_files_meter_key,
    azure_files_query,
    is_flexible_disk,
    managed_disk_meter_key,
    managed_disk_query,
    normalize_region,
)
from costengine.pricing.price_cache import PriceCache, resolve_prices
from costengine.services.cost_formula_engine import billing_period


logger = logging.getLogger(__name__)

TRANSACTION_UNIT = 10000.0

# Upper size bound (GiB) -> size number; larger disks get the last number
_SIZE_STEPS = [(4, 1), (8, 2), (16, 3), (32, 4), (64, 6), (128, 10), (256, 15), (512, 20),
               (1024, 30), (2048, 40), (4096, 50), (8192, 60), (16384, 70)]
DISK_SIZE_SKUS = {
    "premiumssd": ("P", _SIZE_STEPS),
    "standardssd": ("E", _SIZE_STEPS),
    "standardhdd": ("S", _SIZE_STEPS[3:]),
}
LARGEST_DISK_SIZE = 80


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def disk_size_sku(disk_type: str, size_gib: float) -> Optional[str]:
    """
    Size sku billed for a fixed-tier disk, e.g. ("Premium SSD", 1000) -> "P30".

    Returns None for flexible (Premium SSD v2, Ultra) and unknown disk types.
    """
    entry = DISK_SIZE_SKUS.get(disk_type.replace(" ", "").lower())
    if entry is None:
        return None
    prefix, steps = entry
    for bound, number in steps:
        if size_gib <= bound:
            return f"{prefix}{number}"
    return f"{prefix}{LARGEST_DISK_SIZE}"


def _months(hours: int) -> float:
    return hours / float(config.DAYS_PER_MONTH * config.HOURS_PER_DAY)


def _retail_component(
    warnings: List[str],
    price: Optional[MeterPrice],
    component_type: str,
    label: str,
    quantity: float,
    unit: str,
    hours: int,
    usage: bool = False
) -> Optional[CostComponent]:
    """
    Price one line.

    ``usage`` lines (transactions, egress) already hold the period's quantity
    and are billed per unit; the others are billed per hour or per month of
    the period, following the meter's unit of measure.
    """
    if quantity <= 0 or hours <= 0:
        return None
    if price is None or not price.is_usable:
        warnings.append(f"No retail price available for {label}; component omitted")
        return None
    if price.degraded:
        warnings.append(f"Price for {label} served from an expired cache entry")

    if usage:
        cost = quantity * price.unit_price
        description = f"{label} ({quantity:,.2f} {unit} @ ${price.unit_price:.4f}/{unit})"
        billing_hours = None
    elif "hour" in (price.unit_of_measure or "").lower():
        cost = quantity * price.unit_price * hours
        description = f"{label} ({quantity:,.2f} {unit} @ ${price.unit_price:.6f}/{unit}/hour)"
        billing_hours = hours
    else:
        months = _months(hours)
        cost = quantity * price.unit_price * months
        description = f"{label} ({quantity:,.2f} {unit} @ ${price.unit_price:.4f}/{unit}/month x {months:.2f})"
        billing_hours = hours
    return CostComponent(
        name=label,
        component_type=component_type,
        description=description,
        quantity=quantity,
        unit=unit,
        unit_price=price.unit_price,
        billing_hours=billing_hours,
        cost=cost,
        is_estimated=True,
    )


def _add(components: List[CostComponent], component: Optional[CostComponent]) -> None:
    if component is not None:
        components.append(component)


class AzureFilesCostCalculator:
    """Service that prices one Azure Files share from retail meters."""

    def __init__(self, price_cache: PriceCache, clock: Optional[Callable[[], datetime]] = None):
        self.price_cache = price_cache
        self._clock = clock or _utcnow

    async def calculate(self, inputs: AzureFilesCostInputs) -> CostEstimate:
        """
        Calculate the retail cost of one share for one billing period.

        Premium shares bill provisioned capacity (minimum 100 GiB), which
        includes transactions. Pay-as-you-go shares bill used capacity and
        transactions at the average of the write, read and list prices.
        Snapshots and egress are billed for both.
        """
        validation_errors = inputs.validate()
        region = normalize_region(inputs.region)
        redundancy = inputs.redundancy.upper()
        hours = inputs.billing_period_hours
        months = _months(hours)
        notes: List[str] = []
        warnings: List[str] = []

        if inputs.is_provisioned:
            tier = "ProvisionedV1"
            query = azure_files_query(region, redundancy, provisioned=True)
            capacity = max(inputs.provisioned_capacity_gib, PROVISIONED_FILES_MIN_GIB)
            if inputs.provisioned_capacity_gib < PROVISIONED_FILES_MIN_GIB:
                notes.append(f"Premium shares are billed for at least {PROVISIONED_FILES_MIN_GIB:,.0f} GiB")
            notes.append(f"Provisioned {capacity:,.0f} GiB includes transactions and performance")
        else:
            tier = inputs.tier
            query = azure_files_query(region, redundancy, tier=inputs.tier)
            capacity = inputs.used_capacity_gib or inputs.provisioned_capacity_gib

        wanted: Dict[str, Tuple[str, PriceQuery]] = {
            "storage": (azure_files_meter_key(tier, redundancy, "storage"), query),
        }
        bill_transactions = not inputs.is_provisioned and inputs.transactions_per_month > 0
        if bill_transactions:
            for facet in ("writeoperations", "readoperations", "listoperations"):
                wanted[facet] = (azure_files_meter_key(tier, redundancy, facet), query)
        if inputs.snapshot_size_gib > 0:
            wanted["snapshot"] = (azure_files_meter_key("snapshot", redundancy, "storage"), query)
        if inputs.egress_gib_per_month > 0:
            wanted["egress"] = (azure_files_meter_key("common", redundancy, "egress"), query)
        prices = await resolve_prices(self.price_cache, region, wanted)

        components: List[CostComponent] = []
        _add(components, _retail_component(
            warnings, prices["storage"], "storage", f"{inputs.tier} storage", capacity, "GiB", hours,
        ))
        if bill_transactions:
            _add(components, self._transactions(warnings, prices, inputs.transactions_per_month * months, hours))
        if inputs.snapshot_size_gib > 0:
            _add(components, _retail_component(
                warnings, prices["snapshot"], "snapshots", "Snapshots", inputs.snapshot_size_gib, "GiB", hours,
            ))
        if inputs.egress_gib_per_month > 0:
            _add(components, _retail_component(
                warnings, prices["egress"], "egress", "Data egress",
                inputs.egress_gib_per_month * months, "GiB", hours, usage=True,
            ))

        period_start, period_end = billing_period(inputs.billing_period_days, inputs.period_start, self._clock())
        estimate = CostEstimate(
            resource_id=inputs.resource_id,
            resource_name=inputs.resource_name,
            resource_type="AzureFiles",
            region=region,
            period_start=period_start,
            period_end=period_end,
            billing_hours=hours,
            components=components,
            notes=notes,
            warnings=warnings,
            validation_errors=validation_errors,
            billed_capacity_gib=capacity,
        )
        estimate.confidence_level = self._confidence(inputs, estimate)
        logger.info(
            f"Calculated Azure Files cost for {inputs.resource_name or inputs.resource_id} "
            f"({'provisioned' if inputs.is_provisioned else inputs.tier}): ${estimate.total:.2f} "
            f"for {inputs.billing_period_days} days ({estimate.confidence_level:.0f}% confidence)"
        )
        return estimate

    @staticmethod
    def _transactions(
        warnings: List[str],
        prices: Dict[str, Optional[MeterPrice]],
        transactions: float,
        hours: int
    ) -> Optional[CostComponent]:
        quantity = transactions / TRANSACTION_UNIT
        if quantity <= 0 or hours <= 0:
            return None
        usable = [
            prices[facet] for facet in ("writeoperations", "readoperations", "listoperations")
            if prices.get(facet) is not None and prices[facet].is_usable
        ]
        if not usable:
            warnings.append("No retail price available for transactions; component omitted")
            return None
        average = sum(price.unit_price for price in usable) / len(usable)
        if any(price.degraded for price in usable):
            warnings.append("Price for transactions served from an expired cache entry")
        return CostComponent(
            name="Transactions",
            component_type="transactions",
            description=f"Transactions ({transactions:,.0f} operations @ ${average:.4f}/10K, averaged)",
            quantity=quantity,
            unit="10K transactions",
            unit_price=average,
            cost=quantity * average,
        )

    @staticmethod
    def _confidence(inputs: AzureFilesCostInputs, estimate: CostEstimate) -> float:
        confidence = 100.0
        if not inputs.is_provisioned:
            if not inputs.used_capacity_gib:
                confidence -= 20
                estimate.notes.append("Using provisioned capacity instead of actual usage")
            if inputs.transactions_per_month <= 0:
                confidence -= 25
                estimate.notes.append("Transaction metrics unavailable, cost may be underestimated")
        if not estimate.components:
            confidence = 10
        confidence -= 10 * len(estimate.warnings)
        return max(10.0, min(100.0, confidence))


class ManagedDiskCostCalculator:
    """Service that prices one managed disk from retail meters."""

    def __init__(self, price_cache: PriceCache, clock: Optional[Callable[[], datetime]] = None):
        self.price_cache = price_cache
        self._clock = clock or _utcnow

    async def calculate(self, inputs: ManagedDiskCostInputs) -> CostEstimate:
        """
        Calculate the retail cost of one disk for one billing period.

        Fixed-tier disks bill the monthly price of their size sku; Premium SSD
        v2 and Ultra disks bill capacity, IOPS and throughput separately.
        Standard disks also bill transactions.
        """
        validation_errors = inputs.validate()
        region = normalize_region(inputs.region)
        redundancy = inputs.redundancy.upper()
        hours = inputs.billing_period_hours
        flexible = is_flexible_disk(inputs.disk_type)
        notes: List[str] = []
        warnings: List[str] = []
        components: List[CostComponent] = []

        if flexible:
            sku = "v2" if "v2" in inputs.disk_type.lower() else "ultra"
            query = managed_disk_query(region, inputs.disk_type, sku, redundancy)
            wanted: Dict[str, Tuple[str, PriceQuery]] = {
                facet: (managed_disk_meter_key(sku, redundancy, facet), query)
                for facet in ("capacity", "iops", "throughput")
            }
            wanted["snapshot"] = (managed_disk_meter_key("snapshot", redundancy), query)
        else:
            sku = disk_size_sku(inputs.disk_type, inputs.disk_size_gib)
            if sku is None:
                validation_errors.append(f"Unknown disk type '{inputs.disk_type}'")
                wanted = {}
            else:
                query = managed_disk_query(region, inputs.disk_type, sku, redundancy)
                wanted = {"disk": (managed_disk_meter_key(sku, redundancy), query)}
                if "standard" in inputs.disk_type.lower() and inputs.transactions_per_month > 0:
                    wanted["operations"] = (managed_disk_meter_key(sku, redundancy, "operations"), query)
                snapshot_query = managed_disk_query(region, inputs.disk_type, "Snapshot", redundancy)
                wanted["snapshot"] = (managed_disk_meter_key("snapshot", redundancy), snapshot_query)
                notes.append(f"Disk tier: {sku}")

        if inputs.snapshot_size_gib <= 0:
            wanted.pop("snapshot", None)
        prices = await resolve_prices(self.price_cache, region, wanted) if wanted else {}

        if flexible:
            _add(components, _retail_component(
                warnings, prices["capacity"], "storage", f"{inputs.disk_type} capacity",
                inputs.disk_size_gib, "GiB", hours,
            ))
            _add(components, _retail_component(
                warnings, prices["iops"], "operations", f"{inputs.disk_type} provisioned IOPS",
                inputs.provisioned_iops, "IOPS", hours,
            ))
            _add(components, _retail_component(
                warnings, prices["throughput"], "operations", f"{inputs.disk_type} provisioned throughput",
                inputs.provisioned_throughput_mbps, "MB/s", hours,
            ))
        elif "disk" in prices:
            _add(components, _retail_component(
                warnings, prices["disk"], "storage", f"{inputs.disk_type} {sku} ({inputs.disk_size_gib:,.0f} GiB)",
                1, "disk", hours,
            ))
            if "operations" in prices:
                _add(components, _retail_component(
                    warnings, prices["operations"], "transactions", "Disk transactions",
                    inputs.transactions_per_month * _months(hours) / TRANSACTION_UNIT, "10K transactions",
                    hours, usage=True,
                ))
        if "snapshot" in prices:
            _add(components, _retail_component(
                warnings, prices["snapshot"], "snapshots", "Disk snapshots", inputs.snapshot_size_gib, "GiB", hours,
            ))

        period_start, period_end = billing_period(inputs.billing_period_days, inputs.period_start, self._clock())
        estimate = CostEstimate(
            resource_id=inputs.resource_id,
            resource_name=inputs.resource_name,
            resource_type="ManagedDisk",
            region=region,
            period_start=period_start,
            period_end=period_end,
            billing_hours=hours,
            components=components,
            notes=notes,
            warnings=warnings,
            validation_errors=validation_errors,
            billed_capacity_gib=inputs.disk_size_gib,
        )
        estimate.confidence_level = self._confidence(inputs, flexible, estimate)
        logger.info(
            f"Calculated managed disk cost for {inputs.resource_name or inputs.resource_id} "
            f"({inputs.disk_type} {sku or ''}): ${estimate.total:.2f} for {inputs.billing_period_days} days "
            f"({estimate.confidence_level:.0f}% confidence)"
        )
        return estimate

    @staticmethod
    def _confidence(inputs: ManagedDiskCostInputs, flexible: bool, estimate: CostEstimate) -> float:
        # Retail prices only; reconciliation with billed costs is what raises confidence
        confidence = 75.0
        if flexible and (inputs.provisioned_iops <= 0 or inputs.provisioned_throughput_mbps <= 0):
            confidence -= 20
            estimate.notes.append("IOPS/throughput not specified for flexible pricing disk")
        if not estimate.components:
            confidence = 10
        confidence -= 5 * len(estimate.warnings)
        return max(10.0, min(100.0, confidence))
