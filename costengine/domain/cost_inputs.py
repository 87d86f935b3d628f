"""
Inputs for volume, file share and managed disk cost calculation.
Quantities are in GiB, MiB/s and days; conversions from raw telemetry live here.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, replace
from datetime import datetime

from costengine.core.config import config
from costengine.domain.assumption_models import CoolDataAssumptions
from costengine.domain.permutations import (
    PermutationConfig,
    MIN_CAPACITY_GIB,
    MIN_COOL_ACCESS_CAPACITY_GIB,
)


BYTES_PER_GIB = 1024.0 ** 3


def bytes_to_gib(value: Optional[float]) -> float:
    return (value or 0.0) / BYTES_PER_GIB


@dataclass(frozen=True)
class AnfCostInputs:
    """Quantities for one volume over one billing period."""
    region: str
    provisioned_capacity_gib: float
    resource_id: str = ""
    resource_name: str = ""
    hot_capacity_gib: Optional[float] = None
    cool_capacity_gib: Optional[float] = None
    data_tiered_to_cool_gib: Optional[float] = None
    data_retrieved_from_cool_gib: Optional[float] = None
    required_throughput_mibps: Optional[float] = None
    billing_period_days: int = config.DEFAULT_BILLING_PERIOD_DAYS
    period_start: Optional[datetime] = None

    @property
    def billing_period_hours(self) -> int:
        return max(self.billing_period_days, 0) * config.HOURS_PER_DAY

    def validate(self, permutation: PermutationConfig) -> List[str]:
        """
        Check the inputs against the permutation's requirements.

        Problems are reported, not raised: the engine still prices what it can.
        """
        errors = []
        if self.billing_period_days <= 0:
            errors.append("Billing period must be at least one day")
        if self.provisioned_capacity_gib < MIN_CAPACITY_GIB:
            errors.append(f"ANF volumes require minimum {MIN_CAPACITY_GIB:.0f} GiB provisioned capacity")
        if permutation.cool_access:
            if self.hot_capacity_gib is None or self.cool_capacity_gib is None:
                errors.append("Cool access enabled but hot/cool capacity breakdown not provided")
            if self.provisioned_capacity_gib < MIN_COOL_ACCESS_CAPACITY_GIB:
                errors.append(
                    f"Cool access requires minimum {MIN_COOL_ACCESS_CAPACITY_GIB:,.0f} GiB provisioned capacity"
                )
        if permutation.is_flexible and self.required_throughput_mibps is None:
            errors.append("Flexible tier requires throughput specification")
        for name in ("hot_capacity_gib", "cool_capacity_gib", "data_tiered_to_cool_gib",
                     "data_retrieved_from_cool_gib", "required_throughput_mibps"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"{name} must not be negative")
        return errors

    def with_volume_metrics(self, metrics: Dict[str, Any]) -> "AnfCostInputs":
        """
        Fill the hot/cool breakdown from a volume's cool-tier telemetry.

        ``metrics`` maps metric names to aggregates in bytes, e.g.
        ``{"VolumeCoolTierSize": {"average": ...}, "VolumeCoolTierDataWriteSize": {"total": ...}}``.
        Missing metrics count as zero.
        """
        cool_gib = bytes_to_gib(_aggregate(metrics, "VolumeCoolTierSize", "average"))
        return replace(
            self,
            cool_capacity_gib=cool_gib,
            hot_capacity_gib=max(self.provisioned_capacity_gib - cool_gib, 0.0),
            data_tiered_to_cool_gib=bytes_to_gib(_aggregate(metrics, "VolumeCoolTierDataWriteSize", "total")),
            data_retrieved_from_cool_gib=bytes_to_gib(_aggregate(metrics, "VolumeCoolTierDataReadSize", "total")),
        )

    def with_cool_assumptions(self, assumptions: CoolDataAssumptions) -> "AnfCostInputs":
        """Fill a missing hot/cool breakdown from configured assumptions."""
        if self.hot_capacity_gib is not None and self.cool_capacity_gib is not None:
            return self
        cool_gib = self.provisioned_capacity_gib * assumptions.cool_data_percentage / 100.0
        retrieved = self.data_retrieved_from_cool_gib
        if retrieved is None:
            retrieved = cool_gib * assumptions.cool_retrieval_percentage / 100.0
        return replace(
            self,
            cool_capacity_gib=cool_gib,
            hot_capacity_gib=self.provisioned_capacity_gib - cool_gib,
            data_retrieved_from_cool_gib=retrieved,
        )


AZURE_FILES_PAYG_TIERS = ("Hot", "Cool", "TransactionOptimized")
PROVISIONED_FILES_MIN_GIB = 100.0


@dataclass(frozen=True)
class AzureFilesCostInputs:
    """
    Quantities for one Azure Files share over one billing period.

    Pay-as-you-go tiers (Hot, Cool, TransactionOptimized) bill used capacity
    and transactions; Premium (provisioned) shares bill provisioned capacity.
    Monthly quantities are prorated over the billing period.
    """
    region: str
    tier: str = "Hot"
    redundancy: str = "LRS"
    provisioned_capacity_gib: float = 0.0
    used_capacity_gib: Optional[float] = None
    snapshot_size_gib: float = 0.0
    transactions_per_month: float = 0.0
    egress_gib_per_month: float = 0.0
    resource_id: str = ""
    resource_name: str = ""
    billing_period_days: int = config.DEFAULT_BILLING_PERIOD_DAYS
    period_start: Optional[datetime] = None

    @property
    def is_provisioned(self) -> bool:
        return self.tier.replace(" ", "").lower() in ("premium", "provisioned", "provisionedv1")

    @property
    def billing_period_hours(self) -> int:
        return max(self.billing_period_days, 0) * config.HOURS_PER_DAY

    def validate(self) -> List[str]:
        errors = []
        if self.billing_period_days <= 0:
            errors.append("Billing period must be at least one day")
        tier = self.tier.replace(" ", "").lower()
        if not self.is_provisioned and tier not in [t.lower() for t in AZURE_FILES_PAYG_TIERS]:
            errors.append(f"Unknown Azure Files tier '{self.tier}'")
        for name in ("provisioned_capacity_gib", "used_capacity_gib", "snapshot_size_gib",
                     "transactions_per_month", "egress_gib_per_month"):
            value = getattr(self, name)
            if value is not None and value < 0:
                errors.append(f"{name} must not be negative")
        return errors


@dataclass(frozen=True)
class ManagedDiskCostInputs:
    """Quantities for one managed disk over one billing period."""
    region: str
    disk_size_gib: float
    disk_type: str = "Premium SSD"  # Premium SSD, Standard SSD, Standard HDD, Premium SSD v2, Ultra Disk
    redundancy: str = "LRS"
    snapshot_size_gib: float = 0.0
    transactions_per_month: float = 0.0
    provisioned_iops: float = 0.0  # Premium SSD v2 and Ultra only
    provisioned_throughput_mbps: float = 0.0  # Premium SSD v2 and Ultra only
    resource_id: str = ""
    resource_name: str = ""
    billing_period_days: int = config.DEFAULT_BILLING_PERIOD_DAYS
    period_start: Optional[datetime] = None

    @property
    def billing_period_hours(self) -> int:
        return max(self.billing_period_days, 0) * config.HOURS_PER_DAY

    def validate(self) -> List[str]:
        errors = []
        if self.billing_period_days <= 0:
            errors.append("Billing period must be at least one day")
        if self.disk_size_gib <= 0:
            errors.append("disk_size_gib must be positive")
        for name in ("snapshot_size_gib", "transactions_per_month", "provisioned_iops",
                     "provisioned_throughput_mbps"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")
        return errors


def _aggregate(metrics: Dict[str, Any], name: str, aggregation: str) -> float:
    entry = (metrics or {}).get(name)
    if isinstance(entry, dict):
        value = entry.get(aggregation)
        if isinstance(value, (int, float)):
            return float(value)
    return 0.0
