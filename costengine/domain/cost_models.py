"""
Domain models for cost estimation.
Defines unit prices, cost components, estimates and actual billing rows.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field, replace
from datetime import datetime, date
from enum import Enum


@dataclass(frozen=True)
class MeterPrice:
    """A unit price for one (region, meter_key) pair, as cached from the retail price list."""
    region: str
    meter_key: str
    unit_price: float
    unit_of_measure: str
    currency: str
    source_meter_name: str
    fetched_at: datetime
    expires_at: datetime
    resource_type: str = ""
    sku_name: str = ""
    product_name: str = ""
    meter_id: str = ""
    effective_date: Optional[str] = None
    degraded: bool = False  # served from an expired entry because the upstream failed

    @property
    def identity(self) -> tuple:
        return (self.region.lower(), self.meter_key)

    @property
    def is_usable(self) -> bool:
        """Zero-priced entries signal an incomplete upstream snapshot."""
        return self.unit_price > 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "region": self.region,
            "meter_key": self.meter_key,
            "unit_price": self.unit_price,
            "unit_of_measure": self.unit_of_measure,
            "currency": self.currency,
            "source_meter_name": self.source_meter_name,
            "fetched_at": self.fetched_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "resource_type": self.resource_type,
            "sku_name": self.sku_name,
            "product_name": self.product_name,
            "meter_id": self.meter_id,
            "effective_date": self.effective_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeterPrice":
        return cls(
            region=data["region"],
            meter_key=data["meter_key"],
            unit_price=float(data["unit_price"]),
            unit_of_measure=data.get("unit_of_measure", ""),
            currency=data.get("currency", "USD"),
            source_meter_name=data.get("source_meter_name", ""),
            fetched_at=datetime.fromisoformat(data["fetched_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            resource_type=data.get("resource_type", ""),
            sku_name=data.get("sku_name", ""),
            product_name=data.get("product_name", ""),
            meter_id=data.get("meter_id", ""),
            effective_date=data.get("effective_date"),
        )


@dataclass(frozen=True)
class CostComponent:
    """A single billable line of a cost estimate."""
    component_type: str  # e.g. "capacity", "capacity_hot", "throughput", "egress"
    description: str
    quantity: float
    unit: str  # e.g. "GiB", "MiB/s", "total"
    unit_price: float
    cost: float
    billing_hours: Optional[int] = None  # None for one-off per-unit charges
    is_estimated: bool = True  # False once derived from actual billing
    notes: Optional[str] = None
    name: str = ""

    def __post_init__(self):
        if self.cost < 0:
            raise ValueError(f"Cost component '{self.description}' has negative cost {self.cost}")

    def scaled(self, factor: float) -> "CostComponent":
        """Return a copy with cost multiplied by factor and marked as actual."""
        return replace(self, cost=self.cost * factor, is_estimated=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "component_type": self.component_type,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "billing_hours": self.billing_hours,
            "cost": round(self.cost, 4),
            "is_estimated": self.is_estimated,
            "notes": self.notes,
        }


class EstimateState(Enum):
    """Where an estimate's numbers come from."""
    RETAIL = "retail"
    RECONCILED = "reconciled"


@dataclass
class VolumeMetadataFromBilling:
    """Properties of a resource inferred from its billing meter names."""
    redundancy_type: Optional[str] = None
    has_geo_replication: bool = False
    storage_tier: Optional[str] = None
    service_level: Optional[str] = None
    disk_type: Optional[str] = None
    detected_protocols: List[str] = field(default_factory=list)
    average_read_operations_per_day: Optional[float] = None
    average_write_operations_per_day: Optional[float] = None
    average_list_operations_per_day: Optional[float] = None
    average_egress_gb_per_day: Optional[float] = None
    average_ingress_gb_per_day: Optional[float] = None
    total_meter_count: int = 0
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    confidence_score: float = 0.0
    additional: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "redundancy_type": self.redundancy_type,
            "has_geo_replication": self.has_geo_replication,
            "storage_tier": self.storage_tier,
            "service_level": self.service_level,
            "disk_type": self.disk_type,
            "detected_protocols": list(self.detected_protocols),
            "average_read_operations_per_day": self.average_read_operations_per_day,
            "average_write_operations_per_day": self.average_write_operations_per_day,
            "average_list_operations_per_day": self.average_list_operations_per_day,
            "average_egress_gb_per_day": self.average_egress_gb_per_day,
            "average_ingress_gb_per_day": self.average_ingress_gb_per_day,
            "total_meter_count": self.total_meter_count,
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
            "confidence_score": self.confidence_score,
            "additional": dict(self.additional),
        }


@dataclass
class CostEstimate:
    """
    Itemized cost of one resource over one billing period.

    The total is always derived from the current components. Reconciliation
    never edits an estimate in place; it returns a new one in the
    RECONCILED state.
    """
    resource_id: str
    resource_name: str
    region: str
    period_start: datetime
    period_end: datetime
    billing_hours: int
    components: List[CostComponent] = field(default_factory=list)
    resource_type: str = "ANF"
    permutation_id: Optional[int] = None
    permutation_name: Optional[str] = None
    currency: str = "USD"
    notes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    billed_capacity_gib: Optional[float] = None
    included_throughput_mibps: Optional[float] = None
    required_throughput_mibps: Optional[float] = None
    state: EstimateState = EstimateState.RETAIL
    actual_costs_applied: bool = False
    meter_count: int = 0
    not_applied_reason: Optional[str] = None
    billing_metadata: Optional[VolumeMetadataFromBilling] = None
    confidence_level: Optional[float] = None  # 10-100, set by the Azure Files and managed disk calculators

    @property
    def total(self) -> float:
        return sum(component.cost for component in self.components)

    @property
    def billing_days(self) -> int:
        return self.billing_hours // 24

    @property
    def is_fully_actual(self) -> bool:
        return bool(self.components) and all(not c.is_estimated for c in self.components)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        sorted_components = sorted(self.components, key=lambda c: c.cost, reverse=True)
        return {
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "resource_type": self.resource_type,
            "region": self.region,
            "permutation_id": self.permutation_id,
            "permutation_name": self.permutation_name,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "billing_hours": self.billing_hours,
            "currency": self.currency,
            "total_cost": round(self.total, 2),
            "components": [component.to_dict() for component in sorted_components],
            "notes": list(self.notes),
            "warnings": list(self.warnings),
            "validation_errors": list(self.validation_errors),
            "billed_capacity_gib": self.billed_capacity_gib,
            "included_throughput_mibps": self.included_throughput_mibps,
            "required_throughput_mibps": self.required_throughput_mibps,
            "state": self.state.value,
            "actual_costs_applied": self.actual_costs_applied,
            "meter_count": self.meter_count,
            "not_applied_reason": self.not_applied_reason,
            "billing_metadata": self.billing_metadata.to_dict() if self.billing_metadata else None,
            "confidence_level": self.confidence_level,
        }


@dataclass(frozen=True)
class MeterCostEntry:
    """One actual billing row: a resource's cost on one meter for one day."""
    resource_id: str
    meter: str
    meter_subcategory: str
    cost: float
    cost_usd: float
    currency: str
    usage_date: Optional[date]
    quantity: Optional[float] = None
    unit: Optional[str] = None
    meter_category: Optional[str] = None
    component_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "resource_id": self.resource_id,
            "meter": self.meter,
            "meter_subcategory": self.meter_subcategory,
            "meter_category": self.meter_category,
            "cost": self.cost,
            "cost_usd": self.cost_usd,
            "currency": self.currency,
            "usage_date": self.usage_date.isoformat() if self.usage_date else None,
            "quantity": self.quantity,
            "unit": self.unit,
            "component_type": self.component_type,
        }
