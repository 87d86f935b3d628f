"""
Cost reconciler.
Adjusts retail estimates with actual billed costs, either meter by meter or by scaling to the billed total.
"""
from typing import Awaitable, Callable, Dict, List, Sequence, Tuple
from dataclasses import replace
from datetime import datetime
from enum import Enum
import logging
import re

from costengine.domain.cost_models import CostComponent, CostEstimate, EstimateState, MeterCostEntry
from costengine.services.meter_classifier import classify_meter, extract_billing_metadata


logger = logging.getLogger(__name__)

ActualCostLookup = Callable[[str, datetime, datetime], Awaitable[List[MeterCostEntry]]]

TOTAL_NOTE = "Actual billed total from Cost Management applied; retail components scaled to match."
METER_LEVEL_NOTE = "Enriched with actual meter-level costs from Cost Management API."

_FILE_SHARE_PATTERN = re.compile(
    r"^(?P<account>/subscriptions/[^/]+/resourcegroups/[^/]+/providers/microsoft\.storage/storageaccounts/[^/]+)"
    r"/fileservices/[^/]+/shares/[^/]+/?$",
    re.IGNORECASE,
)
_ANF_VOLUME_PATTERN = re.compile(
    r"^(?P<pool>/subscriptions/[^/]+/resourcegroups/[^/]+/providers/microsoft\.netapp/netappaccounts/[^/]+"
    r"/capacitypools/[^/]+)/volumes/[^/]+/?$",
    re.IGNORECASE,
)


class ReconciliationMode(Enum):
    METER_LEVEL = "meter"
    TOTAL = "total"


def billing_scope(resource_id: str) -> str:
    """
    Resource id under which a resource's costs are billed.

    File shares are billed on their storage account and ANF volumes on their
    capacity pool; every other id is its own scope.
    """
    resource_id = resource_id or ""
    match = _FILE_SHARE_PATTERN.match(resource_id) or _ANF_VOLUME_PATTERN.match(resource_id)
    if match:
        return match.group(1)
    return resource_id


def _with_note(notes: List[str], note: str) -> List[str]:
    return list(notes) if note in notes else list(notes) + [note]


def _not_applied(estimate: CostEstimate, reason: str) -> CostEstimate:
    """
    Result when no actual costs could be applied.

    A RECONCILED estimate keeps its earlier actual costs and flags, so its
    state always matches actual_costs_applied.
    """
    if estimate.state == EstimateState.RECONCILED:
        logger.info(
            f"Keeping earlier actual costs for {estimate.resource_name or estimate.resource_id} ({reason})"
        )
        return estimate
    return replace(estimate, actual_costs_applied=False, not_applied_reason=reason)


class CostReconciler:
    """Service for reconciling retail estimates with actual billing."""

    async def reconcile(
        self,
        estimate: CostEstimate,
        actual_lookup: ActualCostLookup,
        mode: ReconciliationMode = ReconciliationMode.TOTAL
    ) -> CostEstimate:
        """
        Reconcile an estimate with actual billed costs.

        The input estimate is never modified. Running the same reconciliation
        again on the result yields an equal estimate.

        Args:
            estimate: Retail (or already reconciled) estimate
            actual_lookup: Async callable (scope_resource_id, period_start, period_end) -> meter rows
            mode: Meter-level replacement or total scaling

        Returns:
            New CostEstimate; RECONCILED when actual costs were applied
        """
        scope = billing_scope(estimate.resource_id)
        try:
            entries = await actual_lookup(scope, estimate.period_start, estimate.period_end)
        except Exception as error:
            logger.error(f"Actual cost lookup failed for {scope}: {error}", exc_info=True)
            return _not_applied(estimate, f"actual cost lookup failed: {error}")

        if not entries:
            logger.info(f"No meter data for {scope}, keeping current estimate")
            return _not_applied(estimate, "no meter data")

        if mode == ReconciliationMode.METER_LEVEL:
            return self._apply_meter_level(estimate, entries)
        return self._apply_total(estimate, entries)

    def _apply_total(self, estimate: CostEstimate, entries: Sequence[MeterCostEntry]) -> CostEstimate:
        actual_total = sum(entry.cost for entry in entries)
        if actual_total <= 0:
            logger.warning(
                f"Actual cost for {estimate.resource_id} is {actual_total:.2f}, keeping current estimate"
            )
            return _not_applied(estimate, "actual cost not positive")

        retail_total = estimate.total
        if retail_total > 0:
            factor = actual_total / retail_total
            components = [component.scaled(factor) for component in estimate.components]
        else:
            factor = None
            components = [CostComponent(
                name="Actual Billed Cost",
                component_type="actual-billed",
                description=f"Actual billed cost ({len(entries)} meter rows)",
                quantity=1,
                unit="total",
                unit_price=actual_total,
                cost=actual_total,
                is_estimated=False,
                notes="Actual billed cost from Cost Management API",
            )]

        logger.info(
            f"Reconciled {estimate.resource_name or estimate.resource_id} to actual total "
            f"${actual_total:.2f} (retail ${retail_total:.2f}"
            f"{f', factor {factor:.4f}' if factor is not None else ''})"
        )
        return replace(
            estimate,
            components=components,
            notes=_with_note(estimate.notes, TOTAL_NOTE),
            state=EstimateState.RECONCILED,
            actual_costs_applied=True,
            meter_count=len({(entry.meter, entry.meter_subcategory) for entry in entries}),
            not_applied_reason=None,
        )

    def _apply_meter_level(self, estimate: CostEstimate, entries: Sequence[MeterCostEntry]) -> CostEstimate:
        groups: Dict[Tuple[str, str], List[MeterCostEntry]] = {}
        for entry in entries:
            groups.setdefault((entry.meter or "", entry.meter_subcategory or ""), []).append(entry)

        warnings = list(estimate.warnings)
        components: List[CostComponent] = []
        for (meter, subcategory), rows in sorted(groups.items()):
            cost = sum(row.cost for row in rows)
            if cost < 0:
                warning = f"Meter '{meter}' billed a net credit of {cost:.2f}; counted as zero"
                logger.warning(f"{warning} for {estimate.resource_id}")
                if warning not in warnings:
                    warnings.append(warning)
                cost = 0.0
            quantity = sum(row.quantity or 0.0 for row in rows)
            components.append(CostComponent(
                name=meter,
                component_type=classify_meter(meter, subcategory),
                description=f"{meter} ({subcategory})" if subcategory else meter,
                quantity=quantity,
                unit=rows[0].unit or "units",
                unit_price=cost / quantity if quantity else cost,
                cost=cost,
                is_estimated=False,
                notes=f"Meter: {meter}, Subcategory: {subcategory}",
            ))

        metadata = extract_billing_metadata(
            entries, estimate.resource_type, estimate.period_start, estimate.period_end
        )
        reconciled = replace(
            estimate,
            components=components,
            notes=_with_note(estimate.notes, METER_LEVEL_NOTE),
            warnings=warnings,
            state=EstimateState.RECONCILED,
            actual_costs_applied=True,
            meter_count=len(groups),
            not_applied_reason=None,
            billing_metadata=metadata,
        )
        logger.info(
            f"Applied {len(groups)} actual meters to {estimate.resource_name or estimate.resource_id}: "
            f"${reconciled.total:.2f}"
        )
        return reconciled
