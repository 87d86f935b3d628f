"""
Estimate API endpoints.
Lists pricing permutations and prices a single ANF volume, file share or managed disk,
optionally reconciled with actual billing.
"""
import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from costengine.api.dependencies import (
    get_assumptions_resolver,
    get_azure_files_calculator,
    get_cost_engine,
    get_cost_management_client,
    get_cost_reconciler,
    get_managed_disk_calculator,
)
from costengine.billing.cost_management_client import CostManagementClient
from costengine.domain.assumption_models import AssumptionValidationError
from costengine.domain.cost_inputs import AnfCostInputs, AzureFilesCostInputs, ManagedDiskCostInputs
from costengine.domain.cost_models import CostEstimate
from costengine.domain.permutations import PermutationError, identify, list_permutations
from costengine.services.cool_data_assumptions import CoolDataAssumptionsResolver
from costengine.services.cost_formula_engine import CostFormulaEngine
from costengine.services.cost_reconciler import CostReconciler, ReconciliationMode
from costengine.services.storage_cost_calculators import AzureFilesCostCalculator, ManagedDiskCostCalculator


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["estimates"])


class AnfEstimateRequest(BaseModel):
    """Request model for pricing one ANF volume."""
    region: str
    service_level: str
    provisioned_capacity_gib: float = Field(..., ge=0)
    cool_access: bool = False
    double_encryption: bool = False
    resource_id: str = ""
    resource_name: str = ""
    hot_capacity_gib: Optional[float] = None
    cool_capacity_gib: Optional[float] = None
    data_tiered_to_cool_gib: Optional[float] = None
    data_retrieved_from_cool_gib: Optional[float] = None
    required_throughput_mibps: Optional[float] = None
    billing_period_days: int = Field(30, gt=0, le=366)
    period_start: Optional[datetime] = None
    # Cool-tier telemetry in bytes, e.g. {"VolumeCoolTierSize": {"average": 1.2e12}}
    volume_metrics: Optional[Dict[str, Any]] = None
    job_id: Optional[str] = None
    volume_id: Optional[str] = None
    reconcile: str = Field("none", pattern="^(none|total|meter)$")


class AzureFilesEstimateRequest(BaseModel):
    """Request model for pricing one Azure Files share."""
    region: str
    tier: str = Field("Hot", pattern="^(Hot|Cool|TransactionOptimized|Premium)$")
    redundancy: str = Field("LRS", pattern="^(LRS|ZRS|GRS|GZRS|RA-GRS|RA-GZRS)$")
    provisioned_capacity_gib: float = Field(0, ge=0)
    used_capacity_gib: Optional[float] = Field(None, ge=0)
    snapshot_size_gib: float = Field(0, ge=0)
    transactions_per_month: float = Field(0, ge=0)
    egress_gib_per_month: float = Field(0, ge=0)
    resource_id: str = ""
    resource_name: str = ""
    billing_period_days: int = Field(30, gt=0, le=366)
    period_start: Optional[datetime] = None
    reconcile: str = Field("none", pattern="^(none|total|meter)$")


class ManagedDiskEstimateRequest(BaseModel):
    """Request model for pricing one managed disk."""
    region: str
    disk_size_gib: float = Field(..., gt=0)
    disk_type: str = "Premium SSD"
    redundancy: str = Field("LRS", pattern="^(LRS|ZRS)$")
    snapshot_size_gib: float = Field(0, ge=0)
    transactions_per_month: float = Field(0, ge=0)
    provisioned_iops: float = Field(0, ge=0)
    provisioned_throughput_mbps: float = Field(0, ge=0)
    resource_id: str = ""
    resource_name: str = ""
    billing_period_days: int = Field(30, gt=0, le=366)
    period_start: Optional[datetime] = None
    reconcile: str = Field("none", pattern="^(none|total|meter)$")


class EstimateResponse(BaseModel):
    status: str
    estimate: Dict[str, Any]


class AnfEstimateResponse(BaseModel):
    """Response model for an ANF estimate."""
    status: str
    estimate: Dict[str, Any]
    assumptions: Optional[Dict[str, Any]] = None


class PermutationsResponse(BaseModel):
    status: str
    permutations: List[Dict[str, Any]]


@router.get("/permutations", response_model=PermutationsResponse)
async def get_permutations():
    """List the eleven ANF pricing permutations."""
    return PermutationsResponse(
        status="ok",
        permutations=[permutation.to_dict() for permutation in list_permutations()]
    )


@router.post("/estimates/anf", response_model=AnfEstimateResponse)
async def estimate_anf(
    request: AnfEstimateRequest,
    engine: CostFormulaEngine = Depends(get_cost_engine),
    reconciler: CostReconciler = Depends(get_cost_reconciler),
    cost_client: CostManagementClient = Depends(get_cost_management_client),
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    """
    Price one ANF volume for a billing period.

    Cool access volumes without a hot/cool breakdown take it from their
    telemetry when given, else from the resolved cool data assumptions.
    """
    try:
        permutation = identify(request.service_level, request.cool_access, request.double_encryption)
    except PermutationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    inputs = AnfCostInputs(
        region=request.region,
        provisioned_capacity_gib=request.provisioned_capacity_gib,
        resource_id=request.resource_id,
        resource_name=request.resource_name,
        hot_capacity_gib=request.hot_capacity_gib,
        cool_capacity_gib=request.cool_capacity_gib,
        data_tiered_to_cool_gib=request.data_tiered_to_cool_gib,
        data_retrieved_from_cool_gib=request.data_retrieved_from_cool_gib,
        required_throughput_mibps=request.required_throughput_mibps,
        billing_period_days=request.billing_period_days,
        period_start=request.period_start,
    )

    assumptions = None
    if permutation.cool_access and (inputs.hot_capacity_gib is None or inputs.cool_capacity_gib is None):
        if request.volume_metrics:
            inputs = inputs.with_volume_metrics(request.volume_metrics)
        else:
            try:
                assumptions = await resolver.resolve(request.job_id, request.volume_id)
            except AssumptionValidationError as e:
                raise HTTPException(status_code=400, detail=str(e))
            inputs = inputs.with_cool_assumptions(assumptions)

    try:
        estimate = await engine.calculate(permutation, inputs)
        estimate = await _maybe_reconcile(estimate, request.reconcile, reconciler, cost_client)
    except Exception as e:
        logger.error(f"ANF estimate failed for {request.resource_name or request.region}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Failed to calculate estimate: {str(e)}")

    return AnfEstimateResponse(
        status="ok",
        estimate=estimate.to_dict(),
        assumptions=assumptions.to_dict() if assumptions else None,
    )


async def _maybe_reconcile(
    estimate: CostEstimate,
    reconcile: str,
    reconciler: CostReconciler,
    cost_client: CostManagementClient
) -> CostEstimate:
    if reconcile == "none":
        return estimate
    return await reconciler.reconcile(estimate, cost_client.query_meter_costs, ReconciliationMode(reconcile))


@router.post("/estimates/azure-files", response_model=EstimateResponse)
async def estimate_azure_files(
    request: AzureFilesEstimateRequest,
    calculator: AzureFilesCostCalculator = Depends(get_azure_files_calculator),
    reconciler: CostReconciler = Depends(get_cost_reconciler),
    cost_client: CostManagementClient = Depends(get_cost_management_client)
):
    """Price one Azure Files share; the share's costs are billed on its storage account."""
    inputs = AzureFilesCostInputs(**request.model_dump(exclude={"reconcile"}))
    try:
        estimate = await calculator.calculate(inputs)
        estimate = await _maybe_reconcile(estimate, request.reconcile, reconciler, cost_client)
    except Exception as e:
        logger.error(f"Azure Files estimate failed for {request.resource_name or request.region}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Failed to calculate estimate: {str(e)}")
    return EstimateResponse(status="ok", estimate=estimate.to_dict())


@router.post("/estimates/managed-disk", response_model=EstimateResponse)
async def estimate_managed_disk(
    request: ManagedDiskEstimateRequest,
    calculator: ManagedDiskCostCalculator = Depends(get_managed_disk_calculator),
    reconciler: CostReconciler = Depends(get_cost_reconciler),
    cost_client: CostManagementClient = Depends(get_cost_management_client)
):
    """Price one managed disk from its size sku, or from capacity, IOPS and throughput for v2 and Ultra."""
    inputs = ManagedDiskCostInputs(**request.model_dump(exclude={"reconcile"}))
    try:
        estimate = await calculator.calculate(inputs)
        estimate = await _maybe_reconcile(estimate, request.reconcile, reconciler, cost_client)
    except Exception as e:
        logger.error(f"Managed disk estimate failed for {request.resource_name or request.region}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Failed to calculate estimate: {str(e)}")
    return EstimateResponse(status="ok", estimate=estimate.to_dict())
