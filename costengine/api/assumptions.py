"""
Cool data assumptions API endpoints.
Global, job and volume level overrides; reads return the resolved assumptions.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional, Dict, Any

from costengine.api.dependencies import get_assumptions_resolver
from costengine.domain.assumption_models import AssumptionValidationError, CoolDataAssumptions
from costengine.services.cool_data_assumptions import CoolDataAssumptionsResolver


router = APIRouter(prefix="/api/assumptions", tags=["assumptions"])


class AssumptionsRequest(BaseModel):
    """Request model for saving assumptions at any level."""
    cool_data_percentage: float
    cool_retrieval_percentage: float
    modified_by: Optional[str] = None


class AssumptionsResponse(BaseModel):
    status: str
    assumptions: Dict[str, Any]


class ClearResponse(BaseModel):
    status: str
    removed: bool


def _assumptions(request: AssumptionsRequest) -> CoolDataAssumptions:
    return CoolDataAssumptions(
        cool_data_percentage=request.cool_data_percentage,
        cool_retrieval_percentage=request.cool_retrieval_percentage,
    )


@router.get("/global", response_model=AssumptionsResponse)
async def get_global_assumptions(resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)):
    assumptions = await resolver.get_global()
    return AssumptionsResponse(status="ok", assumptions=assumptions.to_dict())


@router.put("/global", response_model=AssumptionsResponse)
async def set_global_assumptions(
    request: AssumptionsRequest,
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    try:
        saved = await resolver.set_global(_assumptions(request), request.modified_by)
    except AssumptionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AssumptionsResponse(status="ok", assumptions=saved.to_dict())


@router.put("/jobs/{job_id}", response_model=AssumptionsResponse)
async def set_job_assumptions(
    job_id: str,
    request: AssumptionsRequest,
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    try:
        saved = await resolver.set_job(job_id, _assumptions(request), request.modified_by)
    except AssumptionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AssumptionsResponse(status="ok", assumptions=saved.to_dict())


@router.delete("/jobs/{job_id}", response_model=ClearResponse)
async def clear_job_assumptions(job_id: str, resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)):
    removed = await resolver.clear_job(job_id)
    return ClearResponse(status="ok", removed=removed)


@router.put("/jobs/{job_id}/volumes/{volume_id}", response_model=AssumptionsResponse)
async def set_volume_assumptions(
    job_id: str,
    volume_id: str,
    request: AssumptionsRequest,
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    try:
        saved = await resolver.set_volume(job_id, volume_id, _assumptions(request), request.modified_by)
    except AssumptionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return AssumptionsResponse(status="ok", assumptions=saved.to_dict())


@router.delete("/jobs/{job_id}/volumes/{volume_id}", response_model=ClearResponse)
async def clear_volume_assumptions(
    job_id: str,
    volume_id: str,
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    removed = await resolver.clear_volume(job_id, volume_id)
    return ClearResponse(status="ok", removed=removed)


@router.get("/jobs/{job_id}/volumes/{volume_id}", response_model=AssumptionsResponse)
async def resolve_volume_assumptions(
    job_id: str,
    volume_id: str,
    resolver: CoolDataAssumptionsResolver = Depends(get_assumptions_resolver)
):
    """Assumptions that apply to the volume after volume -> job -> global resolution."""
    assumptions = await resolver.resolve(job_id, volume_id)
    return AssumptionsResponse(status="ok", assumptions=assumptions.to_dict())
