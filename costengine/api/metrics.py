"""
Metrics API endpoints.
"""
import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Dict, Any

from costengine.api.dependencies import get_metrics_normalizer
from costengine.services.metrics_normalizer import MetricsNormalizer


router = APIRouter(prefix="/api/metrics", tags=["metrics"])


class DailyValue(BaseModel):
    date: datetime.date
    value: float


class NormalizeRequest(BaseModel):
    """Request model for normalizing a daily series."""
    series: List[DailyValue]
    days_in_month: int = Field(30, gt=0, le=31)


class NormalizeResponse(BaseModel):
    status: str
    metric: Dict[str, Any]


@router.post("/normalize", response_model=NormalizeResponse)
async def normalize_metric(request: NormalizeRequest, normalizer: MetricsNormalizer = Depends(get_metrics_normalizer)):
    """Summarize a daily series: weekday/weekend split, steady state, confidence, monthly projection."""
    if not request.series:
        raise HTTPException(status_code=400, detail="Series must contain at least one point")

    metric = normalizer.normalize(
        [(point.date, point.value) for point in request.series],
        days_in_month=request.days_in_month,
    )
    return NormalizeResponse(status="ok", metric=metric.to_dict())
