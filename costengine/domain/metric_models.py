"""
Domain models for normalized usage telemetry.
These are derived values, recomputed on every call and never persisted.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class WeekdayWeekendSplit:
    weekday_avg: float
    weekend_avg: float
    weekday_count: int
    weekend_count: int

    @property
    def weighted_avg(self) -> float:
        """Five weekdays and two weekend days per week."""
        return (self.weekday_avg * 5 + self.weekend_avg * 2) / 7


@dataclass(frozen=True)
class SteadyStateResult:
    value: float
    changed: bool
    change_date: Optional[date]
    sample_days_used: int


@dataclass(frozen=True)
class NormalizedMetric:
    """Summary of a daily series suitable for sizing and cost projection."""
    weekday_avg: float
    weekend_avg: float
    weekday_count: int
    weekend_count: int
    weighted_daily_avg: float
    steady_state_value: float
    changed_during_window: bool
    change_date: Optional[date]
    sample_days: int
    confidence_score: float
    monthly_projection: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "weekday_avg": self.weekday_avg,
            "weekend_avg": self.weekend_avg,
            "weekday_count": self.weekday_count,
            "weekend_count": self.weekend_count,
            "weighted_daily_avg": self.weighted_daily_avg,
            "steady_state_value": self.steady_state_value,
            "changed_during_window": self.changed_during_window,
            "change_date": self.change_date.isoformat() if self.change_date else None,
            "sample_days": self.sample_days,
            "confidence_score": self.confidence_score,
            "monthly_projection": self.monthly_projection,
        }
