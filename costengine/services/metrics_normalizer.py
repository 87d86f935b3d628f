"""
Metrics normalizer.

Turns a daily usage series into weekday/weekend averages, a steady-state
value after a capacity or usage change, and a data quality confidence score.
Pure numeric code: no I/O, no clock.
"""
from typing import List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass
from datetime import date, datetime, timedelta
import logging

from costengine.core.config import config
from costengine.domain.metric_models import NormalizedMetric, SteadyStateResult, WeekdayWeekendSplit


logger = logging.getLogger(__name__)

DailyPoint = Tuple[Union[date, datetime], float]


@dataclass(frozen=True)
class ConfidencePolicy:
    """Weights of the confidence score. Defaults reproduce the production scoring."""
    base: float = 50.0
    days_30_bonus: float = 30.0
    days_14_bonus: float = 20.0
    days_7_bonus: float = 15.0
    days_3_bonus: float = 10.0
    no_change_bonus: float = 10.0
    weekend_bonus: float = 10.0
    min_weekend_points: int = 2
    points_100_bonus: float = 10.0
    points_50_bonus: float = 5.0
    cap: float = 100.0


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def _ordered(series: Sequence[DailyPoint]) -> List[Tuple[date, float]]:
    return sorted(((_as_date(day), float(value)) for day, value in series), key=lambda point: point[0])


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsNormalizer:
    """Normalizes daily series for sizing and monthly cost projection."""

    def __init__(
        self,
        policy: Optional[ConfidencePolicy] = None,
        lookback_days: Optional[int] = None,
        change_threshold: Optional[float] = None,
        recent_days: Optional[int] = None
    ):
        self.policy = policy or ConfidencePolicy()
        self.lookback_days = lookback_days or config.STEADY_STATE_LOOKBACK_DAYS
        self.change_threshold = change_threshold if change_threshold is not None else config.STEADY_STATE_CHANGE_THRESHOLD
        self.recent_days = recent_days or config.STEADY_STATE_RECENT_DAYS

    def weekday_weekend_split(self, series: Sequence[DailyPoint]) -> WeekdayWeekendSplit:
        """
        Average weekday and weekend points separately.

        Without weekend points the weekend average falls back to the weekday
        average, so the weighted average equals the weekday average.
        """
        points = _ordered(series)
        weekday = [value for day, value in points if day.weekday() < 5]
        weekend = [value for day, value in points if day.weekday() >= 5]
        weekday_avg = _average(weekday)
        weekend_avg = _average(weekend) if weekend else weekday_avg
        if not weekday and weekend:
            weekday_avg = weekend_avg
        return WeekdayWeekendSplit(
            weekday_avg=weekday_avg,
            weekend_avg=weekend_avg,
            weekday_count=len(weekday),
            weekend_count=len(weekend),
        )

    def weighted_daily_average(self, series: Sequence[DailyPoint]) -> float:
        return self.weekday_weekend_split(series).weighted_avg

    def steady_state(
        self,
        series: Sequence[DailyPoint],
        lookback_days: Optional[int] = None,
        change_threshold: Optional[float] = None
    ) -> SteadyStateResult:
        """
        Detect a level change in the trailing window and report the post-change value.

        The window is anchored on the last data point, not on the current
        time, so replaying an old series gives the same answer.

        Args:
            series: Daily (date, value) points
            lookback_days: Window length in days
            change_threshold: Relative change between window halves that counts as a change

        Returns:
            SteadyStateResult
        """
        points = _ordered(series)
        if not points:
            return SteadyStateResult(value=0.0, changed=False, change_date=None, sample_days_used=0)

        lookback = lookback_days or self.lookback_days
        threshold = self.change_threshold if change_threshold is None else change_threshold
        last_date = points[-1][0]
        window = [point for point in points if point[0] > last_date - timedelta(days=lookback)]

        if len(window) < 2:
            return SteadyStateResult(
                value=_average([value for _, value in points]),
                changed=False,
                change_date=None,
                sample_days_used=len(points),
            )

        midpoint = len(window) // 2
        older, newer = window[:midpoint], window[midpoint:]
        older_avg = _average([value for _, value in older])
        newer_avg = _average([value for _, value in newer])

        if older_avg > 0 and abs(newer_avg - older_avg) / older_avg > threshold:
            recent = [value for day, value in points if day > last_date - timedelta(days=self.recent_days)]
            logger.debug(
                f"Steady state change detected at {newer[0][0].isoformat()}: "
                f"{older_avg:.2f} -> {newer_avg:.2f}"
            )
            return SteadyStateResult(
                value=_average(recent),
                changed=True,
                change_date=newer[0][0],
                sample_days_used=len(recent),
            )

        return SteadyStateResult(
            value=_average([value for _, value in window]),
            changed=False,
            change_date=None,
            sample_days_used=len(window),
        )

    def confidence(self, sample_days: int, has_change: bool, has_weekend_data: bool, point_count: int) -> float:
        policy = self.policy
        score = policy.base
        if sample_days >= 30:
            score += policy.days_30_bonus
        elif sample_days >= 14:
            score += policy.days_14_bonus
        elif sample_days >= 7:
            score += policy.days_7_bonus
        elif sample_days >= 3:
            score += policy.days_3_bonus

        if not has_change:
            score += policy.no_change_bonus
        if has_weekend_data:
            score += policy.weekend_bonus

        if point_count >= 100:
            score += policy.points_100_bonus
        elif point_count >= 50:
            score += policy.points_50_bonus

        return min(score, policy.cap)

    def project_monthly(self, daily_average: float, sample_days: int,
                        days_in_month: int = 30) -> Tuple[float, float]:
        """
        Project a daily average to a month.

        Returns:
            (projection, confidence); confidence grows with the number of sample days
        """
        if sample_days <= 0:
            return 0.0, 0.0
        projection = daily_average * days_in_month
        if sample_days < 3:
            confidence = 30.0
        elif sample_days < 7:
            confidence = 50.0 + (sample_days - 3) * 5
        elif sample_days < 14:
            confidence = 70.0 + (sample_days - 7) * 2
        elif sample_days < 30:
            confidence = 84.0 + (sample_days - 14)
        else:
            confidence = 100.0
        return projection, confidence

    def normalize(self, series: Sequence[DailyPoint], days_in_month: int = 30) -> NormalizedMetric:
        """Combine split, steady state, confidence and projection for one series."""
        points = _ordered(series)
        split = self.weekday_weekend_split(points)
        steady = self.steady_state(points)
        sample_days = len({day for day, _ in points})
        has_weekend_data = split.weekend_count >= self.policy.min_weekend_points
        score = self.confidence(sample_days, steady.changed, has_weekend_data, len(points))

        # After a change the pre-change average would misstate the future level
        daily = steady.value if steady.changed else split.weighted_avg
        projection, _ = self.project_monthly(daily, sample_days, days_in_month)

        return NormalizedMetric(
            weekday_avg=split.weekday_avg,
            weekend_avg=split.weekend_avg,
            weekday_count=split.weekday_count,
            weekend_count=split.weekend_count,
            weighted_daily_avg=split.weighted_avg,
            steady_state_value=steady.value,
            changed_during_window=steady.changed,
            change_date=steady.change_date,
            sample_days=sample_days,
            confidence_score=score,
            monthly_projection=projection,
        )
