"""
Tests for metrics normalization.
"""

import pytest
from datetime import date, datetime, timedelta

from costengine.services.metrics_normalizer import ConfidencePolicy, MetricsNormalizer


MONDAY = date(2024, 6, 3)


def daily(values, start=MONDAY):
    return [(start + timedelta(days=i), value) for i, value in enumerate(values)]


@pytest.fixture
def normalizer():
    return MetricsNormalizer()


def test_weekday_weekend_split(normalizer):
    split = normalizer.weekday_weekend_split(daily([100, 100, 100, 135, 135, 135, 135]))

    assert split.weekday_count == 5
    assert split.weekend_count == 2
    assert split.weekday_avg == pytest.approx(114)
    assert split.weekend_avg == pytest.approx(135)
    assert split.weighted_avg == pytest.approx(120)


def test_weekend_average_falls_back_to_weekday(normalizer):
    split = normalizer.weekday_weekend_split(daily([10, 20, 30, 40, 50]))

    assert split.weekend_count == 0
    assert split.weekend_avg == split.weekday_avg == pytest.approx(30)
    assert normalizer.weighted_daily_average(daily([10, 20, 30, 40, 50])) == pytest.approx(30)


def test_steady_state_detects_level_change(normalizer):
    """A 35% jump in the newer half uses the last three days."""
    series = daily([100, 100, 100, 135, 135, 135, 135])

    result = normalizer.steady_state(series, lookback_days=7, change_threshold=0.20)

    assert result.changed is True
    assert result.value == pytest.approx(135)
    assert result.sample_days_used == 3
    assert result.change_date == MONDAY + timedelta(days=3)


def test_steady_state_without_change_averages_window(normalizer):
    result = normalizer.steady_state(daily([100, 105, 98, 102, 100, 101, 99]))

    assert result.changed is False
    assert result.change_date is None
    assert result.value == pytest.approx(705 / 7)


def test_steady_state_window_is_anchored_on_last_point(normalizer):
    """Only the trailing lookback window is compared, however old the series is."""
    series = daily([10] * 20 + [100] * 7, start=date(2020, 1, 1))

    result = normalizer.steady_state(series, lookback_days=7)

    assert result.changed is False
    assert result.value == pytest.approx(100)


def test_steady_state_short_series(normalizer):
    result = normalizer.steady_state([(datetime(2024, 6, 3, 8, 0), 42.0)])

    assert result.changed is False
    assert result.value == pytest.approx(42)
    assert result.sample_days_used == 1


def test_steady_state_zero_older_half_is_not_a_change(normalizer):
    result = normalizer.steady_state(daily([0, 0, 0, 50, 50, 50, 50]))

    assert result.changed is False


@pytest.mark.parametrize("sample_days,has_change,weekend,points,expected", [
    (7, True, True, 7, 75),
    (30, False, True, 30, 100),
    (14, False, False, 14, 80),
    (3, True, False, 3, 60),
    (1, False, False, 1, 60),
    (20, False, False, 60, 85),
])
def test_confidence_score(normalizer, sample_days, has_change, weekend, points, expected):
    assert normalizer.confidence(sample_days, has_change, weekend, points) == expected


def test_confidence_policy_is_tunable():
    normalizer = MetricsNormalizer(policy=ConfidencePolicy(base=20, no_change_bonus=0))
    assert normalizer.confidence(1, False, False, 1) == 20


@pytest.mark.parametrize("sample_days,expected_confidence", [
    (0, 0), (1, 30), (5, 60), (10, 76), (20, 90), (45, 100),
])
def test_project_monthly_confidence_tiers(normalizer, sample_days, expected_confidence):
    projection, confidence = normalizer.project_monthly(10.0, sample_days)

    assert confidence == expected_confidence
    assert projection == (0.0 if sample_days == 0 else pytest.approx(300))


def test_normalize_uses_post_change_value_for_projection(normalizer):
    metric = normalizer.normalize(daily([100, 100, 100, 135, 135, 135, 135]))

    assert metric.changed_during_window is True
    assert metric.steady_state_value == pytest.approx(135)
    assert metric.monthly_projection == pytest.approx(4050)
    assert metric.sample_days == 7
    assert metric.confidence_score == 75
    assert metric.to_dict()["change_date"] == "2024-06-06"
