import math
from datetime import date

import pytest

from app.services.analytics import (
    RunningStats,
    group_key,
    holt_forecast,
    holt_forecast_next,
    linear_regression,
    median,
    num,
    pct_change,
    rnd,
    robust_sigma,
    stability_index,
    zscore,
)
from app.utils.dates import (
    day_type,
    iso_week_key,
    preset_range,
    prev_period,
    quarter_bounds,
    team_for,
)


def test_rnd_is_half_up():
    assert rnd(2.5) == 3
    assert rnd(3.5) == 4
    assert rnd(-0.4) == 0
    assert rnd(0.125, 2) == pytest.approx(0.13)
    assert isinstance(rnd(10.2), int)


def test_num_coerces_garbage_to_zero():
    assert num(None) == 0.0
    assert num("abc") == 0.0
    assert num(float("nan")) == 0.0
    assert num(float("inf")) == 0.0
    assert num("12.5") == 12.5


def test_running_stats_matches_population_formula():
    xs = [10.0, 20.0, 30.0, 40.0]
    rs = RunningStats()
    for x in xs:
        rs.push(x)

    mean = sum(xs) / len(xs)
    var = sum((x - mean) ** 2 for x in xs) / len(xs)
    assert rs.mean == pytest.approx(mean)
    assert rs.variance == pytest.approx(var)
    assert rs.stddev == pytest.approx(math.sqrt(var))
    assert rs.as_dict()["sum"] == pytest.approx(100.0)
    assert rs.as_dict()["count"] == 4


def test_running_stats_single_value_has_zero_spread():
    rs = RunningStats()
    rs.push(5.0)
    assert rs.variance == 0.0
    assert rs.stability == pytest.approx(100.0)


def test_empty_stats_are_zero():
    d = RunningStats().as_dict()
    assert d == {"avg": 0.0, "stddev": 0.0, "stability": 0.0, "sum": 0.0, "count": 0}


def test_stability_index_is_floored():
    assert stability_index(0, 10) == 0.0
    assert stability_index(10, 50) == 0.0
    assert stability_index(100, 25) == pytest.approx(75.0)


def test_median_and_robust_sigma():
    assert median([]) == 0.0
    assert median([3, 1, 2]) == 2
    assert median([4, 1, 2, 3]) == 2.5
    assert robust_sigma([5, 5, 5]) == 0.0
    assert zscore(10, 5, 0) == 0.0
    assert zscore(10, 5, 2.5) == pytest.approx(2.0)


def test_linear_regression_recovers_line():
    slope, intercept = linear_regression([1.0, 3.0, 5.0, 7.0])
    assert slope == pytest.approx(2.0)
    assert intercept == pytest.approx(1.0)
    assert linear_regression([4.0]) == (0.0, 0.0)


def test_holt_forecast_edges():
    assert holt_forecast([]) == 0
    assert holt_forecast([1234.4]) == 1234
    assert holt_forecast([100.0, 0.0, 0.0]) == 0
    # steady growth keeps growing
    assert holt_forecast([100.0, 200.0, 300.0]) > 300


def test_holt_forecast_next_clamps_trend():
    value = holt_forecast_next([100.0, 1000.0])
    # level 550, trend capped to 15% of it
    assert value == pytest.approx(550.0 * 1.15)
    assert holt_forecast_next([]) == 0.0


def test_pct_change_rules():
    assert pct_change(0, 0) == 0.0
    assert pct_change(50, 0) == 100.0
    assert pct_change(0, 50) == -100.0
    assert pct_change(150, 100) == pytest.approx(50.0)


def test_group_key_modes():
    d = date(2024, 3, 14)  # Thursday
    assert group_key(d, "day") == "2024-03-14"
    assert group_key(d, "week") == "2024-03-11"
    assert group_key(d, "month") == "2024-03"
    assert group_key(d, "year") == "2024"
    with pytest.raises(ValueError):
        group_key(d, "decade")


def test_day_type_and_team():
    assert day_type(date(2024, 3, 14)) == "weekday"  # Thu
    assert day_type(date(2024, 3, 15)) == "weekend"  # Fri
    assert team_for(date(2024, 3, 14)) == "wk"
    assert team_for(date(2024, 3, 17)) == "we"


def test_prev_period_has_same_length():
    start, end = prev_period(date(2024, 3, 1), date(2024, 3, 10))
    assert (start, end) == (date(2024, 2, 20), date(2024, 2, 29))


@pytest.mark.parametrize(
    "name,expected",
    [
        ("today", (date(2024, 5, 15), date(2024, 5, 15))),
        ("yesterday", (date(2024, 5, 14), date(2024, 5, 14))),
        ("last7", (date(2024, 5, 9), date(2024, 5, 15))),
        ("thisWeek", (date(2024, 5, 13), date(2024, 5, 15))),
        ("prevWeek", (date(2024, 5, 6), date(2024, 5, 12))),
        ("currentMonth", (date(2024, 5, 1), date(2024, 5, 15))),
        ("prevMonth", (date(2024, 4, 1), date(2024, 4, 30))),
        ("thisQuarter", (date(2024, 4, 1), date(2024, 5, 15))),
        ("lastQuarter", (date(2024, 1, 1), date(2024, 3, 31))),
        ("prevYear", (date(2023, 1, 1), date(2023, 12, 31))),
    ],
)
def test_presets(name, expected):
    assert preset_range(name, date(2024, 5, 15)) == expected


def test_unknown_preset_raises():
    with pytest.raises(ValueError):
        preset_range("forever", date(2024, 5, 15))


def test_quarter_and_iso_week():
    assert quarter_bounds(date(2024, 11, 3)) == (date(2024, 10, 1), date(2024, 12, 31))
    assert iso_week_key(date(2021, 1, 3)) == "2020-W53"
