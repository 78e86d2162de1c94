"""
Unit Tests: Daily norms + period reports
"""

from datetime import datetime

import pytest

from systems.nutrition import build_report, calculate_daily_norms, period_start
from systems.nutrition.norms import basal_metabolic_rate


NOW = datetime(2026, 3, 10, 15, 30)


# ============================================================================
# NORMS
# ============================================================================

def test_bmr_differs_by_gender():
    male = basal_metabolic_rate("male", 80, 180, 30)
    female = basal_metabolic_rate("female", 80, 180, 30)

    assert male == pytest.approx(1853.632)
    assert female == pytest.approx(1615.093)


def test_norms_for_weight_loss():
    """
    Тест: BMR × 1.2 × 0.85, БЖУ 30/30/40
    """
    norms = calculate_daily_norms(
        {"gender": "female", "age": 30, "height": 165, "weight": 60, "goal": "lose_weight"}
    )

    assert norms == {
        "daily_calories": 1411,
        "daily_protein": 106,
        "daily_fat": 47,
        "daily_carbs": 141,
    }


def test_goal_factors_order_calories():
    base = {"gender": "male", "age": 30, "height": 180, "weight": 80}

    lose = calculate_daily_norms({**base, "goal": "lose_weight"})["daily_calories"]
    maintain = calculate_daily_norms({**base, "goal": "maintain_weight"})["daily_calories"]
    gain = calculate_daily_norms({**base, "goal": "gain_mass"})["daily_calories"]

    assert lose < maintain < gain
    assert maintain == 2224


def test_norms_accept_string_numbers():
    norms = calculate_daily_norms(
        {"gender": "male", "age": "30", "height": "180", "weight": "80", "goal": "maintain_weight"}
    )

    assert norms["daily_calories"] == 2224


# ============================================================================
# REPORTS
# ============================================================================

def test_period_start():
    assert period_start("today", NOW) == datetime(2026, 3, 10)
    assert period_start("week", NOW) == datetime(2026, 3, 3, 15, 30)
    assert period_start("month", NOW) == datetime(2026, 3, 1)

    with pytest.raises(ValueError):
        period_start("year", NOW)


def test_report_against_norms():
    """
    Тест: потреблено vs норма + прогресс-бары
    """
    profile = {"name": "Анна", "daily_calories": 1400, "daily_protein": 100,
               "daily_fat": 50, "daily_carbs": 150}
    totals = {"calories": 700.4, "protein": 20, "fat": 60, "carbs": 0,
              "meals_count": 3, "water_ml": 1500}

    report = build_report("today", totals, profile, now=NOW)

    assert report["name"] == "Анна"
    assert report["period_title"] == "сегодня"
    assert report["has_meals"] is True
    assert report["calories"] == {"consumed": 700, "norm": 1400, "bar": "[■■■■■□□□□□] 50%"}
    assert report["fat"]["bar"] == "[■■■■■■■■■■] 100%"
    assert report["water_ml"] == 1500
    assert report["daily_average"] is None


def test_report_daily_average():
    week = build_report("week", {"calories": 14000, "meals_count": 20}, None, now=NOW)
    month = build_report("month", {"calories": 10000, "meals_count": 25}, None, now=NOW)

    assert week["daily_average"] == 2000
    assert month["daily_average"] == 1000


def test_report_without_profile_or_meals():
    report = build_report("week", {"meals_count": 0, "water_ml": None}, None, now=NOW)

    assert report["name"] == "друг"
    assert report["has_meals"] is False
    assert report["calories"] == {"consumed": 0, "norm": None, "bar": ""}
    assert report["water_ml"] == 0
    assert report["daily_average"] is None
