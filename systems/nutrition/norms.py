"""
Daily Norms - суточные нормы калорий и БЖУ по профилю

Формула Харриса-Бенедикта (пересмотренная):
    male:   88.362 + 13.397*w + 4.799*h - 5.677*a
    female: 447.593 + 9.247*w + 3.098*h - 4.330*a

Коэффициент активности 1.2, цель: похудение -15%, набор +15%.
БЖУ: 30% белки (4 ккал/г), 30% жиры (9 ккал/г), 40% углеводы (4 ккал/г).
"""

from typing import Any, Dict, Mapping

ACTIVITY_FACTOR = 1.2
GOAL_FACTORS = {
    "lose_weight": 0.85,
    "maintain_weight": 1.0,
    "gain_mass": 1.15,
}


def basal_metabolic_rate(gender: str, weight: float, height: float, age: int) -> float:
    if gender == "male":
        return 88.362 + 13.397 * weight + 4.799 * height - 5.677 * age
    return 447.593 + 9.247 * weight + 3.098 * height - 4.330 * age


def calculate_daily_norms(profile: Mapping[str, Any]) -> Dict[str, int]:
    """
    Args:
        profile: {gender, age, height, weight, goal}

    Returns:
        {daily_calories, daily_protein, daily_fat, daily_carbs}
    """
    bmr = basal_metabolic_rate(
        profile["gender"],
        float(profile["weight"]),
        float(profile["height"]),
        int(profile["age"]),
    )
    calories = bmr * ACTIVITY_FACTOR * GOAL_FACTORS.get(profile.get("goal"), 1.0)

    return {
        "daily_calories": round(calories),
        "daily_protein": round(calories * 0.30 / 4),
        "daily_fat": round(calories * 0.30 / 9),
        "daily_carbs": round(calories * 0.40 / 4),
    }
