"""
Nutrition Reports - статистика питания за период (today / week / month)
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from nutribot.messages.formatters import TelegramFormatter

PERIODS = ("today", "week", "month")

PERIOD_TITLES = {
    "today": "сегодня",
    "week": "эту неделю",
    "month": "этот месяц",
}


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Начало периода: полночь / 7 дней назад / первое число месяца"""
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return midnight
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return midnight.replace(day=1)
    raise ValueError(f"Unknown report period: {period}")


def build_report(
    period: str,
    totals: Mapping[str, Any],
    profile: Optional[Mapping[str, Any]],
    now: Optional[datetime] = None,
    formatter: Optional[TelegramFormatter] = None
) -> Dict[str, Any]:
    """
    Готовит переменные для шаблона stats_report.

    totals: {calories, protein, fat, carbs, meals_count}
    profile: {name, daily_calories, daily_protein, daily_fat, daily_carbs}
    """
    formatter = formatter or TelegramFormatter()
    now = now or datetime.now()
    profile = profile or {}

    def line(key: str, norm_key: str) -> Dict[str, Any]:
        consumed = float(totals.get(key) or 0)
        norm = profile.get(norm_key)
        return {
            "consumed": round(consumed),
            "norm": norm,
            "bar": formatter.format_progress_bar(consumed, norm),
        }

    report = {
        "period": period,
        "period_title": PERIOD_TITLES[period],
        "name": profile.get("name") or "друг",
        "has_meals": int(totals.get("meals_count") or 0) > 0,
        "calories": line("calories", "daily_calories"),
        "protein": line("protein", "daily_protein"),
        "fat": line("fat", "daily_fat"),
        "carbs": line("carbs", "daily_carbs"),
        "water_ml": int(totals.get("water_ml") or 0),
        "daily_average": None,
    }

    if period != "today" and report["has_meals"]:
        elapsed_days = (now - period_start(period, now)).total_seconds() / 86400
        days = max(1, math.ceil(elapsed_days))
        report["daily_average"] = round(float(totals.get("calories") or 0) / days)

    return report
