from .norms import basal_metabolic_rate, calculate_daily_norms
from .reports import PERIODS, build_report, period_start

__all__ = [
    "basal_metabolic_rate",
    "calculate_daily_norms",
    "PERIODS",
    "build_report",
    "period_start",
]
