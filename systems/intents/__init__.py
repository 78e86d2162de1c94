"""
Intents: classification adapter + action dispatcher
"""

from .classifier import IntentClassifier
from .dispatcher import ActionDispatcher, parse_nutrition
from .models import (
    INTENT_ADAPTER,
    ClassifiedIntent,
    IntentKind,
    MedicalAnalysis,
    NutritionFacts,
)

__all__ = [
    "IntentClassifier",
    "ActionDispatcher",
    "parse_nutrition",
    "INTENT_ADAPTER",
    "ClassifiedIntent",
    "IntentKind",
    "MedicalAnalysis",
    "NutritionFacts",
]
