"""
Intent Schema - закрытый tagged union для результатов классификации

Ответ backend'а валидируется здесь, на границе. Всё, что не укладывается
в схему, превращается в ClassificationFailure и дальше не проходит.

Intents:
- food            - пользователь сообщает, что съел
- water           - выпил воды
- workout         - тренировка / активность
- report_request  - хочет статистику
- medical         - анализы, симптомы, медицинский текст
- question        - вопрос о питании/тренировках
- mood            - эмоциональное состояние
- general         - всё остальное
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


class IntentKind(str, Enum):
    FOOD = "food"
    WATER = "water"
    WORKOUT = "workout"
    REPORT_REQUEST = "report_request"
    MEDICAL = "medical"
    QUESTION = "question"
    MOOD = "mood"
    GENERAL = "general"


class _IntentFields(BaseModel):
    model_config = {"extra": "ignore", "frozen": True}


class FoodIntent(_IntentFields):
    kind: Literal["food"] = "food"
    description: str = Field(..., min_length=1, max_length=500, description="Что съедено")
    weight_g: Optional[float] = Field(None, gt=0, le=5000)


class WaterIntent(_IntentFields):
    kind: Literal["water"] = "water"
    amount_ml: Optional[int] = Field(None, gt=0, le=5000)


class WorkoutIntent(_IntentFields):
    kind: Literal["workout"] = "workout"
    activity: str = Field(..., min_length=1, max_length=200)
    duration_min: Optional[int] = Field(None, gt=0, le=600)
    calories_burned: Optional[int] = Field(None, ge=0, le=5000)


class ReportRequestIntent(_IntentFields):
    kind: Literal["report_request"] = "report_request"
    period: Literal["today", "week", "month"] = "today"

    @field_validator("period", mode="before")
    @classmethod
    def _normalize_period(cls, value):
        if value is None:
            return "today"
        return str(value).strip().lower()


class MedicalIntent(_IntentFields):
    kind: Literal["medical"] = "medical"
    text: str = Field(..., min_length=1, max_length=4000)


class QuestionIntent(_IntentFields):
    kind: Literal["question"] = "question"
    question: str = Field(..., min_length=1, max_length=2000)


class MoodIntent(_IntentFields):
    kind: Literal["mood"] = "mood"
    mood: Literal["positive", "neutral", "negative"] = "neutral"

    @field_validator("mood", mode="before")
    @classmethod
    def _normalize_mood(cls, value):
        value = str(value or "neutral").strip().lower()
        return value if value in ("positive", "neutral", "negative") else "neutral"


class GeneralIntent(_IntentFields):
    kind: Literal["general"] = "general"


IntentFields = Annotated[
    Union[
        FoodIntent,
        WaterIntent,
        WorkoutIntent,
        ReportRequestIntent,
        MedicalIntent,
        QuestionIntent,
        MoodIntent,
        GeneralIntent,
    ],
    Field(discriminator="kind"),
]

INTENT_ADAPTER: TypeAdapter = TypeAdapter(IntentFields)


@dataclass(frozen=True)
class ClassifiedIntent:
    """{kind, fields, raw_text} - transient, не сохраняется"""
    kind: IntentKind
    fields: BaseModel
    raw_text: str


# ============================================================================
# SECOND-PASS EXTRACTION SCHEMAS
# ============================================================================

class NutritionFacts(BaseModel):
    """Результат второго прохода food → КБЖУ"""
    model_config = {"extra": "ignore"}

    is_food: bool = True
    dish_name: str = Field("", max_length=200)
    ingredients: list[str] = Field(default_factory=list)
    weight_g: float = Field(0, ge=0, le=5000)
    calories: float = Field(0, ge=0, le=10000)
    protein: float = Field(0, ge=0, le=1000)
    fat: float = Field(0, ge=0, le=1000)
    carbs: float = Field(0, ge=0, le=1000)


class MedicalAnalysis(BaseModel):
    """Результат второго прохода медицинского текста"""
    model_config = {"extra": "ignore"}

    summary: str = Field(..., min_length=1, max_length=3000)
    flags: list[str] = Field(default_factory=list)
    recommendation: str = Field("", max_length=2000)
    see_doctor: bool = False
