"""
Action Dispatcher - intent → Effect

Тотален по закрытому набору IntentKind. Обработчики могут сделать
второй проход генерации (food → КБЖУ, medical → разбор), но сами
ничего не пишут и не отправляют: результат - один Effect.

- food     → ProposeRecord через Confirmation Token (ошибка распознавания
             испортила бы дневник питания, поэтому нужно подтверждение)
- water    → Persist сразу (легко исправить) или визард количества
- workout  → Persist сразу
- остальное → Reply / Generate / Report
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Union

from pydantic import ValidationError as SchemaError

from core.errors import ClassificationFailure, ExtractionFailure
from systems.effects import Effect, Generate, Persist, ProposeRecord, Reply, Report, StartWizard
from systems.events import SubjectContext
from systems.ports import GenerationBackend
from systems.sessions.definitions import WATER_MAX_ML, WATER_MIN_ML, WATER_QUANTITY
from .models import (
    ClassifiedIntent,
    IntentKind,
    MedicalAnalysis,
    NutritionFacts,
)

logger = logging.getLogger(__name__)

Handler = Callable[[ClassifiedIntent, SubjectContext], Awaitable[Effect]]


class ActionDispatcher:
    """Маршрутизация классифицированных intents на обработчики"""

    def __init__(self, backend: GenerationBackend):
        self.backend = backend
        self._handlers: Dict[IntentKind, Handler] = {
            IntentKind.FOOD: self._handle_food,
            IntentKind.WATER: self._handle_water,
            IntentKind.WORKOUT: self._handle_workout,
            IntentKind.REPORT_REQUEST: self._handle_report,
            IntentKind.MEDICAL: self._handle_medical,
            IntentKind.QUESTION: self._handle_question,
            IntentKind.MOOD: self._handle_mood,
            IntentKind.GENERAL: self._handle_general,
        }

    async def dispatch(
        self,
        intent: Union[ClassifiedIntent, ClassificationFailure],
        context: SubjectContext
    ) -> Effect:
        if isinstance(intent, ClassificationFailure):
            return self.fallback()

        handler = self._handlers.get(intent.kind)
        if handler is None:
            logger.warning(f"No handler for intent {intent.kind!r}, acknowledging")
            return self.fallback()

        logger.info(f"🎯 Dispatching {intent.kind.value} for subject={context.subject_id}")
        return await handler(intent, context)

    @staticmethod
    def fallback() -> Effect:
        """Дружелюбный ответ для general / неудачной классификации"""
        return Reply("general_ack", category="dispatch")

    # ========================================================================
    # FOOD (second pass + confirmation)
    # ========================================================================

    async def _handle_food(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        text = intent.fields.description
        if intent.fields.weight_g and str(int(intent.fields.weight_g)) not in text:
            text = f"{text}, {int(intent.fields.weight_g)} г"
        return await self.propose_meal(
            lambda: self.backend.extract_nutrition(text), context, source="text"
        )

    async def propose_meal(
        self,
        extract: Callable[[], Awaitable[Any]],
        context: SubjectContext,
        source: str
    ) -> Effect:
        """Второй проход → ProposeRecord("meal") или вежливый отказ"""
        try:
            facts = parse_nutrition(await extract())
        except Exception as e:
            logger.warning(f"⚠️ Nutrition extraction failed for subject={context.subject_id}: {e}")
            return Reply("food_not_recognized", category="dispatch")

        if not facts.is_food or not facts.dish_name:
            return Reply("not_food", category="dispatch")

        payload = {
            "subject_id": context.subject_id,
            "dish_name": facts.dish_name,
            "ingredients": list(facts.ingredients),
            "weight_g": round(facts.weight_g),
            "calories": round(facts.calories),
            "protein": round(facts.protein, 1),
            "fat": round(facts.fat, 1),
            "carbs": round(facts.carbs, 1),
            "source": source,
        }
        return ProposeRecord("meal", payload)

    # ========================================================================
    # IMMEDIATE WRITES
    # ========================================================================

    async def _handle_water(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        amount = intent.fields.amount_ml
        # Вне диапазона визарда → спрашиваем количество заново
        if amount is None or not WATER_MIN_ML <= amount <= WATER_MAX_ML:
            return StartWizard(WATER_QUANTITY)
        return Persist("water", {"subject_id": context.subject_id, "amount_ml": amount},
                       success_key="water_saved")

    async def _handle_workout(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        fields = intent.fields
        return Persist(
            "workout",
            {
                "subject_id": context.subject_id,
                "activity": fields.activity,
                "duration_min": fields.duration_min,
                "calories_burned": fields.calories_burned,
            },
            success_key="workout_saved",
        )

    # ========================================================================
    # REPLIES
    # ========================================================================

    async def _handle_report(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        return Report(intent.fields.period)

    async def _handle_medical(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        try:
            raw = await self.backend.analyze_medical(intent.fields.text)
            analysis = MedicalAnalysis.model_validate(raw)
        except Exception as e:
            logger.warning(f"⚠️ Medical analysis failed for subject={context.subject_id}: {e}")
            return Reply("medical_failed", category="dispatch")

        return Reply("medical_analysis", category="dispatch", params={
            "summary": analysis.summary,
            "flags": analysis.flags,
            "recommendation": analysis.recommendation,
            "see_doctor": analysis.see_doctor,
        })

    async def _handle_question(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        return Generate(intent.fields.question, system_key="assistant",
                        params={"name": context.name, "profile": context.profile or {}})

    async def _handle_mood(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        return Reply(f"mood_{intent.fields.mood}", category="dispatch",
                     params={"name": context.name})

    async def _handle_general(self, intent: ClassifiedIntent, context: SubjectContext) -> Effect:
        return Reply("general_ack", category="dispatch", params={"name": context.name})


def parse_nutrition(raw: Any) -> NutritionFacts:
    """Валидация ответа второго прохода. Ошибка backend'а или схемы → ExtractionFailure"""
    if not isinstance(raw, dict):
        raise ExtractionFailure(f"nutrition result is {type(raw).__name__}, not an object")
    try:
        return NutritionFacts.model_validate(raw)
    except SchemaError as e:
        raise ExtractionFailure(f"nutrition result out of schema: {e.error_count()} errors") from e
