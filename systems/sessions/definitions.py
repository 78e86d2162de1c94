"""
Определения всех визардов бота

registration    - имя, пол, возраст, рост, вес, цель → профиль + нормы
workout_plan    - уровень, направление, дни, приоритетные зоны, место → план (генерация)
nutrition_plan  - цель, целевой вес (кроме maintain), активность, приёмы пищи, ограничения → план
profile_edit    - поле профиля → новое значение → обновление профиля
water_quantity  - объём воды → запись
free_question   - вопрос → потоковый ответ
"""

from systems.effects import Choice, Terminal, TerminalAction
from .workflow import (
    FINALIZE,
    Edge,
    FloatRange,
    IntRange,
    OneOf,
    PerField,
    Step,
    TextLength,
    WorkflowDefinition,
)

REGISTRATION = "registration"
WORKOUT_PLAN = "workout_plan"
NUTRITION_PLAN = "nutrition_plan"
PROFILE_EDIT = "profile_edit"
WATER_QUANTITY = "water_quantity"
FREE_QUESTION = "free_question"


# ============================================================================
# SHARED CHOICES & VALIDATORS
# ============================================================================

GENDER_CHOICES = (
    Choice("male", "👨 Мужской"),
    Choice("female", "👩 Женский"),
)

GOAL_CHOICES = (
    Choice("lose", "📉 Похудеть", stores="lose_weight"),
    Choice("maintain", "⚖️ Поддерживать вес", stores="maintain_weight"),
    Choice("gain", "💪 Набрать массу", stores="gain_mass"),
)

AGE = IntRange(10, 100, error_key="invalid_age")
HEIGHT = IntRange(100, 250, error_key="invalid_height")
WEIGHT = FloatRange(20, 300, error_key="invalid_weight")
NAME = TextLength(64, error_key="invalid_name")

# Одна порция воды, мл
WATER_MIN_ML = 50
WATER_MAX_ML = 5000


# ============================================================================
# REGISTRATION
# ============================================================================

REGISTRATION_WORKFLOW = WorkflowDefinition(
    kind=REGISTRATION,
    steps=(
        Step("name", NAME),
        Step("gender", OneOf(GENDER_CHOICES), choices=GENDER_CHOICES),
        Step("age", AGE),
        Step("height", HEIGHT),
        Step("weight", WEIGHT),
        Step("goal", OneOf(GOAL_CHOICES), choices=GOAL_CHOICES),
    ),
    terminal=Terminal(TerminalAction.PERSIST, record_kind="profile"),
)


# ============================================================================
# WORKOUT PLAN
# ============================================================================

LEVEL_CHOICES = (
    Choice("beginner", "🌱 Новичок"),
    Choice("intermediate", "🏃 Средний"),
    Choice("advanced", "🔥 Продвинутый"),
)

FOCUS_CHOICES = (
    Choice("strength", "🏋️ Сила"),
    Choice("muscle", "💪 Мышечная масса"),
    Choice("endurance", "🫀 Выносливость"),
    Choice("weight_loss", "📉 Жиросжигание"),
)

ZONE_CHOICES = (
    Choice("chest", "Грудь"),
    Choice("back", "Спина"),
    Choice("legs", "Ноги"),
    Choice("shoulders", "Плечи"),
    Choice("arms", "Руки"),
    Choice("glutes", "Ягодицы"),
    Choice("abs", "Пресс"),
    Choice("none", "Без приоритета"),
)

LOCATION_CHOICES = (
    Choice("gym", "🏢 В зале"),
    Choice("home", "🏠 Дома"),
)

WORKOUT_PLAN_WORKFLOW = WorkflowDefinition(
    kind=WORKOUT_PLAN,
    steps=(
        Step("level", OneOf(LEVEL_CHOICES), choices=LEVEL_CHOICES),
        Step("focus", OneOf(FOCUS_CHOICES), choices=FOCUS_CHOICES),
        Step("days_per_week", IntRange(1, 7, error_key="invalid_days")),
        Step("priority_zones", choices=ZONE_CHOICES, multi=True),
        Step("location", OneOf(LOCATION_CHOICES), choices=LOCATION_CHOICES),
    ),
    terminal=Terminal(TerminalAction.GENERATE, prompt_key="workout_plan"),
)


# ============================================================================
# NUTRITION PLAN
# ============================================================================

ACTIVITY_CHOICES = (
    Choice("sedentary", "🪑 Сидячий образ жизни"),
    Choice("light", "🚶 Лёгкая активность"),
    Choice("moderate", "🏃 Умеренная активность"),
    Choice("high", "⚡ Высокая активность"),
)

NUTRITION_PLAN_WORKFLOW = WorkflowDefinition(
    kind=NUTRITION_PLAN,
    steps=(
        Step("goal", OneOf(GOAL_CHOICES), choices=GOAL_CHOICES),
        Step("target_weight", FloatRange(20, 300, error_key="invalid_weight")),
        Step("activity", OneOf(ACTIVITY_CHOICES), choices=ACTIVITY_CHOICES),
        Step("meals_per_day", IntRange(2, 6, error_key="invalid_meals")),
        Step("restrictions", TextLength(300, error_key="invalid_restrictions")),
    ),
    edges={
        "goal": (
            Edge("activity", when=lambda f: f.get("goal") == "maintain_weight"),
            Edge("target_weight"),
        ),
    },
    terminal=Terminal(TerminalAction.GENERATE, prompt_key="nutrition_plan"),
)


# ============================================================================
# PROFILE EDIT
# ============================================================================

PROFILE_FIELD_CHOICES = (
    Choice("name", "Имя"),
    Choice("age", "Возраст"),
    Choice("height", "Рост"),
    Choice("weight", "Вес"),
    Choice("goal", "Цель"),
)

PROFILE_EDIT_WORKFLOW = WorkflowDefinition(
    kind=PROFILE_EDIT,
    steps=(
        Step("field", OneOf(PROFILE_FIELD_CHOICES), choices=PROFILE_FIELD_CHOICES),
        Step("value", PerField("field", {
            "name": NAME,
            "age": AGE,
            "height": HEIGHT,
            "weight": WEIGHT,
        })),
        Step("goal_value", OneOf(GOAL_CHOICES), choices=GOAL_CHOICES, field_name="value"),
    ),
    edges={
        "field": (
            Edge("goal_value", when=lambda f: f.get("field") == "goal"),
            Edge("value"),
        ),
        "value": (Edge(FINALIZE),),
    },
    terminal=Terminal(TerminalAction.PERSIST, record_kind="profile_update"),
)


# ============================================================================
# WATER & FREE QUESTION
# ============================================================================

WATER_QUANTITY_WORKFLOW = WorkflowDefinition(
    kind=WATER_QUANTITY,
    steps=(
        Step("amount_ml", IntRange(WATER_MIN_ML, WATER_MAX_ML, error_key="invalid_water")),
    ),
    terminal=Terminal(TerminalAction.PERSIST, record_kind="water"),
)

FREE_QUESTION_WORKFLOW = WorkflowDefinition(
    kind=FREE_QUESTION,
    steps=(
        Step("question", TextLength(1000, error_key="invalid_question")),
    ),
    terminal=Terminal(TerminalAction.GENERATE, prompt_key="free_question"),
)


ALL_WORKFLOWS = (
    REGISTRATION_WORKFLOW,
    WORKOUT_PLAN_WORKFLOW,
    NUTRITION_PLAN_WORKFLOW,
    PROFILE_EDIT_WORKFLOW,
    WATER_QUANTITY_WORKFLOW,
    FREE_QUESTION_WORKFLOW,
)
