"""
Unit Tests: Workflow Controllers

Тестирует визарды как детерминированные state machines:
- полный проход регистрации
- отклонённый ввод не меняет сессию
- multi-select: toggle, "none" исключает остальные, выход по "done"
- условные рёбра (nutrition_plan maintain, profile_edit goal)
- проверка таблицы переходов при создании определения
"""

import pytest

from systems.effects import (
    Cancelled,
    Choice,
    Finalize,
    Prompt,
    Terminal,
    TerminalAction,
    ValidationMessage,
)
from systems.sessions import (
    FINALIZE,
    NONE_SENTINEL,
    Edge,
    Session,
    Step,
    WizardEvent,
    WorkflowController,
    WorkflowDefinition,
    toggle_member,
)
from systems.sessions.definitions import (
    NUTRITION_PLAN_WORKFLOW,
    PROFILE_EDIT_WORKFLOW,
    REGISTRATION_WORKFLOW,
    WATER_QUANTITY_WORKFLOW,
    WORKOUT_PLAN_WORKFLOW,
)
from systems.sessions.workflow import IntRange


# ============================================================================
# FIXTURES
# ============================================================================

def start(definition: WorkflowDefinition, **fields) -> Session:
    return Session(subject_id=42, workflow_kind=definition.kind,
                   current_state=definition.initial_state, collected_fields=fields)


def at(definition: WorkflowDefinition, state: str, **fields) -> Session:
    return Session(subject_id=42, workflow_kind=definition.kind,
                   current_state=state, collected_fields=fields)


def feed(controller: WorkflowController, session: Session, *events: WizardEvent):
    result = None
    for event in events:
        result = controller.handle(session, event, now=1.0)
        if result.session is not None:
            session = result.session
    return result


@pytest.fixture
def registration():
    return WorkflowController(REGISTRATION_WORKFLOW)


@pytest.fixture
def workout():
    return WorkflowController(WORKOUT_PLAN_WORKFLOW)


# ============================================================================
# REGISTRATION
# ============================================================================

def test_registration_full_pass(registration):
    """
    Тест: Имя → пол → возраст → рост → вес → цель → Finalize со всеми полями
    """
    result = feed(
        registration,
        start(REGISTRATION_WORKFLOW),
        WizardEvent.text("Анна"),
        WizardEvent.choice("female", state="gender"),
        WizardEvent.text("30"),
        WizardEvent.text("165"),
        WizardEvent.text("60,5"),
        WizardEvent.choice("lose", state="goal"),
    )

    assert result.finished
    assert len(result.effects) == 1
    finalize = result.effects[0]
    assert isinstance(finalize, Finalize)
    assert finalize.terminal == Terminal(TerminalAction.PERSIST, record_kind="profile")
    assert finalize.fields == {
        "name": "Анна",
        "gender": "female",
        "age": 30,
        "height": 165,
        "weight": 60.5,
        "goal": "lose_weight",
    }


def test_invalid_age_leaves_session_unchanged(registration):
    """
    Тест: Невалидный возраст → ValidationMessage, та же сессия
    """
    session = at(REGISTRATION_WORKFLOW, "age", name="Анна", gender="female")

    result = registration.handle(session, WizardEvent.text("abc"), now=5.0)

    assert result.session is session
    assert result.effects == [ValidationMessage("invalid_age", {"min": 10, "max": 100})]


def test_out_of_range_age_rejected(registration):
    session = at(REGISTRATION_WORKFLOW, "age", name="Анна", gender="female")

    result = registration.handle(session, WizardEvent.text("150"), now=5.0)

    assert result.session is session
    assert result.effects[0].message_key == "invalid_age"


def test_valid_input_writes_exactly_one_field(registration):
    session = at(REGISTRATION_WORKFLOW, "age", name="Анна", gender="female")

    result = registration.handle(session, WizardEvent.text(" 31 "), now=5.0)

    assert result.session.current_state == "height"
    assert result.session.collected_fields == {"name": "Анна", "gender": "female", "age": 31}
    assert result.session.updated_at == 5.0
    # исходная сессия не мутирована
    assert session.collected_fields == {"name": "Анна", "gender": "female"}
    prompt = result.effects[0]
    assert isinstance(prompt, Prompt)
    assert prompt.message_key == "registration_height"


def test_choice_step_accepts_button_label_as_text(registration):
    session = at(REGISTRATION_WORKFLOW, "gender", name="Анна")

    result = registration.handle(session, WizardEvent.text("👩 Женский"), now=1.0)

    assert result.session.collected_fields["gender"] == "female"


def test_choice_step_rejects_unknown_value(registration):
    session = at(REGISTRATION_WORKFLOW, "gender", name="Анна")

    result = registration.handle(session, WizardEvent.choice("robot", state="gender"), now=1.0)

    assert result.session is session
    assert result.effects == [ValidationMessage("choose_option", {})]


def test_stale_button_is_rejected(registration):
    """
    Тест: Кнопка предыдущего шага → stale_button, состояние не меняется
    """
    session = at(REGISTRATION_WORKFLOW, "age", name="Анна", gender="female")

    result = registration.handle(session, WizardEvent.choice("male", state="gender"), now=1.0)

    assert result.session is session
    assert result.effects == [ValidationMessage("stale_button")]


def test_done_on_single_choice_step(registration):
    session = at(REGISTRATION_WORKFLOW, "gender", name="Анна")

    result = registration.handle(session, WizardEvent.done("gender"), now=1.0)

    assert result.session is session
    assert result.effects == [ValidationMessage("unexpected_done")]


def test_cancel_drops_session(registration):
    session = at(REGISTRATION_WORKFLOW, "age", name="Анна")

    result = registration.handle(session, WizardEvent.cancel(), now=1.0)

    assert result.finished
    assert result.effects == [Cancelled("registration")]


# ============================================================================
# MULTI-SELECT
# ============================================================================

def test_multi_select_toggle_sequence(workout):
    """
    Тест: back, legs, back → {legs}, затем done → следующий шаг
    """
    session = at(WORKOUT_PLAN_WORKFLOW, "priority_zones",
                 level="beginner", focus="strength", days_per_week=3)

    result = feed(
        workout, session,
        WizardEvent.choice("back", state="priority_zones"),
        WizardEvent.choice("legs", state="priority_zones"),
        WizardEvent.choice("back", state="priority_zones"),
    )

    assert result.session.current_state == "priority_zones"
    assert result.session.collected_fields["priority_zones"] == frozenset({"legs"})
    prompt = result.effects[0]
    assert prompt.multi is True
    assert prompt.selected == frozenset({"legs"})

    result = workout.handle(result.session, WizardEvent.done("priority_zones"), now=2.0)

    assert result.session.current_state == "location"
    assert result.session.collected_fields["priority_zones"] == frozenset({"legs"})


def test_multi_select_none_is_exclusive(workout):
    """
    Тест: "none" очищает выбранное, реальный вариант убирает "none"
    """
    session = at(WORKOUT_PLAN_WORKFLOW, "priority_zones")

    result = feed(
        workout, session,
        WizardEvent.choice("chest", state="priority_zones"),
        WizardEvent.choice("arms", state="priority_zones"),
        WizardEvent.choice("none", state="priority_zones"),
    )
    assert result.session.collected_fields["priority_zones"] == frozenset({"none"})

    result = workout.handle(result.session, WizardEvent.choice("abs", state="priority_zones"), 3.0)
    assert result.session.collected_fields["priority_zones"] == frozenset({"abs"})


def test_multi_select_done_with_empty_selection_rejected(workout):
    session = at(WORKOUT_PLAN_WORKFLOW, "priority_zones")

    result = workout.handle(session, WizardEvent.done("priority_zones"), now=1.0)

    assert result.session is session
    assert result.effects == [ValidationMessage("select_at_least_one")]


def test_multi_select_never_advances_on_choice(workout):
    session = at(WORKOUT_PLAN_WORKFLOW, "priority_zones")

    result = workout.handle(session, WizardEvent.choice("glutes", state="priority_zones"), 1.0)

    assert result.session.current_state == "priority_zones"


def test_workout_plan_finalizes_with_generate(workout):
    session = at(WORKOUT_PLAN_WORKFLOW, "location", level="advanced", focus="muscle",
                 days_per_week=4, priority_zones=frozenset({"legs"}))

    result = workout.handle(session, WizardEvent.choice("gym", state="location"), now=1.0)

    finalize = result.effects[0]
    assert finalize.terminal.action == TerminalAction.GENERATE
    assert finalize.terminal.prompt_key == "workout_plan"
    assert finalize.fields["location"] == "gym"


def test_toggle_member():
    assert toggle_member(frozenset(), "back") == {"back"}
    assert toggle_member(frozenset({"back"}), "back") == frozenset()
    assert toggle_member(frozenset({"back", "legs"}), NONE_SENTINEL) == {NONE_SENTINEL}
    assert toggle_member(frozenset({NONE_SENTINEL}), "legs") == {"legs"}


# ============================================================================
# CONDITIONAL EDGES
# ============================================================================

def test_nutrition_plan_maintain_skips_target_weight():
    """
    Тест: Цель "поддерживать вес" → сразу к активности
    """
    controller = WorkflowController(NUTRITION_PLAN_WORKFLOW)

    result = controller.handle(start(NUTRITION_PLAN_WORKFLOW),
                               WizardEvent.choice("maintain", state="goal"), now=1.0)

    assert result.session.current_state == "activity"
    assert "target_weight" not in result.session.collected_fields


def test_nutrition_plan_lose_asks_target_weight():
    controller = WorkflowController(NUTRITION_PLAN_WORKFLOW)

    result = controller.handle(start(NUTRITION_PLAN_WORKFLOW),
                               WizardEvent.choice("lose", state="goal"), now=1.0)

    assert result.session.current_state == "target_weight"


def test_profile_edit_goal_branch():
    """
    Тест: Редактирование цели идёт через шаг с кнопками
    """
    controller = WorkflowController(PROFILE_EDIT_WORKFLOW)

    result = controller.handle(start(PROFILE_EDIT_WORKFLOW),
                               WizardEvent.choice("goal", state="field"), now=1.0)
    assert result.session.current_state == "goal_value"

    result = controller.handle(result.session, WizardEvent.choice("gain", state="goal_value"), 2.0)
    assert result.finished
    assert result.effects[0].fields == {"field": "goal", "value": "gain_mass"}


def test_profile_edit_value_validated_per_field():
    controller = WorkflowController(PROFILE_EDIT_WORKFLOW)
    session = at(PROFILE_EDIT_WORKFLOW, "value", field="height")

    rejected = controller.handle(session, WizardEvent.text("20"), now=1.0)
    assert rejected.session is session
    assert rejected.effects[0].message_key == "invalid_height"

    accepted = controller.handle(session, WizardEvent.text("180"), now=1.0)
    assert accepted.effects[0].fields == {"field": "height", "value": 180}


def test_water_quantity_finalizes_with_persist():
    controller = WorkflowController(WATER_QUANTITY_WORKFLOW)

    result = controller.handle(start(WATER_QUANTITY_WORKFLOW), WizardEvent.text("250"), now=1.0)

    assert result.effects[0].terminal == Terminal(TerminalAction.PERSIST, record_kind="water")
    assert result.effects[0].fields == {"amount_ml": 250}


# ============================================================================
# DEFINITION VALIDATION
# ============================================================================

def test_edge_to_undeclared_state_rejected():
    """
    Тест: Ребро в несуществующее состояние - ошибка при создании
    """
    with pytest.raises(ValueError, match="undeclared"):
        WorkflowDefinition(
            kind="broken",
            steps=(Step("a", IntRange(1, 2)),),
            edges={"a": (Edge("nowhere"),)},
            terminal=Terminal(TerminalAction.PERSIST, record_kind="x"),
        )


def test_conditional_edges_need_fallback():
    with pytest.raises(ValueError, match="fallback"):
        WorkflowDefinition(
            kind="broken",
            steps=(Step("a", IntRange(1, 2)), Step("b", IntRange(1, 2))),
            edges={"a": (Edge("b", when=lambda f: True),)},
            terminal=Terminal(TerminalAction.PERSIST, record_kind="x"),
        )


def test_multi_step_requires_choices():
    with pytest.raises(ValueError, match="needs choices"):
        WorkflowDefinition(
            kind="broken",
            steps=(Step("zones", multi=True),),
            terminal=Terminal(TerminalAction.PERSIST, record_kind="x"),
        )


def test_finalize_is_reserved():
    with pytest.raises(ValueError, match="reserved"):
        WorkflowDefinition(
            kind="broken",
            steps=(Step(FINALIZE, IntRange(1, 2)),),
            terminal=Terminal(TerminalAction.PERSIST, record_kind="x"),
        )


def test_choice_stored_value():
    assert Choice("lose", "📉", stores="lose_weight").stored_value == "lose_weight"
    assert Choice("gym", "🏢").stored_value == "gym"
