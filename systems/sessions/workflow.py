"""
Workflow Controllers - детерминированные state machines визардов

Каждый визард описывается таблицей WorkflowDefinition:
    упорядоченные шаги "собрать поле F" → терминальное состояние finalize

Шаг = (валидатор, prompt, варианты ответа). Переходы - явные рёбра с
необязательным условием от уже собранных полей. Добавить шаг = добавить
строку в таблицу; все цели рёбер проверяются при создании определения.

Правила:
- невалидный ввод → ValidationMessage, сессия не меняется
- валидный ввод → пишется ровно одно поле, переход по первому подходящему ребру
- multi-select: toggle, sentinel "none" исключает остальные, выход только по "done"
- finalize → эффект Finalize со всеми полями, сессия удаляется
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from core.errors import ValidationError
from systems.effects import (
    Cancelled,
    Choice,
    Effect,
    Finalize,
    Prompt,
    Terminal,
    ValidationMessage,
)
from .models import AdvanceResult, Session, WizardEvent, WizardEventType

logger = logging.getLogger(__name__)

FINALIZE = "finalize"
NONE_SENTINEL = "none"


# ============================================================================
# VALIDATORS
# ============================================================================

class StepValidator:
    """Base validator: parse(event, fields) -> value or raise ValidationError"""

    error_key = "invalid_input"

    def parse(self, event: WizardEvent, fields: Mapping[str, Any]) -> Any:
        raise NotImplementedError

    def fail(self, **params) -> None:
        raise ValidationError(f"Validation failed: {self.error_key}",
                              reason_key=self.error_key, context=params)


def _raw_text(event: WizardEvent) -> str:
    return (event.value or "").strip()


class IntRange(StepValidator):
    """Целое число в диапазоне [low, high]"""

    def __init__(self, low: int, high: int, error_key: str = "invalid_number"):
        self.low = low
        self.high = high
        self.error_key = error_key

    def parse(self, event, fields):
        try:
            value = int(_raw_text(event))
        except ValueError:
            self.fail(min=self.low, max=self.high)
        if not self.low <= value <= self.high:
            self.fail(min=self.low, max=self.high)
        return value


class FloatRange(StepValidator):
    """Дробное число (запятая допустима), low < x <= high"""

    def __init__(self, low: float, high: float, error_key: str = "invalid_number"):
        self.low = low
        self.high = high
        self.error_key = error_key

    def parse(self, event, fields):
        try:
            value = float(_raw_text(event).replace(",", "."))
        except ValueError:
            self.fail(min=self.low, max=self.high)
        if not math.isfinite(value) or not self.low < value <= self.high:
            self.fail(min=self.low, max=self.high)
        return value


class TextLength(StepValidator):
    """Непустой текст с ограничением длины"""

    def __init__(self, max_length: int, min_length: int = 1, error_key: str = "invalid_text"):
        self.min_length = min_length
        self.max_length = max_length
        self.error_key = error_key

    def parse(self, event, fields):
        if event.type != WizardEventType.TEXT:
            self.fail(min=self.min_length, max=self.max_length)
        value = _raw_text(event)
        if not self.min_length <= len(value) <= self.max_length:
            self.fail(min=self.min_length, max=self.max_length)
        return value


class OneOf(StepValidator):
    """Принадлежность перечислению: кнопка или текст, совпадающий с вариантом"""

    def __init__(self, choices: Sequence[Choice], error_key: str = "choose_option"):
        self.choices = tuple(choices)
        self.error_key = error_key

    def match(self, event: WizardEvent) -> Optional[Choice]:
        raw = _raw_text(event).casefold()
        for choice in self.choices:
            if event.type == WizardEventType.CHOICE and raw == choice.value.casefold():
                return choice
            if event.type == WizardEventType.TEXT and raw in (choice.value.casefold(),
                                                              choice.label.casefold()):
                return choice
        return None

    def parse(self, event, fields):
        choice = self.match(event)
        if choice is None:
            self.fail()
        return choice.stored_value


class PerField(StepValidator):
    """Валидатор выбирается по значению уже собранного поля (редактор профиля)"""

    def __init__(self, selector_field: str, validators: Mapping[str, StepValidator]):
        self.selector_field = selector_field
        self.validators = dict(validators)

    def parse(self, event, fields):
        validator = self.validators.get(fields.get(self.selector_field))
        if validator is None:
            raise ValidationError(f"No validator for {fields.get(self.selector_field)!r}",
                                  reason_key="invalid_input")
        return validator.parse(event, fields)


# ============================================================================
# DEFINITION TABLE
# ============================================================================

@dataclass(frozen=True)
class Edge:
    target: str
    when: Optional[Callable[[Mapping[str, Any]], bool]] = None

    def matches(self, fields: Mapping[str, Any]) -> bool:
        return self.when is None or bool(self.when(fields))


@dataclass(frozen=True)
class Step:
    """Состояние "собрать поле" """
    name: str
    validator: Optional[StepValidator] = None
    choices: Tuple[Choice, ...] = ()
    multi: bool = False
    field_name: Optional[str] = None
    prompt_key: Optional[str] = None

    @property
    def field(self) -> str:
        return self.field_name or self.name


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Статическая таблица визарда: шаги, рёбра, терминальный эффект.

    Если для шага не заданы рёбра, переход идёт в следующий по порядку
    шаг (или в finalize после последнего).
    """
    kind: str
    steps: Tuple[Step, ...]
    terminal: Terminal
    edges: Mapping[str, Tuple[Edge, ...]] = field(default_factory=dict)

    def __post_init__(self):
        names = [step.name for step in self.steps]
        if not names:
            raise ValueError(f"Workflow '{self.kind}' has no steps")
        if len(set(names)) != len(names):
            raise ValueError(f"Workflow '{self.kind}' has duplicate states")
        if FINALIZE in names:
            raise ValueError(f"'{FINALIZE}' is reserved in workflow '{self.kind}'")

        resolved: Dict[str, Tuple[Edge, ...]] = {}
        for index, step in enumerate(self.steps):
            if step.multi and not step.choices:
                raise ValueError(f"Multi-select state '{step.name}' needs choices")
            if not step.multi and step.validator is None:
                raise ValueError(f"State '{step.name}' has no validator")
            edges = tuple(self.edges.get(step.name, ()))
            if not edges:
                default = names[index + 1] if index + 1 < len(names) else FINALIZE
                edges = (Edge(default),)
            if edges[-1].when is not None:
                raise ValueError(f"State '{step.name}' needs an unconditional fallback edge")
            for edge in edges:
                if edge.target != FINALIZE and edge.target not in names:
                    raise ValueError(
                        f"Edge {step.name} → {edge.target} points to an undeclared state"
                    )
            resolved[step.name] = edges

        unknown = set(self.edges) - set(names)
        if unknown:
            raise ValueError(f"Edges declared for unknown states: {sorted(unknown)}")

        object.__setattr__(self, "edges", resolved)
        object.__setattr__(self, "_by_name", {step.name: step for step in self.steps})

    @property
    def initial_state(self) -> str:
        return self.steps[0].name

    def step(self, name: str) -> Step:
        return self._by_name[name]

    def next_state(self, state: str, fields: Mapping[str, Any]) -> str:
        for edge in self.edges[state]:
            if edge.matches(fields):
                return edge.target
        raise RuntimeError(f"No edge from {self.kind}:{state}")  # недостижимо: fallback обязателен


# ============================================================================
# CONTROLLER
# ============================================================================

class WorkflowController:
    """Выполняет одну WorkflowDefinition над неизменяемыми Session"""

    def __init__(self, definition: WorkflowDefinition):
        self.definition = definition

    @property
    def kind(self) -> str:
        return self.definition.kind

    def prompt_for(self, state: str, fields: Mapping[str, Any]) -> Prompt:
        step = self.definition.step(state)
        selected = fields.get(step.field, frozenset()) if step.multi else frozenset()
        return Prompt(
            workflow_kind=self.kind,
            state=state,
            message_key=step.prompt_key or f"{self.kind}_{state}",
            choices=step.choices,
            multi=step.multi,
            selected=frozenset(selected),
            params=dict(fields),
        )

    def enter(self, session: Session) -> AdvanceResult:
        """Эффекты при входе в текущее состояние"""
        return AdvanceResult(session, [self.prompt_for(session.current_state,
                                                       session.collected_fields)])

    def handle(self, session: Session, event: WizardEvent, now: float) -> AdvanceResult:
        if event.type == WizardEventType.CANCEL:
            return AdvanceResult(None, [Cancelled(self.kind)])

        step = self.definition.step(session.current_state)

        if event.state is not None and event.state != step.name:
            # Кнопка от предыдущего шага
            return AdvanceResult(session, [ValidationMessage("stale_button")])

        if step.multi:
            return self._handle_multi(session, step, event, now)

        if event.type == WizardEventType.DONE:
            return AdvanceResult(session, [ValidationMessage("unexpected_done")])

        try:
            value = step.validator.parse(event, session.collected_fields)
        except ValidationError as e:
            logger.debug(f"Wizard {self.kind}:{step.name} rejected input: {e.reason_key}")
            return AdvanceResult(session, [ValidationMessage(e.reason_key, e.context)])

        fields = {**session.collected_fields, step.field: value}
        return self._advance(session, step, fields, now)

    def _handle_multi(self, session: Session, step: Step, event: WizardEvent,
                      now: float) -> AdvanceResult:
        current: FrozenSet[str] = frozenset(session.collected_fields.get(step.field, frozenset()))

        if event.type == WizardEventType.DONE:
            if not current:
                return AdvanceResult(session, [ValidationMessage("select_at_least_one")])
            return self._advance(session, step, dict(session.collected_fields), now)

        choice = OneOf(step.choices).match(event)
        if choice is None:
            return AdvanceResult(session, [ValidationMessage("choose_option")])

        updated = toggle_member(current, choice.value)
        fields = {**session.collected_fields, step.field: updated}
        new_session = replace(session, collected_fields=fields, updated_at=now)
        return AdvanceResult(new_session, [self.prompt_for(step.name, fields)])

    def _advance(self, session: Session, step: Step, fields: Dict[str, Any],
                 now: float) -> AdvanceResult:
        target = self.definition.next_state(step.name, fields)

        if target == FINALIZE:
            logger.info(f"🏁 Wizard {self.kind} finalized for subject={session.subject_id}")
            return AdvanceResult(None, [Finalize(self.kind, self.definition.terminal, fields)])

        new_session = replace(session, current_state=target, collected_fields=fields,
                              updated_at=now)
        return AdvanceResult(new_session, [self.prompt_for(target, fields)])


def toggle_member(current: FrozenSet[str], member: str) -> FrozenSet[str]:
    """
    Toggle для multi-select поля.

    "none" взаимоисключающий со всеми реальными вариантами:
    выбор "none" очищает остальные, выбор реального варианта убирает "none".
    """
    if member in current:
        return current - {member}
    if member == NONE_SENTINEL:
        return frozenset({NONE_SENTINEL})
    return (current - {NONE_SENTINEL}) | {member}


def build_controllers(definitions: Sequence[WorkflowDefinition]) -> Dict[str, WorkflowController]:
    return {definition.kind: WorkflowController(definition) for definition in definitions}
