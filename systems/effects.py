"""
Effects - описания побочных действий, которые возвращает чистая оркестрация

Session Directory, Workflow Controllers и Action Dispatcher ничего не
отправляют и не пишут сами: они возвращают эффекты, а EffectExecutor
выполняет их через Transport / RecordStore / GenerationBackend.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Choice:
    """Вариант ответа на шаге визарда"""
    value: str
    label: str
    stores: Optional[Any] = None  # значение, которое попадает в collected_fields

    @property
    def stored_value(self) -> Any:
        return self.value if self.stores is None else self.stores


class TerminalAction(str, Enum):
    """Что делать с собранными полями в состоянии finalize"""
    PERSIST = "persist"
    GENERATE = "generate"


@dataclass(frozen=True)
class Terminal:
    action: TerminalAction
    record_kind: Optional[str] = None   # для PERSIST
    prompt_key: Optional[str] = None    # для GENERATE (ключ в prompts.json)


class Effect:
    """Marker base class for all effects"""


@dataclass(frozen=True)
class Prompt(Effect):
    """Вопрос шага визарда (+ клавиатура вариантов)"""
    workflow_kind: str
    state: str
    message_key: str
    choices: Tuple[Choice, ...] = ()
    multi: bool = False
    selected: FrozenSet[str] = frozenset()
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationMessage(Effect):
    """Ввод отклонён правилом шага"""
    message_key: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Finalize(Effect):
    """Визард завершён, несёт все собранные поля"""
    workflow_kind: str
    terminal: Terminal
    fields: Mapping[str, Any]


@dataclass(frozen=True)
class Cancelled(Effect):
    workflow_kind: Optional[str] = None


@dataclass(frozen=True)
class NoActiveWizard(Effect):
    """Нажата кнопка визарда, но активной сессии нет (устарела)"""


@dataclass(frozen=True)
class Reply(Effect):
    """Простой текстовый ответ по шаблону"""
    message_key: str
    category: str = "general"
    params: Mapping[str, Any] = field(default_factory=dict)
    keyboard_key: Optional[str] = None


@dataclass(frozen=True)
class Persist(Effect):
    """Немедленная запись без подтверждения (вода, тренировка)"""
    record_kind: str
    fields: Mapping[str, Any]
    success_key: str = "record_saved"


@dataclass(frozen=True)
class ProposeRecord(Effect):
    """Предложение записи, которое нужно подтвердить кнопкой (еда)"""
    record_kind: str
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class Generate(Effect):
    """Потоковая генерация ответа через Incremental Renderer"""
    prompt: str
    system_key: str = "assistant"
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StartWizard(Effect):
    workflow_kind: str
    initial_fields: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Report(Effect):
    """Статистика питания за период"""
    period: str = "today"
