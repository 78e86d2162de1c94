"""
Session models - сессия визарда и входящие события визарда
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional

from systems.effects import Effect


class WizardEventType(str, Enum):
    """Типы событий, которые понимает Workflow Controller"""
    TEXT = "text"        # свободный ввод
    CHOICE = "choice"    # нажатие кнопки варианта
    DONE = "done"        # выход из multi-select шага
    CANCEL = "cancel"


@dataclass(frozen=True)
class WizardEvent:
    type: WizardEventType
    value: Optional[str] = None
    state: Optional[str] = None  # состояние, к которому привязана кнопка

    @classmethod
    def text(cls, value: str) -> "WizardEvent":
        return cls(WizardEventType.TEXT, value)

    @classmethod
    def choice(cls, value: str, state: Optional[str] = None) -> "WizardEvent":
        return cls(WizardEventType.CHOICE, value, state)

    @classmethod
    def done(cls, state: Optional[str] = None) -> "WizardEvent":
        return cls(WizardEventType.DONE, None, state)

    @classmethod
    def cancel(cls) -> "WizardEvent":
        return cls(WizardEventType.CANCEL)


@dataclass(frozen=True)
class Session:
    """
    Живая позиция пользователя внутри визарда.

    Неизменяемая: каждый переход создаёт новый объект, поэтому
    отклонённый ввод гарантированно оставляет сессию как была.
    """
    subject_id: int
    workflow_kind: str
    current_state: str
    collected_fields: Mapping[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass
class AdvanceResult:
    """Результат шага: новая сессия (или None) + эффекты для executor"""
    session: Optional[Session]
    effects: List[Effect] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.session is None
