"""
Inbound events - вход движка, не зависящий от транспорта
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class InboundKind(str, Enum):
    TEXT = "text"
    PHOTO_REF = "photo_ref"
    VOICE_REF = "voice_ref"
    BUTTON_PRESS = "button_press"


@dataclass(frozen=True)
class InboundEvent:
    """
    {subject_id, channel_id, kind, payload}

    payload:
        TEXT          - текст сообщения
        PHOTO_REF     - file_id самого большого размера фото
        VOICE_REF     - file_id голосового
        BUTTON_PRESS  - callback_data
    """
    subject_id: int
    channel_id: int
    kind: InboundKind
    payload: str
    message_id: Optional[int] = None  # сообщение с кнопками (для edit после нажатия)
    first_name: Optional[str] = None


@dataclass
class SubjectContext:
    """Что известно о пользователе на момент обработки события"""
    subject_id: int
    channel_id: int
    profile: Optional[Dict[str, Any]] = None
    locale: str = "ru"
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        if self.profile and self.profile.get("name"):
            return self.profile["name"]
        return self.extra.get("first_name") or "друг"

    def as_dict(self) -> Dict[str, Any]:
        """Контекст для классификатора (без лишних персональных данных)"""
        context: Dict[str, Any] = {"subject_id": self.subject_id, "locale": self.locale}
        if self.profile:
            context["goal"] = self.profile.get("goal")
            context["gender"] = self.profile.get("gender")
        return context
