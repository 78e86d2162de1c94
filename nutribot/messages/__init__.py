"""
NutriBot Messages System

Тексты, клавиатуры и системные промпты:
- JSON шаблоны с Jinja2 переменными (templates/<locale>/<category>.json)
- HTML форматирование для Telegram
"""

from .formatters import TelegramFormatter
from .service import MessageService

# Singleton instance для всего приложения
_message_service = None


def get_message_service(debug_mode: bool = False) -> MessageService:
    """Получить синглтон MessageService"""
    global _message_service
    if _message_service is None:
        _message_service = MessageService(debug_mode=debug_mode)
    else:
        _message_service.debug_mode = debug_mode
    return _message_service


def get_message(key: str, locale: str = "ru", category: str = "general", **kwargs) -> str:
    """Быстрый доступ к сообщению"""
    return get_message_service().get_message(key, locale, category, **kwargs)


__all__ = [
    "MessageService",
    "TelegramFormatter",
    "get_message_service",
    "get_message",
]
