"""
Handlers - обработчики Telegram апдейтов

Модули:
- message_handlers: текст, команды, фото, голосовые
- callback_handlers: inline-кнопки
"""

from .message_handlers import MessageHandlers
from .callback_handlers import CallbackHandlers

__all__ = [
    "MessageHandlers",
    "CallbackHandlers",
]
