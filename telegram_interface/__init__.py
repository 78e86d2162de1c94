"""
Telegram Interface - aiogram-обвязка над ConversationSystem

- controller: главный координатор
- lifecycle: instance lock, инициализация, graceful shutdown
- handler_registry: регистрация handlers с DI
- handlers: Message/Callback → InboundEvent
- middleware: логирование состояния визардов
- transport: порт Transport поверх aiogram Bot
"""

from .controller import NutriBotController, main
from .handler_registry import HandlerRegistry
from .handlers import CallbackHandlers, MessageHandlers
from .lifecycle import BotInstanceLock, BotLifecycle
from .middleware import SessionLoggerMiddleware
from .transport import AiogramTransport

__all__ = [
    "NutriBotController",
    "main",
    "HandlerRegistry",
    "CallbackHandlers",
    "MessageHandlers",
    "BotInstanceLock",
    "BotLifecycle",
    "SessionLoggerMiddleware",
    "AiogramTransport",
]
