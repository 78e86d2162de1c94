"""
Handler Registry - регистрация всех обработчиков бота

Отвечает за:
- Регистрацию handlers с dependency injection
- Связывание handlers с командами и типами сообщений
- Middleware регистрацию
"""

import logging
from functools import partial

from aiogram import Dispatcher, F
from aiogram.filters import Command, CommandStart
from aiogram.types import BotCommand

from .handlers import CallbackHandlers, MessageHandlers
from .middleware import SessionLoggerMiddleware

logger = logging.getLogger(__name__)

# Команды разбирает ConversationEngine, здесь только регистрация и описание для меню
BOT_COMMANDS = (
    ("menu", "Главное меню"),
    ("stats", "Статистика питания"),
    ("plan", "План тренировок"),
    ("nutrition", "План питания"),
    ("water", "Записать воду"),
    ("ask", "Задать вопрос"),
    ("profile", "Изменить профиль"),
    ("cancel", "Отменить текущий диалог"),
    ("help", "Справка"),
)


class HandlerRegistry:
    """
    Регистратор всех обработчиков бота

    Использует dependency injection для передачи зависимостей в handlers.
    """

    def __init__(self, dp: Dispatcher, conversation, messages):
        """
        Args:
            dp: Aiogram Dispatcher
            conversation: ConversationSystem (handle_event + engine.directory)
            messages: MessageService
        """
        self.dp = dp
        self.conversation = conversation
        self.messages = messages

    @staticmethod
    def bot_commands() -> list:
        return [BotCommand(command=name, description=description)
                for name, description in BOT_COMMANDS]

    def register_all(self):
        """Регистрация всех handlers и middleware"""
        logger.info("🔧 Registering all handlers...")

        self._register_middleware()
        self._register_command_handlers()
        self._register_message_handlers()
        self._register_callback_handlers()
        self._register_fallback_handlers()

        logger.info("✅ All handlers registered successfully")

    def _register_middleware(self):
        session_logger = SessionLoggerMiddleware(self.conversation.engine.directory)
        self.dp.message.middleware(session_logger)
        self.dp.callback_query.middleware(session_logger)
        logger.info("🔄 Middleware registered: SessionLoggerMiddleware")

    def _register_command_handlers(self):
        handle_text = partial(MessageHandlers.handle_text, conversation=self.conversation)

        self.dp.message.register(handle_text, CommandStart())
        self.dp.message.register(handle_text, Command(*(name for name, _ in BOT_COMMANDS)))

        logger.info(f"📝 Command handlers registered: /start, "
                    f"{', '.join('/' + name for name, _ in BOT_COMMANDS)}")

    def _register_message_handlers(self):
        self.dp.message.register(
            partial(MessageHandlers.handle_photo, conversation=self.conversation),
            F.photo
        )
        self.dp.message.register(
            partial(MessageHandlers.handle_voice, conversation=self.conversation),
            F.voice | F.audio
        )
        self.dp.message.register(
            partial(MessageHandlers.handle_text, conversation=self.conversation),
            F.text
        )
        logger.info("💬 Message handlers registered: text, photo, voice")

    def _register_callback_handlers(self):
        self.dp.callback_query.register(
            partial(CallbackHandlers.handle_callback, conversation=self.conversation),
            F.data
        )
        logger.info("🔘 Callback handlers registered")

    def _register_fallback_handlers(self):
        self.dp.message.register(
            partial(MessageHandlers.handle_unsupported, messages=self.messages)
        )
        logger.info("❓ Fallback handler registered")
