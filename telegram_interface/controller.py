"""
NutriBot Controller - координатор

Только композиция компонентов, без бизнес-логики:
- lifecycle: жизненный цикл бота
- handler_registry: регистрация handlers
- transport: реализация порта Transport поверх aiogram
"""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties

from core.config import get_settings
from core.logging import setup_logging
from nutribot.messages import get_message_service

from .handler_registry import HandlerRegistry
from .lifecycle import BotInstanceLock, BotLifecycle

logger = logging.getLogger(__name__)


class NutriBotController:
    """
    Контроллер NutriBot

    Ответственность:
    - Инициализация Bot и Dispatcher
    - Регистрация handlers через HandlerRegistry после старта сервисов
    - Запуск через BotLifecycle
    """

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        logger.info("🤖 Initializing NutriBot Controller...")

        self.bot = Bot(
            token=self.settings.bot_token,
            default=DefaultBotProperties(parse_mode="HTML"),
        )
        # Состояние визардов живёт в SessionDirectory, FSM storage aiogram не нужен
        self.dp = Dispatcher()
        logger.info("✅ Bot and Dispatcher created")

        self.messages = get_message_service(debug_mode=self.settings.debug_messages)
        logger.info("✅ MessageService initialized")

        redis_config = self.settings.redis_config
        self.instance_lock = BotInstanceLock(
            redis_host=redis_config["host"],
            redis_port=redis_config["port"],
            redis_db=redis_config["db"],
            lock_key=self.settings.bot_instance_lock_key,
            lock_ttl=self.settings.bot_instance_lock_ttl
        )

        self.lifecycle = BotLifecycle(
            bot=self.bot,
            dispatcher=self.dp,
            instance_lock=self.instance_lock,
            settings=self.settings,
            messages=self.messages,
            on_services_ready=self._register_handlers,
        )
        self.handler_registry = None

        logger.info("🎉 NutriBot Controller initialized successfully")

    def _register_handlers(self, lifecycle: BotLifecycle):
        self.handler_registry = HandlerRegistry(
            dp=self.dp,
            conversation=lifecycle.conversation,
            messages=self.messages
        )
        self.handler_registry.register_all()
        self.dp.startup.register(self._set_bot_commands)

    async def _set_bot_commands(self):
        await self.bot.set_my_commands(HandlerRegistry.bot_commands())
        logger.info("📋 Bot commands published")

    async def start(self):
        logger.info("🚀 Starting NutriBot...")
        await self.lifecycle.start_polling()

    async def stop(self):
        logger.info("🛑 Stopping NutriBot...")
        self.lifecycle.request_shutdown()


async def main():
    """
    Точка входа

    Использование:
        python -m telegram_interface.controller
    """
    settings = get_settings()
    setup_logging(settings)

    controller = NutriBotController(settings)
    await controller.start()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
