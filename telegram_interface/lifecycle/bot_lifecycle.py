"""
Bot Lifecycle Manager - управление жизненным циклом бота

Отвечает за:
- Инициализацию сервисов (Database, RecordsDAO, OpenAI, ConversationSystem)
- Запуск polling с graceful shutdown
- Обработку сигналов (SIGINT, SIGTERM)
- Корректное освобождение ресурсов
"""

import asyncio
import logging
import signal
from typing import Callable, Optional

from aiogram import Bot, Dispatcher

from core.config import Settings
from nutribot.ai import OpenAIBackend
from nutribot.database import DatabaseService, RecordsDAO
from nutribot.messages import MessageService
from systems.conversation import ConversationSystem
from ..transport import AiogramTransport

logger = logging.getLogger(__name__)


class BotLifecycle:
    """
    Управление жизненным циклом Telegram бота

    Координирует инициализацию, запуск и остановку всех компонентов системы.
    """

    def __init__(
        self,
        bot: Bot,
        dispatcher: Dispatcher,
        instance_lock,
        settings: Settings,
        messages: MessageService,
        on_services_ready: Optional[Callable[["BotLifecycle"], None]] = None
    ):
        """
        Args:
            bot: Aiogram Bot instance
            dispatcher: Aiogram Dispatcher instance
            instance_lock: BotInstanceLock для предотвращения дублей
            settings: Settings
            messages: MessageService
            on_services_ready: вызывается после инициализации (регистрация handlers)
        """
        self.bot = bot
        self.dp = dispatcher
        self.instance_lock = instance_lock
        self.settings = settings
        self.messages = messages
        self.on_services_ready = on_services_ready

        # Сервисы - инициализируются при старте
        self.db_service: Optional[DatabaseService] = None
        self.records: Optional[RecordsDAO] = None
        self.backend: Optional[OpenAIBackend] = None
        self.conversation: Optional[ConversationSystem] = None

        self._shutdown_event = asyncio.Event()

    def request_shutdown(self):
        self._shutdown_event.set()

    async def setup_signal_handlers(self):
        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info(f"🛑 Received signal {sig}, initiating graceful shutdown...")
            self.request_shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

        logger.info("📡 Signal handlers configured (SIGINT, SIGTERM)")

    async def initialize_services(self) -> bool:
        """
        Returns:
            True если инициализация успешна, False иначе
        """
        db_config = self.settings.db_config

        self.db_service = DatabaseService(**db_config)
        if not await self.db_service.initialize():
            logger.error("❌ Failed to initialize database")
            return False
        logger.info(f"✅ Database connected to schema: {db_config['schema']}")

        self.records = RecordsDAO(self.db_service)
        await self.records.create_tables()
        logger.info("✅ Records tables created/verified")

        self.backend = OpenAIBackend(settings=self.settings, messages=self.messages)
        logger.info("✅ OpenAI backend initialized")

        self.conversation = ConversationSystem.from_settings(
            self.settings,
            transport=AiogramTransport(self.bot),
            store=self.records,
            backend=self.backend,
            messages=self.messages,
        )
        await self.conversation.start()
        logger.info("✅ ConversationSystem started")

        if self.on_services_ready:
            self.on_services_ready(self)

        return True

    async def start_polling(self):
        """Запуск бота с проверкой на дублирующие экземпляры и graceful shutdown"""
        if not await self.instance_lock.acquire():
            logger.error("🚫 Aborting startup - another instance is running")
            return

        try:
            await self.instance_lock.start_refresh()
            await self.setup_signal_handlers()

            if not await self.initialize_services():
                logger.error("❌ Failed to initialize services, aborting")
                return

            self._log_startup_banner()

            polling_task = asyncio.create_task(
                self.dp.start_polling(self.bot, handle_signals=False)
            )
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            done, _ = await asyncio.wait(
                {polling_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
            )

            logger.info("🛑 Initiating graceful shutdown...")
            shutdown_task.cancel()
            if polling_task not in done:
                await self.dp.stop_polling()
            try:
                await polling_task
            except asyncio.CancelledError:
                logger.info("✅ Polling task cancelled")

        finally:
            await self.stop()

    async def stop(self):
        """Graceful остановка бота с освобождением всех ресурсов"""
        logger.info("🛑 Stopping bot gracefully...")

        if self.conversation:
            await self.conversation.stop()
            logger.info("✅ ConversationSystem stopped")

        await self.instance_lock.release()

        await self.bot.session.close()
        logger.info("✅ Bot session closed")

        if self.db_service:
            await self.db_service.close()
            logger.info("✅ Database connection closed")

        logger.info("🎉 Bot stopped successfully")

    def _log_startup_banner(self):
        redis_config = self.settings.redis_config
        logger.info("🚀 NutriBot Controller")
        logger.info("=" * 40)
        logger.info(f"✅ Database schema: {self.settings.db_schema}")
        logger.info(f"✅ Instance lock: redis://{redis_config['host']}:{redis_config['port']}"
                    f"/{redis_config['db']}")
        logger.info(f"✅ Available locales: {self.messages.get_available_locales()}")
        logger.info(f"✅ Models: classify={self.settings.classifier_model}, "
                    f"generate={self.settings.generation_model}")
        logger.info("🔗 Ready for users!")
        logger.info("=" * 40)
