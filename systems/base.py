"""
Base System Interface

Единый интерфейс для долгоживущих систем бота.

Каждая система наследуется от BaseSystem и реализует:
- start() - запуск (фоновые задачи, подключения)
- stop() - graceful shutdown
- health_check() - проверка здоровья

Usage:
    class ConversationSystem(BaseSystem):
        async def start(self):
            self.spawn_periodic("sweeper", 60.0, self.sweep)
            self.mark_running()
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Статус здоровья системы"""
    HEALTHY = "healthy"      # Все в порядке
    DEGRADED = "degraded"    # Работает с ограничениями
    UNHEALTHY = "unhealthy"  # Критические проблемы


class SystemState(str, Enum):
    """Состояние системы"""
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class BaseSystem(ABC):
    """
    Базовый интерфейс для систем

    Обеспечивает:
    - Lifecycle management (start/stop)
    - Health checks
    - Metrics tracking
    - Periodic background tasks с детерминированной отменой
    """

    def __init__(self, name: str):
        """
        Args:
            name: Имя системы (например "conversation")
        """
        self.name = name
        self.state = SystemState.STOPPED
        self.started_at: Optional[datetime] = None
        self.stopped_at: Optional[datetime] = None

        self._background_tasks: Dict[str, asyncio.Task] = {}

        self._metrics: Dict[str, Any] = {
            "total_events_processed": 0,
            "total_events_failed": 0,
            "uptime_seconds": 0.0
        }

    # ========================================================================
    # LIFECYCLE METHODS (must implement)
    # ========================================================================

    @abstractmethod
    async def start(self):
        """Запускает систему"""

    @abstractmethod
    async def stop(self):
        """Graceful shutdown системы"""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Проверка здоровья системы

        Returns:
            {
                "status": "healthy|degraded|unhealthy",
                "checks": {...},
                "metrics": {...}
            }
        """

    def mark_running(self):
        self.state = SystemState.RUNNING
        self.started_at = datetime.now()
        logger.info(f"✅ System '{self.name}' is running")

    def mark_stopped(self):
        self.state = SystemState.STOPPED
        self.stopped_at = datetime.now()
        logger.info(f"🛑 System '{self.name}' stopped")

    # ========================================================================
    # BACKGROUND TASKS
    # ========================================================================

    def spawn_periodic(
        self,
        task_name: str,
        interval: float,
        func: Callable[[], Union[Any, Awaitable[Any]]]
    ) -> asyncio.Task:
        """
        Запускает периодическую задачу, которая отменяется в stop_background_tasks()

        Ошибки одной итерации логируются и не останавливают цикл.
        """
        async def _loop():
            try:
                while True:
                    await asyncio.sleep(interval)
                    try:
                        result = func()
                        if asyncio.iscoroutine(result):
                            await result
                    except Exception as e:
                        logger.error(f"❌ Periodic task {self.name}:{task_name} failed: {e}",
                                     exc_info=True)
            except asyncio.CancelledError:
                logger.debug(f"Periodic task {self.name}:{task_name} cancelled")
                raise

        task = asyncio.create_task(_loop(), name=f"{self.name}:{task_name}")
        self._background_tasks[task_name] = task
        logger.info(f"🔄 Background task started: {self.name}:{task_name} (every {interval}s)")
        return task

    async def stop_background_tasks(self):
        """Отменяет все фоновые задачи и ждёт их завершения"""
        tasks = list(self._background_tasks.values())
        self._background_tasks.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ========================================================================
    # METRICS & MONITORING
    # ========================================================================

    def get_metrics(self) -> Dict[str, Any]:
        """Возвращает метрики системы"""
        if self.started_at:
            self._metrics["uptime_seconds"] = (
                datetime.now() - self.started_at
            ).total_seconds()

        return {
            **self._metrics,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }

    def increment_metric(self, metric_name: str, value: float = 1.0):
        """Увеличивает метрику"""
        self._metrics[metric_name] = self._metrics.get(metric_name, 0) + value

    def set_metric(self, metric_name: str, value: Any):
        """Устанавливает значение метрики"""
        self._metrics[metric_name] = value
