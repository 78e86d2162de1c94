"""
Conversation System - жизненный цикл движка

- Сборка ConversationEngine из Settings
- Периодическая очистка просроченных визардов и токенов
- Метрики и health check
"""

import logging
import time
from typing import Any, Dict

from core.config import Settings
from nutribot.messages import MessageService
from systems.base import BaseSystem, HealthStatus, SystemState
from systems.confirmation import ConfirmationTokenStore
from systems.events import InboundEvent
from systems.ports import GenerationBackend, RecordStore, Transport
from systems.rendering import IncrementalRenderer
from systems.sessions import SessionDirectory
from .engine import ConversationEngine
from .executor import EffectExecutor

logger = logging.getLogger(__name__)


class ConversationSystem(BaseSystem):
    """Обёртка над ConversationEngine с фоновым sweeper'ом"""

    def __init__(self, engine: ConversationEngine, sweep_interval: float = 60.0):
        super().__init__("conversation")
        self.engine = engine
        self.sweep_interval = sweep_interval

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Transport,
        store: RecordStore,
        backend: GenerationBackend,
        messages: MessageService
    ) -> "ConversationSystem":
        directory = SessionDirectory(ttl_seconds=settings.session_ttl_seconds)
        tokens = ConfirmationTokenStore(ttl_seconds=settings.token_ttl_seconds)
        renderer = IncrementalRenderer(
            transport,
            formatter=messages.formatter,
            direct_send_threshold=settings.direct_send_threshold,
            min_edit_interval=settings.min_edit_interval,
            stream_timeout=settings.stream_timeout,
            cursor=settings.render_cursor,
        )
        executor = EffectExecutor(
            transport, store, backend, directory, tokens, messages,
            renderer=renderer,
            activity_interval=settings.activity_interval,
        )
        engine = ConversationEngine(
            transport, store, backend, messages,
            directory=directory,
            tokens=tokens,
            executor=executor,
            activity_interval=settings.activity_interval,
            activity_max_duration=settings.activity_max_duration,
        )
        return cls(engine, sweep_interval=settings.sweep_interval_seconds)

    async def start(self):
        self.state = SystemState.STARTING
        self.spawn_periodic("sweeper", self.sweep_interval, self.sweep)
        self.mark_running()

    async def stop(self):
        self.state = SystemState.STOPPING
        await self.stop_background_tasks()
        self.mark_stopped()

    async def handle_event(self, event: InboundEvent) -> None:
        started = time.monotonic()
        failures_before = sum(self.engine.error_tracker.error_counts.values())

        await self.engine.handle_event(event)

        self.increment_metric("total_events_processed")
        if sum(self.engine.error_tracker.error_counts.values()) > failures_before:
            self.increment_metric("total_events_failed")
        self.set_metric("last_event_duration_ms", round((time.monotonic() - started) * 1000, 2))

    def sweep(self) -> Dict[str, int]:
        """Удаляет просроченные сессии визардов и токены подтверждения"""
        purged = {
            "sessions": self.engine.directory.sweep(),
            "tokens": self.engine.tokens.sweep(),
        }
        self.increment_metric("sessions_expired", purged["sessions"])
        self.increment_metric("tokens_expired", purged["tokens"])
        return purged

    async def health_check(self) -> Dict[str, Any]:
        checks = {
            "running": self.state == SystemState.RUNNING,
            "sweeper": "sweeper" in self._background_tasks
                       and not self._background_tasks["sweeper"].done(),
        }
        status = HealthStatus.HEALTHY if all(checks.values()) else HealthStatus.UNHEALTHY
        return {
            "status": status.value,
            "checks": checks,
            "metrics": {
                **self.get_metrics(),
                "active_subjects": self.engine.mailbox.active_subjects(),
                "errors": self.engine.error_tracker.get_error_stats(),
            },
        }

