"""
Activity Indicator - "печатает..." пока идёт работа

Telegram показывает chat action ~5 секунд, поэтому сигнал
повторяется чаще (по умолчанию раз в 4 секунды) из фоновой задачи.
Задача останавливается через stop() или сама по истечении max_duration.
Ошибки отправки игнорируются: индикатор чисто косметический.

Usage:
    async with ActivityIndicator(transport, chat_id):
        answer = await backend.analyze_medical(text)
"""

import asyncio
import logging
from typing import Optional

from systems.ports import Transport

logger = logging.getLogger(__name__)


class ActivityIndicator:
    """Cancellable periodic keep-alive signal for one channel"""

    def __init__(
        self,
        transport: Transport,
        channel_id: int,
        interval: float = 4.0,
        max_duration: float = 90.0
    ):
        self.transport = transport
        self.channel_id = channel_id
        self.interval = interval
        self.max_duration = max_duration
        self.signals_sent = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, max_duration: Optional[float] = None) -> "ActivityIndicator":
        if max_duration is not None:
            self.max_duration = max_duration
        if not self.running:
            self._task = asyncio.create_task(self._run(), name=f"activity:{self.channel_id}")
        return self

    async def stop(self):
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.max_duration
        while loop.time() < deadline:
            try:
                await self.transport.send_keep_alive(self.channel_id)
                self.signals_sent += 1
            except Exception as e:
                logger.debug(f"Activity signal failed for channel={self.channel_id}: {e}")
            await asyncio.sleep(min(self.interval, max(0.0, deadline - loop.time())))
        logger.debug(f"Activity indicator for channel={self.channel_id} reached max duration")

    async def __aenter__(self) -> "ActivityIndicator":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
