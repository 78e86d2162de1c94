"""
Bot Instance Lock - предотвращение множественных экземпляров бота

Redis SET NX + периодическое продление TTL.
Два процесса с одним токеном ломают getUpdates друг другу,
поэтому без блокировки бот не стартует.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class BotInstanceLock:
    """Distributed lock экземпляра бота в Redis"""

    def __init__(
        self,
        redis_host: str,
        redis_port: int,
        redis_db: int,
        lock_key: str,
        lock_ttl: int = 30,
        client: Optional[redis.Redis] = None
    ):
        """
        Args:
            redis_host: Redis server host
            redis_port: Redis server port
            redis_db: Redis database number
            lock_key: Key name for the lock in Redis
            lock_ttl: Lock TTL in seconds (default: 30)
            client: готовый клиент (для тестов)
        """
        self.redis_host = redis_host
        self.redis_port = redis_port
        self.redis_db = redis_db
        self.lock_key = lock_key
        self.lock_ttl = lock_ttl

        self.redis_client: Optional[redis.Redis] = client
        self.refresh_task: Optional[asyncio.Task] = None
        self._owner = f"pid:{os.getpid()}:started:{datetime.now().isoformat()}"
        self._held = False

    @property
    def refresh_interval(self) -> float:
        return max(1, self.lock_ttl // 2)

    async def acquire(self) -> bool:
        """
        Returns:
            True если блокировка получена, False если другой экземпляр уже запущен
            или Redis недоступен
        """
        if self.redis_client is None:
            self.redis_client = redis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                db=self.redis_db,
                decode_responses=True
            )

        try:
            acquired = await self.redis_client.set(
                self.lock_key, self._owner, nx=True, ex=self.lock_ttl
            )
            if acquired:
                self._held = True
                logger.info(f"✅ Bot instance lock acquired ({self._owner})")
                return True

            holder = await self.redis_client.get(self.lock_key)
            logger.error(
                f"❌ Another bot instance is already running!\n"
                f"   Lock holder: {holder}\n"
                f"   Please stop other instances before starting a new one."
            )
            return False

        except (RedisError, OSError) as e:
            logger.error(f"❌ Failed to acquire instance lock: {e}")
            return False

    async def start_refresh(self):
        self.refresh_task = asyncio.create_task(self._refresh_loop())
        logger.info(f"🔄 Instance lock refresh task started (interval: {self.refresh_interval}s)")

    async def _refresh_loop(self):
        while self._held:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.redis_client.expire(self.lock_key, self.lock_ttl)
                logger.debug(f"🔄 Instance lock refreshed (TTL: {self.lock_ttl}s)")
            except (RedisError, OSError) as e:
                # Следующая итерация попробует снова, ключ живёт ещё lock_ttl/2
                logger.error(f"❌ Error refreshing instance lock: {e}")

    async def release(self):
        """Освободить блокировку при shutdown"""
        self._held = False

        if self.refresh_task and not self.refresh_task.done():
            self.refresh_task.cancel()
            try:
                await self.refresh_task
            except asyncio.CancelledError:
                pass
            logger.info("✅ Instance lock refresh task stopped")

        if self.redis_client is None:
            return

        try:
            # Удаляем только свой ключ
            if await self.redis_client.get(self.lock_key) == self._owner:
                await self.redis_client.delete(self.lock_key)
                logger.info("✅ Bot instance lock released")
            await self.redis_client.aclose()
            logger.info("✅ Redis client closed")
        except (RedisError, OSError) as e:
            logger.error(f"❌ Error releasing instance lock: {e}")
