"""
Database Service - подключение к PostgreSQL

Отвечает ТОЛЬКО за:
- Connection pooling
- Подключение к схеме бота (search_path)
- Базовые операции с соединением
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)


class DatabaseService:
    """Сервис для работы с базой данных"""

    def __init__(self, host: str, port: int, user: str, password: str, database: str,
                 schema: str = "nutribot"):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.schema = schema
        self.pool: Optional[asyncpg.Pool] = None

        logger.info(f"DatabaseService initialized for {schema} schema")

    async def initialize(self, min_size: int = 2, max_size: int = 10) -> bool:
        """Инициализация connection pool"""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                server_settings={"search_path": self.schema},
                min_size=min_size,
                max_size=max_size,
                max_inactive_connection_lifetime=300,
                command_timeout=30
            )

            async with self.pool.acquire() as conn:
                await conn.execute(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"')
                schema = await conn.fetchval("SELECT current_schema()")
                logger.info(f"✅ Connected to database, current schema: {schema}")

            return True

        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"❌ Failed to initialize database pool: {e}")
            return False

    @asynccontextmanager
    async def get_connection(self):
        """Получить соединение из пула"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.acquire() as connection:
            try:
                yield connection
            except asyncpg.PostgresError as e:
                logger.error(f"Database operation error: {e}")
                raise

    async def fetch_one(self, query: str, *args):
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args)

    async def execute(self, query: str, *args):
        """Выполнить команду (INSERT/UPDATE/DELETE)"""
        async with self.get_connection() as conn:
            return await conn.execute(query, *args)

    async def close(self):
        if self.pool:
            await self.pool.close()
            logger.info("Database pool closed")
