"""
Session Logger Middleware - логирование переходов визардов

Логирует состояние активного визарда пользователя до и после
обработки апдейта. Полезно для отладки пользовательских потоков.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message

from systems.sessions import SessionDirectory

logger = logging.getLogger(__name__)


class SessionLoggerMiddleware(BaseMiddleware):
    """
    Middleware для логирования wizard state transitions

    Логирует:
    - Текущий шаг визарда до выполнения handler
    - Изменение шага (или завершение визарда) после
    """

    def __init__(self, directory: SessionDirectory):
        self.directory = directory

    def _describe(self, user_id: int) -> Optional[str]:
        session = self.directory.current(user_id)
        if session is None:
            return None
        return f"{session.workflow_kind}:{session.current_state}"

    async def __call__(
        self,
        handler: Callable[[Message | CallbackQuery, Dict[str, Any]], Awaitable[Any]],
        event: Message | CallbackQuery,
        data: Dict[str, Any]
    ) -> Any:
        user = getattr(event, "from_user", None)
        if user is None:
            return await handler(event, data)

        before = self._describe(user.id)
        logger.debug(f"🔄 Wizard [BEFORE]: user={user.id}, state={before or 'None'}")

        result = await handler(event, data)

        after = self._describe(user.id)
        if after != before:
            logger.info(f"✨ Wizard [CHANGED]: user={user.id}, {before or 'None'} → {after or 'None'}")

        return result
