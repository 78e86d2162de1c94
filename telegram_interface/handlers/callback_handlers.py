"""
Callback Handlers - нажатия inline-кнопок

callback_data целиком передаётся движку как InboundKind.BUTTON_PRESS:
wiz:* (визарды), tok:* (подтверждение записи), menu:*, stats:*
"""

import logging

from aiogram.exceptions import TelegramAPIError
from aiogram.types import CallbackQuery

from systems.events import InboundEvent, InboundKind

logger = logging.getLogger(__name__)


class CallbackHandlers:
    """Обработчики callback кнопок"""

    @staticmethod
    async def handle_callback(callback: CallbackQuery, conversation):
        # Отвечаем сразу: Telegram ждёт ответ на callback не дольше нескольких секунд
        try:
            await callback.answer()
        except TelegramAPIError as e:
            logger.debug(f"callback.answer failed for user={callback.from_user.id}: {e}")

        if callback.message is None:
            logger.warning(f"Callback {callback.data!r} without message from user={callback.from_user.id}")
            return

        await conversation.handle_event(InboundEvent(
            subject_id=callback.from_user.id,
            channel_id=callback.message.chat.id,
            kind=InboundKind.BUTTON_PRESS,
            payload=callback.data or "",
            message_id=callback.message.message_id,
            first_name=callback.from_user.first_name,
        ))
