"""
Aiogram Transport - реализация порта Transport поверх aiogram Bot

Ошибки Telegram API конвертируются:
- "message is not modified" → MessageNotModifiedError (рендерер их глотает)
- всё остальное            → TransportError
"""

import logging
from typing import Any, Optional

from aiogram import Bot
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup

from core.errors import MessageNotModifiedError, TransportError
from systems.ports import MessageHandle

logger = logging.getLogger(__name__)

NOT_MODIFIED_MARKER = "message is not modified"


class AiogramTransport:
    """Transport port for Telegram Bot API"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(
        self,
        channel_id: int,
        text: str,
        keyboard: Any = None,
        parse_mode: Optional[str] = None
    ) -> MessageHandle:
        try:
            message = await self.bot.send_message(
                chat_id=channel_id,
                text=text,
                reply_markup=keyboard,
                parse_mode=parse_mode,
            )
        except TelegramAPIError as e:
            raise TransportError(f"send_message failed: {e}",
                                 context={"channel_id": channel_id}) from e
        return MessageHandle(channel_id, message.message_id)

    async def edit_message(
        self,
        handle: MessageHandle,
        text: str,
        keyboard: Any = None,
        parse_mode: Optional[str] = None
    ) -> None:
        if keyboard is not None and not isinstance(keyboard, InlineKeyboardMarkup):
            # Telegram не позволяет прикрепить reply-клавиатуру при редактировании
            raise TransportError("Only inline keyboards can be attached on edit")

        try:
            await self.bot.edit_message_text(
                text=text,
                chat_id=handle.channel_id,
                message_id=handle.message_id,
                reply_markup=keyboard,
                parse_mode=parse_mode,
            )
        except TelegramBadRequest as e:
            if NOT_MODIFIED_MARKER in str(e).lower():
                raise MessageNotModifiedError(str(e)) from e
            raise TransportError(f"edit_message failed: {e}",
                                 context={"message_id": handle.message_id}) from e
        except TelegramAPIError as e:
            raise TransportError(f"edit_message failed: {e}",
                                 context={"message_id": handle.message_id}) from e

    async def send_keep_alive(self, channel_id: int) -> None:
        try:
            await self.bot.send_chat_action(chat_id=channel_id, action=ChatAction.TYPING)
        except TelegramAPIError as e:
            raise TransportError(f"send_chat_action failed: {e}") from e

    async def download_file(self, file_id: str) -> bytes:
        try:
            buffer = await self.bot.download(file_id)
        except TelegramAPIError as e:
            raise TransportError(f"download failed: {e}", context={"file_id": file_id}) from e
        if buffer is None:
            raise TransportError("download returned no data", context={"file_id": file_id})
        return buffer.read()

