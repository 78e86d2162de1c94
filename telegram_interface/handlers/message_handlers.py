"""
Message Handlers - перевод сообщений Telegram во входящие события движка

- текст и команды → InboundKind.TEXT (команды разбирает движок)
- фото           → InboundKind.PHOTO_REF (самый большой размер)
- голосовые      → InboundKind.VOICE_REF
"""

import logging

from aiogram.types import Message

from systems.events import InboundEvent, InboundKind

logger = logging.getLogger(__name__)


def _event(message: Message, kind: InboundKind, payload: str) -> InboundEvent:
    return InboundEvent(
        subject_id=message.from_user.id,
        channel_id=message.chat.id,
        kind=kind,
        payload=payload,
        message_id=message.message_id,
        first_name=message.from_user.first_name,
    )


class MessageHandlers:
    """
    Обработчики входящих сообщений

    Все методы статические. Зависимость (conversation) приходит через partial.
    """

    @staticmethod
    async def handle_text(message: Message, conversation):
        """Текст и команды /start, /menu, /cancel, ..."""
        await conversation.handle_event(_event(message, InboundKind.TEXT, message.text))

    @staticmethod
    async def handle_photo(message: Message, conversation):
        """Фото еды → КБЖУ"""
        photo = message.photo[-1]
        logger.info(f"📸 Photo from user={message.from_user.id} ({photo.width}x{photo.height})")
        await conversation.handle_event(_event(message, InboundKind.PHOTO_REF, photo.file_id))

    @staticmethod
    async def handle_voice(message: Message, conversation):
        """Голосовое → транскрипция → как текст"""
        voice = message.voice or message.audio
        logger.info(f"🎙 Voice from user={message.from_user.id} ({voice.duration}s)")
        await conversation.handle_event(_event(message, InboundKind.VOICE_REF, voice.file_id))

    @staticmethod
    async def handle_unsupported(message: Message, messages):
        """Стикеры, документы и прочее"""
        await message.answer(messages.get_message("unsupported_message"), parse_mode="HTML")
