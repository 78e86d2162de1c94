"""
Incremental Renderer - потоковый вывод ответа модели в одно сообщение

Алгоритм:
1. Пока накоплено меньше direct_send_threshold символов - ничего не шлём
2. Поток закончился раньше порога → одна отправка, ноль edit'ов
3. Иначе шлём placeholder (текст + курсор ▌), дальше edit'ы с накопленным
   текстом + курсор, не чаще одного раза в min_edit_interval. Чанки,
   пришедшие быстрее, сливаются в следующий разрешённый edit
4. Конец потока → один финальный edit без курсора + косметическое
   форматирование (markdown → HTML). Хвост сверх лимита Telegram
   уходит отдельными сообщениями

Ошибки:
- "message is not modified" - игнорируется
- остальные TransportError - в лог, поток продолжается
- отмена (cancel_event) - текущий вызов завершается сразу, даже если поток
  завис на ожидании чанка; новых edit'ов и финального форматирования нет
- весь поток ограничен stream_timeout, по истечении пользователь видит
  сообщение об ошибке
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Optional

from core.errors import MessageNotModifiedError, TransportError
from nutribot.messages.formatters import SAFE_MESSAGE_LENGTH, TelegramFormatter
from systems.ports import MessageHandle, Transport

logger = logging.getLogger(__name__)

DEFAULT_CURSOR = "▌"
TIMEOUT_NOTICE = "⚠️ Ответ занял слишком много времени и был прерван. Попробуй ещё раз."
FAILURE_NOTICE = "❌ Не удалось получить ответ. Попробуй ещё раз чуть позже."
EMPTY_NOTICE = "🤔 Не получилось сформулировать ответ. Попробуй переформулировать вопрос."


async def _next_chunk(iterator: AsyncIterator[str]) -> str:
    return await iterator.__anext__()


class RenderOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class RenderSession:
    """Состояние одного исходящего сообщения"""
    channel_id: int
    message_handle: Optional[MessageHandle] = None
    accumulated_text: str = ""
    last_edit_at: Optional[float] = None
    last_visible_text: str = ""
    sends: int = 0
    edits: int = 0


@dataclass
class RenderResult:
    outcome: RenderOutcome
    session: RenderSession

    @property
    def text(self) -> str:
        return self.session.accumulated_text


class IncrementalRenderer:
    """Throttled incremental edits of one Telegram message"""

    def __init__(
        self,
        transport: Transport,
        formatter: Optional[TelegramFormatter] = None,
        direct_send_threshold: int = 80,
        min_edit_interval: float = 1.2,
        stream_timeout: float = 120.0,
        cursor: str = DEFAULT_CURSOR,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Args:
            transport: send_message / edit_message
            formatter: косметический проход для финального текста
            direct_send_threshold: короче этого - одна отправка без edit'ов
            min_edit_interval: минимальный интервал между edit'ами (сек)
            stream_timeout: потолок на весь поток (сек)
            cursor: курсор в конце текста во время генерации
            clock/sleep: подменяются в тестах
        """
        self.transport = transport
        self.formatter = formatter or TelegramFormatter()
        self.direct_send_threshold = direct_send_threshold
        self.min_edit_interval = min_edit_interval
        self.stream_timeout = stream_timeout
        self.cursor = cursor
        self._clock = clock
        self._sleep = sleep

    async def render(
        self,
        channel_id: int,
        chunks: AsyncIterable[str],
        cancel_event: Optional[asyncio.Event] = None
    ) -> RenderResult:
        session = RenderSession(channel_id=channel_id)

        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        try:
            await asyncio.wait_for(self._consume(session, chunks, cancel_event),
                                   timeout=self.stream_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"⏱ Stream to channel={channel_id} exceeded {self.stream_timeout}s "
                f"({len(session.accumulated_text)} chars)"
            )
            await self._notify_failure(session, TIMEOUT_NOTICE)
            return RenderResult(RenderOutcome.TIMED_OUT, session)
        except Exception as e:
            logger.error(f"❌ Stream to channel={channel_id} failed: {e}", exc_info=True)
            await self._notify_failure(session, FAILURE_NOTICE)
            return RenderResult(RenderOutcome.FAILED, session)

        if cancelled():
            logger.info(f"🛑 Render to channel={channel_id} cancelled, skipping final edit")
            return RenderResult(RenderOutcome.CANCELLED, session)

        await self._finish(session, cancelled)
        outcome = RenderOutcome.CANCELLED if cancelled() else RenderOutcome.COMPLETED
        logger.debug(
            f"📤 Render done: channel={channel_id}, chars={len(session.accumulated_text)}, "
            f"sends={session.sends}, edits={session.edits}"
        )
        return RenderResult(outcome, session)

    # ========================================================================
    # STREAMING
    # ========================================================================

    async def _consume(self, session: RenderSession, chunks: AsyncIterable[str],
                       cancel_event: Optional[asyncio.Event]):
        iterator = chunks.__aiter__()
        cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event else None
        next_chunk: Optional[asyncio.Future] = None
        try:
            while True:
                next_chunk = asyncio.ensure_future(_next_chunk(iterator))
                if cancel_wait is not None:
                    # Отмена не ждёт следующего чанка: зависший поток тоже прерывается
                    await asyncio.wait({next_chunk, cancel_wait},
                                       return_when=asyncio.FIRST_COMPLETED)
                    if cancel_event.is_set():
                        return
                try:
                    chunk = await next_chunk
                except StopAsyncIteration:
                    return
                next_chunk = None

                if not chunk:
                    continue
                session.accumulated_text += chunk

                if not self._eligible(session):
                    continue  # coalesced into the next eligible edit

                if session.message_handle is None:
                    if len(session.accumulated_text) >= self.direct_send_threshold:
                        await self._send_placeholder(session)
                else:
                    await self._edit_progress(session)
        finally:
            if next_chunk is not None:
                if not next_chunk.done():
                    next_chunk.cancel()
                    await asyncio.wait({next_chunk})
                if not next_chunk.cancelled():
                    next_chunk.exception()  # брошенный чанк, результат не нужен
            if cancel_wait is not None:
                cancel_wait.cancel()
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    def _eligible(self, session: RenderSession) -> bool:
        if session.last_edit_at is None:
            return True
        return self._clock() - session.last_edit_at >= self.min_edit_interval

    def _visible(self, text: str) -> str:
        limit = SAFE_MESSAGE_LENGTH - len(self.cursor)
        return text[:limit] + self.cursor

    async def _send_placeholder(self, session: RenderSession):
        visible = self._visible(session.accumulated_text)
        session.last_edit_at = self._clock()
        try:
            session.message_handle = await self.transport.send_message(session.channel_id, visible)
            session.last_visible_text = visible
            session.sends += 1
        except TransportError as e:
            logger.warning(f"⚠️ Placeholder send failed for channel={session.channel_id}: {e}")

    async def _edit_progress(self, session: RenderSession):
        visible = self._visible(session.accumulated_text)
        if visible == session.last_visible_text:
            return
        if await self._edit(session, visible):
            session.last_visible_text = visible

    async def _edit(self, session: RenderSession, text: str,
                    parse_mode: Optional[str] = None) -> bool:
        session.last_edit_at = self._clock()
        session.edits += 1
        try:
            await self.transport.edit_message(session.message_handle, text, parse_mode=parse_mode)
            return True
        except MessageNotModifiedError:
            logger.debug(f"Edit skipped (not modified) for channel={session.channel_id}")
            return True
        except TransportError as e:
            logger.warning(f"⚠️ Edit failed for channel={session.channel_id}: {e}")
            return False

    # ========================================================================
    # COMPLETION
    # ========================================================================

    async def _finish(self, session: RenderSession, cancelled: Callable[[], bool]):
        if not session.accumulated_text.strip():
            await self._notify_failure(session, EMPTY_NOTICE)
            return

        parts = self.formatter.markdown_to_html_parts(session.accumulated_text)

        if session.message_handle is None:
            for part in parts:
                await self._send(session, part, parse_mode="HTML")
            return

        if session.last_edit_at is not None:
            wait = self.min_edit_interval - (self._clock() - session.last_edit_at)
            if wait > 0:
                await self._sleep(wait)
        if cancelled():
            return

        if await self._edit(session, parts[0], parse_mode="HTML"):
            for part in parts[1:]:
                await self._send(session, part, parse_mode="HTML")
            return

        # Разметка не прошла - досылаем текст без форматирования
        plain = self.formatter.clean_telegram_text(session.accumulated_text)
        for part in self.formatter.split_message(plain):
            await self._send(session, part)

    async def _send(self, session: RenderSession, text: str,
                    parse_mode: Optional[str] = None) -> Optional[MessageHandle]:
        try:
            handle = await self.transport.send_message(session.channel_id, text,
                                                       parse_mode=parse_mode)
            session.sends += 1
            return handle
        except TransportError as e:
            logger.warning(f"⚠️ Send failed for channel={session.channel_id}: {e}")
            return None

    async def _notify_failure(self, session: RenderSession, notice: str):
        """Пользователь всегда видит исход: дописываем notice или шлём отдельно"""
        if session.message_handle is not None:
            text = session.accumulated_text[:SAFE_MESSAGE_LENGTH - len(notice) - 2]
            text = f"{text}\n\n{notice}" if text.strip() else notice
            if await self._edit(session, text):
                return
        await self._send(session, notice)
