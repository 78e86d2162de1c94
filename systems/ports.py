"""
Service Protocols - интерфейсы внешних коллабораторов движка

Реализации:
- GenerationBackend → nutribot.ai.clients.OpenAIBackend
- RecordStore       → nutribot.database.records_dao.RecordsDAO
- Transport         → telegram_interface.transport.AiogramTransport

В тестах подменяются AsyncMock'ами.
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True)
class MessageHandle:
    """Идентичность отправленного сообщения (для edit)"""
    channel_id: int
    message_id: int


class GenerationBackend(Protocol):
    async def classify(self, text: str, context: Mapping[str, Any]) -> Dict[str, Any]:
        """One-shot классификация, результат должен соответствовать схеме intent"""

    async def extract_nutrition(self, text: str) -> Dict[str, Any]:
        ...

    async def extract_nutrition_from_image(self, image_url: str) -> Dict[str, Any]:
        ...

    async def analyze_medical(self, text: str) -> Dict[str, Any]:
        ...

    def stream_text(self, prompt: str, system: Optional[str] = None) -> AsyncIterator[str]:
        """Поток текстовых чанков (async generator)"""

    async def transcribe(self, audio: bytes, filename: str = "voice.ogg") -> str:
        ...


class RecordStore(Protocol):
    async def persist(self, record_kind: str, fields: Mapping[str, Any]) -> None:
        """Одна запись. Ошибка → PersistenceError"""

    async def get_profile(self, subject_id: int) -> Optional[Dict[str, Any]]:
        ...

    async def fetch_totals(self, subject_id: int, period: str) -> Dict[str, Any]:
        ...


class Transport(Protocol):
    async def send_message(
        self,
        channel_id: int,
        text: str,
        keyboard: Any = None,
        parse_mode: Optional[str] = None
    ) -> MessageHandle:
        ...

    async def edit_message(
        self,
        handle: MessageHandle,
        text: str,
        keyboard: Any = None,
        parse_mode: Optional[str] = None
    ) -> None:
        """TransportError / MessageNotModifiedError при неудаче"""

    async def send_keep_alive(self, channel_id: int) -> None:
        ...

    async def download_file(self, file_id: str) -> bytes:
        ...
