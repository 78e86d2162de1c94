"""
OpenAI Backend - реализация GenerationBackend

- classify / extract / medical: one-shot JSON ответы
- stream_text: потоковая генерация для Incremental Renderer
- transcribe: whisper для голосовых
"""

import json
import logging
import re
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from openai import AsyncOpenAI, OpenAIError

from core.config import Settings, get_settings
from core.errors import GenerationError
from nutribot.messages import MessageService, get_message_service

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_content(content: Optional[str]) -> Dict[str, Any]:
    """Ответ модели → dict (модели иногда оборачивают JSON в ```json)"""
    if not content:
        raise GenerationError("Empty completion content")
    cleaned = _CODE_FENCE_RE.sub("", content.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Completion is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise GenerationError(f"Completion JSON is {type(data).__name__}, not an object")
    return data


class OpenAIBackend:
    """OpenAI GPT client"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
        messages: Optional[MessageService] = None
    ):
        self.settings = settings or get_settings()
        self.client = client or AsyncOpenAI(
            api_key=self.settings.openai_api_key,
            timeout=self.settings.ai_request_timeout,
            max_retries=0,
        )
        self.messages = messages or get_message_service()

    # ========================================================================
    # ONE-SHOT JSON
    # ========================================================================

    async def _json_completion(self, model: str, messages: List[Dict[str, Any]],
                               max_tokens: int = 500) -> Dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=0,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise GenerationError(f"OpenAI API error: {e}") from e

        return parse_json_content(response.choices[0].message.content)

    async def classify(self, text: str, context: Mapping[str, Any]) -> Dict[str, Any]:
        system = self.messages.get_prompt("classify", context=dict(context))
        return await self._json_completion(
            self.settings.classifier_model,
            [
                {"role": "system", "content": system},
                {"role": "user", "content": text},
            ],
            max_tokens=300,
        )

    async def extract_nutrition(self, text: str) -> Dict[str, Any]:
        return await self._json_completion(
            self.settings.extraction_model,
            [
                {"role": "system", "content": self.messages.get_prompt("nutrition_extraction")},
                {"role": "user", "content": self.messages.get_prompt("nutrition_user", text=text)},
            ],
        )

    async def extract_nutrition_from_image(self, image_url: str) -> Dict[str, Any]:
        return await self._json_completion(
            self.settings.extraction_model,
            [
                {"role": "system", "content": self.messages.get_prompt("nutrition_extraction")},
                {"role": "user", "content": [
                    {"type": "text", "text": self.messages.get_prompt("nutrition_image")},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ]},
            ],
        )

    async def analyze_medical(self, text: str) -> Dict[str, Any]:
        return await self._json_completion(
            self.settings.extraction_model,
            [
                {"role": "system", "content": self.messages.get_prompt("medical")},
                {"role": "user", "content": text},
            ],
            max_tokens=self.settings.ai_max_tokens,
        )

    # ========================================================================
    # STREAMING
    # ========================================================================

    async def stream_text(self, prompt: str, system: Optional[str] = None) -> AsyncIterator[str]:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            stream = await self.client.chat.completions.create(
                model=self.settings.generation_model,
                messages=messages,
                max_tokens=self.settings.ai_max_tokens,
                temperature=self.settings.ai_temperature,
                stream=True,
            )
        except OpenAIError as e:
            raise GenerationError(f"OpenAI API error: {e}") from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except OpenAIError as e:
            raise GenerationError(f"OpenAI stream interrupted: {e}") from e
        finally:
            await stream.close()

    # ========================================================================
    # SPEECH
    # ========================================================================

    async def transcribe(self, audio: bytes, filename: str = "voice.ogg") -> str:
        try:
            transcription = await self.client.audio.transcriptions.create(
                model=self.settings.transcription_model,
                file=(filename, audio),
                language="ru",
            )
        except OpenAIError as e:
            raise GenerationError(f"Transcription failed: {e}") from e

        text = (transcription.text or "").strip()
        logger.debug(f"🎙 Transcribed {len(audio)} bytes into {len(text)} chars")
        return text
