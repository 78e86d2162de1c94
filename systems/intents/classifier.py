"""
Intent Classifier Adapter

Оборачивает внешнюю классификацию (GenerationBackend.classify) и
возвращает типизированный ClassifiedIntent. Любая ошибка backend'а или
ответ вне схемы → ClassificationFailure (один warning в лог), вызывающий
код трактует это как "general".
"""

import logging
from typing import Any, Dict, Mapping, Union

from pydantic import ValidationError as SchemaError

from core.errors import ClassificationFailure
from systems.ports import GenerationBackend
from .models import INTENT_ADAPTER, ClassifiedIntent, IntentKind

logger = logging.getLogger(__name__)

# Для этих intents основное текстовое поле по умолчанию = исходный текст
_TEXT_FIELD_DEFAULTS = {
    "food": "description",
    "medical": "text",
    "question": "question",
}


class IntentClassifier:
    """Adapter: text → ClassifiedIntent | ClassificationFailure"""

    def __init__(self, backend: GenerationBackend):
        self.backend = backend

    async def classify(
        self,
        text: str,
        subject_context: Mapping[str, Any]
    ) -> Union[ClassifiedIntent, ClassificationFailure]:
        subject_id = subject_context.get("subject_id")
        try:
            raw = await self.backend.classify(text, subject_context)
            payload = self._normalize(raw, text)
            fields = INTENT_ADAPTER.validate_python(payload)
        except SchemaError as e:
            return self._failure(f"classification out of schema: {e.error_count()} errors",
                                 subject_id, e)
        except ClassificationFailure as e:
            return self._failure(e.message, subject_id, e)
        except Exception as e:
            return self._failure(f"classification backend error: {e}", subject_id, e)

        intent = ClassifiedIntent(IntentKind(fields.kind), fields, text)
        logger.debug(f"🏷 Classified subject={subject_id} as {intent.kind.value}")
        return intent

    def _normalize(self, raw: Any, text: str) -> Dict[str, Any]:
        if not isinstance(raw, dict):
            raise ClassificationFailure(f"classification result is {type(raw).__name__}, not an object")

        payload = dict(raw.get("fields") or {}) if isinstance(raw.get("fields"), dict) else {}
        payload.update({k: v for k, v in raw.items() if k not in ("fields", "intent")})
        kind = raw.get("kind") or raw.get("intent")
        if not isinstance(kind, str):
            raise ClassificationFailure("classification result has no kind")
        payload["kind"] = kind.strip().lower().replace("-", "_")

        text_field = _TEXT_FIELD_DEFAULTS.get(payload["kind"])
        if text_field and not payload.get(text_field):
            payload[text_field] = text
        return payload

    def _failure(self, reason: str, subject_id, error: Exception) -> ClassificationFailure:
        logger.warning(f"⚠️ Classification failed for subject={subject_id}: {reason}")
        if isinstance(error, ClassificationFailure):
            error.subject_id = subject_id
            return error
        return ClassificationFailure(reason, subject_id=subject_id,
                                     context={"error_type": type(error).__name__})
