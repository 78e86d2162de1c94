"""
Error taxonomy and tracking for NutriBot.

Каждая ошибка внешнего коллаборатора (AI backend, БД, Telegram)
конвертируется в один из классов ниже. Наружу из обработчика
входящих событий не выходит ни одно исключение.
"""

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Optional

from .logging import LoggerMixin


class ErrorCode(Enum):
    """Standardized error codes for tracking and debugging"""

    # Wizard input
    VALIDATION_ERROR = "WIZ_001"
    NO_ACTIVE_WIZARD = "WIZ_002"

    # AI backend
    CLASSIFICATION_FAILED = "AI_001"
    EXTRACTION_FAILED = "AI_002"
    GENERATION_FAILED = "AI_003"
    GENERATION_TIMEOUT = "AI_004"

    # Storage
    PERSISTENCE_FAILED = "DB_001"

    # Transport
    TRANSPORT_FAILED = "TG_001"
    MESSAGE_NOT_MODIFIED = "TG_002"

    # Confirmation tokens
    TOKEN_NOT_FOUND = "TOK_001"

    # System
    CONFIGURATION_ERROR = "SYS_003"
    UNKNOWN_ERROR = "SYS_999"


class NutriBotError(Exception):
    """Base exception class for NutriBot"""

    default_code = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        subject_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.subject_id = subject_id
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging"""
        return {
            'error_code': self.error_code.value,
            'message': self.message,
            'subject_id': self.subject_id,
            'context': self.context,
            'timestamp': self.timestamp.isoformat(),
            'type': self.__class__.__name__
        }


class ValidationError(NutriBotError):
    """Ввод не прошёл правило шага визарда. Состояние не меняется."""
    default_code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, reason_key: str = "invalid_input", **kwargs):
        super().__init__(message, **kwargs)
        self.reason_key = reason_key


class ClassificationFailure(NutriBotError):
    """Backend упал или вернул структурно невалидный ответ"""
    default_code = ErrorCode.CLASSIFICATION_FAILED


class ExtractionFailure(NutriBotError):
    """Второй проход (nutrition / medical) не дал валидного результата"""
    default_code = ErrorCode.EXTRACTION_FAILED


class GenerationError(NutriBotError):
    """Ошибка потоковой генерации текста"""
    default_code = ErrorCode.GENERATION_FAILED


class PersistenceError(NutriBotError):
    """Хранилище отклонило запись"""
    default_code = ErrorCode.PERSISTENCE_FAILED


class TransportError(NutriBotError):
    """Ошибка Telegram API"""
    default_code = ErrorCode.TRANSPORT_FAILED


class MessageNotModifiedError(TransportError):
    """Edit с тем же содержимым - no-op, игнорируется"""
    default_code = ErrorCode.MESSAGE_NOT_MODIFIED


class TokenNotFoundError(NutriBotError):
    """Токен подтверждения неизвестен, уже использован или истёк"""
    default_code = ErrorCode.TOKEN_NOT_FOUND

    def __init__(self, token: str, **kwargs):
        super().__init__(f"Confirmation token not found or expired: {token}", **kwargs)
        self.token = token


class ErrorTracker(LoggerMixin):
    """
    Central error tracking.
    Collects error counts per code and keeps a bounded history.
    """

    def __init__(self, history_size: int = 1000):
        self.error_counts: Dict[str, int] = {}
        self.error_history: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    def track_error(
        self,
        error: BaseException,
        error_code: Optional[ErrorCode] = None,
        subject_id: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        log: bool = True
    ) -> Dict[str, Any]:
        """Track error with context and metrics"""
        if error_code is None:
            error_code = getattr(error, "error_code", ErrorCode.UNKNOWN_ERROR)
        if isinstance(error, NutriBotError):
            details = error.to_dict()
            if subject_id is None:
                subject_id = details["subject_id"]
            context = {**details["context"], **(context or {})}

        error_data = {
            'error_type': type(error).__name__,
            'error_message': str(error),
            'error_code': error_code.value,
            'subject_id': subject_id,
            'context': context or {},
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }

        if log:
            self.logger.log_error(error_code.value, str(error), user_id=subject_id,
                                  exception=error, **(context or {}))

        self.error_counts[error_code.value] = self.error_counts.get(error_code.value, 0) + 1
        self.error_history.append(error_data)
        return error_data

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics for monitoring"""
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_counts_by_code': self.error_counts.copy(),
            'recent_errors': len(self.error_history),
        }
