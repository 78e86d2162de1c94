"""
Shared Logging System for NutriBot
"""
import logging
import logging.handlers
from datetime import datetime
from typing import Optional

from .config import Settings, get_settings


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure root logger: console + rotating file"""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in root.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(settings.log_format))
        root.addHandler(console_handler)

    if settings.log_to_file:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            settings.log_dir / "nutribot.log",
            maxBytes=settings.log_max_file_size,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(settings.log_format))
        root.addHandler(file_handler)

    # Шумные библиотеки
    logging.getLogger("aiogram").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


class ServiceLogger:
    """Logger with service-specific structured helpers"""

    def __init__(self, name: str, service_name: Optional[str] = None):
        self.logger = logging.getLogger(name)
        self.service_name = service_name or name

    def _context(self, **kwargs) -> dict:
        return {
            "service": self.service_name,
            "timestamp": datetime.utcnow().isoformat(),
            **kwargs
        }

    def log_user_action(self, action: str, user_id, **kwargs):
        """Log user action for analytics"""
        self.logger.info(
            f"USER_ACTION: {action} (user={user_id})",
            extra={"context": self._context(action=action, user_id=user_id, **kwargs)}
        )

    def log_service_result(self, method: str, success: bool = True,
                           processing_time: Optional[float] = None, **kwargs):
        """Log service method result"""
        level = logging.INFO if success else logging.ERROR
        self.logger.log(
            level,
            f"SERVICE_RESULT: {method} ({'SUCCESS' if success else 'FAILED'})",
            extra={"context": self._context(method=method, success=success,
                                            processing_time=processing_time, **kwargs)}
        )

    def log_error(self, error_code: str, message: str, user_id=None,
                  exception: Optional[BaseException] = None, **kwargs):
        """Log service error"""
        self.logger.error(
            f"SERVICE_ERROR: {error_code} - {message}",
            extra={"context": self._context(error_code=error_code, user_id=user_id, **kwargs)},
            exc_info=exception
        )

    def info(self, message: str, **kwargs):
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, extra=kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, extra=kwargs)


class LoggerMixin:
    """Mixin to add logging capabilities to service classes"""

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        service_name = cls.__name__.lower().replace('service', '').replace('engine', '')
        cls._logger = ServiceLogger(cls.__module__, service_name)

    @property
    def logger(self) -> ServiceLogger:
        return self._logger


def get_logger(name: str, service_name: Optional[str] = None) -> ServiceLogger:
    """Get a logger instance for a service"""
    return ServiceLogger(name, service_name)
