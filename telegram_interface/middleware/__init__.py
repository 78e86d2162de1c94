"""
Middleware - промежуточные слои обработки

Модули:
- session_logger: Логирование переходов визардов
"""

from .session_logger import SessionLoggerMiddleware

__all__ = ["SessionLoggerMiddleware"]
