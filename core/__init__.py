"""
Core Package - Configuration and shared utilities
"""

from .config import Settings, get_settings
from .logging import LoggerMixin, get_logger, setup_logging

__all__ = ["Settings", "get_settings", "get_logger", "LoggerMixin", "setup_logging"]
