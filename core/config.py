"""
Centralized Configuration Management for NutriBot

Все настройки читаются из переменных окружения и файла .env
через pydantic-settings. Секреты в репозиторий не коммитятся.
"""
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Telegram
    bot_token: str = ""
    debug_messages: bool = False

    # AI backend
    openai_api_key: str = ""
    classifier_model: str = "gpt-4o-mini"
    extraction_model: str = "gpt-4o"
    generation_model: str = "gpt-4o-mini"
    transcription_model: str = "whisper-1"
    ai_max_tokens: int = 1500
    ai_temperature: float = 0.7
    ai_request_timeout: float = 60.0

    # Database (PostgreSQL)
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_password: str = ""
    db_name: str = "nutribot"
    db_schema: str = "nutribot"

    # Redis (только для instance lock)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    bot_instance_lock_key: str = "nutribot:instance_lock"
    bot_instance_lock_ttl: int = 30

    # Wizard sessions & confirmation tokens
    session_ttl_seconds: float = 30 * 60
    token_ttl_seconds: float = 15 * 60
    sweep_interval_seconds: float = 60.0

    # Incremental renderer
    direct_send_threshold: int = 80
    min_edit_interval: float = 1.2
    stream_timeout: float = 120.0
    render_cursor: str = "▌"

    # Activity indicator ("печатает...")
    activity_interval: float = 4.0
    activity_max_duration: float = 90.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_dir: Path = Path("logs")
    log_max_file_size: int = 10 * 1024 * 1024  # 10MB
    log_backup_count: int = 5
    log_to_file: bool = True

    @property
    def db_config(self) -> Dict[str, Any]:
        return {
            "host": self.db_host,
            "port": self.db_port,
            "user": self.db_user,
            "password": self.db_password,
            "database": self.db_name,
            "schema": self.db_schema,
        }

    @property
    def redis_config(self) -> Dict[str, Any]:
        return {
            "host": self.redis_host,
            "port": self.redis_port,
            "db": self.redis_db,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get global settings instance"""
    return Settings()
