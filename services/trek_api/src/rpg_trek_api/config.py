"""Конфигурация сервиса Trek API."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Параметры окружения для Trek API."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True)

    jwt_secret: str = Field(..., min_length=16, description="Секрет подписи JWT")
    jwt_algorithm: Literal["HS256"] = Field("HS256", description="Алгоритм подписи JWT")
    jwt_ttl_seconds: int = Field(900, ge=60, le=3600, description="Время жизни access token")
    api_version: str = Field("1.0.0", description="Версия API, возвращаемая в health-check")
    database_url: str | None = Field(
        None,
        description="PostgreSQL DSN для хранилища профилей (опционально, по умолчанию in-memory)",
        alias="DATABASE_URL",
    )
    database_fallback_to_memory: bool = Field(
        True,
        description="Разрешить откат на in-memory хранилище при недоступности Postgres",
        alias="DATABASE_FALLBACK_TO_MEMORY",
    )
    trek_default_def_key: str = Field(
        "trek.default",
        description="defKey, если клиент не передал trekId",
        alias="TREK_DEFAULT_DEF_KEY",
    )
    trek_busy_ms: int = Field(
        3000,
        ge=0,
        description="Окно занятости после nextStop/choose, мс",
        alias="TREK_BUSY_MS",
    )
    trek_history_limit: int = Field(
        100,
        ge=1,
        description="Сколько записей истории хранить в забеге",
        alias="TREK_HISTORY_LIMIT",
    )
    trek_definitions_path: str | None = Field(
        None,
        description="Каталог с дополнительными определениями треков (*.yaml)",
        alias="TREK_DEFINITIONS_PATH",
    )
    trek_notify_base_url: str | None = Field(
        None,
        description="Base URL push-шлюза клиента (например, http://localhost:8001)",
        alias="TREK_NOTIFY_BASE_URL",
    )
    trek_notify_redis_url: str | None = Field(
        None,
        description="Redis URL для push-событий клиенту (fakeredis:// для dev, нужен extra `dev`)",
        alias="TREK_NOTIFY_REDIS_URL",
    )
    trek_notify_timeout_seconds: float = Field(
        2.0,
        gt=0,
        description="Таймаут доставки подсказки по инвентарю, секунды",
        alias="TREK_NOTIFY_TIMEOUT_SECONDS",
    )
    enable_otel: bool = Field(False, description="Включить OpenTelemetry tracing", alias="ENABLE_OTEL")
    enable_metrics: bool = Field(False, description="Включить Prometheus /metrics", alias="ENABLE_METRICS")


class HealthPayload(BaseModel):
    """Ответ health-check."""

    status: Literal["ok"]
    api_version: str


@lru_cache
def get_settings() -> Settings:
    """Загружает настройки с кешированием.

    Returns:
        Settings: Экземпляр настроек приложения.
    """

    return Settings()
