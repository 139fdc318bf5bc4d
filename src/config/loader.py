# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "seva_match"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    RUN_DEV_MODE: bool = True
    COMPONENT_MODE: str = "everything"


class DeploymentSettings(BaseModel):
    """Настройки развертывания компонентов."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8091
    WORKER_INSTANCES_COUNT: int = 1


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class GeolocationSettings(BaseModel):
    """Настройки внешнего сервиса геолокации (Google Geocoding API)."""
    GOOGLE_MAPS_API_KEY: str = ""
    GEOCODING_LANGUAGE: str = "en"
    GEOCODING_TIMEOUT_SECONDS: float = 5.0

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает API ключ из переменных окружения."""
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class DomainSettings(BaseModel):
    """Настройки локализации и валюты."""
    DEFAULT_LANGUAGE: str = "en"
    SUPPORTED_LANGUAGES: list[str] = Field(default_factory=lambda: ["en", "hi"])
    TIMEZONE: str = "Asia/Kolkata"
    CURRENCY: str = "INR"


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "seva_match"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "seva"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RedisTTLSettings(BaseModel):
    """TTL служебных ключей Redis."""
    SWEEP_LOCK_TTL: int = 300
    EXPANSION_TIMER_TTL: int = 172800


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EXCHANGE: str = "seva.events"
    RABBITMQ_PREFETCH_COUNT: int = 10

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Пароль из окружения имеет приоритет."""
        return os.getenv("RABBITMQ_PASSWORD", "") or v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class EcosystemSettings(BaseModel):
    """Настройки экосистем (географических регионов)."""
    DEFAULT_ECOSYSTEM_ID: str = "admin-default"
    DEFAULT_ECOSYSTEM_RADIUS_KM: float = 5.0
    NEIGHBOR_DISTANCE_KM: float = 10.0


class ScopeSettings(BaseModel):
    """
    Настройки разрешения радиуса поиска.

    Граница «малоценной» заявки задаётся только явно: списком тегов
    и/или порогом вознаграждения для конкретного тега.
    """
    CRITICAL_RADIUS_KM: float = 20.0
    EXPANSION_RADIUS_KM: float = 10.0
    PREMIUM_MULTIPLIER: float = 1.2
    LOW_VALUE_TAGS: list[str] = Field(default_factory=list)
    LOW_VALUE_FLOORS: dict[str, float] = Field(default_factory=dict)


class UrgencySettings(BaseModel):
    """Веса ключевых слов срочности."""
    KEYWORD_WEIGHTS: dict[str, int] = Field(default_factory=lambda: {
        "emergency": 40,
        "immediately": 25,
        "spoilage": 30,
    })
    MAX_URGENCY_SCORE: int = 100


class MatchingSettings(BaseModel):
    """Настройки скоринга и рассылки."""
    TAG_MATCH_WEIGHT: float = 2.0
    CATEGORY_MATCH_WEIGHT: float = 1.0
    DISTANCE_PENALTY_PER_KM: float = 0.1
    MAX_PROVIDERS_TO_NOTIFY: int = 20
    SUPPLY_TIMEOUT_SECONDS: float = 2.0
    CANDIDATE_QUERY_TIMEOUT_SECONDS: float = 5.0


class ExpansionSettings(BaseModel):
    """Настройки отложенного расширения радиуса."""
    EXPANSION_DELAY_SECONDS: int = 7200
    EXPANSION_POLL_INTERVAL: int = 30
    EXPANSION_BATCH_SIZE: int = 100
    EXPANSION_RETRY_DELAY: int = 60


class ClusterSettings(BaseModel):
    """Настройки детектора кластеров спроса."""
    CLUSTER_SWEEP_INTERVAL: int = 1800
    CLUSTER_WINDOW_HOURS: int = 24
    MIN_CLUSTER_SIZE: int = 3
    CLUSTER_OFFER_TTL_HOURS: int = 24
    TRANSPORT_SAVING_PER_MEMBER: float = 50.0
    BULK_DISCOUNT_PERCENT: float = 5.0
    CLUSTER_SWEEP_TIMEOUT: float = 60.0


class LifecycleSettings(BaseModel):
    """Настройки жизненного цикла заявок."""
    STALE_REQUEST_HOURS: int = 24
    STALE_CHECK_INTERVAL: int = 600


class NotificationSettings(BaseModel):
    """Настройки внешнего диспетчера уведомлений."""
    DISPATCHER_URL: str = "http://localhost:8092/api/v1/dispatch"
    DELIVERY_CHANNELS: list[str] = Field(default_factory=lambda: ["push", "sms"])
    DISPATCH_RETRY_ATTEMPTS: int = 3
    DISPATCH_RETRY_BASE_DELAY: float = 0.5
    DISPATCH_TIMEOUT: float = 10.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

SectionT = TypeVar("SectionT", bound=BaseModel)

# Поля, которые может переопределить окружение (docker-compose, CI)
ENV_OVERRIDES = (
    "COMPONENT_MODE",
    "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD",
    "REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD",
    "RABBITMQ_HOST", "RABBITMQ_PORT", "RABBITMQ_USER", "RABBITMQ_PASSWORD",
    "GOOGLE_MAPS_API_KEY",
    "DISPATCHER_URL",
)


def _section(model_cls: type[SectionT], data: dict[str, Any]) -> SectionT:
    """Собирает секцию настроек из плоского словаря config.json."""
    values = {name: data[name] for name in model_cls.model_fields if name in data}
    return model_cls(**values)


class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    domain: DomainSettings = Field(default_factory=DomainSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    redis_ttl: RedisTTLSettings = Field(default_factory=RedisTTLSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    ecosystems: EcosystemSettings = Field(default_factory=EcosystemSettings)
    scope: ScopeSettings = Field(default_factory=ScopeSettings)
    urgency: UrgencySettings = Field(default_factory=UrgencySettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    expansion: ExpansionSettings = Field(default_factory=ExpansionSettings)
    clusters: ClusterSettings = Field(default_factory=ClusterSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> "Settings":
        """
        Создаёт Settings из плоского словаря.
        Значения из окружения имеют приоритет над файлом.
        """
        data = dict(config_data)
        for key in ENV_OVERRIDES:
            env_value = os.getenv(key)
            if env_value:
                data[key] = env_value

        return cls(
            system=_section(SystemSettings, data),
            deployment=_section(DeploymentSettings, data),
            logging=_section(LoggingSettings, data),
            geolocation=_section(GeolocationSettings, data),
            domain=_section(DomainSettings, data),
            database=_section(DatabaseSettings, data),
            redis=_section(RedisSettings, data),
            redis_ttl=_section(RedisTTLSettings, data),
            rabbitmq=_section(RabbitMQSettings, data),
            ecosystems=_section(EcosystemSettings, data),
            scope=_section(ScopeSettings, data),
            urgency=_section(UrgencySettings, data),
            matching=_section(MatchingSettings, data),
            expansion=_section(ExpansionSettings, data),
            clusters=_section(ClusterSettings, data),
            lifecycle=_section(LifecycleSettings, data),
            notifications=_section(NotificationSettings, data),
        )

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """Создаёт Settings из config.json."""
        return cls.from_dict(load_config_json(path))


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
