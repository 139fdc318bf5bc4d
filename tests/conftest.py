# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test_api_key")

from src.common.constants import RequestStatus, UrgencyLevel
from src.core.ecosystems.models import Ecosystem
from src.core.providers.models import Provider
from src.core.requests.models import ServiceRequest


BASE_TIME = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeTransaction:
    """Асинхронный контекст транзакции, отдающий заранее заданное соединение."""

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    async def __aenter__(self) -> Any:
        return self.conn

    async def __aexit__(self, *exc_info: Any) -> bool:
        return False


def make_request(**overrides: Any) -> ServiceRequest:
    """Заявка с разумными значениями по умолчанию."""
    data: dict[str, Any] = {
        "id": "req-1",
        "seeker_id": "seeker-1",
        "ecosystem_id": "eco-a",
        "specific_tags": ["tractor_tillage"],
        "categories": ["farming"],
        "latitude": 19.0,
        "longitude": 73.0,
        "compensation": 450.0,
        "status": RequestStatus.OPEN,
        "urgency_level": UrgencyLevel.LOW,
        "created_at": BASE_TIME,
        "status_changed_at": BASE_TIME,
    }
    data.update(overrides)
    return ServiceRequest(**data)


def make_provider(**overrides: Any) -> Provider:
    """Исполнитель в центре экосистемы eco-a."""
    data: dict[str, Any] = {
        "user_id": "prov-1",
        "ecosystem_id": "eco-a",
        "latitude": 19.0,
        "longitude": 73.0,
        "specific_tags": ["tractor_tillage"],
        "categories": ["farming"],
        "registered_at": BASE_TIME - timedelta(days=30),
    }
    data.update(overrides)
    return Provider(**data)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture(scope="session")
def lang_dict_path(project_root: Path) -> Path:
    """Путь к файлу локализации."""
    return project_root / "config" / "lang_dict.json"


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_conn() -> MagicMock:
    """Мок соединения asyncpg внутри транзакции."""
    conn = MagicMock()
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.transaction = MagicMock(side_effect=lambda: FakeTransaction(conn))
    return conn


@pytest.fixture
def mock_db(mock_conn: MagicMock) -> MagicMock:
    """Мок менеджера базы данных."""
    db = MagicMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    db.health_check = AsyncMock(return_value=True)
    db.transaction = MagicMock(side_effect=lambda: FakeTransaction(mock_conn))
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.zadd = AsyncMock(return_value=1)
    redis.zrem = AsyncMock(return_value=1)
    redis.zscore = AsyncMock(return_value=None)
    redis.zrangebyscore = AsyncMock(return_value=[])
    redis.acquire_lock = AsyncMock(return_value=True)
    redis.release_lock = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.subscribe = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


@pytest.fixture
def mock_notifications() -> AsyncMock:
    """Мок сервиса уведомлений."""
    notifications = AsyncMock()
    notifications.notify_provider_match = AsyncMock(return_value=True)
    notifications.notify_cluster_offer = AsyncMock(return_value=True)
    notifications.notify_rating_prompt = AsyncMock(return_value=True)
    notifications.notify_stale_request = AsyncMock(return_value=True)
    notifications.notify_status_changed = AsyncMock(return_value=True)
    return notifications


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def ecosystems() -> list[Ecosystem]:
    """
    Три экосистемы вдоль меридиана 73.0 и административная по умолчанию.
    eco-b в ~8 км от eco-a, eco-c в ~50 км.
    """
    return [
        Ecosystem(id="eco-a", name="Alpha", latitude=19.0, longitude=73.0, radius_km=5.0),
        Ecosystem(id="eco-b", name="Beta", latitude=19.072, longitude=73.0, radius_km=5.0),
        Ecosystem(id="eco-c", name="Gamma", latitude=19.45, longitude=73.0, radius_km=8.0),
        Ecosystem(
            id="admin-default",
            name="Default",
            latitude=0.0,
            longitude=0.0,
            radius_km=1.0,
            is_default=True,
        ),
    ]


@pytest.fixture
def mock_engine() -> MagicMock:
    """Набор доменных сервисов на моках."""
    engine = MagicMock()
    engine.matching = AsyncMock()
    engine.requests = AsyncMock()
    engine.scheduler = AsyncMock()
    engine.registry = AsyncMock()
    engine.clusters = AsyncMock()
    engine.reputation = AsyncMock()
    engine.gangs = AsyncMock()
    engine.close = AsyncMock()
    return engine
