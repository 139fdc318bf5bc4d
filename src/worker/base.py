# src/worker/base.py
"""
Базовые классы воркеров: подписчик на события и периодическая задача.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

from src.core.engine import Engine, build_engine
from src.infra.event_bus import EventBus, DomainEvent, get_event_bus
from src.infra.database import DatabaseManager, get_db
from src.infra.redis_client import RedisClient, get_redis
from src.common.logger import log_info, log_error
from src.common.constants import TypeMsg


class BaseWorker(ABC):
    """
    Базовый класс для всех воркеров.
    Подписывается на события и обрабатывает их.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        db: Optional[DatabaseManager] = None,
        redis: Optional[RedisClient] = None,
        engine: Optional[Engine] = None,
    ) -> None:
        """
        Args:
            event_bus: Шина событий
            db: Менеджер БД
            redis: Redis клиент
            engine: Доменные сервисы (по умолчанию собираются из инфраструктуры)
        """
        self.event_bus = event_bus or get_event_bus()
        self.db = db or get_db()
        self.redis = redis or get_redis()
        self._engine = engine
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = build_engine(self.db, self.redis, self.event_bus)
        return self._engine

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""

    @property
    @abstractmethod
    def subscriptions(self) -> List[str]:
        """Список типов событий для подписки."""

    @abstractmethod
    async def handle_event(self, event: DomainEvent) -> None:
        """Обрабатывает событие."""

    async def start(self) -> None:
        """Запускает воркер."""
        if self._running:
            return

        self._running = True
        await log_info(f"Воркер {self.name} запускается...", type_msg=TypeMsg.INFO)

        for event_type in self.subscriptions:
            await self.event_bus.subscribe(
                event_type=event_type,
                handler=self._on_event,
            )
            await log_info(
                f"Воркер {self.name} подписан на {event_type}",
                type_msg=TypeMsg.DEBUG,
            )

        await log_info(f"Воркер {self.name} запущен", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер."""
        if not self._running:
            return

        self._running = False

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _on_event(self, event: DomainEvent) -> None:
        """Обработчик события. Ошибка логируется и не роняет воркер."""
        if not self._running:
            return

        try:
            await log_info(
                f"Воркер {self.name} получил событие {event.event_type}",
                type_msg=TypeMsg.DEBUG,
            )
            await self.handle_event(event)
        except Exception as e:
            await log_error(
                f"Ошибка в воркере {self.name}: {e}",
                extra={"event_type": event.event_type, "payload": event.payload},
                exc_info=True,
            )


class PeriodicWorker(BaseWorker):
    """
    Воркер, выполняющий tick() с фиксированным интервалом.
    На события не подписывается.
    """

    @property
    @abstractmethod
    def interval(self) -> float:
        """Интервал между запусками (секунды)."""

    @abstractmethod
    async def tick(self) -> None:
        """Одна итерация работы."""

    @property
    def subscriptions(self) -> List[str]:
        return []

    async def handle_event(self, event: DomainEvent) -> None:
        return None

    async def start(self) -> None:
        if self._running:
            return
        await super().start()
        self._tasks.append(asyncio.create_task(self._loop(), name=self.name))

    async def _loop(self) -> None:
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval)

    async def run_once(self) -> None:
        """Один tick с логированием ошибок."""
        try:
            await self.tick()
        except Exception as e:
            await log_error(f"Ошибка в воркере {self.name}: {e}", exc_info=True)
