# src/core/ecosystems/registry.py
"""
Реестр экосистем.
Привязка точки к экосистеме и поиск соседних экосистем.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning
from src.core.ecosystems.models import Ecosystem
from src.core.ecosystems.repository import EcosystemRepository
from src.core.geo.distance import haversine_km


class EcosystemRegistry:
    """
    Снимок экосистем в памяти процесса.

    Снимок загружается из БД при первом обращении и перезагружается
    через refresh(). Все расстояния считаются через haversine_km.
    """

    def __init__(
        self,
        repository: EcosystemRepository,
        default_ecosystem_id: str | None = None,
        default_radius_km: float | None = None,
        neighbor_distance_km: float | None = None,
    ) -> None:
        from src.config import settings

        self._repository = repository
        self._default_id = default_ecosystem_id or settings.ecosystems.DEFAULT_ECOSYSTEM_ID
        self._default_radius = (
            default_radius_km
            if default_radius_km is not None
            else settings.ecosystems.DEFAULT_ECOSYSTEM_RADIUS_KM
        )
        self._neighbor_distance = (
            neighbor_distance_km
            if neighbor_distance_km is not None
            else settings.ecosystems.NEIGHBOR_DISTANCE_KM
        )
        self._ecosystems: dict[str, Ecosystem] | None = None
        self._lock = asyncio.Lock()

    @property
    def default_ecosystem_id(self) -> str:
        return self._default_id

    async def refresh(self) -> None:
        """Перечитывает экосистемы из БД."""
        async with self._lock:
            ecosystems = await self._repository.list_all()
            self._ecosystems = {eco.id: eco for eco in ecosystems}
        await log_info(f"Загружено экосистем: {len(ecosystems)}", type_msg=TypeMsg.DEBUG)

    async def _snapshot(self) -> dict[str, Ecosystem]:
        if self._ecosystems is None:
            await self.refresh()
        return self._ecosystems or {}

    async def get(self, ecosystem_id: str) -> Optional[Ecosystem]:
        """Экосистема по ID."""
        return (await self._snapshot()).get(ecosystem_id)

    async def all_ids(self) -> list[str]:
        """ID всех экосистем."""
        return list((await self._snapshot()).keys())

    async def default_radius(self, ecosystem_id: str) -> float:
        """Радиус экосистемы или радиус по умолчанию, если она неизвестна."""
        ecosystem = await self.get(ecosystem_id)
        return ecosystem.radius_km if ecosystem else self._default_radius

    async def assign(self, latitude: float | None, longitude: float | None) -> str:
        """
        Ближайшая экосистема, чей радиус содержит точку.

        Без координат или вне всех регионов возвращает экосистему
        по умолчанию. Не бросает исключений.
        """
        if latitude is None or longitude is None:
            return self._default_id

        best_id: str | None = None
        best_distance = float("inf")

        for ecosystem in (await self._snapshot()).values():
            if ecosystem.is_default:
                continue
            distance = haversine_km(latitude, longitude, ecosystem.latitude, ecosystem.longitude)
            if distance <= ecosystem.radius_km and distance < best_distance:
                best_id = ecosystem.id
                best_distance = distance

        if best_id is None:
            await log_warning(
                f"Точка ({latitude}, {longitude}) вне всех экосистем, "
                f"назначена {self._default_id}"
            )
            return self._default_id

        return best_id

    async def neighbors(
        self,
        ecosystem_id: str,
        max_distance_km: float | None = None,
    ) -> list[str]:
        """
        Соседние экосистемы по возрастанию расстояния между центрами.
        Сама экосистема в список не входит.
        """
        snapshot = await self._snapshot()
        origin = snapshot.get(ecosystem_id)
        if origin is None:
            return []

        limit = max_distance_km if max_distance_km is not None else self._neighbor_distance

        ranked: list[tuple[float, str]] = []
        for other in snapshot.values():
            if other.id == ecosystem_id or other.is_default:
                continue
            distance = haversine_km(origin.latitude, origin.longitude, other.latitude, other.longitude)
            if distance <= limit:
                ranked.append((distance, other.id))

        ranked.sort()
        return [eco_id for _, eco_id in ranked]

    async def register(self, ecosystem: Ecosystem) -> Ecosystem:
        """Сохраняет экосистему и добавляет её в снимок."""
        saved = await self._repository.upsert(ecosystem)
        snapshot = await self._snapshot()
        snapshot[saved.id] = saved
        await log_info(f"Экосистема зарегистрирована: {saved.id}", type_msg=TypeMsg.INFO)
        return saved
