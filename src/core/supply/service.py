# src/core/supply/service.py
"""
Индекс локального предложения.
Количество активных исполнителей с подходящими тегами в радиусе заявки.
Цена не учитывается.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning
from src.core.ecosystems.registry import EcosystemRegistry
from src.core.geo.distance import haversine_km
from src.core.providers.repository import ProviderRepository


class SupplyIndexCalculator:
    """Считает индекс предложения с ограничением по времени."""

    def __init__(
        self,
        providers: ProviderRepository,
        registry: EcosystemRegistry,
        timeout: float | None = None,
    ) -> None:
        if timeout is None:
            from src.config import settings
            timeout = settings.matching.SUPPLY_TIMEOUT_SECONDS

        self._providers = providers
        self._registry = registry
        self._timeout = timeout

    async def supply_index(
        self,
        tags: list[str],
        categories: list[str],
        latitude: float,
        longitude: float,
        radius_km: float | None = None,
        ecosystem_id: str | None = None,
    ) -> int:
        """
        Индекс предложения (>= 0).

        Args:
            tags: Конкретные теги заявки
            categories: Категории заявки
            latitude: Широта заявки
            longitude: Долгота заявки
            radius_km: Радиус поиска (по умолчанию радиус экосистемы)
            ecosystem_id: Экосистема заявки (по умолчанию определяется по точке)
        """
        if not tags and not categories:
            return 0

        if ecosystem_id is None:
            ecosystem_id = await self._registry.assign(latitude, longitude)
        if radius_km is None:
            radius_km = await self._registry.default_radius(ecosystem_id)

        candidates = await self._providers.list_candidates([ecosystem_id], tags, categories)

        return sum(
            1
            for provider in candidates
            if haversine_km(latitude, longitude, provider.latitude, provider.longitude) <= radius_km
        )

    async def supply_index_or_none(
        self,
        tags: list[str],
        categories: list[str],
        latitude: float,
        longitude: float,
        radius_km: float | None = None,
        ecosystem_id: str | None = None,
    ) -> Optional[int]:
        """
        То же, что supply_index, но с таймаутом.
        None означает, что индекс недоступен.
        """
        try:
            return await asyncio.wait_for(
                self.supply_index(tags, categories, latitude, longitude, radius_km, ecosystem_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            await log_warning(f"Индекс предложения не посчитан за {self._timeout}с")
            return None
        except Exception as e:
            await log_info(f"Индекс предложения недоступен: {e}", type_msg=TypeMsg.WARNING)
            return None
