# tests/core/test_ecosystems.py
"""
Тесты реестра экосистем.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.core.ecosystems.models import Ecosystem
from src.core.ecosystems.registry import EcosystemRegistry


@pytest.fixture
def repository(ecosystems: list[Ecosystem]) -> AsyncMock:
    repo = AsyncMock()
    repo.list_all = AsyncMock(return_value=ecosystems)
    repo.upsert = AsyncMock(side_effect=lambda eco: eco)
    return repo


@pytest.fixture
def registry(repository: AsyncMock) -> EcosystemRegistry:
    return EcosystemRegistry(
        repository,
        default_ecosystem_id="admin-default",
        default_radius_km=5.0,
        neighbor_distance_km=10.0,
    )


class TestAssign:

    async def test_point_at_center(self, registry: EcosystemRegistry) -> None:
        assert await registry.assign(19.0, 73.0) == "eco-a"

    async def test_point_inside_other_radius(self, registry: EcosystemRegistry) -> None:
        # ~6.7 км от eco-a (вне радиуса), ~1.3 км от eco-b
        assert await registry.assign(19.06, 73.0) == "eco-b"

    async def test_overlap_picks_nearest(self, registry: EcosystemRegistry) -> None:
        # В радиусе обеих, ближе к eco-a
        assert await registry.assign(19.03, 73.0) == "eco-a"

    async def test_outside_all_falls_back_to_default(self, registry: EcosystemRegistry) -> None:
        assert await registry.assign(28.6, 77.2) == "admin-default"

    async def test_default_ecosystem_is_never_matched_geographically(self, registry: EcosystemRegistry) -> None:
        assert await registry.assign(0.0, 0.0) == "admin-default"

    async def test_missing_coordinates(self, registry: EcosystemRegistry, repository: AsyncMock) -> None:
        assert await registry.assign(None, None) == "admin-default"
        repository.list_all.assert_not_awaited()


class TestNeighbors:

    async def test_within_distance(self, registry: EcosystemRegistry) -> None:
        assert await registry.neighbors("eco-a", 10.0) == ["eco-b"]

    async def test_sorted_by_distance(self, registry: EcosystemRegistry) -> None:
        assert await registry.neighbors("eco-a", 100.0) == ["eco-b", "eco-c"]
        assert await registry.neighbors("eco-c", 100.0) == ["eco-b", "eco-a"]

    async def test_default_distance_from_settings(self, registry: EcosystemRegistry) -> None:
        assert await registry.neighbors("eco-b") == ["eco-a"]

    async def test_unknown_ecosystem(self, registry: EcosystemRegistry) -> None:
        assert await registry.neighbors("eco-x", 100.0) == []


class TestSnapshot:

    async def test_loaded_once(self, registry: EcosystemRegistry, repository: AsyncMock) -> None:
        await registry.get("eco-a")
        await registry.all_ids()
        await registry.default_radius("eco-c")

        repository.list_all.assert_awaited_once()

    async def test_default_radius(self, registry: EcosystemRegistry) -> None:
        assert await registry.default_radius("eco-c") == 8.0
        assert await registry.default_radius("eco-x") == 5.0

    async def test_refresh_reloads(self, registry: EcosystemRegistry, repository: AsyncMock) -> None:
        await registry.all_ids()
        repository.list_all.return_value = []
        await registry.refresh()

        assert await registry.all_ids() == []

    async def test_register_adds_to_snapshot(self, registry: EcosystemRegistry, repository: AsyncMock) -> None:
        new = Ecosystem(id="eco-d", name="Delta", latitude=19.02, longitude=73.05, radius_km=3.0)

        saved = await registry.register(new)

        assert saved == new
        repository.upsert.assert_awaited_once_with(new)
        assert await registry.get("eco-d") == new
