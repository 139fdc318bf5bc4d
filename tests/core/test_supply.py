# tests/core/test_supply.py
"""
Тесты индекса предложения.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import make_provider
from src.core.supply.service import SupplyIndexCalculator


@pytest.fixture
def providers() -> AsyncMock:
    repo = AsyncMock()
    repo.list_candidates = AsyncMock(return_value=[
        make_provider(user_id="near", latitude=19.0, longitude=73.0),
        make_provider(user_id="edge", latitude=19.04, longitude=73.0),   # ~4.4 км
        make_provider(user_id="far", latitude=19.2, longitude=73.0),     # ~22 км
    ])
    return repo


@pytest.fixture
def registry() -> AsyncMock:
    reg = AsyncMock()
    reg.assign = AsyncMock(return_value="eco-a")
    reg.default_radius = AsyncMock(return_value=5.0)
    return reg


async def test_counts_providers_in_radius(providers: AsyncMock, registry: AsyncMock) -> None:
    calc = SupplyIndexCalculator(providers, registry, timeout=1.0)

    index = await calc.supply_index(["tractor_tillage"], [], 19.0, 73.0)

    assert index == 2
    registry.assign.assert_awaited_once_with(19.0, 73.0)
    providers.list_candidates.assert_awaited_once_with(["eco-a"], ["tractor_tillage"], [])


async def test_explicit_radius_and_ecosystem(providers: AsyncMock, registry: AsyncMock) -> None:
    calc = SupplyIndexCalculator(providers, registry, timeout=1.0)

    index = await calc.supply_index(["tractor_tillage"], [], 19.0, 73.0, radius_km=1.0, ecosystem_id="eco-b")

    assert index == 1
    registry.assign.assert_not_awaited()
    providers.list_candidates.assert_awaited_once_with(["eco-b"], ["tractor_tillage"], [])


async def test_no_tags_means_no_supply(providers: AsyncMock, registry: AsyncMock) -> None:
    calc = SupplyIndexCalculator(providers, registry, timeout=1.0)

    assert await calc.supply_index([], [], 19.0, 73.0) == 0
    providers.list_candidates.assert_not_awaited()


async def test_failure_gives_none(providers: AsyncMock, registry: AsyncMock) -> None:
    providers.list_candidates.side_effect = ConnectionError("db down")
    calc = SupplyIndexCalculator(providers, registry, timeout=1.0)

    assert await calc.supply_index_or_none(["tractor_tillage"], [], 19.0, 73.0) is None


async def test_timeout_gives_none(providers: AsyncMock, registry: AsyncMock) -> None:
    async def slow(*args, **kwargs):
        await asyncio.sleep(1)
        return []

    providers.list_candidates.side_effect = slow
    calc = SupplyIndexCalculator(providers, registry, timeout=0.01)

    assert await calc.supply_index_or_none(["tractor_tillage"], [], 19.0, 73.0) is None
