# tests/core/test_matching_engine.py
"""
Тесты движка матчинга: скоринг, порядок, идемпотентная рассылка.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import BASE_TIME, make_provider, make_request
from src.common.constants import RequestStatus, ScopeRule, UrgencyLevel
from src.common.exceptions import NotFoundError
from src.core.matching.service import MatchingEngine
from src.core.scope.models import ScopeDecision
from src.core.scope.resolver import ScopeResolver


def local_decision(radius_km: float = 5.0, include_neighboring: bool = False) -> ScopeDecision:
    return ScopeDecision(
        radius_km=radius_km,
        include_neighboring=include_neighboring,
        rule=ScopeRule.DEFAULT,
        expansion_eligible=not include_neighboring,
    )


@pytest.fixture
def registry() -> AsyncMock:
    reg = AsyncMock()
    reg.default_radius = AsyncMock(return_value=5.0)
    reg.neighbors = AsyncMock(return_value=["eco-b"])
    return reg


@pytest.fixture
def supply() -> AsyncMock:
    calc = AsyncMock()
    calc.supply_index_or_none = AsyncMock(return_value=2)
    return calc


@pytest.fixture
def scheduler() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def request_repo() -> AsyncMock:
    """Репозиторий с атомарным захватом уведомлений в памяти."""
    repo = AsyncMock()
    claimed: set[tuple[str, str]] = set()

    async def claim(request_id: str, provider_id: str) -> bool:
        key = (request_id, provider_id)
        if key in claimed:
            return False
        claimed.add(key)
        return True

    async def release(request_id: str, provider_id: str) -> bool:
        key = (request_id, provider_id)
        if key not in claimed:
            return False
        claimed.discard(key)
        return True

    async def notified(request_id: str) -> list[str]:
        return sorted(p for r, p in claimed if r == request_id)

    repo.claim_notification = AsyncMock(side_effect=claim)
    repo.release_notification = AsyncMock(side_effect=release)
    repo.notified_providers = AsyncMock(side_effect=notified)
    repo.average_compensation = AsyncMock(return_value=400.0)
    repo.get_by_id = AsyncMock(return_value=make_request())
    repo.claimed = claimed
    return repo


@pytest.fixture
def provider_repo() -> AsyncMock:
    repo = AsyncMock()
    repo.list_candidates = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def engine(
    mock_db: MagicMock,
    registry: AsyncMock,
    supply: AsyncMock,
    scheduler: AsyncMock,
    mock_notifications: AsyncMock,
    request_repo: AsyncMock,
    provider_repo: AsyncMock,
) -> MatchingEngine:
    matching = MatchingEngine(
        db=mock_db,
        registry=registry,
        supply=supply,
        resolver=ScopeResolver(
            critical_radius_km=20.0,
            expansion_radius_km=10.0,
            premium_multiplier=1.2,
            low_value_tags=["chai_delivery"],
            low_value_floors={},
        ),
        scheduler=scheduler,
        notifications=mock_notifications,
    )
    matching._requests = request_repo
    matching._providers = provider_repo
    return matching


class TestScoring:

    async def test_score_formula(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        # ~2 км к северу
        provider_repo.list_candidates.return_value = [make_provider(latitude=19.018)]

        matches = await engine.find_matches(make_request(), local_decision())

        assert len(matches) == 1
        expected = 2 * 1 + 1 * 1 - 0.1 * matches[0].distance_km
        assert matches[0].score == pytest.approx(expected, abs=1e-3)

    async def test_category_only_match(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [make_provider(specific_tags=["harvesting"])]

        matches = await engine.find_matches(make_request(), local_decision())

        assert matches[0].score == pytest.approx(1.0)

    async def test_min_compensation_excludes(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="pricey", min_compensation={"tractor_tillage": 600}),
            make_provider(user_id="ok", min_compensation={"tractor_tillage": 450}),
        ]

        matches = await engine.find_matches(make_request(compensation=450.0), local_decision())

        assert [m.provider_id for m in matches] == ["ok"]

    async def test_inactive_and_far_excluded(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="inactive", is_active=False),
            make_provider(user_id="far", latitude=19.2),
            make_provider(user_id="near"),
        ]

        matches = await engine.find_matches(make_request(), local_decision())

        assert [m.provider_id for m in matches] == ["near"]

    async def test_no_overlap_excluded(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(specific_tags=["plumbing"], categories=["repairs"]),
        ]
        assert await engine.find_matches(make_request(), local_decision()) == []

    async def test_request_without_location(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        request = make_request(latitude=None, longitude=None)
        assert await engine.find_matches(request, local_decision()) == []
        provider_repo.list_candidates.assert_not_awaited()


class TestOrdering:

    async def test_higher_score_first(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="category", specific_tags=[]),
            make_provider(user_id="tag"),
        ]

        matches = await engine.find_matches(make_request(), local_decision())

        assert [m.provider_id for m in matches] == ["tag", "category"]

    async def test_rating_breaks_ties(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="unrated"),
            make_provider(user_id="average", rating_sum=15, rating_count=5),
            make_provider(user_id="best", rating_sum=23, rating_count=5),
        ]

        matches = await engine.find_matches(make_request(), local_decision())

        assert [m.provider_id for m in matches] == ["best", "average", "unrated"]

    async def test_earlier_registration_breaks_ties(self, engine: MatchingEngine, provider_repo: AsyncMock) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="newer", registered_at=BASE_TIME - timedelta(days=1)),
            make_provider(user_id="older", registered_at=BASE_TIME - timedelta(days=100)),
        ]

        matches = await engine.find_matches(make_request(), local_decision())

        assert [m.provider_id for m in matches] == ["older", "newer"]

    async def test_neighbors_included(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        registry: AsyncMock,
    ) -> None:
        await engine.find_matches(make_request(), local_decision(10.0, include_neighboring=True))

        registry.neighbors.assert_awaited_once()
        ecosystem_ids = provider_repo.list_candidates.await_args.args[0]
        assert ecosystem_ids == ["eco-a", "eco-b"]

    async def test_local_only(self, engine: MatchingEngine, provider_repo: AsyncMock, registry: AsyncMock) -> None:
        await engine.find_matches(make_request(), local_decision())

        registry.neighbors.assert_not_awaited()
        assert provider_repo.list_candidates.await_args.args[0] == ["eco-a"]


class TestDispatch:

    async def test_repeated_dispatch_is_idempotent(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        mock_notifications: AsyncMock,
    ) -> None:
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="p1"),
            make_provider(user_id="p2"),
        ]

        first = await engine.process_request("req-1")
        second = await engine.process_request("req-1")

        assert sorted(first.notified) == ["p1", "p2"]
        assert second.notified == []
        assert [m.provider_id for m in first.matches] == [m.provider_id for m in second.matches]
        assert mock_notifications.notify_provider_match.await_count == 2

    async def test_concurrent_dispatch_has_no_duplicates(
        self,
        engine: MatchingEngine,
        mock_notifications: AsyncMock,
    ) -> None:
        request = make_request()
        matches = await asyncio.gather(*(
            engine.dispatch(request, [MagicMock(provider_id="p1", distance_km=1.0)])
            for _ in range(5)
        ))

        assert sum(len(notified) for notified in matches) == 1
        assert mock_notifications.notify_provider_match.await_count == 1

    async def test_only_new_providers_after_expansion(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        request_repo: AsyncMock,
        mock_notifications: AsyncMock,
    ) -> None:
        provider_repo.list_candidates.return_value = [make_provider(user_id="local")]
        await engine.process_request("req-1")

        request_repo.get_by_id.return_value = make_request(radius_km=5.0)
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="local"),
            make_provider(user_id="neighbor", ecosystem_id="eco-b", latitude=19.072),
        ]
        outcome = await engine.process_request("req-1", stalled=True)

        assert outcome.notified == ["neighbor"]
        assert mock_notifications.notify_provider_match.await_count == 2

    async def test_dispatch_is_capped(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
    ) -> None:
        engine._max_notify = 2
        provider_repo.list_candidates.return_value = [
            make_provider(user_id=f"p{i}", latitude=19.0 + i * 0.001) for i in range(4)
        ]

        outcome = await engine.process_request("req-1")

        assert outcome.notified == ["p0", "p1"]
        assert len(outcome.matches) == 4

    async def test_cap_counts_only_new_providers(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
    ) -> None:
        engine._max_notify = 2
        provider_repo.list_candidates.return_value = [
            make_provider(user_id=f"p{i}", latitude=19.0 + i * 0.001) for i in range(4)
        ]

        first = await engine.process_request("req-1")
        second = await engine.process_request("req-1")

        assert first.notified == ["p0", "p1"]
        assert second.notified == ["p2", "p3"]

    async def test_neighbor_reached_after_local_cap_is_used(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        request_repo: AsyncMock,
    ) -> None:
        engine._max_notify = 2
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="local-1"),
            make_provider(user_id="local-2", latitude=19.001),
        ]
        await engine.process_request("req-1")

        request_repo.get_by_id.return_value = make_request(radius_km=5.0)
        provider_repo.list_candidates.return_value = [
            make_provider(user_id="local-1"),
            make_provider(user_id="local-2", latitude=19.001),
            make_provider(user_id="neighbor", ecosystem_id="eco-b", latitude=19.072),
        ]
        outcome = await engine.process_request("req-1", stalled=True)

        assert outcome.decision.rule == ScopeRule.STALLED_EXPANSION
        assert [m.provider_id for m in outcome.matches][-1] == "neighbor"
        assert outcome.notified == ["neighbor"]

    async def test_failed_notification_is_retried_later(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        request_repo: AsyncMock,
        mock_notifications: AsyncMock,
    ) -> None:
        provider_repo.list_candidates.return_value = [make_provider(user_id="p1")]
        mock_notifications.notify_provider_match.side_effect = [False, True]

        first = await engine.process_request("req-1")

        assert first.notified == []
        request_repo.release_notification.assert_awaited_once_with("req-1", "p1")
        assert ("req-1", "p1") not in request_repo.claimed

        second = await engine.process_request("req-1")

        assert second.notified == ["p1"]
        assert mock_notifications.notify_provider_match.await_count == 2
        assert ("req-1", "p1") in request_repo.claimed


class TestProcessRequest:

    async def test_default_rule_schedules_expansion(
        self,
        engine: MatchingEngine,
        scheduler: AsyncMock,
        request_repo: AsyncMock,
    ) -> None:
        outcome = await engine.process_request("req-1")

        assert outcome.decision.rule == ScopeRule.DEFAULT
        assert outcome.expansion_scheduled is True
        scheduler.schedule.assert_awaited_once_with("req-1", BASE_TIME)
        request_repo.update_scope.assert_awaited_once()

    async def test_supply_unavailable_still_schedules(
        self,
        engine: MatchingEngine,
        supply: AsyncMock,
        scheduler: AsyncMock,
    ) -> None:
        supply.supply_index_or_none.return_value = None

        outcome = await engine.process_request("req-1")

        assert outcome.decision.rule == ScopeRule.SUPPLY_UNAVAILABLE
        assert outcome.decision.radius_km == 5.0
        scheduler.schedule.assert_awaited_once()

    async def test_premium_does_not_schedule(
        self,
        engine: MatchingEngine,
        request_repo: AsyncMock,
        scheduler: AsyncMock,
    ) -> None:
        request_repo.get_by_id.return_value = make_request(compensation=500.0)

        outcome = await engine.process_request("req-1")

        assert outcome.decision.rule == ScopeRule.PREMIUM_COMPENSATION
        assert outcome.decision.include_neighboring is True
        scheduler.schedule.assert_not_awaited()

    async def test_critical_without_supply(
        self,
        engine: MatchingEngine,
        request_repo: AsyncMock,
        supply: AsyncMock,
    ) -> None:
        supply.supply_index_or_none.return_value = 0
        request_repo.get_by_id.return_value = make_request(urgency_level=UrgencyLevel.CRITICAL)

        outcome = await engine.process_request("req-1")

        assert outcome.decision.rule == ScopeRule.CRITICAL_EXPANSION
        assert outcome.decision.radius_km == 20.0

    async def test_stalled_run_does_not_reschedule(self, engine: MatchingEngine, scheduler: AsyncMock) -> None:
        outcome = await engine.process_request("req-1", stalled=True)

        assert outcome.decision.rule == ScopeRule.STALLED_EXPANSION
        scheduler.schedule.assert_not_awaited()

    async def test_expanded_scope_never_shrinks(self, engine: MatchingEngine, request_repo: AsyncMock) -> None:
        request_repo.get_by_id.return_value = make_request(radius_km=10.0, include_neighboring=True)

        outcome = await engine.process_request("req-1")

        assert outcome.decision.radius_km == 10.0
        assert outcome.decision.include_neighboring is True
        assert outcome.expansion_scheduled is False

    async def test_closed_request_is_skipped(
        self,
        engine: MatchingEngine,
        request_repo: AsyncMock,
        provider_repo: AsyncMock,
    ) -> None:
        request_repo.get_by_id.return_value = make_request(status=RequestStatus.ACCEPTED)

        outcome = await engine.process_request("req-1")

        assert outcome.skipped is True
        provider_repo.list_candidates.assert_not_awaited()

    async def test_missing_request(self, engine: MatchingEngine, request_repo: AsyncMock) -> None:
        request_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await engine.process_request("req-x")

    async def test_candidate_query_timeout(
        self,
        engine: MatchingEngine,
        provider_repo: AsyncMock,
        mock_notifications: AsyncMock,
    ) -> None:
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)
            return []

        engine._query_timeout = 0.01
        provider_repo.list_candidates.side_effect = slow

        outcome = await engine.process_request("req-1")

        assert outcome.matches == []
        mock_notifications.notify_provider_match.assert_not_awaited()

    async def test_average_failure_disables_premium(
        self,
        engine: MatchingEngine,
        request_repo: AsyncMock,
    ) -> None:
        request_repo.average_compensation.side_effect = ConnectionError("db down")
        request_repo.get_by_id.return_value = make_request(compensation=10_000.0)

        outcome = await engine.process_request("req-1")

        assert outcome.decision.rule == ScopeRule.DEFAULT
