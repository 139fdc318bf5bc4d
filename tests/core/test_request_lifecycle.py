# tests/core/test_request_lifecycle.py
"""
Тесты для сервиса заявок: публикация и жизненный цикл.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import BASE_TIME, make_request
from src.common.constants import RequestStatus, UrgencyLevel
from src.common.exceptions import NotFoundError, ValidationError
from src.core.ecosystems.models import Ecosystem
from src.core.gangs.models import LaborGang
from src.core.gangs.repository import GangRepository
from src.core.geo.client import Location
from src.core.reputation.service import ReputationService
from src.core.requests.models import ServiceRequestCreateDTO
from src.core.requests.repository import RequestRepository
from src.core.requests.service import RequestService
from src.core.requests.state_machine import RequestStateMachine
from src.core.urgency.scorer import UrgencyScorer
from src.infra.event_bus import EventTypes


@pytest.fixture
def registry() -> AsyncMock:
    reg = AsyncMock()
    reg.assign = AsyncMock(return_value="eco-a")
    reg.get = AsyncMock(return_value=Ecosystem(
        id="admin-default", name="Default", latitude=0.0, longitude=0.0, radius_km=1.0, is_default=True,
    ))
    return reg


@pytest.fixture
def scheduler() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def clusters() -> AsyncMock:
    svc = AsyncMock()
    svc.check_fulfilment = AsyncMock(return_value=True)
    return svc


@pytest.fixture
def service(
    mock_db: MagicMock,
    mock_event_bus: AsyncMock,
    registry: AsyncMock,
    scheduler: AsyncMock,
    mock_notifications: AsyncMock,
    clusters: AsyncMock,
) -> RequestService:
    svc = RequestService(
        db=mock_db,
        event_bus=mock_event_bus,
        registry=registry,
        scheduler=scheduler,
        notifications=mock_notifications,
        urgency=UrgencyScorer(weights={"urgent": 25, "emergency": 40, "spoiling": 30}),
        clusters=clusters,
    )
    svc._repo = AsyncMock()
    return svc


class StoredRequest:
    """Подменяет блокирующее чтение и сохранение заявки."""

    def __init__(self, request) -> None:
        self.request = request
        self.saved = []

    async def get_for_update(self, conn, request_id):
        return self.request if self.request and self.request.id == request_id else None

    async def save_lifecycle(self, conn, request):
        self.saved.append(request.status)


@pytest.fixture
def stored():
    holder = StoredRequest(None)
    with patch.object(RequestRepository, "get_for_update", AsyncMock(side_effect=holder.get_for_update)), \
            patch.object(RequestRepository, "save_lifecycle", AsyncMock(side_effect=holder.save_lifecycle)):
        yield holder


def dto(**overrides) -> ServiceRequestCreateDTO:
    data = {
        "seeker_id": "seeker-1",
        "specific_tags": ["tractor_tillage"],
        "categories": ["farming"],
        "compensation": 450.0,
        "latitude": 19.0,
        "longitude": 73.0,
    }
    data.update(overrides)
    return ServiceRequestCreateDTO(**data)


# =============================================================================
# ПУБЛИКАЦИЯ
# =============================================================================

class TestPublish:
    """Тесты публикации заявки."""

    async def test_publish_success(self, service: RequestService, mock_event_bus: AsyncMock) -> None:
        """Проверяет сохранение заявки и событие публикации."""
        request = await service.publish(dto())

        assert request.status == RequestStatus.OPEN
        assert request.ecosystem_id == "eco-a"
        service._repo.create.assert_awaited_once()

        event = mock_event_bus.publish.await_args.args[0]
        assert event.event_type == EventTypes.REQUEST_PUBLISHED
        assert event.payload["request_id"] == request.id

    @pytest.mark.parametrize("compensation", [0.0, -10.0])
    async def test_non_positive_compensation(self, service: RequestService, compensation: float) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.publish(dto(compensation=compensation))

        assert exc_info.value.reason == "non_positive_compensation"
        service._repo.create.assert_not_awaited()

    async def test_empty_tags(self, service: RequestService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await service.publish(dto(specific_tags=[], categories=[]))

        assert exc_info.value.reason == "empty_tags"

    async def test_urgency_from_keywords(self, service: RequestService) -> None:
        request = await service.publish(dto(urgency_keywords=["emergency", "urgent"]))

        assert request.urgency_score == 65
        assert request.urgency_level == UrgencyLevel.HIGH

    async def test_urgency_from_description(self, service: RequestService) -> None:
        request = await service.publish(dto(description="Onions spoiling, need help"))

        assert request.urgency_score == 30
        assert request.urgency_keywords == ["spoiling"]

    async def test_geocoding_failure_falls_back_to_default(
        self,
        service: RequestService,
        registry: AsyncMock,
    ) -> None:
        """Проверяет, что без координат заявка уходит в экосистему по умолчанию."""
        service._geolocation = AsyncMock()
        service._geolocation.geocode = AsyncMock(return_value=None)
        registry.assign.return_value = "admin-default"

        request = await service.publish(dto(latitude=None, longitude=None, address="Unknown village"))

        registry.assign.assert_awaited_once_with(None, None)
        assert request.ecosystem_id == "admin-default"
        assert (request.latitude, request.longitude) == (0.0, 0.0)

    async def test_geocoded_address(self, service: RequestService, registry: AsyncMock) -> None:
        service._geolocation = AsyncMock()
        service._geolocation.geocode = AsyncMock(
            return_value=Location(latitude=19.03, longitude=73.0, address="Nashik"),
        )

        request = await service.publish(dto(latitude=None, longitude=None, address="Nashik"))

        registry.assign.assert_awaited_once_with(19.03, 73.0)
        assert request.address == "Nashik"


# =============================================================================
# ЖИЗНЕННЫЙ ЦИКЛ
# =============================================================================

class TestInterest:
    """Тесты откликов исполнителей."""

    async def test_first_interest_moves_to_pending(
        self,
        service: RequestService,
        stored: StoredRequest,
        scheduler: AsyncMock,
    ) -> None:
        stored.request = make_request()

        request = await service.register_interest("req-1", "prov-1")

        assert request.status == RequestStatus.PENDING
        assert request.interested_provider_ids == ["prov-1"]
        scheduler.cancel.assert_awaited_once_with("req-1")

    async def test_second_interest_keeps_pending(
        self,
        service: RequestService,
        stored: StoredRequest,
        mock_event_bus: AsyncMock,
    ) -> None:
        stored.request = make_request(status=RequestStatus.PENDING, interested_provider_ids=["prov-1"])

        request = await service.register_interest("req-1", "prov-2")

        assert request.interested_provider_ids == ["prov-1", "prov-2"]
        mock_event_bus.publish.assert_not_awaited()

    async def test_interest_on_accepted(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.ACCEPTED)

        with pytest.raises(ValidationError):
            await service.register_interest("req-1", "prov-2")

    async def test_missing_request(self, service: RequestService, stored: StoredRequest) -> None:
        with pytest.raises(NotFoundError):
            await service.register_interest("req-x", "prov-1")


class TestTransitions:
    """Тесты смены статуса."""

    async def test_invalid_transition(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request()

        with pytest.raises(ValidationError) as exc_info:
            await service.transition("req-1", RequestStatus.CONFIRMED)

        assert exc_info.value.reason == "invalid_transition"
        assert stored.saved == []

    async def test_pending_requires_interest(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request()

        with pytest.raises(ValidationError) as exc_info:
            await service.transition("req-1", RequestStatus.PENDING)

        assert exc_info.value.reason == "no_interested_provider"

    async def test_accept_single_interested(
        self,
        service: RequestService,
        stored: StoredRequest,
        mock_notifications: AsyncMock,
    ) -> None:
        stored.request = make_request(status=RequestStatus.PENDING, interested_provider_ids=["prov-1"])

        request = await service.transition("req-1", RequestStatus.ACCEPTED)

        assert request.accepted_provider_id == "prov-1"
        mock_notifications.notify_status_changed.assert_awaited_once_with(
            recipient_id="prov-1",
            request_id="req-1",
            status="accepted",
        )

    async def test_accept_requires_choice(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(
            status=RequestStatus.PENDING,
            interested_provider_ids=["prov-1", "prov-2"],
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.transition("req-1", RequestStatus.ACCEPTED)

        assert exc_info.value.reason == "provider_not_interested"

    async def test_accept_chosen_provider(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(
            status=RequestStatus.PENDING,
            interested_provider_ids=["prov-1", "prov-2"],
        )

        request = await service.transition("req-1", RequestStatus.ACCEPTED, provider_id="prov-2")

        assert request.accepted_provider_id == "prov-2"
        assert request.interested_provider_ids == ["prov-2"]

    async def test_accept_stranger(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.PENDING, interested_provider_ids=["prov-1"])

        with pytest.raises(ValidationError):
            await service.transition("req-1", RequestStatus.ACCEPTED, provider_id="prov-9")

    async def test_completed_sets_timestamp(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.IN_PROGRESS, accepted_provider_id="prov-1")

        request = await service.transition("req-1", RequestStatus.COMPLETED)

        assert request.completed_at is not None

    async def test_confirm_by_stranger(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.COMPLETED, accepted_provider_id="prov-1")

        with pytest.raises(ValidationError) as exc_info:
            await service.transition("req-1", RequestStatus.CONFIRMED, actor_id="someone-else")

        assert exc_info.value.reason == "not_seeker"

    async def test_confirm_side_effects(
        self,
        service: RequestService,
        stored: StoredRequest,
        mock_notifications: AsyncMock,
        clusters: AsyncMock,
    ) -> None:
        """Проверяет сделку, счётчик бригады, запрос оценки и проверку кластера."""
        stored.request = make_request(
            status=RequestStatus.COMPLETED,
            accepted_provider_id="prov-1",
            gang_id="gang-1",
            cluster_id="cl-1",
            completed_at=BASE_TIME + timedelta(hours=5),
        )

        with patch.object(ReputationService, "record_transaction", AsyncMock()) as record, \
                patch.object(GangRepository, "increment_completed", AsyncMock()) as increment:
            request = await service.transition("req-1", RequestStatus.CONFIRMED, actor_id="seeker-1")

        assert request.status == RequestStatus.CONFIRMED
        record.assert_awaited_once()
        increment.assert_awaited_once()
        assert increment.await_args.args[1] == "gang-1"
        mock_notifications.notify_rating_prompt.assert_awaited_once_with("seeker-1", "req-1", "en")
        clusters.check_fulfilment.assert_awaited_once_with("cl-1")

    async def test_cluster_error_does_not_fail_confirm(
        self,
        service: RequestService,
        stored: StoredRequest,
        clusters: AsyncMock,
    ) -> None:
        stored.request = make_request(
            status=RequestStatus.COMPLETED,
            accepted_provider_id="prov-1",
            cluster_id="cl-1",
        )
        clusters.check_fulfilment.side_effect = RuntimeError("db down")

        with patch.object(ReputationService, "record_transaction", AsyncMock()):
            request = await service.transition("req-1", RequestStatus.CONFIRMED, actor_id="seeker-1")

        assert request.status == RequestStatus.CONFIRMED

    async def test_cancel_open_cancels_timer(
        self,
        service: RequestService,
        stored: StoredRequest,
        scheduler: AsyncMock,
        mock_event_bus: AsyncMock,
    ) -> None:
        stored.request = make_request()

        await service.transition("req-1", RequestStatus.CANCELLED)

        scheduler.cancel.assert_awaited_once_with("req-1")
        event = mock_event_bus.publish.await_args.args[0]
        assert event.event_type == EventTypes.REQUEST_STATUS_CHANGED
        assert event.payload["from"] == "open"
        assert event.payload["to"] == "cancelled"

    async def test_cancel_accepted_notifies_provider(
        self,
        service: RequestService,
        stored: StoredRequest,
        scheduler: AsyncMock,
        mock_notifications: AsyncMock,
    ) -> None:
        stored.request = make_request(status=RequestStatus.ACCEPTED, accepted_provider_id="prov-1")

        await service.transition("req-1", RequestStatus.CANCELLED)

        scheduler.cancel.assert_not_awaited()
        assert mock_notifications.notify_status_changed.await_args.kwargs["status"] == "cancelled"

    async def test_terminal_status_is_final(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.CANCELLED)

        with pytest.raises(ValidationError):
            await service.transition("req-1", RequestStatus.OPEN)


class TestGangAcceptance:

    async def test_leader_becomes_provider(
        self,
        service: RequestService,
        stored: StoredRequest,
        scheduler: AsyncMock,
    ) -> None:
        stored.request = make_request()
        gang = LaborGang(id="gang-1", leader_id="lead-1", member_ids=["lead-1", "m-2"])

        request = await service.accept_by_gang("req-1", gang)

        assert request.status == RequestStatus.ACCEPTED
        assert request.accepted_provider_id == "lead-1"
        assert request.interested_provider_ids == ["lead-1"]
        assert request.gang_id == "gang-1"
        assert stored.saved == [RequestStatus.PENDING, RequestStatus.ACCEPTED]
        scheduler.cancel.assert_awaited_once_with("req-1")

    async def test_open_request_emits_each_step(
        self,
        service: RequestService,
        stored: StoredRequest,
        mock_event_bus: AsyncMock,
    ) -> None:
        stored.request = make_request()
        gang = LaborGang(id="gang-1", leader_id="lead-1")

        await service.accept_by_gang("req-1", gang)

        steps = [
            (call.args[0].payload["from"], call.args[0].payload["to"])
            for call in mock_event_bus.publish.await_args_list
        ]
        assert steps == [("open", "pending"), ("pending", "accepted")]

    async def test_pending_request_goes_straight_to_accepted(
        self,
        service: RequestService,
        stored: StoredRequest,
        mock_event_bus: AsyncMock,
    ) -> None:
        stored.request = make_request(status=RequestStatus.PENDING, interested_provider_ids=["prov-9"])
        gang = LaborGang(id="gang-1", leader_id="lead-1", member_ids=["lead-1"])

        request = await service.accept_by_gang("req-1", gang)

        assert stored.saved == [RequestStatus.ACCEPTED]
        assert request.interested_provider_ids == ["lead-1"]
        event = mock_event_bus.publish.await_args.args[0]
        assert event.payload["from"] == "pending"
        assert event.payload["to"] == "accepted"

    async def test_every_persisted_step_is_an_allowed_transition(
        self,
        service: RequestService,
        stored: StoredRequest,
    ) -> None:
        stored.request = make_request()
        gang = LaborGang(id="gang-1", leader_id="lead-1")

        await service.accept_by_gang("req-1", gang)

        steps = [RequestStatus.OPEN] + stored.saved
        for current, new in zip(steps, steps[1:]):
            assert RequestStateMachine.can_transition(current, new)

    async def test_closed_request(self, service: RequestService, stored: StoredRequest) -> None:
        stored.request = make_request(status=RequestStatus.COMPLETED)
        gang = LaborGang(id="gang-1", leader_id="lead-1")

        with pytest.raises(ValidationError):
            await service.accept_by_gang("req-1", gang)


class TestStaleRequests:

    async def test_flags_and_notifies(self, service: RequestService, mock_notifications: AsyncMock) -> None:
        service._repo.mark_stale = AsyncMock(return_value=[make_request(), make_request(id="req-2")])

        count = await service.flag_stale_requests(now=BASE_TIME + timedelta(hours=30), stale_hours=24)

        assert count == 2
        service._repo.mark_stale.assert_awaited_once_with(BASE_TIME + timedelta(hours=6))
        assert mock_notifications.notify_stale_request.await_count == 2

    async def test_nothing_stale(self, service: RequestService, mock_notifications: AsyncMock) -> None:
        service._repo.mark_stale = AsyncMock(return_value=[])

        assert await service.flag_stale_requests(now=BASE_TIME, stale_hours=24) == 0
        mock_notifications.notify_stale_request.assert_not_awaited()
