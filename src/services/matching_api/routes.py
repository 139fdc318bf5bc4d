# src/services/matching_api/routes.py
"""
Маршруты API матчинга.
ValidationError -> 400, NotFoundError -> 404 (обработчики в app.py).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.core.clusters.models import DemandCluster
from src.core.ecosystems.models import Ecosystem
from src.core.engine import Engine
from src.core.gangs.models import LaborGang, LaborGangCreateDTO
from src.core.providers.models import ProviderReputation
from src.core.reputation.models import Rating
from src.core.requests.models import ServiceRequest, ServiceRequestCreateDTO, TransitionDTO
from src.core.scope.models import ScopeDecision
from src.services.matching_api.dependencies import get_engine
from src.services.matching_api.schemas import (
    ClusterDetectRequest,
    GangAcceptRequest,
    InterestRequest,
    MatchesResponse,
    RatingRequest,
    ScopeRequest,
)

router = APIRouter()


# === REQUESTS ===

@router.post("/requests", response_model=ServiceRequest, status_code=status.HTTP_201_CREATED, tags=["Requests"])
async def publish_request(dto: ServiceRequestCreateDTO, engine: Engine = Depends(get_engine)):
    return await engine.requests.publish(dto)


@router.get("/requests/{request_id}", response_model=ServiceRequest, tags=["Requests"])
async def get_request(request_id: str, engine: Engine = Depends(get_engine)):
    return await engine.requests.get_request(request_id)


@router.post("/requests/{request_id}/scope", response_model=ScopeDecision, tags=["Matching"])
async def resolve_scope(
    request_id: str,
    body: ScopeRequest | None = None,
    engine: Engine = Depends(get_engine),
):
    request = await engine.requests.get_request(request_id)
    return await engine.matching.resolve_scope(request, stalled=body.stalled if body else False)


@router.post("/requests/{request_id}/matches", response_model=MatchesResponse, tags=["Matching"])
async def find_matches(request_id: str, engine: Engine = Depends(get_engine)):
    outcome = await engine.matching.process_request(request_id)
    return MatchesResponse(
        request_id=outcome.request_id,
        decision=outcome.decision,
        matches=outcome.matches,
        notified=outcome.notified,
        expansion_scheduled=outcome.expansion_scheduled,
        skipped=outcome.skipped,
    )


@router.post("/requests/{request_id}/interest", response_model=ServiceRequest, tags=["Lifecycle"])
async def register_interest(request_id: str, body: InterestRequest, engine: Engine = Depends(get_engine)):
    return await engine.requests.register_interest(request_id, body.provider_id)


@router.post("/requests/{request_id}/transition", response_model=ServiceRequest, tags=["Lifecycle"])
async def transition(request_id: str, body: TransitionDTO, engine: Engine = Depends(get_engine)):
    return await engine.requests.transition(
        request_id,
        body.status,
        provider_id=body.provider_id,
        actor_id=body.actor_id,
    )


@router.post(
    "/requests/{request_id}/rating",
    response_model=Rating,
    status_code=status.HTTP_201_CREATED,
    tags=["Reputation"],
)
async def submit_rating(request_id: str, body: RatingRequest, engine: Engine = Depends(get_engine)):
    return await engine.reputation.submit_rating(request_id, body.value, seeker_id=body.seeker_id)


# === ECOSYSTEMS ===

@router.post("/ecosystems", response_model=Ecosystem, status_code=status.HTTP_201_CREATED, tags=["Ecosystems"])
async def register_ecosystem(ecosystem: Ecosystem, engine: Engine = Depends(get_engine)):
    return await engine.registry.register(ecosystem)


@router.post("/ecosystems/{ecosystem_id}/clusters/detect", response_model=list[DemandCluster], tags=["Clusters"])
async def detect_clusters(
    ecosystem_id: str,
    body: ClusterDetectRequest | None = None,
    engine: Engine = Depends(get_engine),
):
    return await engine.clusters.detect_clusters(ecosystem_id, body.window_hours if body else None)


# === GANGS ===

@router.post("/gangs", response_model=LaborGang, status_code=status.HTTP_201_CREATED, tags=["Gangs"])
async def create_gang(dto: LaborGangCreateDTO, engine: Engine = Depends(get_engine)):
    return await engine.gangs.create_gang(dto)


@router.get("/gangs/{gang_id}", response_model=LaborGang, tags=["Gangs"])
async def get_gang(gang_id: str, engine: Engine = Depends(get_engine)):
    return await engine.gangs.get_gang(gang_id)


@router.post("/gangs/{gang_id}/deactivate", response_model=LaborGang, tags=["Gangs"])
async def deactivate_gang(gang_id: str, engine: Engine = Depends(get_engine)):
    return await engine.gangs.deactivate_gang(gang_id)


@router.post("/gangs/{gang_id}/accept", response_model=ServiceRequest, tags=["Gangs"])
async def accept_as_gang(gang_id: str, body: GangAcceptRequest, engine: Engine = Depends(get_engine)):
    return await engine.gangs.accept_as_gang(gang_id, body.request_id)


# === PROVIDERS ===

@router.get("/providers/{provider_id}/reputation", response_model=ProviderReputation, tags=["Reputation"])
async def get_reputation(provider_id: str, engine: Engine = Depends(get_engine)):
    return await engine.reputation.get_reputation(provider_id)
