# src/services/matching_api/schemas.py
"""
Тела запросов и ответов HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from src.core.matching.service import MatchCandidate
from src.core.scope.models import ScopeDecision


class ScopeRequest(BaseModel):
    stalled: bool = False


class InterestRequest(BaseModel):
    provider_id: str


class RatingRequest(BaseModel):
    value: int
    seeker_id: Optional[str] = None


class ClusterDetectRequest(BaseModel):
    window_hours: Optional[int] = Field(None, gt=0)


class GangAcceptRequest(BaseModel):
    request_id: str


class MatchesResponse(BaseModel):
    request_id: str
    decision: Optional[ScopeDecision] = None
    matches: list[MatchCandidate] = Field(default_factory=list)
    notified: list[str] = Field(default_factory=list)
    expansion_scheduled: bool = False
    skipped: bool = False
