"""Discovery feed and decision endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from gigmatch.domain.discovery.models import FeedFilters
from gigmatch.domain.discovery.schemas import (
	DecisionRequest,
	DecisionResponse,
	FeedResponse,
	LikeSummary,
)
from gigmatch.domain.discovery.service import DiscoveryService
from gigmatch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/discovery", tags=["discovery"])

_service = DiscoveryService()


def get_service() -> DiscoveryService:
	return _service


def _filters(
	genres: Optional[list[str]] = Query(default=None),
	lat: Optional[float] = Query(default=None, ge=-90, le=90),
	lon: Optional[float] = Query(default=None, ge=-180, le=180),
	radius_km: Optional[float] = Query(default=None, gt=0, le=1000),
	budget_min: Optional[Decimal] = Query(default=None, ge=0),
	budget_max: Optional[Decimal] = Query(default=None, ge=0),
	date_from: Optional[date] = Query(default=None),
	date_to: Optional[date] = Query(default=None),
) -> FeedFilters:
	return FeedFilters(
		genres=genres,
		latitude=lat,
		longitude=lon,
		radius_km=radius_km,
		budget_min=budget_min,
		budget_max=budget_max,
		date_from=date_from,
		date_to=date_to,
	)


@router.get("/feed", response_model=FeedResponse)
async def discovery_feed(
	*,
	filters: FeedFilters = Depends(_filters),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_service),
) -> FeedResponse:
	result = await service.feed(auth_user, filters, page=page, limit=limit)
	return FeedResponse.from_page(result)


@router.get("/gigs", response_model=FeedResponse)
async def gig_feed(
	*,
	filters: FeedFilters = Depends(_filters),
	sort: Literal["relevance", "date", "budget", "newest"] = Query(default="relevance"),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_service),
) -> FeedResponse:
	result = await service.gig_feed(auth_user, filters, page=page, limit=limit, sort=sort)
	return FeedResponse.from_page(result)


@router.post("/decisions", response_model=DecisionResponse, status_code=status.HTTP_201_CREATED)
async def record_decision(
	payload: DecisionRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_service),
) -> DecisionResponse:
	result = await service.decide(auth_user, payload.target_id, payload.direction, gig_id=payload.gig_id)
	decision = result.decision
	match = result.match.match if result.match else None
	return DecisionResponse(
		decision_id=decision.id,
		target_id=decision.target_id,
		direction=decision.direction,
		outcome="matched" if match else decision.outcome.value,
		undo_deadline=decision.undo_deadline,
		matched=match is not None,
		match_id=match.id if match else None,
	)


@router.post("/decisions/{decision_id}/undo", status_code=status.HTTP_204_NO_CONTENT)
async def undo_decision(
	decision_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_service),
) -> None:
	await service.undo(auth_user, decision_id)


@router.get("/likes", response_model=list[LikeSummary])
async def who_liked_me(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_service),
) -> list[LikeSummary]:
	decisions = await service.who_liked_me(auth_user)
	return [LikeSummary.from_decision(decision) for decision in decisions]
