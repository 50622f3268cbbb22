"""Match management endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from gigmatch.domain.matches.models import MatchStatus
from gigmatch.domain.matches.schemas import MatchListResponse, MatchStatusUpdate, MatchSummary, UnreadResponse
from gigmatch.domain.matches.service import MatchService
from gigmatch.domain.profiles.models import parse_party_id
from gigmatch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/matches", tags=["matches"])

_service = MatchService()


def get_service() -> MatchService:
	return _service


@router.get("", response_model=MatchListResponse)
async def list_matches(
	*,
	status: Optional[MatchStatus] = Query(default=None),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_service),
) -> MatchListResponse:
	result = await service.list_matches(auth_user, status=status, page=page, limit=limit)
	party_id = parse_party_id(auth_user.id)
	return MatchListResponse(
		items=[MatchSummary.for_party(match, party_id) for match in result.items],
		total=result.total,
		page=result.page,
		limit=result.limit,
	)


@router.get("/unread", response_model=UnreadResponse)
async def unread_count(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_service),
) -> UnreadResponse:
	return UnreadResponse(unread=await service.unread_count(auth_user))


@router.get("/{match_id}", response_model=MatchSummary)
async def get_match(
	match_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_service),
) -> MatchSummary:
	match = await service.get_match(auth_user, match_id)
	return MatchSummary.for_party(match, parse_party_id(auth_user.id))


@router.post("/{match_id}/viewed", response_model=MatchSummary)
async def mark_viewed(
	match_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_service),
) -> MatchSummary:
	match = await service.mark_viewed(auth_user, match_id)
	return MatchSummary.for_party(match, parse_party_id(auth_user.id))


@router.patch("/{match_id}/status", response_model=MatchSummary)
async def update_status(
	match_id: UUID,
	payload: MatchStatusUpdate,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: MatchService = Depends(get_service),
) -> MatchSummary:
	match = await service.update_status(auth_user, match_id, MatchStatus(payload.status))
	return MatchSummary.for_party(match, parse_party_id(auth_user.id))
