"""Gig posting and application endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from gigmatch.domain.gigs.models import ApplicationStatus, GigStatus
from gigmatch.domain.gigs.schemas import (
	AcceptRequest,
	AcceptResponse,
	ApplicationSummary,
	ApplyRequest,
	CreateGigRequest,
	DeclineRequest,
	GigListResponse,
	GigSummary,
)
from gigmatch.domain.gigs.service import GigService
from gigmatch.infra.auth import AuthenticatedUser, get_current_user, require_role

router = APIRouter(prefix="/gigs", tags=["gigs"])

_service = GigService()


def get_service() -> GigService:
	return _service


@router.post("", response_model=GigSummary, status_code=status.HTTP_201_CREATED)
async def create_gig(
	payload: CreateGigRequest,
	auth_user: AuthenticatedUser = Depends(require_role("venue")),
	service: GigService = Depends(get_service),
) -> GigSummary:
	gig = await service.create_gig(auth_user, payload.to_draft(), publish=payload.publish)
	return GigSummary.from_gig(gig)


@router.get("/mine", response_model=GigListResponse)
async def my_gigs(
	status_filter: Optional[GigStatus] = Query(default=None, alias="status"),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(require_role("venue")),
	service: GigService = Depends(get_service),
) -> GigListResponse:
	result = await service.list_venue_gigs(auth_user, status=status_filter, page=page, limit=limit)
	return GigListResponse.from_page(result)


@router.post("/{gig_id}/applications", response_model=ApplicationSummary, status_code=status.HTTP_201_CREATED)
async def apply_to_gig(
	gig_id: UUID,
	payload: ApplyRequest,
	auth_user: AuthenticatedUser = Depends(require_role("performer")),
	service: GigService = Depends(get_service),
) -> ApplicationSummary:
	application = await service.apply(auth_user, gig_id, proposed_rate=payload.proposed_rate, message=payload.message)
	return ApplicationSummary.from_application(application)


@router.get("/{gig_id}/applications", response_model=list[ApplicationSummary])
async def list_gig_applications(
	gig_id: UUID,
	status_filter: Optional[ApplicationStatus] = Query(default=None, alias="status"),
	auth_user: AuthenticatedUser = Depends(require_role("venue")),
	service: GigService = Depends(get_service),
) -> list[ApplicationSummary]:
	items = await service.list_applications(auth_user, gig_id, status=status_filter)
	return [ApplicationSummary.from_application(item) for item in items]


@router.get("/applications/mine", response_model=list[ApplicationSummary])
async def my_applications(
	status_filter: Optional[ApplicationStatus] = Query(default=None, alias="status"),
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(require_role("performer")),
	service: GigService = Depends(get_service),
) -> list[ApplicationSummary]:
	items = await service.my_applications(auth_user, status=status_filter, limit=limit)
	return [ApplicationSummary.from_application(item) for item in items]


@router.post("/applications/{application_id}/withdraw", response_model=ApplicationSummary)
async def withdraw_application(
	application_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: GigService = Depends(get_service),
) -> ApplicationSummary:
	return ApplicationSummary.from_application(await service.withdraw(auth_user, application_id))


@router.post("/applications/{application_id}/decline", response_model=ApplicationSummary)
async def decline_application(
	application_id: UUID,
	payload: DeclineRequest,
	auth_user: AuthenticatedUser = Depends(require_role("venue")),
	service: GigService = Depends(get_service),
) -> ApplicationSummary:
	application = await service.decline(auth_user, application_id, reason=payload.reason)
	return ApplicationSummary.from_application(application)


@router.post(
	"/{gig_id}/applications/{application_id}/accept",
	response_model=AcceptResponse,
	status_code=status.HTTP_201_CREATED,
)
async def accept_application(
	gig_id: UUID,
	application_id: UUID,
	payload: Optional[AcceptRequest] = None,
	auth_user: AuthenticatedUser = Depends(require_role("venue")),
	service: GigService = Depends(get_service),
) -> AcceptResponse:
	result = await service.accept_application_and_create_booking(
		auth_user,
		gig_id,
		application_id,
		agreed_amount=payload.agreed_amount if payload else None,
	)
	return AcceptResponse.from_result(result)
