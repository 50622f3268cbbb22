"""Booking lifecycle endpoints."""

from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from gigmatch.domain.bookings.models import BookingStatus
from gigmatch.domain.bookings.schemas import (
	BookingListResponse,
	BookingSummary,
	CalendarResponse,
	CancelRequest,
	ContractUploadRequest,
	CreateFromMatchRequest,
	DisputeRequest,
	PaymentConfirmRequest,
	PaymentIntentRequest,
	PaymentIntentResponse,
)
from gigmatch.domain.bookings.service import BookingService, BookingTerms
from gigmatch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/bookings", tags=["bookings"])

_service = BookingService()


def get_service() -> BookingService:
	return _service


@router.post("/from-match/{match_id}", response_model=BookingSummary, status_code=status.HTTP_201_CREATED)
async def create_from_match(
	match_id: UUID,
	payload: CreateFromMatchRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	terms = BookingTerms(
		title=payload.title,
		gig_date=payload.gig_date,
		agreed_amount=payload.agreed_amount,
		start_time=payload.start_time,
		end_time=payload.end_time,
		currency=payload.currency.upper() if payload.currency else None,
		deposit_amount=payload.deposit_amount,
		special_requests=payload.special_requests,
	)
	booking = await service.book_from_match(auth_user, match_id, terms)
	return BookingSummary.from_booking(booking)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
	*,
	status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
	upcoming: bool = Query(default=False),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=20, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingListResponse:
	result = await service.list_bookings(auth_user, status=status_filter, upcoming=upcoming, page=page, limit=limit)
	return BookingListResponse(
		items=[BookingSummary.from_booking(b) for b in result.items],
		total=result.total,
		page=result.page,
		limit=result.limit,
	)


@router.get("/upcoming", response_model=list[BookingSummary])
async def upcoming_bookings(
	days: Optional[int] = Query(default=None, ge=1, le=365),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> list[BookingSummary]:
	return [BookingSummary.from_booking(b) for b in await service.upcoming(auth_user, days=days)]


@router.get("/calendar", response_model=CalendarResponse)
async def calendar(
	start: date = Query(...),
	end: date = Query(...),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> CalendarResponse:
	grouped = await service.calendar(auth_user, start, end)
	return CalendarResponse(
		days={day: [BookingSummary.from_booking(b) for b in items] for day, items in grouped.items()}
	)


@router.get("/{booking_id}", response_model=BookingSummary)
async def get_booking(
	booking_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.get_booking(auth_user, booking_id))


@router.post("/{booking_id}/confirm", response_model=BookingSummary)
async def confirm_booking(
	booking_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.confirm(auth_user, booking_id))


@router.post("/{booking_id}/start", response_model=BookingSummary)
async def start_booking(
	booking_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.start(auth_user, booking_id))


@router.post("/{booking_id}/complete", response_model=BookingSummary)
async def complete_booking(
	booking_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.mark_complete(auth_user, booking_id))


@router.post("/{booking_id}/cancel", response_model=BookingSummary)
async def cancel_booking(
	booking_id: UUID,
	payload: Optional[CancelRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	reason = payload.reason if payload else None
	return BookingSummary.from_booking(await service.cancel(auth_user, booking_id, reason=reason))


@router.post("/{booking_id}/dispute", response_model=BookingSummary)
async def dispute_booking(
	booking_id: UUID,
	payload: DisputeRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.dispute(auth_user, booking_id, reason=payload.reason))


@router.post("/{booking_id}/payments/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
	booking_id: UUID,
	payload: PaymentIntentRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> PaymentIntentResponse:
	result = await service.create_payment_intent(auth_user, booking_id, payload.kind)
	return PaymentIntentResponse(
		booking_id=result.booking.id,
		kind=result.kind,
		intent_id=result.intent_id,
		client_secret=result.client_secret,
		amount=result.amount,
		currency=result.booking.currency,
	)


@router.post("/{booking_id}/payments/confirm", response_model=BookingSummary)
async def confirm_payment(
	booking_id: UUID,
	payload: PaymentConfirmRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	booking = await service.confirm_payment(auth_user, booking_id, payload.kind, payload.intent_id)
	return BookingSummary.from_booking(booking)


@router.put("/{booking_id}/contract", response_model=BookingSummary)
async def upload_contract(
	booking_id: UUID,
	payload: ContractUploadRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.upload_contract(auth_user, booking_id, payload.contract_url))


@router.post("/{booking_id}/contract/sign", response_model=BookingSummary)
async def sign_contract(
	booking_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: BookingService = Depends(get_service),
) -> BookingSummary:
	return BookingSummary.from_booking(await service.sign_contract(auth_user, booking_id))
