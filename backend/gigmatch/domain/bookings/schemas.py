"""Pydantic schemas for booking endpoints."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from gigmatch.domain.bookings.models import Booking, DualFlag


class SideFlags(BaseModel):
	performer: bool = False
	performer_at: Optional[datetime] = None
	venue: bool = False
	venue_at: Optional[datetime] = None

	@classmethod
	def from_flag(cls, flag: DualFlag) -> "SideFlags":
		return cls(
			performer=flag.performer,
			performer_at=flag.performer_at,
			venue=flag.venue,
			venue_at=flag.venue_at,
		)


class PaymentSummary(BaseModel):
	deposit_amount: Decimal
	deposit_paid: bool
	deposit_paid_at: Optional[datetime] = None
	final_amount: Optional[Decimal] = None
	final_paid: bool
	final_paid_at: Optional[datetime] = None


class BookingSummary(BaseModel):
	id: UUID
	performer_id: UUID
	venue_id: UUID
	gig_id: Optional[UUID] = None
	match_id: Optional[UUID] = None
	title: str
	gig_date: date
	starts_at: datetime
	ends_at: datetime
	agreed_amount: Decimal
	currency: str
	status: str
	payment: PaymentSummary
	confirmation: SideFlags
	completion: SideFlags
	completed_at: Optional[datetime] = None
	cancelled_by: Optional[str] = None
	cancelled_at: Optional[datetime] = None
	cancellation_reason: Optional[str] = None
	refund_owed: bool = False
	refund_amount: Optional[Decimal] = None
	disputed_by: Optional[str] = None
	dispute_reason: Optional[str] = None
	contract_url: Optional[str] = None
	signatures: SideFlags
	contract_signed: bool = False
	special_requests: Optional[str] = None
	created_at: datetime
	updated_at: datetime

	@classmethod
	def from_booking(cls, booking: Booking) -> "BookingSummary":
		p = booking.payment
		return cls(
			id=booking.id,
			performer_id=booking.performer_id,
			venue_id=booking.venue_id,
			gig_id=booking.gig_id,
			match_id=booking.match_id,
			title=booking.title,
			gig_date=booking.gig_date,
			starts_at=booking.starts_at,
			ends_at=booking.ends_at,
			agreed_amount=booking.agreed_amount,
			currency=booking.currency,
			status=booking.status.value,
			payment=PaymentSummary(
				deposit_amount=p.deposit_amount,
				deposit_paid=p.deposit_paid,
				deposit_paid_at=p.deposit_paid_at,
				final_amount=p.final_amount,
				final_paid=p.final_paid,
				final_paid_at=p.final_paid_at,
			),
			confirmation=SideFlags.from_flag(booking.confirmation),
			completion=SideFlags.from_flag(booking.completion),
			completed_at=booking.completed_at,
			cancelled_by=booking.cancelled_by.value if booking.cancelled_by else None,
			cancelled_at=booking.cancelled_at,
			cancellation_reason=booking.cancellation_reason,
			refund_owed=booking.refund_owed,
			refund_amount=booking.refund_amount,
			disputed_by=booking.disputed_by.value if booking.disputed_by else None,
			dispute_reason=booking.dispute_reason,
			contract_url=booking.contract_url,
			signatures=SideFlags.from_flag(booking.signatures),
			contract_signed=booking.contract_signed,
			special_requests=booking.special_requests,
			created_at=booking.created_at,
			updated_at=booking.updated_at,
		)


class BookingListResponse(BaseModel):
	items: list[BookingSummary] = Field(default_factory=list)
	total: int = 0
	page: int = 1
	limit: int = 20


class CreateFromMatchRequest(BaseModel):
	title: str = Field(..., min_length=1, max_length=200)
	gig_date: date
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	agreed_amount: Decimal = Field(..., ge=0)
	currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
	deposit_amount: Optional[Decimal] = Field(default=None, ge=0)
	special_requests: Optional[str] = Field(default=None, max_length=2000)


class CancelRequest(BaseModel):
	reason: Optional[str] = Field(default=None, max_length=500)


class DisputeRequest(BaseModel):
	reason: str = Field(..., min_length=1, max_length=2000)


class PaymentIntentRequest(BaseModel):
	kind: Literal["deposit", "final"]


class PaymentIntentResponse(BaseModel):
	booking_id: UUID
	kind: str
	intent_id: str
	client_secret: Optional[str] = None
	amount: Decimal
	currency: str


class PaymentConfirmRequest(BaseModel):
	kind: Literal["deposit", "final"]
	intent_id: str = Field(..., min_length=1)


class ContractUploadRequest(BaseModel):
	contract_url: str = Field(..., min_length=1, max_length=2048)


class CalendarResponse(BaseModel):
	days: dict[str, list[BookingSummary]] = Field(default_factory=dict)
