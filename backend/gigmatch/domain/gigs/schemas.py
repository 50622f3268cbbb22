"""Schemas for gig and application endpoints."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from gigmatch.domain.bookings.schemas import BookingSummary
from gigmatch.domain.gigs.models import Application, Gig, GigDraft
from gigmatch.domain.gigs.service import AcceptanceResult, GigPage


class CreateGigRequest(BaseModel):
	title: str = Field(min_length=1, max_length=200)
	gig_date: date
	description: str = Field(default="", max_length=5000)
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	required_genres: list[str] = Field(default_factory=list, max_length=20)
	performers_needed: int = Field(default=1, ge=1, le=50)
	budget: Optional[Decimal] = Field(default=None, ge=0)
	currency: str = Field(default="USD", min_length=3, max_length=3)
	deposit_ratio: Optional[Decimal] = Field(default=None, ge=0, le=1)
	latitude: Optional[float] = Field(default=None, ge=-90, le=90)
	longitude: Optional[float] = Field(default=None, ge=-180, le=180)
	is_public: bool = True
	publish: bool = False

	def to_draft(self) -> GigDraft:
		return GigDraft(
			title=self.title.strip(),
			gig_date=self.gig_date,
			description=self.description,
			start_time=self.start_time,
			end_time=self.end_time,
			required_genres=[g.strip().lower() for g in self.required_genres if g.strip()],
			performers_needed=self.performers_needed,
			budget=self.budget,
			currency=self.currency.upper(),
			deposit_ratio=self.deposit_ratio,
			latitude=self.latitude,
			longitude=self.longitude,
			is_public=self.is_public,
		)


class GigSummary(BaseModel):
	id: UUID
	venue_id: UUID
	title: str
	gig_date: date
	status: str
	performers_needed: int
	booked_performers: list[UUID] = Field(default_factory=list)
	currency: str
	deposit_ratio: Decimal
	budget: Optional[Decimal] = None
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	required_genres: list[str] = Field(default_factory=list)
	accepting_applications: bool
	created_at: datetime

	@classmethod
	def from_gig(cls, gig: Gig) -> "GigSummary":
		return cls(
			id=gig.id,
			venue_id=gig.venue_id,
			title=gig.title,
			gig_date=gig.gig_date,
			status=gig.status.value,
			performers_needed=gig.performers_needed,
			booked_performers=gig.booked_performers,
			currency=gig.currency,
			deposit_ratio=gig.deposit_ratio,
			budget=gig.budget,
			start_time=gig.start_time,
			end_time=gig.end_time,
			required_genres=gig.required_genres,
			accepting_applications=gig.accepting_applications,
			created_at=gig.created_at,
		)


class GigListResponse(BaseModel):
	items: list[GigSummary] = Field(default_factory=list)
	total: int = 0
	page: int = 1
	limit: int = 20

	@classmethod
	def from_page(cls, page: GigPage) -> "GigListResponse":
		return cls(
			items=[GigSummary.from_gig(gig) for gig in page.items],
			total=page.total,
			page=page.page,
			limit=page.limit,
		)


class ApplyRequest(BaseModel):
	proposed_rate: Optional[Decimal] = Field(default=None, ge=0)
	message: Optional[str] = Field(default=None, max_length=2000)


class DeclineRequest(BaseModel):
	reason: Optional[str] = Field(default=None, max_length=500)


class AcceptRequest(BaseModel):
	agreed_amount: Optional[Decimal] = Field(default=None, ge=0)


class ApplicationSummary(BaseModel):
	id: UUID
	gig_id: UUID
	applicant_id: UUID
	status: str
	applied_at: datetime
	proposed_rate: Optional[Decimal] = None
	message: Optional[str] = None
	decline_reason: Optional[str] = None
	decided_at: Optional[datetime] = None

	@classmethod
	def from_application(cls, application: Application) -> "ApplicationSummary":
		return cls(
			id=application.id,
			gig_id=application.gig_id,
			applicant_id=application.applicant_id,
			status=application.status.value,
			applied_at=application.applied_at,
			proposed_rate=application.proposed_rate,
			message=application.message,
			decline_reason=application.decline_reason,
			decided_at=application.decided_at,
		)


class AcceptResponse(BaseModel):
	application: ApplicationSummary
	gig_status: str
	booked_performers: list[UUID] = Field(default_factory=list)
	booking: BookingSummary

	@classmethod
	def from_result(cls, result: AcceptanceResult) -> "AcceptResponse":
		return cls(
			application=ApplicationSummary.from_application(result.application),
			gig_status=result.gig.status.value,
			booked_performers=result.gig.booked_performers,
			booking=BookingSummary.from_booking(result.booking),
		)
