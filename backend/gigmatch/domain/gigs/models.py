"""Domain models for gigs and performer applications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID


class GigStatus(str, Enum):
	DRAFT = "draft"
	OPEN = "open"
	FILLED = "filled"
	CANCELLED = "cancelled"
	COMPLETED = "completed"


class ApplicationStatus(str, Enum):
	PENDING = "pending"
	ACCEPTED = "accepted"
	REJECTED = "rejected"
	WITHDRAWN = "withdrawn"


@dataclass(slots=True)
class Gig:
	"""An engagement a venue advertises to performers."""

	id: UUID
	venue_id: UUID
	title: str
	gig_date: date
	status: GigStatus
	performers_needed: int
	currency: str
	deposit_ratio: Decimal
	is_public: bool
	accepting_applications: bool
	created_at: datetime
	description: str = ""
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	required_genres: list[str] = field(default_factory=list)
	budget: Optional[Decimal] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	booked_performers: list[UUID] = field(default_factory=list)

	def is_open_for_applications(self) -> bool:
		return self.status is GigStatus.OPEN and self.is_public and self.accepting_applications

	@property
	def is_full(self) -> bool:
		return len(self.booked_performers) >= self.performers_needed

	@classmethod
	def from_record(cls, record) -> "Gig":
		return cls(
			id=UUID(str(record["id"])),
			venue_id=UUID(str(record["venue_id"])),
			title=record["title"],
			gig_date=record["gig_date"],
			status=GigStatus(record["status"]),
			performers_needed=int(record.get("performers_needed") or 1),
			currency=record.get("currency") or "USD",
			deposit_ratio=Decimal(str(record.get("deposit_ratio", "0.25"))),
			is_public=bool(record.get("is_public", True)),
			accepting_applications=bool(record.get("accepting_applications", True)),
			created_at=record["created_at"],
			description=record.get("description") or "",
			start_time=record.get("start_time"),
			end_time=record.get("end_time"),
			required_genres=list(record.get("required_genres") or []),
			budget=record.get("budget"),
			latitude=record.get("latitude"),
			longitude=record.get("longitude"),
			booked_performers=[UUID(str(pid)) for pid in record.get("booked_performers") or []],
		)


@dataclass(slots=True)
class Application:
	id: UUID
	gig_id: UUID
	applicant_id: UUID
	status: ApplicationStatus
	applied_at: datetime
	proposed_rate: Optional[Decimal] = None
	message: Optional[str] = None
	decline_reason: Optional[str] = None
	decided_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record) -> "Application":
		return cls(
			id=UUID(str(record["id"])),
			gig_id=UUID(str(record["gig_id"])),
			applicant_id=UUID(str(record["applicant_id"])),
			status=ApplicationStatus(record["status"]),
			applied_at=record["applied_at"],
			proposed_rate=record.get("proposed_rate"),
			message=record.get("message"),
			decline_reason=record.get("decline_reason"),
			decided_at=record.get("decided_at"),
		)


@dataclass(slots=True)
class GigDraft:
	"""Venue input for a new gig; unset coordinates fall back to the venue's."""

	title: str
	gig_date: date
	performers_needed: int = 1
	currency: str = "USD"
	deposit_ratio: Optional[Decimal] = None
	description: str = ""
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	required_genres: list[str] = field(default_factory=list)
	budget: Optional[Decimal] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	is_public: bool = True
