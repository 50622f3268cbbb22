"""Domain models for bookings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from gigmatch.domain.profiles.models import Role


class BookingStatus(str, Enum):
	"""Booking phases; the first six advance in declaration order."""

	PENDING = "pending"
	CONFIRMED = "confirmed"
	DEPOSIT_PAID = "deposit_paid"
	PAID = "paid"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	CANCELLED = "cancelled"
	DISPUTED = "disputed"


PROGRESSION = (
	BookingStatus.PENDING,
	BookingStatus.CONFIRMED,
	BookingStatus.DEPOSIT_PAID,
	BookingStatus.PAID,
	BookingStatus.IN_PROGRESS,
	BookingStatus.COMPLETED,
)
TERMINAL = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.DISPUTED})
CENT = Decimal("0.01")


@dataclass(slots=True)
class DualFlag:
	"""A yes/no each side sets independently, with the time it was set."""

	performer: bool = False
	performer_at: Optional[datetime] = None
	venue: bool = False
	venue_at: Optional[datetime] = None

	def is_set(self, role: Role) -> bool:
		return self.performer if role is Role.PERFORMER else self.venue

	def set(self, role: Role, now: datetime) -> bool:
		"""Set the side's flag; returns False when it was already set."""
		if self.is_set(role):
			return False
		if role is Role.PERFORMER:
			self.performer, self.performer_at = True, now
		else:
			self.venue, self.venue_at = True, now
		return True

	def clear(self) -> None:
		self.performer, self.performer_at = False, None
		self.venue, self.venue_at = False, None

	@property
	def both(self) -> bool:
		return self.performer and self.venue


@dataclass(slots=True)
class PaymentRecord:
	deposit_amount: Decimal
	deposit_paid: bool = False
	deposit_paid_at: Optional[datetime] = None
	deposit_intent_id: Optional[str] = None
	final_amount: Optional[Decimal] = None
	final_paid: bool = False
	final_paid_at: Optional[datetime] = None
	final_intent_id: Optional[str] = None

	def paid_total(self) -> Decimal:
		total = Decimal("0")
		if self.deposit_paid:
			total += self.deposit_amount
		if self.final_paid and self.final_amount is not None:
			total += self.final_amount
		return total


@dataclass(slots=True)
class Booking:
	"""A performer/venue engagement moving through payment milestones."""

	id: UUID
	performer_id: UUID
	venue_id: UUID
	title: str
	gig_date: date
	starts_at: datetime
	ends_at: datetime
	agreed_amount: Decimal
	currency: str
	payment: PaymentRecord
	status: BookingStatus
	created_at: datetime
	updated_at: datetime
	gig_id: Optional[UUID] = None
	match_id: Optional[UUID] = None
	application_id: Optional[UUID] = None
	confirmation: DualFlag = field(default_factory=DualFlag)
	completion: DualFlag = field(default_factory=DualFlag)
	completed_at: Optional[datetime] = None
	cancelled_by: Optional[Role] = None
	cancelled_at: Optional[datetime] = None
	cancellation_reason: Optional[str] = None
	refund_owed: bool = False
	refund_amount: Optional[Decimal] = None
	disputed_by: Optional[Role] = None
	disputed_at: Optional[datetime] = None
	dispute_reason: Optional[str] = None
	contract_url: Optional[str] = None
	signatures: DualFlag = field(default_factory=DualFlag)
	contract_signed: bool = False
	contract_signed_at: Optional[datetime] = None
	special_requests: Optional[str] = None

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL

	def role_of(self, party_id: UUID) -> Optional[Role]:
		if party_id == self.performer_id:
			return Role.PERFORMER
		if party_id == self.venue_id:
			return Role.VENUE
		return None

	def counterpart(self, role: Role) -> UUID:
		return self.venue_id if role is Role.PERFORMER else self.performer_id

	@classmethod
	def from_record(cls, record) -> "Booking":
		def _uuid(key: str) -> Optional[UUID]:
			value = record.get(key)
			return UUID(str(value)) if value else None

		def _role(key: str) -> Optional[Role]:
			value = record.get(key)
			return Role(value) if value else None

		return cls(
			id=UUID(str(record["id"])),
			performer_id=UUID(str(record["performer_id"])),
			venue_id=UUID(str(record["venue_id"])),
			title=record["title"],
			gig_date=record["gig_date"],
			starts_at=record["starts_at"],
			ends_at=record["ends_at"],
			agreed_amount=Decimal(record["agreed_amount"]),
			currency=record["currency"],
			payment=PaymentRecord(
				deposit_amount=Decimal(record["deposit_amount"]),
				deposit_paid=bool(record["deposit_paid"]),
				deposit_paid_at=record.get("deposit_paid_at"),
				deposit_intent_id=record.get("deposit_intent_id"),
				final_amount=record.get("final_amount"),
				final_paid=bool(record["final_paid"]),
				final_paid_at=record.get("final_paid_at"),
				final_intent_id=record.get("final_intent_id"),
			),
			status=BookingStatus(record["status"]),
			created_at=record["created_at"],
			updated_at=record["updated_at"],
			gig_id=_uuid("gig_id"),
			match_id=_uuid("match_id"),
			application_id=_uuid("application_id"),
			confirmation=DualFlag(
				performer=bool(record["performer_confirmed"]),
				performer_at=record.get("performer_confirmed_at"),
				venue=bool(record["venue_confirmed"]),
				venue_at=record.get("venue_confirmed_at"),
			),
			completion=DualFlag(
				performer=bool(record["performer_completed"]),
				performer_at=record.get("performer_completed_at"),
				venue=bool(record["venue_completed"]),
				venue_at=record.get("venue_completed_at"),
			),
			completed_at=record.get("completed_at"),
			cancelled_by=_role("cancelled_by"),
			cancelled_at=record.get("cancelled_at"),
			cancellation_reason=record.get("cancellation_reason"),
			refund_owed=bool(record.get("refund_owed")),
			refund_amount=record.get("refund_amount"),
			disputed_by=_role("disputed_by"),
			disputed_at=record.get("disputed_at"),
			dispute_reason=record.get("dispute_reason"),
			contract_url=record.get("contract_url"),
			signatures=DualFlag(
				performer=bool(record.get("performer_signed")),
				performer_at=record.get("performer_signed_at"),
				venue=bool(record.get("venue_signed")),
				venue_at=record.get("venue_signed_at"),
			),
			contract_signed=bool(record.get("contract_signed")),
			contract_signed_at=record.get("contract_signed_at"),
			special_requests=record.get("special_requests"),
		)

	def mutable_columns(self) -> dict[str, Any]:
		"""Column values that lifecycle transitions may change."""
		p = self.payment
		return {
			"status": self.status.value,
			"deposit_paid": p.deposit_paid,
			"deposit_paid_at": p.deposit_paid_at,
			"deposit_intent_id": p.deposit_intent_id,
			"final_amount": p.final_amount,
			"final_paid": p.final_paid,
			"final_paid_at": p.final_paid_at,
			"final_intent_id": p.final_intent_id,
			"performer_confirmed": self.confirmation.performer,
			"performer_confirmed_at": self.confirmation.performer_at,
			"venue_confirmed": self.confirmation.venue,
			"venue_confirmed_at": self.confirmation.venue_at,
			"performer_completed": self.completion.performer,
			"performer_completed_at": self.completion.performer_at,
			"venue_completed": self.completion.venue,
			"venue_completed_at": self.completion.venue_at,
			"completed_at": self.completed_at,
			"cancelled_by": self.cancelled_by.value if self.cancelled_by else None,
			"cancelled_at": self.cancelled_at,
			"cancellation_reason": self.cancellation_reason,
			"refund_owed": self.refund_owed,
			"refund_amount": self.refund_amount,
			"disputed_by": self.disputed_by.value if self.disputed_by else None,
			"disputed_at": self.disputed_at,
			"dispute_reason": self.dispute_reason,
			"contract_url": self.contract_url,
			"performer_signed": self.signatures.performer,
			"performer_signed_at": self.signatures.performer_at,
			"venue_signed": self.signatures.venue,
			"venue_signed_at": self.signatures.venue_at,
			"contract_signed": self.contract_signed,
			"contract_signed_at": self.contract_signed_at,
			"updated_at": self.updated_at,
		}


def deposit_for(agreed_amount: Decimal, ratio: Decimal | float) -> Decimal:
	return (Decimal(agreed_amount) * Decimal(str(ratio))).quantize(CENT)


def schedule_window(
	gig_date: date,
	start: Optional[time] = None,
	end: Optional[time] = None,
	*,
	tz: tzinfo = timezone.utc,
) -> tuple[datetime, datetime]:
	"""Absolute start/end for a gig; an end before the start runs past midnight."""
	starts_at = datetime.combine(gig_date, start or time(0), tzinfo=tz)
	if end is None:
		return starts_at, starts_at
	ends_at = datetime.combine(gig_date, end, tzinfo=tz)
	if ends_at < starts_at:
		ends_at += timedelta(days=1)
	return starts_at, ends_at
