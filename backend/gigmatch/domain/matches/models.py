"""Domain models for mutual matches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from gigmatch.domain.profiles.models import Role


class MatchStatus(str, Enum):
	"""Supported match statuses."""

	ACTIVE = "active"
	ARCHIVED = "archived"
	BLOCKED = "blocked"
	CONVERTED = "converted_to_booking"


MATCHES_STREAM = "x:matches.events"


def pair_key(first: UUID, second: UUID) -> str:
	"""Order-independent key for an unordered pair of parties."""
	low, high = sorted((str(first), str(second)))
	return f"{low}:{high}"


@dataclass(slots=True)
class Match:
	"""A mutual positive decision between a performer and a venue."""

	id: UUID
	performer_id: UUID
	venue_id: UUID
	pair_key: str
	initiated_by: Role
	status: MatchStatus
	performer_unread: int
	venue_unread: int
	created_at: datetime
	last_activity_at: datetime
	performer_last_viewed_at: Optional[datetime] = None
	venue_last_viewed_at: Optional[datetime] = None
	blocked_by: Optional[UUID] = None
	blocked_at: Optional[datetime] = None
	booking_id: Optional[UUID] = None

	def role_of(self, party_id: UUID) -> Optional[Role]:
		if party_id == self.performer_id:
			return Role.PERFORMER
		if party_id == self.venue_id:
			return Role.VENUE
		return None

	def counterpart(self, party_id: UUID) -> UUID:
		return self.venue_id if party_id == self.performer_id else self.performer_id

	def unread_for(self, role: Role) -> int:
		return self.performer_unread if role is Role.PERFORMER else self.venue_unread

	@classmethod
	def from_record(cls, record) -> "Match":
		return cls(
			id=UUID(str(record["id"])),
			performer_id=UUID(str(record["performer_id"])),
			venue_id=UUID(str(record["venue_id"])),
			pair_key=record["pair_key"],
			initiated_by=Role(record["initiated_by"]),
			status=MatchStatus(record["status"]),
			performer_unread=int(record.get("performer_unread") or 0),
			venue_unread=int(record.get("venue_unread") or 0),
			created_at=record["created_at"],
			last_activity_at=record["last_activity_at"],
			performer_last_viewed_at=record.get("performer_last_viewed_at"),
			venue_last_viewed_at=record.get("venue_last_viewed_at"),
			blocked_by=UUID(str(record["blocked_by"])) if record.get("blocked_by") else None,
			blocked_at=record.get("blocked_at"),
			booking_id=UUID(str(record["booking_id"])) if record.get("booking_id") else None,
		)
