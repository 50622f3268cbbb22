"""Domain models for discovery decisions and feed candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from gigmatch.domain.profiles.models import Role


class Direction(str, Enum):
	"""Which way the actor swiped."""

	POSITIVE = "positive"
	NEGATIVE = "negative"
	STRONG_POSITIVE = "strong_positive"

	@property
	def is_positive(self) -> bool:
		return self is not Direction.NEGATIVE


class Outcome(str, Enum):
	"""Where a decision stands relative to its counterpart."""

	NO_MATCH = "no_match"
	LIKED = "liked"
	MATCHED = "matched"
	EXPIRED = "expired"


POSITIVE_DIRECTIONS = (Direction.POSITIVE.value, Direction.STRONG_POSITIVE.value)
RECENCY_BOOST_DAYS = 3


@dataclass(slots=True)
class Decision:
	"""A directional decision by one party about another."""

	id: UUID
	actor_id: UUID
	actor_role: Role
	target_id: UUID
	target_role: Role
	direction: Direction
	outcome: Outcome
	created_at: datetime
	undo_deadline: datetime
	gig_id: Optional[UUID] = None

	@classmethod
	def from_record(cls, record) -> "Decision":
		return cls(
			id=UUID(str(record["id"])),
			actor_id=UUID(str(record["actor_id"])),
			actor_role=Role(record["actor_role"]),
			target_id=UUID(str(record["target_id"])),
			target_role=Role(record["target_role"]),
			direction=Direction(record["direction"]),
			outcome=Outcome(record["outcome"]),
			created_at=record["created_at"],
			undo_deadline=record["undo_deadline"],
			gig_id=UUID(str(record["gig_id"])) if record.get("gig_id") else None,
		)


@dataclass(slots=True)
class FeedFilters:
	"""Caller overrides; anything left as None falls back to the actor profile."""

	genres: Optional[list[str]] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	radius_km: Optional[float] = None
	budget_min: Optional[Decimal] = None
	budget_max: Optional[Decimal] = None
	date_from: Optional[date] = None
	date_to: Optional[date] = None


@dataclass(slots=True)
class Candidate:
	"""A feed entry before scoring: a party or an open gig."""

	id: UUID
	kind: str
	display_name: str
	created_at: datetime
	genres: list[str] = field(default_factory=list)
	distance_km: Optional[float] = None
	# The candidate side's price: a performer's ask or a venue/gig budget
	price: Optional[Decimal] = None
	reputation: Optional[float] = None
	reputation_scale: int = 5
	venue_id: Optional[UUID] = None
	gig_date: Optional[date] = None
	currency: Optional[str] = None


@dataclass(slots=True)
class ScoredCandidate:
	candidate: Candidate
	score: float


@dataclass(slots=True)
class FeedPage:
	items: list[ScoredCandidate]
	total: int
	page: int
	limit: int

	@property
	def has_more(self) -> bool:
		return self.page * self.limit < self.total
