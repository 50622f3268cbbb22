"""Schemas for discovery feeds and decisions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from gigmatch.domain.discovery.models import Decision, Direction, FeedPage, ScoredCandidate


class FeedCard(BaseModel):
	id: UUID
	kind: str
	display_name: str = ""
	genres: list[str] = Field(default_factory=list)
	distance_km: Optional[float] = None
	price: Optional[Decimal] = None
	score: float
	created_at: datetime
	venue_id: Optional[UUID] = None
	gig_date: Optional[date] = None
	currency: Optional[str] = None

	@classmethod
	def from_scored(cls, item: ScoredCandidate) -> "FeedCard":
		c = item.candidate
		return cls(
			id=c.id,
			kind=c.kind,
			display_name=c.display_name,
			genres=c.genres,
			distance_km=round(c.distance_km, 2) if c.distance_km is not None else None,
			price=c.price,
			score=item.score,
			created_at=c.created_at,
			venue_id=c.venue_id,
			gig_date=c.gig_date,
			currency=c.currency,
		)


class FeedResponse(BaseModel):
	items: list[FeedCard] = Field(default_factory=list)
	total: int = 0
	page: int = 1
	limit: int = 20
	has_more: bool = False

	@classmethod
	def from_page(cls, page: FeedPage) -> "FeedResponse":
		return cls(
			items=[FeedCard.from_scored(item) for item in page.items],
			total=page.total,
			page=page.page,
			limit=page.limit,
			has_more=page.has_more,
		)


class DecisionRequest(BaseModel):
	target_id: UUID
	direction: Direction
	gig_id: Optional[UUID] = None


class DecisionResponse(BaseModel):
	decision_id: UUID
	target_id: UUID
	direction: Direction
	outcome: str
	undo_deadline: datetime
	matched: bool = False
	match_id: Optional[UUID] = None


class LikeSummary(BaseModel):
	decision_id: UUID
	party_id: UUID
	role: str
	direction: Direction
	created_at: datetime

	@classmethod
	def from_decision(cls, decision: Decision) -> "LikeSummary":
		return cls(
			decision_id=decision.id,
			party_id=decision.actor_id,
			role=decision.actor_role.value,
			direction=decision.direction,
			created_at=decision.created_at,
		)
