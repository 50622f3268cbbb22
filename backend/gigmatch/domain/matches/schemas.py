"""Schemas for match endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from gigmatch.domain.matches.models import Match


class MatchSummary(BaseModel):
	id: UUID
	performer_id: UUID
	venue_id: UUID
	status: str
	initiated_by: str
	unread: int = 0
	created_at: datetime
	last_activity_at: datetime
	booking_id: Optional[UUID] = None
	blocked_by: Optional[UUID] = None

	@classmethod
	def for_party(cls, match: Match, party_id: UUID) -> "MatchSummary":
		role = match.role_of(party_id)
		return cls(
			id=match.id,
			performer_id=match.performer_id,
			venue_id=match.venue_id,
			status=match.status.value,
			initiated_by=match.initiated_by.value,
			unread=match.unread_for(role) if role else 0,
			created_at=match.created_at,
			last_activity_at=match.last_activity_at,
			booking_id=match.booking_id,
			blocked_by=match.blocked_by,
		)


class MatchListResponse(BaseModel):
	items: list[MatchSummary] = Field(default_factory=list)
	total: int = 0
	page: int = 1
	limit: int = 20


class MatchStatusUpdate(BaseModel):
	status: Literal["active", "archived", "blocked"]


class UnreadResponse(BaseModel):
	unread: int
