"""Match management for the two matched parties."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from gigmatch.domain.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from gigmatch.domain.matches import events as match_events
from gigmatch.domain.matches.models import Match, MatchStatus
from gigmatch.domain.matches.repo import MatchRepository
from gigmatch.domain.profiles.models import Role, parse_party_id
from gigmatch.infra.auth import AuthenticatedUser
from gigmatch.infra.postgres import get_pool
from gigmatch.obs import metrics as obs_metrics


@dataclass(slots=True)
class MatchPage:
	items: list[Match]
	total: int
	page: int
	limit: int


def _actor_role(match: Match, user: AuthenticatedUser) -> Role:
	role = match.role_of(parse_party_id(user.id))
	if role is None:
		raise ForbiddenError("not_match_party")
	return role


class MatchService:
	def __init__(self, repository: MatchRepository | None = None) -> None:
		self.repo = repository or MatchRepository()

	async def list_matches(
		self,
		user: AuthenticatedUser,
		*,
		status: Optional[MatchStatus] = None,
		page: int = 1,
		limit: int = 20,
	) -> MatchPage:
		page = max(1, page)
		limit = max(1, min(limit, 50))
		items, total = await self.repo.list_for_party(
			parse_party_id(user.id),
			Role(user.role),
			status=status,
			limit=limit,
			offset=(page - 1) * limit,
		)
		return MatchPage(items=items, total=total, page=page, limit=limit)

	async def get_match(self, user: AuthenticatedUser, match_id: UUID) -> Match:
		match = await self.repo.get(match_id)
		if match is None:
			raise NotFoundError("match_not_found")
		_actor_role(match, user)
		return match

	async def mark_viewed(self, user: AuthenticatedUser, match_id: UUID, *, now: Optional[datetime] = None) -> Match:
		match = await self.get_match(user, match_id)
		role = _actor_role(match, user)
		updated = await self.repo.mark_viewed(match.id, role, now=now or datetime.now(timezone.utc))
		if updated is None:
			raise NotFoundError("match_not_found")
		return updated

	async def update_status(
		self,
		user: AuthenticatedUser,
		match_id: UUID,
		status: MatchStatus,
		*,
		now: Optional[datetime] = None,
	) -> Match:
		"""Archive, block or unblock (status ``active``) a match."""
		now = now or datetime.now(timezone.utc)
		actor_id = parse_party_id(user.id)
		if status is MatchStatus.CONVERTED:
			raise InvalidStateError("use_booking_conversion")
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				match = await self.repo.get(match_id, conn=conn, for_update=True)
				if match is None:
					raise NotFoundError("match_not_found")
				_actor_role(match, user)
				if match.status is MatchStatus.CONVERTED:
					raise InvalidStateError("match_converted")
				if match.status is status:
					return match
				blocked_by: Optional[UUID] = None
				if status is MatchStatus.BLOCKED:
					blocked_by = actor_id
				elif match.status is MatchStatus.BLOCKED:
					if match.blocked_by != actor_id:
						raise ForbiddenError("not_blocker")
					if status is not MatchStatus.ACTIVE:
						raise InvalidStateError("match_blocked")
				updated = await self.repo.set_status(conn, match.id, status, blocked_by=blocked_by, now=now)
		obs_metrics.inc_match_status(status.value)
		await match_events.publish(match_events.MATCH_STATUS, updated)
		return updated

	async def unread_count(self, user: AuthenticatedUser) -> int:
		return await self.repo.unread_total(parse_party_id(user.id), Role(user.role))
