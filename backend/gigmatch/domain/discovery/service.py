"""Discovery orchestration: feeds, decisions, undo and who-liked-me."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from gigmatch.domain.discovery import limits, scoring
from gigmatch.domain.discovery.ledger import DecisionLedger
from gigmatch.domain.discovery.limits import DecisionQuota
from gigmatch.domain.discovery.matching import MatchCoordinator, MatchOutcome
from gigmatch.domain.discovery.models import Decision, Direction, FeedFilters, FeedPage, Outcome
from gigmatch.domain.discovery.retriever import CandidateRetriever, Retrieval
from gigmatch.domain.exceptions import (
	QUOTA_REFUNDABLE,
	ForbiddenError,
	InvalidStateError,
	NotFoundError,
	ResourceExhaustedError,
)
from gigmatch.domain.profiles import PostgresProfileDirectory, ProfileDirectory, get_eligible_target
from gigmatch.domain.profiles.models import Party, parse_party_id
from gigmatch.infra import rate_limit
from gigmatch.infra.auth import AuthenticatedUser
from gigmatch.infra.postgres import get_pool
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

FEED_SORTS = ("relevance", "date", "budget", "newest")


def _clamp_page(page: int, limit: int) -> tuple[int, int]:
	return max(1, page), max(1, min(limit, settings.feed_page_max))


def _pool_window(page: int, limit: int) -> tuple[int, int]:
	"""Return the (size, offset) of the ranking pool holding ``page``.

	Pools are whole multiples of the page size, so a page never straddles two
	pools and every page below ``total`` is filled. Ranking applies within a
	pool; pools follow the retriever order (distance, else newest).
	"""
	size = max(limit, settings.feed_candidate_pool - settings.feed_candidate_pool % limit)
	offset = ((page - 1) * limit // size) * size
	return size, offset


@dataclass(slots=True)
class DecisionResult:
	decision: Decision
	match: Optional[MatchOutcome] = None


class DiscoveryService:
	"""Coordinates the ledger, quotas, retriever, scorer and match coordinator."""

	def __init__(
		self,
		*,
		ledger: DecisionLedger | None = None,
		directory: ProfileDirectory | None = None,
		quota: DecisionQuota | None = None,
		coordinator: MatchCoordinator | None = None,
		retriever: CandidateRetriever | None = None,
	) -> None:
		self.ledger = ledger or DecisionLedger()
		self.directory = directory or PostgresProfileDirectory()
		self.quota = quota or DecisionQuota()
		self.coordinator = coordinator or MatchCoordinator(ledger=self.ledger)
		self.retriever = retriever or CandidateRetriever()

	async def _load_actor(self, user: AuthenticatedUser) -> Party:
		actor = await self.directory.get(parse_party_id(user.id))
		if actor is None:
			raise NotFoundError("actor_not_found")
		if actor.role.value != user.role:
			raise ForbiddenError("role_mismatch")
		return actor

	# --- Feeds ------------------------------------------------------------

	async def feed(
		self,
		user: AuthenticatedUser,
		filters: FeedFilters,
		*,
		page: int = 1,
		limit: int = 20,
		now: Optional[datetime] = None,
	) -> FeedPage:
		actor = await self._load_actor(user)
		await self._throttle_feed(actor)
		page, limit = _clamp_page(page, limit)
		size, offset = _pool_window(page, limit)
		retrieval = await self.retriever.parties(actor, filters, limit=size, offset=offset)
		return self._page(
			actor, retrieval, kind="party", page=page, limit=limit, offset=offset, sort="relevance", now=now
		)

	async def gig_feed(
		self,
		user: AuthenticatedUser,
		filters: FeedFilters,
		*,
		page: int = 1,
		limit: int = 20,
		sort: str = "relevance",
		now: Optional[datetime] = None,
	) -> FeedPage:
		actor = await self._load_actor(user)
		await self._throttle_feed(actor)
		page, limit = _clamp_page(page, limit)
		size, offset = _pool_window(page, limit)
		retrieval = await self.retriever.gigs(actor, filters, limit=size, offset=offset)
		return self._page(
			actor, retrieval, kind="gig", page=page, limit=limit, offset=offset, sort=sort, now=now
		)

	async def _throttle_feed(self, actor: Party) -> None:
		if not await rate_limit.allow("feed", str(actor.id), limit=settings.feed_requests_per_minute, window_seconds=60):
			obs_metrics.inc_rate_limited("feed")
			raise ResourceExhaustedError("feed_rate_limited")

	def _page(
		self,
		actor: Party,
		retrieval: Retrieval,
		*,
		kind: str,
		page: int,
		limit: int,
		offset: int,
		sort: str,
		now: Optional[datetime],
	) -> FeedPage:
		ranked = scoring.rank(actor, retrieval.candidates, max_travel_km=retrieval.radius_km, now=now)
		if sort == "date":
			ranked.sort(key=lambda item: (item.candidate.gig_date is None, item.candidate.gig_date or datetime.max.date()))
		elif sort == "budget":
			ranked.sort(key=lambda item: -(item.candidate.price or 0))
		elif sort == "newest":
			ranked.sort(key=lambda item: item.candidate.created_at, reverse=True)
		start = (page - 1) * limit - offset
		obs_metrics.observe_feed(kind, len(retrieval.candidates))
		return FeedPage(items=ranked[start:start + limit], total=retrieval.total, page=page, limit=limit)

	# --- Decisions --------------------------------------------------------

	async def decide(
		self,
		user: AuthenticatedUser,
		target_id: UUID,
		direction: Direction,
		*,
		gig_id: Optional[UUID] = None,
		now: Optional[datetime] = None,
	) -> DecisionResult:
		now = now or datetime.now(timezone.utc)
		actor = await self._load_actor(user)
		window = await self.quota.consume(limits.DECISION, actor, now=now)
		try:
			decision = await self._record(actor, target_id, direction, gig_id=gig_id, now=now)
		except QUOTA_REFUNDABLE as exc:
			await self.quota.release(window)
			obs_metrics.inc_decision_reject(exc.reason)
			raise
		obs_metrics.inc_decision(actor.role.value, direction.value)
		match = None
		if direction.is_positive:
			match = await self.coordinator.on_positive_decision(decision, now=now)
		return DecisionResult(decision=decision, match=match)

	async def _record(
		self,
		actor: Party,
		target_id: UUID,
		direction: Direction,
		*,
		gig_id: Optional[UUID],
		now: datetime,
	) -> Decision:
		if target_id == actor.id:
			raise NotFoundError("target_not_found")
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				target = await get_eligible_target(
					self.directory,
					target_id,
					expected_role=actor.role.opposite,
					conn=conn,
				)
				if target is None:
					raise NotFoundError("target_not_found")
				return await self.ledger.record(
					conn,
					actor=actor,
					target=target,
					direction=direction,
					now=now,
					undo_window=timedelta(seconds=settings.undo_window_seconds),
					gig_id=gig_id,
				)

	async def undo(self, user: AuthenticatedUser, decision_id: UUID, *, now: Optional[datetime] = None) -> Decision:
		"""Withdraw a recent decision and expire any pending like it was answering."""
		now = now or datetime.now(timezone.utc)
		actor = await self._load_actor(user)
		window = await self.quota.consume(limits.UNDO, actor, now=now)
		try:
			decision = await self._undo_tx(actor, decision_id, now)
		except QUOTA_REFUNDABLE as exc:
			await self.quota.release(window)
			obs_metrics.inc_undo(exc.reason)
			raise
		obs_metrics.inc_undo("ok")
		logger.info("decision undone", extra={"decision_id": str(decision_id)})
		return decision

	async def _undo_tx(self, actor: Party, decision_id: UUID, now: datetime) -> Decision:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				decision = await self.ledger.get(conn, decision_id, for_update=True)
				if decision is None:
					raise NotFoundError("decision_not_found")
				if decision.actor_id != actor.id:
					raise ForbiddenError("not_decision_author")
				if decision.outcome is Outcome.MATCHED:
					raise InvalidStateError("decision_matched")
				if now > decision.undo_deadline:
					raise InvalidStateError("undo_window_elapsed")
				await self.ledger.delete(conn, decision.id)
				await self.ledger.expire_reciprocal(conn, decision.actor_id, decision.target_id, now=now)
		return decision

	async def who_liked_me(self, user: AuthenticatedUser) -> list[Decision]:
		actor = await self._load_actor(user)
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await self.ledger.who_liked_me(conn, actor.id, limit=settings.who_liked_me_limit)
