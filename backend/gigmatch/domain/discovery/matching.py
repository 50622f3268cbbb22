"""Turns reciprocal positive decisions into exactly one match per pair."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import asyncpg

from gigmatch.domain.discovery.ledger import DecisionLedger
from gigmatch.domain.discovery.models import Decision
from gigmatch.domain.exceptions import InternalError
from gigmatch.domain.matches import events as match_events
from gigmatch.domain.matches.models import Match
from gigmatch.domain.matches.repo import MatchRepository
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.notifications.dispatcher import MATCH_CREATED
from gigmatch.domain.profiles.models import Role
from gigmatch.infra.postgres import get_pool
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
	asyncpg.SerializationError,
	asyncpg.DeadlockDetectedError,
	asyncpg.ConnectionDoesNotExistError,
	ConnectionError,
	asyncio.TimeoutError,
)


class _PairChanged(Exception):
	"""One side of the pair stopped being a live like mid-transaction."""


@dataclass(slots=True)
class MatchOutcome:
	match: Match
	created: bool


class MatchCoordinator:
	"""Checks reciprocity after a positive decision commits."""

	def __init__(
		self,
		*,
		ledger: DecisionLedger | None = None,
		matches: MatchRepository | None = None,
		notifications: NotificationDispatcher | None = None,
		retries: int | None = None,
	) -> None:
		self.ledger = ledger or DecisionLedger()
		self.matches = matches or MatchRepository()
		self.notifications = notifications or NotificationDispatcher()
		self.retries = settings.match_tx_retries if retries is None else retries

	async def on_positive_decision(self, decision: Decision, *, now: Optional[datetime] = None) -> Optional[MatchOutcome]:
		"""Materialise the match if the target already liked the actor.

		Concurrent calls for the same pair converge on one row through the
		pair-key constraint; each caller gets that row back.
		"""
		if not decision.direction.is_positive:
			return None
		now = now or datetime.now(timezone.utc)
		attempt = 0
		while True:
			try:
				outcome = await self._attempt(decision, now)
				break
			except _PairChanged:
				obs_metrics.inc_match_tx_failure("pair_changed")
				return None
			except _TRANSIENT_ERRORS as exc:
				obs_metrics.inc_match_tx_failure(type(exc).__name__)
				if attempt >= self.retries:
					logger.error(
						"match transaction failed after retry",
						extra={"decision_id": str(decision.id), "error": type(exc).__name__},
					)
					raise InternalError("match_unavailable") from exc
				attempt += 1
				logger.warning("retrying match transaction", extra={"decision_id": str(decision.id)})
			except asyncpg.PostgresError as exc:
				obs_metrics.inc_match_tx_failure(type(exc).__name__)
				logger.exception("match transaction failed", extra={"decision_id": str(decision.id)})
				raise InternalError("match_unavailable") from exc

		if outcome is None:
			return None
		obs_metrics.inc_match_created("created" if outcome.created else "existing")
		if outcome.created:
			await match_events.publish(match_events.MATCH_CREATED, outcome.match)
			await self._notify(outcome.match)
		return outcome

	async def _attempt(self, decision: Decision, now: datetime) -> Optional[MatchOutcome]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				reciprocal = await self.ledger.find_reciprocal(conn, decision.actor_id, decision.target_id)
				if reciprocal is None:
					return None
				if decision.actor_role is Role.PERFORMER:
					performer_id, venue_id = decision.actor_id, decision.target_id
				else:
					performer_id, venue_id = decision.target_id, decision.actor_id
				match, created = await self.matches.insert_or_get(
					conn,
					performer_id=performer_id,
					venue_id=venue_id,
					initiated_by=reciprocal.actor_role,
					now=now,
				)
				updated = await self.ledger.mark_matched(conn, [decision.id, reciprocal.id], now=now)
				if updated < 2:
					raise _PairChanged()
		return MatchOutcome(match=match, created=created)

	async def _notify(self, match: Match) -> None:
		for party_id in (match.performer_id, match.venue_id):
			await self.notifications.notify(
				party_id,
				MATCH_CREATED,
				title="It's a match!",
				body="You both want to work together. Start planning the gig.",
				deep_link=f"/matches/{match.id}",
			)
