"""Daily decision and undo quotas per party."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from gigmatch.domain.exceptions import ResourceExhaustedError
from gigmatch.domain.profiles.models import Party, Role
from gigmatch.infra import rate_limit
from gigmatch.infra.rate_limit import DayWindow, RateLimitExceeded
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

DECISION = "decision"
UNDO = "undo"


def _default_limits() -> dict[str, dict[Role, int]]:
	return {
		DECISION: {
			Role.PERFORMER: settings.performer_daily_decisions,
			Role.VENUE: settings.venue_daily_decisions,
		},
		UNDO: {
			Role.PERFORMER: settings.performer_daily_undos,
			Role.VENUE: settings.venue_daily_undos,
		},
	}


class DecisionQuota:
	"""Counts decisions and undos per party per local calendar day."""

	def __init__(self, limits: Optional[Mapping[str, Mapping[Role, int]]] = None) -> None:
		self._limits = {kind: dict(values) for kind, values in (limits or _default_limits()).items()}

	def limit_for(self, kind: str, role: Role) -> int:
		return self._limits[kind][role]

	async def consume(self, kind: str, party: Party, *, now: Optional[datetime] = None) -> DayWindow:
		limit = self.limit_for(kind, party.role)
		try:
			return await rate_limit.consume_daily(
				kind,
				str(party.id),
				limit=limit,
				tz_name=party.timezone,
				now=now,
			)
		except RateLimitExceeded as exc:
			obs_metrics.inc_rate_limited(kind)
			logger.info("daily quota exhausted", extra={"kind": kind, "party_id": str(party.id)})
			raise ResourceExhaustedError(
				f"{kind}_quota_exhausted",
				f"Daily {kind} limit reached ({limit} per day).",
				reset_at=exc.reset_at,
			) from exc

	async def release(self, window: DayWindow) -> None:
		await rate_limit.release_daily(window)

	async def used(self, kind: str, party: Party, *, now: Optional[datetime] = None) -> int:
		return await rate_limit.used_daily(kind, str(party.id), tz_name=party.timezone, now=now)
