"""Rule-based ranking for discovery feeds.

Every component is bounded so the total stays within [0, 100]:

- genre overlap, up to 30
- distance decay, up to 30
- price compatibility, 20 or 10
- reputation, up to 15
- recency boost, 5
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from gigmatch.domain.discovery.models import RECENCY_BOOST_DAYS, Candidate, ScoredCandidate
from gigmatch.domain.profiles.models import Party, Role

GENRE_WEIGHT = 30.0
DISTANCE_WEIGHT = 30.0
PRICE_FIT = 20.0
PRICE_STRETCH = 10.0
PRICE_STRETCH_FACTOR = Decimal("1.5")
REPUTATION_WEIGHT = 15.0
RECENCY_BOOST = 5.0
MAX_SCORE = 100.0


def _normalise(genres: Iterable[str]) -> set[str]:
	return {g.strip().lower() for g in genres if g and g.strip()}


def genre_component(actor_genres: Iterable[str], candidate_genres: Iterable[str]) -> float:
	wanted = _normalise(actor_genres)
	if not wanted:
		return 0.0
	overlap = wanted & _normalise(candidate_genres)
	return len(overlap) / len(wanted) * GENRE_WEIGHT


def distance_component(distance_km: Optional[float], max_travel_km: Optional[float]) -> float:
	if distance_km is None or not max_travel_km or max_travel_km <= 0:
		return 0.0
	return max(0.0, DISTANCE_WEIGHT - distance_km / max_travel_km * DISTANCE_WEIGHT)


def price_component(ask: Optional[Decimal], budget: Optional[Decimal]) -> float:
	if ask is None or budget is None:
		return 0.0
	ask = Decimal(ask)
	budget = Decimal(budget)
	if ask <= budget:
		return PRICE_FIT
	if ask <= budget * PRICE_STRETCH_FACTOR:
		return PRICE_STRETCH
	return 0.0


def reputation_component(value: Optional[float], scale: int) -> float:
	if value is None or scale <= 0:
		return 0.0
	return min(REPUTATION_WEIGHT, max(0.0, float(value) / scale * REPUTATION_WEIGHT))


def recency_component(created_at: datetime, now: datetime) -> float:
	return RECENCY_BOOST if now - created_at <= timedelta(days=RECENCY_BOOST_DAYS) else 0.0


def score_candidate(
	actor: Party,
	candidate: Candidate,
	*,
	max_travel_km: Optional[float],
	now: Optional[datetime] = None,
) -> float:
	now = now or datetime.now(timezone.utc)
	if actor.role is Role.PERFORMER:
		ask, budget = actor.price_min, candidate.price
	else:
		ask, budget = candidate.price, actor.price_max
	total = (
		genre_component(actor.genres, candidate.genres)
		+ distance_component(candidate.distance_km, max_travel_km)
		+ price_component(ask, budget)
		+ reputation_component(candidate.reputation, candidate.reputation_scale)
		+ recency_component(candidate.created_at, now)
	)
	return round(min(MAX_SCORE, max(0.0, total)), 4)


def rank(
	actor: Party,
	candidates: Iterable[Candidate],
	*,
	max_travel_km: Optional[float],
	now: Optional[datetime] = None,
) -> list[ScoredCandidate]:
	"""Score and order candidates: score desc, newest first, then id."""
	now = now or datetime.now(timezone.utc)
	scored = [
		ScoredCandidate(candidate=c, score=score_candidate(actor, c, max_travel_km=max_travel_km, now=now))
		for c in candidates
	]
	scored.sort(key=lambda item: (-item.score, -item.candidate.created_at.timestamp(), str(item.candidate.id)))
	return scored
