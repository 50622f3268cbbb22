from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from gigmatch.domain.discovery import scoring
from gigmatch.domain.discovery.models import Candidate
from gigmatch.domain.profiles.models import Party, Role

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _venue(**overrides) -> Party:
	data = dict(
		id=uuid4(),
		role=Role.VENUE,
		display_name="The Blue Room",
		visible=True,
		setup_complete=True,
		accepting_bookings=True,
		created_at=NOW - timedelta(days=90),
		genres=["jazz", "Soul"],
		price_max=Decimal("500"),
	)
	data.update(overrides)
	return Party(**data)


def _performer_card(**overrides) -> Candidate:
	data = dict(
		id=uuid4(),
		kind="party",
		display_name="Trio",
		created_at=NOW - timedelta(days=30),
		genres=["Jazz"],
		distance_km=5.0,
		price=Decimal("400"),
		reputation=4.0,
		reputation_scale=5,
	)
	data.update(overrides)
	return Candidate(**data)


def test_components_sum_for_a_typical_candidate():
	score = scoring.score_candidate(_venue(), _performer_card(), max_travel_km=25.0, now=NOW)
	# genre 1/2*30 + distance 30-5/25*30 + price fit 20 + reputation 4/5*15
	assert score == 15.0 + 24.0 + 20.0 + 12.0


def test_price_stretch_and_miss():
	assert scoring.price_component(Decimal("600"), Decimal("500")) == scoring.PRICE_STRETCH
	assert scoring.price_component(Decimal("751"), Decimal("500")) == 0.0
	assert scoring.price_component(None, Decimal("500")) == 0.0


def test_performer_actor_compares_own_ask_with_venue_budget():
	performer = Party(
		id=uuid4(),
		role=Role.PERFORMER,
		display_name="Solo",
		visible=True,
		setup_complete=True,
		accepting_bookings=True,
		created_at=NOW,
		price_min=Decimal("300"),
	)
	card = Candidate(id=uuid4(), kind="party", display_name="Club", created_at=NOW - timedelta(days=10), price=Decimal("250"))
	assert scoring.score_candidate(performer, card, max_travel_km=None, now=NOW) == scoring.PRICE_STRETCH


def test_reputation_scales_are_normalised():
	assert scoring.reputation_component(5.0, 5) == 15.0
	assert scoring.reputation_component(80.0, 100) == pytest.approx(12.0)
	assert scoring.reputation_component(150.0, 100) == 15.0


def test_score_is_bounded_and_deterministic():
	card = _performer_card(
		genres=["jazz", "soul"],
		distance_km=0.0,
		reputation=5.0,
		created_at=NOW - timedelta(hours=1),
	)
	first = scoring.score_candidate(_venue(), card, max_travel_km=25.0, now=NOW)
	second = scoring.score_candidate(_venue(), card, max_travel_km=25.0, now=NOW)
	assert first == second == 100.0


def test_distance_beyond_radius_scores_zero():
	assert scoring.distance_component(40.0, 25.0) == 0.0
	assert scoring.distance_component(None, 25.0) == 0.0


def test_recency_boost_within_three_days():
	assert scoring.recency_component(NOW - timedelta(days=2), NOW) == scoring.RECENCY_BOOST
	assert scoring.recency_component(NOW - timedelta(days=4), NOW) == 0.0


def test_rank_breaks_ties_by_recency_then_id():
	older = _performer_card(id=UUID(int=2), created_at=NOW - timedelta(days=40))
	newer = _performer_card(id=UUID(int=3), created_at=NOW - timedelta(days=20))
	same_time_a = _performer_card(id=UUID(int=1), created_at=NOW - timedelta(days=40))
	ranked = scoring.rank(_venue(), [older, newer, same_time_a], max_travel_km=25.0, now=NOW)
	assert [item.candidate.id for item in ranked] == [newer.id, same_time_a.id, older.id]
