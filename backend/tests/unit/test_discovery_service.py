from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import asyncpg
import pytest

from engine_fakes import (
	NOW,
	FakeConnection,
	FakeDirectory,
	FakeLedger,
	FakeMatchRepo,
	FakeNotificationStore,
	FakeRetriever,
)
from gigmatch.domain.discovery import limits
from gigmatch.domain.discovery.ledger import GIG_REFERENCE, DecisionLedger
from gigmatch.domain.discovery.limits import DecisionQuota
from gigmatch.domain.discovery.matching import MatchCoordinator
from gigmatch.domain.discovery.models import Candidate, Direction, FeedFilters, Outcome
from gigmatch.domain.discovery.service import DiscoveryService
from gigmatch.domain.exceptions import (
	ConflictError,
	ForbiddenError,
	InvalidStateError,
	NotFoundError,
	ResourceExhaustedError,
)
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.profiles.models import Party, Role
from gigmatch.infra.auth import AuthenticatedUser


def _party(role: Role, **overrides) -> Party:
	data = dict(
		id=uuid4(),
		role=role,
		display_name=role.value.title(),
		visible=True,
		setup_complete=True,
		accepting_bookings=True,
		created_at=NOW - timedelta(days=60),
		genres=["jazz"],
	)
	data.update(overrides)
	return Party(**data)


def _user(party: Party) -> AuthenticatedUser:
	return AuthenticatedUser(id=str(party.id), role=party.role.value)


@pytest.fixture
def world(fake_pool):
	performer = _party(Role.PERFORMER)
	venue = _party(Role.VENUE)
	hidden_venue = _party(Role.VENUE, setup_complete=False)
	other_performer = _party(Role.PERFORMER)
	ledger = FakeLedger()
	matches = FakeMatchRepo()
	store = FakeNotificationStore()
	coordinator = MatchCoordinator(
		ledger=ledger,
		matches=matches,
		notifications=NotificationDispatcher(store),
		retries=1,
	)
	service = DiscoveryService(
		ledger=ledger,
		directory=FakeDirectory(performer, venue, hidden_venue, other_performer),
		quota=DecisionQuota(
			{
				limits.DECISION: {Role.PERFORMER: 3, Role.VENUE: 3},
				limits.UNDO: {Role.PERFORMER: 1, Role.VENUE: 1},
			}
		),
		coordinator=coordinator,
		retriever=FakeRetriever([]),
	)
	return {
		"service": service,
		"ledger": ledger,
		"matches": matches,
		"store": store,
		"performer": performer,
		"venue": venue,
		"hidden_venue": hidden_venue,
		"other_performer": other_performer,
	}


@pytest.mark.asyncio
async def test_negative_decision_records_no_match(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	result = await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	assert result.decision.outcome is Outcome.NO_MATCH
	assert result.decision.undo_deadline == NOW + timedelta(seconds=300)
	assert result.match is None
	assert await service.quota.used(limits.DECISION, performer, now=NOW) == 1


@pytest.mark.asyncio
async def test_duplicate_decision_conflicts_and_refunds_quota(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW)
	with pytest.raises(ConflictError):
		await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	assert await service.quota.used(limits.DECISION, performer, now=NOW) == 1


@pytest.mark.asyncio
async def test_ineligible_and_self_targets_are_not_found(world):
	service, performer = world["service"], world["performer"]
	with pytest.raises(NotFoundError):
		await service.decide(_user(performer), world["hidden_venue"].id, Direction.POSITIVE, now=NOW)
	with pytest.raises(NotFoundError):
		await service.decide(_user(performer), world["other_performer"].id, Direction.POSITIVE, now=NOW)
	with pytest.raises(NotFoundError):
		await service.decide(_user(performer), performer.id, Direction.POSITIVE, now=NOW)
	assert await service.quota.used(limits.DECISION, performer, now=NOW) == 0


@pytest.mark.asyncio
async def test_role_mismatch_is_forbidden(world):
	performer = world["performer"]
	with pytest.raises(ForbiddenError):
		await world["service"].decide(
			AuthenticatedUser(id=str(performer.id), role="venue"), world["venue"].id, Direction.POSITIVE, now=NOW
		)


@pytest.mark.asyncio
async def test_reciprocal_likes_create_one_match(world):
	service, ledger = world["service"], world["ledger"]
	performer, venue = world["performer"], world["venue"]
	first = await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW)
	assert first.match is None
	second = await service.decide(_user(venue), performer.id, Direction.STRONG_POSITIVE, now=NOW)
	assert second.match is not None and second.match.created
	match = second.match.match
	assert (match.performer_id, match.venue_id) == (performer.id, venue.id)
	assert match.initiated_by is Role.PERFORMER
	assert ledger.rows[first.decision.id].outcome is Outcome.MATCHED
	assert ledger.rows[second.decision.id].outcome is Outcome.MATCHED
	assert len(world["matches"].rows) == 1
	assert sorted(kind for _, kind in world["store"].sent) == ["match_created", "match_created"]


@pytest.mark.asyncio
async def test_quota_exhaustion_reports_reset_time(world):
	service, performer = world["service"], world["performer"]
	venues = [_party(Role.VENUE) for _ in range(4)]
	service.directory.parties.update({v.id: v for v in venues})
	for venue in venues[:3]:
		await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	with pytest.raises(ResourceExhaustedError) as excinfo:
		await service.decide(_user(performer), venues[3].id, Direction.NEGATIVE, now=NOW)
	assert excinfo.value.reason == "decision_quota_exhausted"
	assert excinfo.value.reset_at == datetime(2026, 4, 21, 0, 0, tzinfo=timezone.utc)
	assert world["ledger"].between(performer.id, venues[3].id) is None


@pytest.mark.asyncio
async def test_undo_inside_window_removes_decision(world):
	service, ledger = world["service"], world["ledger"]
	performer, venue = world["performer"], world["venue"]
	result = await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	await service.undo(_user(performer), result.decision.id, now=NOW + timedelta(seconds=299))
	assert result.decision.id not in ledger.rows
	again = await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW + timedelta(minutes=6))
	assert again.decision.outcome is Outcome.LIKED


@pytest.mark.asyncio
async def test_undo_after_window_fails_and_refunds_undo_quota(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	result = await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	with pytest.raises(InvalidStateError) as excinfo:
		await service.undo(_user(performer), result.decision.id, now=NOW + timedelta(seconds=301))
	assert excinfo.value.reason == "undo_window_elapsed"
	assert await service.quota.used(limits.UNDO, performer, now=NOW) == 0


@pytest.mark.asyncio
async def test_matched_decision_cannot_be_undone(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	first = await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW)
	await service.decide(_user(venue), performer.id, Direction.POSITIVE, now=NOW)
	with pytest.raises(InvalidStateError) as excinfo:
		await service.undo(_user(performer), first.decision.id, now=NOW)
	assert excinfo.value.reason == "decision_matched"


@pytest.mark.asyncio
async def test_undo_by_someone_else_is_forbidden(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	result = await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	with pytest.raises(ForbiddenError):
		await service.undo(_user(venue), result.decision.id, now=NOW)


@pytest.mark.asyncio
async def test_undo_then_reciprocal_like_makes_no_match(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	liked = await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW)
	await service.undo(_user(performer), liked.decision.id, now=NOW + timedelta(seconds=10))
	reply = await service.decide(_user(venue), performer.id, Direction.POSITIVE, now=NOW + timedelta(seconds=20))
	assert reply.match is None
	assert reply.decision.outcome is Outcome.LIKED
	assert world["matches"].rows == {}


@pytest.mark.asyncio
async def test_undo_expires_the_pending_like_it_answered(world):
	service, ledger = world["service"], world["ledger"]
	performer, venue = world["performer"], world["venue"]
	incoming = await service.decide(_user(venue), performer.id, Direction.POSITIVE, now=NOW)
	passed = await service.decide(_user(performer), venue.id, Direction.NEGATIVE, now=NOW)
	await service.undo(_user(performer), passed.decision.id, now=NOW + timedelta(seconds=5))
	assert ledger.rows[incoming.decision.id].outcome is Outcome.EXPIRED
	again = await service.decide(_user(performer), venue.id, Direction.POSITIVE, now=NOW + timedelta(seconds=6))
	assert again.match is None


@pytest.mark.asyncio
async def test_who_liked_me_lists_pending_likes(world):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	await service.decide(_user(venue), performer.id, Direction.POSITIVE, now=NOW)
	likes = await service.who_liked_me(_user(performer))
	assert [d.actor_id for d in likes] == [venue.id]


@pytest.mark.asyncio
async def test_feed_ranks_and_paginates(world):
	service, venue = world["service"], world["venue"]
	close = Candidate(id=uuid4(), kind="party", display_name="Close", created_at=NOW - timedelta(days=30), genres=["jazz"], distance_km=1.0)
	far = Candidate(id=uuid4(), kind="party", display_name="Far", created_at=NOW - timedelta(days=30), genres=["rock"], distance_km=20.0)
	service.retriever = FakeRetriever([far, close])
	page = await service.feed(_user(venue), FeedFilters(), page=1, limit=1, now=NOW)
	assert [item.candidate.id for item in page.items] == [close.id]
	assert page.total == 2
	assert page.has_more
	second = await service.feed(_user(venue), FeedFilters(), page=2, limit=1, now=NOW)
	assert [item.candidate.id for item in second.items] == [far.id]
	assert not second.has_more


@pytest.mark.asyncio
async def test_gig_feed_sorts_by_budget(world):
	service, performer = world["service"], world["performer"]
	cheap = Candidate(id=uuid4(), kind="gig", display_name="Open mic", created_at=NOW, price=None)
	rich = Candidate(id=uuid4(), kind="gig", display_name="Gala", created_at=NOW - timedelta(days=10), price=900)
	service.retriever = FakeRetriever([cheap, rich])
	page = await service.gig_feed(_user(performer), FeedFilters(), sort="budget", now=NOW)
	assert [item.candidate.id for item in page.items] == [rich.id, cheap.id]


@pytest.mark.asyncio
async def test_feed_pages_past_the_candidate_pool(world, monkeypatch):
	from gigmatch.settings import settings

	monkeypatch.setattr(settings, "feed_candidate_pool", 4)
	service, venue = world["service"], world["venue"]
	candidates = [
		Candidate(id=uuid4(), kind="party", display_name=f"Act {i}", created_at=NOW - timedelta(days=30), distance_km=float(i))
		for i in range(10)
	]
	service.retriever = FakeRetriever(candidates)

	seen = []
	for page_no in range(1, 6):
		page = await service.feed(_user(venue), FeedFilters(), page=page_no, limit=2, now=NOW)
		assert len(page.items) == 2
		assert page.has_more is (page_no < 5)
		seen.extend(item.candidate.id for item in page.items)
	assert sorted(seen, key=str) == sorted((c.id for c in candidates), key=str)
	assert service.retriever.windows[-1] == (4, 8)

	beyond = await service.feed(_user(venue), FeedFilters(), page=6, limit=2, now=NOW)
	assert beyond.items == []
	assert not beyond.has_more


class _MissingGigConnection(FakeConnection):
	async def fetchrow(self, query, *args):
		exc = asyncpg.ForeignKeyViolationError("insert violates foreign key")
		exc.constraint_name = GIG_REFERENCE
		raise exc


@pytest.mark.asyncio
async def test_unknown_gig_reference_is_not_found_and_refunds_quota(world, fake_pool):
	service, performer, venue = world["service"], world["performer"], world["venue"]
	service.ledger = DecisionLedger()
	fake_pool.conn = _MissingGigConnection()

	with pytest.raises(NotFoundError) as excinfo:
		await service.decide(_user(performer), venue.id, Direction.POSITIVE, gig_id=uuid4(), now=NOW)
	assert excinfo.value.reason == "gig_not_found"
	assert excinfo.value.message == "Gig not found."
	assert await service.quota.used(limits.DECISION, performer, now=NOW) == 0
