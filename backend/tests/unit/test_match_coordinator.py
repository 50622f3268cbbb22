from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from engine_fakes import NOW, FakeLedger, FakeMatchRepo, FakeNotificationStore
from gigmatch.domain.discovery.matching import MatchCoordinator
from gigmatch.domain.discovery.models import Decision, Direction, Outcome
from gigmatch.domain.exceptions import InternalError
from gigmatch.domain.matches.models import MATCHES_STREAM
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.profiles.models import Role


def _like(actor_id, actor_role, target_id, direction=Direction.POSITIVE) -> Decision:
	return Decision(
		id=uuid4(),
		actor_id=actor_id,
		actor_role=actor_role,
		target_id=target_id,
		target_role=actor_role.opposite,
		direction=direction,
		outcome=Outcome.LIKED,
		created_at=NOW,
		undo_deadline=NOW + timedelta(minutes=5),
	)


def _pair(ledger: FakeLedger) -> tuple[Decision, Decision]:
	performer_id, venue_id = uuid4(), uuid4()
	first = _like(performer_id, Role.PERFORMER, venue_id)
	second = _like(venue_id, Role.VENUE, performer_id, Direction.STRONG_POSITIVE)
	ledger.rows[first.id] = first
	ledger.rows[second.id] = second
	return first, second


class FlakyMatchRepo(FakeMatchRepo):
	def __init__(self, failures: int) -> None:
		super().__init__()
		self.failures = failures
		self.calls = 0

	async def insert_or_get(self, conn, **kwargs):
		self.calls += 1
		if self.calls <= self.failures:
			raise ConnectionError("connection reset")
		return await super().insert_or_get(conn, **kwargs)


class StaleLedger(FakeLedger):
	async def mark_matched(self, conn, decision_ids, *, now):
		return 1


def _coordinator(ledger, matches, store=None, retries=1) -> MatchCoordinator:
	return MatchCoordinator(
		ledger=ledger,
		matches=matches,
		notifications=NotificationDispatcher(store or FakeNotificationStore()),
		retries=retries,
	)


@pytest.mark.asyncio
async def test_simultaneous_reciprocal_likes_converge_on_one_match(fake_pool, fake_redis):
	ledger, matches, store = FakeLedger(), FakeMatchRepo(), FakeNotificationStore()
	first, second = _pair(ledger)
	coordinator = _coordinator(ledger, matches, store)

	outcomes = await asyncio.gather(
		coordinator.on_positive_decision(first, now=NOW),
		coordinator.on_positive_decision(second, now=NOW),
	)

	assert len(matches.rows) == 1
	assert [o.created for o in outcomes].count(True) == 1
	assert outcomes[0].match.id == outcomes[1].match.id
	assert {ledger.rows[first.id].outcome, ledger.rows[second.id].outcome} == {Outcome.MATCHED}
	# Only the creating call publishes and notifies
	assert await fake_redis.xlen(MATCHES_STREAM) == 1
	assert len(store.sent) == 2


@pytest.mark.asyncio
async def test_no_reciprocal_means_no_match(fake_pool):
	ledger, matches = FakeLedger(), FakeMatchRepo()
	lonely = _like(uuid4(), Role.VENUE, uuid4())
	ledger.rows[lonely.id] = lonely
	assert await _coordinator(ledger, matches).on_positive_decision(lonely, now=NOW) is None
	assert matches.rows == {}


@pytest.mark.asyncio
async def test_negative_decisions_are_ignored(fake_pool):
	ledger, matches = FakeLedger(), FakeMatchRepo()
	first, _ = _pair(ledger)
	passed = _like(first.target_id, Role.VENUE, first.actor_id, Direction.NEGATIVE)
	assert await _coordinator(ledger, matches).on_positive_decision(passed, now=NOW) is None


@pytest.mark.asyncio
async def test_transient_failure_is_retried_once(fake_pool):
	ledger, matches = FakeLedger(), FlakyMatchRepo(failures=1)
	first, _ = _pair(ledger)
	outcome = await _coordinator(ledger, matches).on_positive_decision(first, now=NOW)
	assert outcome is not None and outcome.created
	assert matches.calls == 2


@pytest.mark.asyncio
async def test_persistent_failure_surfaces_internal_error(fake_pool):
	ledger, matches = FakeLedger(), FlakyMatchRepo(failures=5)
	first, _ = _pair(ledger)
	with pytest.raises(InternalError) as excinfo:
		await _coordinator(ledger, matches).on_positive_decision(first, now=NOW)
	assert excinfo.value.reason == "match_unavailable"
	assert matches.calls == 2


@pytest.mark.asyncio
async def test_pair_that_stopped_being_live_yields_no_match(fake_pool):
	ledger, matches = StaleLedger(), FakeMatchRepo()
	first, _ = _pair(ledger)
	assert await _coordinator(ledger, matches).on_positive_decision(first, now=NOW) is None
