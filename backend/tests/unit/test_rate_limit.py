import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from gigmatch.infra.rate_limit import (
	RateLimitExceeded,
	allow,
	consume_daily,
	day_window,
	release_daily,
	used_daily,
)

# Midday today so windows never straddle midnight while a test runs
TODAY = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0)
NEXT_MIDNIGHT = datetime.combine(TODAY.date() + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_rate_limit_allows_within_budget():
	assert await allow("feed", "u5", limit=2, window_seconds=60)
	assert await allow("feed", "u5", limit=2, window_seconds=60)


@pytest.mark.asyncio
async def test_rate_limit_blocks_when_budget_exhausted():
	await allow("feed", "u6", limit=1, window_seconds=60)
	assert not await allow("feed", "u6", limit=1, window_seconds=60)


def test_day_window_resets_at_next_local_midnight():
	now = datetime(2026, 3, 14, 23, 30, tzinfo=timezone.utc)
	window = day_window("decision", "p1", tz_name="America/New_York", now=now)
	# 23:30 UTC is 19:30 in New York (EDT, UTC-4) on the 14th
	assert window.day == "20260314"
	assert window.reset_at == datetime(2026, 3, 15, 4, 0, tzinfo=timezone.utc)
	assert window.key == "rl:decision:p1:20260314"


def test_day_window_unknown_timezone_falls_back_to_utc():
	now = datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
	window = day_window("decision", "p1", tz_name="Mars/Olympus", now=now)
	assert window.reset_at == datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_hundred_and_first_decision_is_rejected_with_midnight_reset():
	now = TODAY
	for _ in range(100):
		await consume_daily("decision", "performer-1", limit=100, now=now)
	with pytest.raises(RateLimitExceeded) as excinfo:
		await consume_daily("decision", "performer-1", limit=100, now=now)
	assert excinfo.value.reset_at == NEXT_MIDNIGHT
	# Rejected attempts do not inflate the counter
	assert await used_daily("decision", "performer-1", now=now) == 100


@pytest.mark.asyncio
async def test_concurrent_consumers_never_exceed_limit():
	now = TODAY

	async def _attempt():
		try:
			await consume_daily("decision", "venue-9", limit=5, now=now)
		except RateLimitExceeded:
			return False
		return True

	results = await asyncio.gather(*[_attempt() for _ in range(12)])
	assert results.count(True) == 5
	assert await used_daily("decision", "venue-9", now=now) == 5


@pytest.mark.asyncio
async def test_release_returns_slot_and_never_goes_negative():
	now = TODAY
	window = await consume_daily("undo", "p2", limit=1, now=now)
	with pytest.raises(RateLimitExceeded):
		await consume_daily("undo", "p2", limit=1, now=now)
	await release_daily(window)
	await release_daily(window)
	assert await used_daily("undo", "p2", now=now) == 0
	await consume_daily("undo", "p2", limit=1, now=now)


@pytest.mark.asyncio
async def test_new_day_starts_a_fresh_budget():
	first = datetime(2026, 5, 2, 23, 59, tzinfo=timezone.utc)
	second = datetime(2026, 5, 3, 0, 1, tzinfo=timezone.utc)
	await consume_daily("decision", "p3", limit=1, now=first)
	await consume_daily("decision", "p3", limit=1, now=second)


@pytest.mark.asyncio
async def test_backdated_window_still_enforces_its_limit(fake_redis):
	past = TODAY - timedelta(days=2)
	window = await consume_daily("decision", "p4", limit=2, now=past)
	await consume_daily("decision", "p4", limit=2, now=past)
	with pytest.raises(RateLimitExceeded):
		await consume_daily("decision", "p4", limit=2, now=past)
	assert await fake_redis.ttl(window.key) > 0
	assert await used_daily("decision", "p4", now=past) == 2
