"""Redis-backed rate limiting utilities."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gigmatch.infra.redis import redis_client

# Keys outlive their day slightly so late refunds still find them
_DAY_KEY_GRACE_SECONDS = 3600


class RateLimitExceeded(Exception):
	"""Raised when the rate limit has been hit."""

	def __init__(self, kind: str, *, reset_at: Optional[datetime] = None) -> None:
		super().__init__(kind)
		self.kind = kind
		self.reset_at = reset_at


@dataclass(slots=True, frozen=True)
class DayWindow:
	key: str
	day: str
	reset_at: datetime


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	if limit <= 0:
		return False
	now = now or time.time()
	window = max(1, int(window_seconds))
	slot = int(math.floor(now / window))
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count) <= limit


def resolve_timezone(name: Optional[str]) -> tzinfo:
	if not name:
		return timezone.utc
	try:
		return ZoneInfo(name)
	except (ZoneInfoNotFoundError, ValueError):
		return timezone.utc


def day_window(kind: str, actor_id: str, *, tz_name: Optional[str] = None, now: Optional[datetime] = None) -> DayWindow:
	"""Locate the accounting day containing ``now`` in the actor's timezone."""
	tz = resolve_timezone(tz_name)
	current = (now or datetime.now(timezone.utc)).astimezone(tz)
	next_midnight = datetime.combine(current.date() + timedelta(days=1), dt_time.min, tzinfo=tz)
	day = current.strftime("%Y%m%d")
	return DayWindow(
		key=f"rl:{kind}:{actor_id}:{day}",
		day=day,
		reset_at=next_midnight.astimezone(timezone.utc),
	)


async def consume_daily(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	tz_name: Optional[str] = None,
	now: Optional[datetime] = None,
) -> DayWindow:
	"""Take one slot from the actor's daily budget or raise RateLimitExceeded.

	The increment is atomic; an attempt that lands over the limit gives its
	slot back before raising, so rejected calls never inflate the counter.
	"""
	window = day_window(kind, actor_id, tz_name=tz_name, now=now)
	if limit <= 0:
		raise RateLimitExceeded(kind, reset_at=window.reset_at)
	# TTL counts from the wall clock so a backdated window still holds its count
	ttl = max(1, int(window.reset_at.timestamp() - time.time())) + _DAY_KEY_GRACE_SECONDS
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(window.key)
		pipe.expire(window.key, ttl)
		count, _ = await pipe.execute()
	if int(count) > limit:
		await redis_client.decr(window.key)
		raise RateLimitExceeded(kind, reset_at=window.reset_at)
	return window


async def release_daily(window: DayWindow) -> None:
	"""Return a consumed slot to the window it was taken from."""
	remaining = await redis_client.decr(window.key)
	if int(remaining) < 0:
		await redis_client.incr(window.key)


async def used_daily(kind: str, actor_id: str, *, tz_name: Optional[str] = None, now: Optional[datetime] = None) -> int:
	window = day_window(kind, actor_id, tz_name=tz_name, now=now)
	value = await redis_client.get(window.key)
	return int(value or 0)
