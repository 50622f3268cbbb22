"""Liveness and readiness checks."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from gigmatch.infra import postgres
from gigmatch.infra.redis import redis_client
from gigmatch.obs import metrics
from gigmatch.settings import settings

LOGGER = logging.getLogger(__name__)


async def _ping_postgres() -> None:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		await conn.execute("SELECT 1")


async def _check(
	name: str,
	check: Callable[[], Awaitable[Any]],
	mark: Callable[..., None],
	timeout: float,
) -> Dict[str, Any]:
	started = perf_counter()
	try:
		await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		LOGGER.warning("%s readiness check failed", name, exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - started
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	"""Storage backends gate readiness; payment configuration is reported only.

	Discovery and matching keep working without a gateway, so a missing
	payments key degrades booking payments but not the whole service.
	"""
	redis_state = await _check("redis", redis_client.ping, metrics.mark_redis, 0.2)
	postgres_state = await _check("postgres", _ping_postgres, metrics.mark_postgres, 0.3)
	ok = bool(redis_state["ok"] and postgres_state["ok"])
	payments_state = {
		"ok": bool(settings.payments_secret_key),
		"webhook": bool(settings.payments_webhook_secret),
	}
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"redis": redis_state, "postgres": postgres_state, "payments": payments_state},
		},
	)
