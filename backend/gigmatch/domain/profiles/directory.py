"""Lookup of performer and venue profiles."""

from __future__ import annotations

from typing import Optional, Protocol
from uuid import UUID

import asyncpg

from gigmatch.domain.profiles.models import Party, Role
from gigmatch.infra.postgres import get_pool

_PARTY_COLUMNS = """
	id, role, display_name, visible, setup_complete, accepting_bookings, created_at,
	latitude, longitude, travel_radius_km, genres, price_min, price_max,
	reputation, reputation_scale, timezone
"""


class ProfileDirectory(Protocol):
	"""Interface onto the identity service's party records."""

	async def get(self, party_id: UUID, *, conn: asyncpg.Connection | None = None) -> Optional[Party]:
		...


class PostgresProfileDirectory:
	"""Reads the ``parties`` view maintained by the identity service."""

	async def get(self, party_id: UUID, *, conn: asyncpg.Connection | None = None) -> Optional[Party]:
		query = f"SELECT {_PARTY_COLUMNS} FROM parties WHERE id = $1"
		if conn is not None:
			record = await conn.fetchrow(query, party_id)
		else:
			pool = await get_pool()
			async with pool.acquire() as acquired:
				record = await acquired.fetchrow(query, party_id)
		return Party.from_record(dict(record)) if record else None


async def get_eligible_target(
	directory: ProfileDirectory,
	target_id: UUID,
	*,
	expected_role: Role,
	conn: asyncpg.Connection | None = None,
) -> Optional[Party]:
	"""Return the target only when it can currently be decided upon."""
	party = await directory.get(target_id, conn=conn)
	if party is None or party.role is not expected_role:
		return None
	if not (party.visible and party.setup_complete):
		return None
	return party
