"""Async repository helpers for matches."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

import asyncpg

from gigmatch.domain.matches.models import Match, MatchStatus, pair_key
from gigmatch.domain.profiles.models import Role
from gigmatch.infra.postgres import connection

_UNREAD_COLUMN = {Role.PERFORMER: "performer_unread", Role.VENUE: "venue_unread"}
_VIEWED_COLUMN = {Role.PERFORMER: "performer_last_viewed_at", Role.VENUE: "venue_last_viewed_at"}
_PARTY_COLUMN = {Role.PERFORMER: "performer_id", Role.VENUE: "venue_id"}


class MatchRepository:
	"""Thin data-access layer around the ``matches`` table."""

	async def insert_or_get(
		self,
		conn: asyncpg.Connection,
		*,
		performer_id: UUID,
		venue_id: UUID,
		initiated_by: Role,
		now: datetime,
	) -> tuple[Match, bool]:
		"""Create the pair's match once; later callers get the existing row."""
		key = pair_key(performer_id, venue_id)
		record = await conn.fetchrow(
			"""
			INSERT INTO matches (performer_id, venue_id, pair_key, initiated_by, created_at, last_activity_at)
			VALUES ($1, $2, $3, $4, $5, $5)
			ON CONFLICT (pair_key) DO NOTHING
			RETURNING *
			""",
			performer_id,
			venue_id,
			key,
			initiated_by.value,
			now,
		)
		if record is not None:
			return Match.from_record(dict(record)), True
		existing = await conn.fetchrow("SELECT * FROM matches WHERE pair_key = $1", key)
		return Match.from_record(dict(existing)), False

	async def get(
		self,
		match_id: UUID,
		*,
		conn: asyncpg.Connection | None = None,
		for_update: bool = False,
	) -> Optional[Match]:
		suffix = " FOR UPDATE" if for_update else ""
		async with connection(conn) as c:
			record = await c.fetchrow(f"SELECT * FROM matches WHERE id = $1{suffix}", match_id)
		return Match.from_record(dict(record)) if record else None

	async def list_for_party(
		self,
		party_id: UUID,
		role: Role,
		*,
		status: Optional[MatchStatus],
		limit: int,
		offset: int,
	) -> tuple[list[Match], int]:
		column = _PARTY_COLUMN[role]
		where = f"{column} = $1"
		params: list = [party_id]
		if status is not None:
			params.append(status.value)
			where += f" AND status = ${len(params)}"
		async with connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM matches WHERE {where}", *params)
			records = await conn.fetch(
				f"""
				SELECT * FROM matches WHERE {where}
				ORDER BY last_activity_at DESC, id
				LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
				""",
				*params,
				limit,
				offset,
			)
		return [Match.from_record(dict(r)) for r in records], int(total or 0)

	async def mark_viewed(self, match_id: UUID, role: Role, *, now: datetime) -> Optional[Match]:
		async with connection() as conn:
			record = await conn.fetchrow(
				f"""
				UPDATE matches SET {_UNREAD_COLUMN[role]} = 0, {_VIEWED_COLUMN[role]} = $2
				WHERE id = $1
				RETURNING *
				""",
				match_id,
				now,
			)
		return Match.from_record(dict(record)) if record else None

	async def set_status(
		self,
		conn: asyncpg.Connection,
		match_id: UUID,
		status: MatchStatus,
		*,
		blocked_by: Optional[UUID],
		now: datetime,
	) -> Match:
		record = await conn.fetchrow(
			"""
			UPDATE matches SET status = $2,
				blocked_by = $3,
				blocked_at = CASE WHEN $3::uuid IS NULL THEN NULL ELSE $4 END,
				last_activity_at = $4
			WHERE id = $1
			RETURNING *
			""",
			match_id,
			status.value,
			blocked_by,
			now,
		)
		return Match.from_record(dict(record))

	async def convert_to_booking(
		self,
		conn: asyncpg.Connection,
		match_id: UUID,
		booking_id: UUID,
		*,
		notify_role: Role,
		now: datetime,
	) -> Match:
		"""Mark the match converted and bump the counterpart's unread counter."""
		column = _UNREAD_COLUMN[notify_role]
		record = await conn.fetchrow(
			f"""
			UPDATE matches SET status = 'converted_to_booking', booking_id = $2,
				last_activity_at = $3, {column} = {column} + 1
			WHERE id = $1
			RETURNING *
			""",
			match_id,
			booking_id,
			now,
		)
		return Match.from_record(dict(record))

	async def unread_total(self, party_id: UUID, role: Role) -> int:
		async with connection() as conn:
			value = await conn.fetchval(
				f"""
				SELECT COALESCE(sum({_UNREAD_COLUMN[role]}), 0) FROM matches
				WHERE {_PARTY_COLUMN[role]} = $1 AND status = 'active'
				""",
				party_id,
			)
		return int(value or 0)
