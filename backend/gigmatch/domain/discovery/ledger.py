"""Durable store of discovery decisions."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence
from uuid import UUID

import asyncpg

from gigmatch.domain.discovery.models import POSITIVE_DIRECTIONS, Decision, Direction, Outcome
from gigmatch.domain.exceptions import ConflictError, NotFoundError
from gigmatch.domain.profiles.models import Party

GIG_REFERENCE = "decisions_gig_id_fkey"


class DecisionLedger:
	"""Thin data-access layer around the ``decisions`` table.

	Every method runs on a caller-supplied connection so services decide the
	transaction boundaries.
	"""

	async def record(
		self,
		conn: asyncpg.Connection,
		*,
		actor: Party,
		target: Party,
		direction: Direction,
		now: datetime,
		undo_window: timedelta,
		gig_id: Optional[UUID] = None,
	) -> Decision:
		outcome = Outcome.LIKED if direction.is_positive else Outcome.NO_MATCH
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO decisions (actor_id, actor_role, target_id, target_role, direction, outcome,
					gig_id, created_at, undo_deadline, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $8)
				RETURNING *
				""",
				actor.id,
				actor.role.value,
				target.id,
				target.role.value,
				direction.value,
				outcome.value,
				gig_id,
				now,
				now + undo_window,
			)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise ConflictError("already_decided") from exc
		except asyncpg.ForeignKeyViolationError as exc:  # type: ignore[attr-defined]
			if getattr(exc, "constraint_name", None) == GIG_REFERENCE:
				raise NotFoundError("gig_not_found") from exc
			# Actor or target row vanished after eligibility was checked
			raise NotFoundError("target_not_found") from exc
		return Decision.from_record(dict(record))

	async def get(self, conn: asyncpg.Connection, decision_id: UUID, *, for_update: bool = False) -> Optional[Decision]:
		suffix = " FOR UPDATE" if for_update else ""
		record = await conn.fetchrow(f"SELECT * FROM decisions WHERE id = $1{suffix}", decision_id)
		return Decision.from_record(dict(record)) if record else None

	async def find_reciprocal(self, conn: asyncpg.Connection, actor_id: UUID, target_id: UUID) -> Optional[Decision]:
		"""Return the target's positive, still-live decision about the actor."""
		record = await conn.fetchrow(
			"""
			SELECT * FROM decisions
			WHERE actor_id = $1 AND target_id = $2
				AND direction = ANY($3::text[])
				AND outcome IN ('liked', 'matched')
			FOR UPDATE
			""",
			target_id,
			actor_id,
			list(POSITIVE_DIRECTIONS),
		)
		return Decision.from_record(dict(record)) if record else None

	async def mark_matched(self, conn: asyncpg.Connection, decision_ids: Sequence[UUID], *, now: datetime) -> int:
		"""Flip the pair to matched; returns how many of them were still live."""
		rows = await conn.fetch(
			"""
			UPDATE decisions SET outcome = 'matched', updated_at = $2
			WHERE id = ANY($1::uuid[]) AND outcome IN ('liked', 'matched')
			RETURNING id
			""",
			list(decision_ids),
			now,
		)
		return len(rows)

	async def delete(self, conn: asyncpg.Connection, decision_id: UUID) -> None:
		await conn.execute("DELETE FROM decisions WHERE id = $1", decision_id)

	async def expire_reciprocal(self, conn: asyncpg.Connection, actor_id: UUID, target_id: UUID, *, now: datetime) -> Optional[UUID]:
		"""Expire the target's pending like of the actor, if any."""
		value = await conn.fetchval(
			"""
			UPDATE decisions SET outcome = 'expired', updated_at = $3
			WHERE actor_id = $1 AND target_id = $2 AND outcome = 'liked'
			RETURNING id
			""",
			target_id,
			actor_id,
			now,
		)
		return UUID(str(value)) if value else None

	async def who_liked_me(self, conn: asyncpg.Connection, party_id: UUID, *, limit: int) -> list[Decision]:
		records = await conn.fetch(
			"""
			SELECT * FROM decisions
			WHERE target_id = $1 AND outcome = 'liked' AND direction = ANY($2::text[])
			ORDER BY created_at DESC, id
			LIMIT $3
			""",
			party_id,
			list(POSITIVE_DIRECTIONS),
			limit,
		)
		return [Decision.from_record(dict(record)) for record in records]
