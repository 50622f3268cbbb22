"""Async repository helpers for gigs and applications."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import asyncpg

from gigmatch.domain.exceptions import ConflictError
from gigmatch.domain.gigs.models import Application, ApplicationStatus, Gig, GigDraft, GigStatus
from gigmatch.infra.postgres import connection


class GigRepository:
	"""Data access for the ``gigs`` and ``applications`` tables."""

	async def get_gig(
		self,
		gig_id: UUID,
		*,
		conn: asyncpg.Connection | None = None,
		for_update: bool = False,
	) -> Optional[Gig]:
		suffix = " FOR UPDATE" if for_update else ""
		async with connection(conn) as c:
			record = await c.fetchrow(f"SELECT * FROM gigs WHERE id = $1{suffix}", gig_id)
		return Gig.from_record(dict(record)) if record else None

	async def insert_gig(
		self,
		*,
		venue_id: UUID,
		draft: GigDraft,
		status: GigStatus,
		deposit_ratio: Decimal,
		now: datetime,
	) -> Gig:
		async with connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO gigs (venue_id, title, description, gig_date, start_time, end_time, required_genres,
					performers_needed, budget, currency, deposit_ratio, latitude, longitude, status, is_public,
					created_at, updated_at)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $16)
				RETURNING *
				""",
				venue_id,
				draft.title,
				draft.description,
				draft.gig_date,
				draft.start_time,
				draft.end_time,
				draft.required_genres,
				draft.performers_needed,
				draft.budget,
				draft.currency,
				deposit_ratio,
				draft.latitude,
				draft.longitude,
				status.value,
				draft.is_public,
				now,
			)
		return Gig.from_record(dict(record))

	async def list_for_venue(
		self,
		venue_id: UUID,
		*,
		status: Optional[GigStatus],
		limit: int,
		offset: int,
	) -> tuple[list[Gig], int]:
		where = "venue_id = $1"
		params: list = [venue_id]
		if status is not None:
			params.append(status.value)
			where += f" AND status = ${len(params)}"
		async with connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM gigs WHERE {where}", *params)
			records = await conn.fetch(
				f"""
				SELECT * FROM gigs WHERE {where}
				ORDER BY created_at DESC, id
				LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
				""",
				*params,
				limit,
				offset,
			)
		return [Gig.from_record(dict(r)) for r in records], int(total or 0)

	async def add_performer(
		self,
		conn: asyncpg.Connection,
		gig: Gig,
		performer_id: UUID,
		*,
		now: datetime,
	) -> Gig:
		"""Append to the roster; the gig closes once the headcount is met."""
		record = await conn.fetchrow(
			"""
			UPDATE gigs SET booked_performers = array_append(booked_performers, $2),
				status = CASE WHEN cardinality(booked_performers) + 1 >= performers_needed
					THEN 'filled' ELSE status END,
				accepting_applications = CASE WHEN cardinality(booked_performers) + 1 >= performers_needed
					THEN FALSE ELSE accepting_applications END,
				updated_at = $3
			WHERE id = $1
			RETURNING *
			""",
			gig.id,
			performer_id,
			now,
		)
		return Gig.from_record(dict(record))

	async def insert_application(
		self,
		*,
		gig_id: UUID,
		applicant_id: UUID,
		proposed_rate: Optional[Decimal],
		message: Optional[str],
		now: datetime,
	) -> Application:
		try:
			async with connection() as conn:
				record = await conn.fetchrow(
					"""
					INSERT INTO applications (gig_id, applicant_id, proposed_rate, message, status, applied_at)
					VALUES ($1, $2, $3, $4, 'pending', $5)
					RETURNING *
					""",
					gig_id,
					applicant_id,
					proposed_rate,
					message,
					now,
				)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise ConflictError("already_applied") from exc
		return Application.from_record(dict(record))

	async def get_application(
		self,
		application_id: UUID,
		*,
		conn: asyncpg.Connection | None = None,
		for_update: bool = False,
	) -> Optional[Application]:
		suffix = " FOR UPDATE" if for_update else ""
		async with connection(conn) as c:
			record = await c.fetchrow(f"SELECT * FROM applications WHERE id = $1{suffix}", application_id)
		return Application.from_record(dict(record)) if record else None

	async def set_application_status(
		self,
		conn: asyncpg.Connection,
		application_id: UUID,
		status: ApplicationStatus,
		*,
		now: datetime,
		decline_reason: Optional[str] = None,
	) -> Application:
		record = await conn.fetchrow(
			"""
			UPDATE applications SET status = $2, decided_at = $3, decline_reason = $4
			WHERE id = $1
			RETURNING *
			""",
			application_id,
			status.value,
			now,
			decline_reason,
		)
		return Application.from_record(dict(record))

	async def list_for_gig(self, gig_id: UUID, *, status: Optional[ApplicationStatus] = None) -> list[Application]:
		params: list = [gig_id]
		where = "gig_id = $1"
		if status is not None:
			params.append(status.value)
			where += " AND status = $2"
		async with connection() as conn:
			records = await conn.fetch(
				f"SELECT * FROM applications WHERE {where} ORDER BY applied_at ASC, id",
				*params,
			)
		return [Application.from_record(dict(r)) for r in records]

	async def list_for_applicant(
		self,
		applicant_id: UUID,
		*,
		status: Optional[ApplicationStatus] = None,
		limit: int = 50,
	) -> list[Application]:
		params: list = [applicant_id]
		where = "applicant_id = $1"
		if status is not None:
			params.append(status.value)
			where += " AND status = $2"
		params.append(limit)
		async with connection() as conn:
			records = await conn.fetch(
				f"""
				SELECT * FROM applications WHERE {where}
				ORDER BY applied_at DESC, id
				LIMIT ${len(params)}
				""",
				*params,
			)
		return [Application.from_record(dict(r)) for r in records]


