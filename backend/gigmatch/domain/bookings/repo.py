"""Async repository helpers for bookings."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import asyncpg

from gigmatch.domain.bookings.models import Booking, BookingStatus
from gigmatch.domain.profiles.models import Role
from gigmatch.infra.postgres import connection

_PARTY_COLUMN = {Role.PERFORMER: "performer_id", Role.VENUE: "venue_id"}
_ABSORBED_STATUSES = [BookingStatus.CANCELLED.value, BookingStatus.DISPUTED.value]


class BookingRepository:
	"""Thin data-access layer around the ``bookings`` table."""

	async def insert(
		self,
		conn: asyncpg.Connection,
		*,
		performer_id: UUID,
		venue_id: UUID,
		title: str,
		gig_date: date,
		starts_at: datetime,
		ends_at: datetime,
		agreed_amount: Decimal,
		currency: str,
		deposit_amount: Decimal,
		creator_role: Role,
		now: datetime,
		gig_id: Optional[UUID] = None,
		match_id: Optional[UUID] = None,
		application_id: Optional[UUID] = None,
		special_requests: Optional[str] = None,
	) -> Booking:
		"""Insert a pending booking with the creator's confirmation already set."""
		record = await conn.fetchrow(
			"""
			INSERT INTO bookings (performer_id, venue_id, gig_id, match_id, application_id, title,
				gig_date, starts_at, ends_at, agreed_amount, currency, deposit_amount,
				performer_confirmed, performer_confirmed_at, venue_confirmed, venue_confirmed_at,
				special_requests, created_at, updated_at)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12,
				$13, CASE WHEN $13 THEN $16::timestamptz END,
				$14, CASE WHEN $14 THEN $16::timestamptz END,
				$15, $16, $16)
			RETURNING *
			""",
			performer_id,
			venue_id,
			gig_id,
			match_id,
			application_id,
			title,
			gig_date,
			starts_at,
			ends_at,
			agreed_amount,
			currency,
			deposit_amount,
			creator_role is Role.PERFORMER,
			creator_role is Role.VENUE,
			special_requests,
			now,
		)
		return Booking.from_record(dict(record))

	async def get(
		self,
		booking_id: UUID,
		*,
		conn: asyncpg.Connection | None = None,
		for_update: bool = False,
	) -> Optional[Booking]:
		suffix = " FOR UPDATE" if for_update else ""
		async with connection(conn) as c:
			record = await c.fetchrow(f"SELECT * FROM bookings WHERE id = $1{suffix}", booking_id)
		return Booking.from_record(dict(record)) if record else None

	async def find_by_intent(self, conn: asyncpg.Connection, intent_id: str) -> Optional[Booking]:
		record = await conn.fetchrow(
			"""
			SELECT * FROM bookings
			WHERE deposit_intent_id = $1 OR final_intent_id = $1
			FOR UPDATE
			""",
			intent_id,
		)
		return Booking.from_record(dict(record)) if record else None

	async def save(self, conn: asyncpg.Connection, booking: Booking) -> Booking:
		columns = booking.mutable_columns()
		names: Sequence[str] = list(columns)
		assignments = ", ".join(f"{name} = ${idx}" for idx, name in enumerate(names, start=2))
		record = await conn.fetchrow(
			f"UPDATE bookings SET {assignments} WHERE id = $1 RETURNING *",
			booking.id,
			*[columns[name] for name in names],
		)
		return Booking.from_record(dict(record))

	async def list_for_party(
		self,
		party_id: UUID,
		role: Role,
		*,
		status: Optional[BookingStatus] = None,
		starts_after: Optional[datetime] = None,
		starts_before: Optional[datetime] = None,
		exclude_absorbed: bool = False,
		limit: int = 50,
		offset: int = 0,
	) -> tuple[list[Booking], int]:
		conditions = [f"{_PARTY_COLUMN[role]} = $1"]
		params: list = [party_id]
		if status is not None:
			params.append(status.value)
			conditions.append(f"status = ${len(params)}")
		if exclude_absorbed:
			params.append(_ABSORBED_STATUSES)
			conditions.append(f"status <> ALL(${len(params)}::text[])")
		if starts_after is not None:
			params.append(starts_after)
			conditions.append(f"starts_at >= ${len(params)}")
		if starts_before is not None:
			params.append(starts_before)
			conditions.append(f"starts_at <= ${len(params)}")
		where = " AND ".join(conditions)
		async with connection() as conn:
			total = await conn.fetchval(f"SELECT count(*) FROM bookings WHERE {where}", *params)
			records = await conn.fetch(
				f"""
				SELECT * FROM bookings WHERE {where}
				ORDER BY starts_at ASC, id
				LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
				""",
				*params,
				limit,
				offset,
			)
		return [Booking.from_record(dict(r)) for r in records], int(total or 0)
