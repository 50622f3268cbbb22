"""Candidate retrieval for discovery feeds.

A query is compiled once into a WHERE clause plus its bound parameters; both
the total count and the page fetch run against that same clause so the two
can never disagree about which rows match (the distance predicate included).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID

import asyncpg

from gigmatch.domain.discovery.geo import haversine_sql
from gigmatch.domain.discovery.models import Candidate, FeedFilters
from gigmatch.domain.exceptions import ForbiddenError
from gigmatch.domain.profiles.models import Party, Role
from gigmatch.infra.postgres import get_pool
from gigmatch.settings import settings


class _Params:
	def __init__(self) -> None:
		self.values: list[Any] = []

	def add(self, value: Any, cast: str | None = None) -> str:
		self.values.append(value)
		placeholder = f"${len(self.values)}"
		return f"{placeholder}::{cast}" if cast else placeholder


@dataclass(slots=True)
class CandidateQuery:
	"""Compiled filter shared by the count and fetch statements."""

	source: str
	where: str
	params: list[Any]
	select: str
	order_by: str
	radius_km: Optional[float] = None
	geo_applied: bool = False

	def count_sql(self) -> str:
		return f"SELECT count(*) FROM {self.source} WHERE {self.where}"

	def fetch_sql(self) -> tuple[str, list[Any]]:
		limit_param = f"${len(self.params) + 1}"
		offset_param = f"${len(self.params) + 2}"
		sql = (
			f"SELECT {self.select} FROM {self.source} WHERE {self.where} "
			f"ORDER BY {self.order_by} LIMIT {limit_param} OFFSET {offset_param}"
		)
		return sql, list(self.params)


@dataclass(slots=True)
class Retrieval:
	candidates: list[Candidate] = field(default_factory=list)
	total: int = 0
	radius_km: Optional[float] = None


def _effective_coordinates(actor: Party, filters: FeedFilters) -> tuple[Optional[float], Optional[float]]:
	if filters.latitude is not None and filters.longitude is not None:
		return filters.latitude, filters.longitude
	return actor.latitude, actor.longitude


def _effective_radius(actor: Party, filters: FeedFilters, default_radius_km: float) -> float:
	if filters.radius_km is not None:
		return filters.radius_km
	return actor.travel_radius_km or default_radius_km


def _effective_genres(actor: Party, filters: FeedFilters) -> list[str]:
	genres = filters.genres if filters.genres is not None else actor.genres
	return sorted({g.strip().lower() for g in genres if g and g.strip()})


def _effective_budget(actor: Party, filters: FeedFilters):
	budget_min = filters.budget_min
	budget_max = filters.budget_max
	if budget_min is None and budget_max is None:
		if actor.role is Role.PERFORMER:
			budget_min = actor.price_min
		else:
			budget_max = actor.price_max
	return budget_min, budget_max


def build_party_query(actor: Party, filters: FeedFilters, *, default_radius_km: float) -> CandidateQuery:
	params = _Params()
	target_role = actor.role.opposite
	actor_param = params.add(actor.id, "uuid")
	conditions = [
		f"p.role = {params.add(target_role.value)}",
		"p.visible",
		"p.setup_complete",
		"p.accepting_bookings",
		f"p.id <> {actor_param}",
		f"NOT EXISTS (SELECT 1 FROM decisions d WHERE d.actor_id = {actor_param} AND d.target_id = p.id)",
	]

	lat, lon = _effective_coordinates(actor, filters)
	radius_km: Optional[float] = None
	distance_sql = "NULL::float8"
	geo_applied = lat is not None and lon is not None
	if geo_applied:
		radius_km = _effective_radius(actor, filters, default_radius_km)
		distance_sql = haversine_sql("p.latitude", "p.longitude", params.add(lat, "float8"), params.add(lon, "float8"))
		conditions.append("p.latitude IS NOT NULL AND p.longitude IS NOT NULL")
		conditions.append(f"{distance_sql} <= {params.add(radius_km, 'float8')}")

	genres = _effective_genres(actor, filters)
	if genres:
		conditions.append(
			f"ARRAY(SELECT lower(x) FROM unnest(p.genres) AS x) && {params.add(genres, 'text[]')}"
		)

	budget_min, budget_max = _effective_budget(actor, filters)
	if budget_min is not None:
		conditions.append(f"(p.price_max IS NULL OR p.price_max >= {params.add(budget_min, 'numeric')})")
	if budget_max is not None:
		conditions.append(f"(p.price_min IS NULL OR p.price_min <= {params.add(budget_max, 'numeric')})")

	if target_role is Role.VENUE and (filters.date_from or filters.date_to):
		window = ["g.venue_id = p.id", "g.status = 'open'"]
		if filters.date_from:
			window.append(f"g.gig_date >= {params.add(filters.date_from, 'date')}")
		if filters.date_to:
			window.append(f"g.gig_date <= {params.add(filters.date_to, 'date')}")
		conditions.append(f"EXISTS (SELECT 1 FROM gigs g WHERE {' AND '.join(window)})")

	order_by = "distance_km ASC, p.created_at DESC, p.id" if geo_applied else "p.created_at DESC, p.id"
	return CandidateQuery(
		source="parties p",
		where=" AND ".join(conditions),
		params=params.values,
		select=(
			"p.id, p.display_name, p.genres, p.price_min, p.price_max, p.reputation, "
			f"p.reputation_scale, p.created_at, {distance_sql} AS distance_km"
		),
		order_by=order_by,
		radius_km=radius_km,
		geo_applied=geo_applied,
	)


def build_gig_query(
	actor: Party,
	filters: FeedFilters,
	*,
	default_radius_km: float,
	today: Optional[date] = None,
) -> CandidateQuery:
	if actor.role is not Role.PERFORMER:
		raise ForbiddenError("performers_only")
	params = _Params()
	actor_param = params.add(actor.id, "uuid")
	date_from = filters.date_from or today or datetime.now(timezone.utc).date()
	conditions = [
		"g.status = 'open'",
		"g.is_public",
		"g.accepting_applications",
		"v.visible",
		f"NOT ({actor_param} = ANY(g.booked_performers))",
		(
			"NOT EXISTS (SELECT 1 FROM applications a WHERE a.gig_id = g.id "
			f"AND a.applicant_id = {actor_param} AND a.status <> 'withdrawn')"
		),
		f"g.gig_date >= {params.add(date_from, 'date')}",
	]
	if filters.date_to:
		conditions.append(f"g.gig_date <= {params.add(filters.date_to, 'date')}")

	lat, lon = _effective_coordinates(actor, filters)
	radius_km: Optional[float] = None
	distance_sql = "NULL::float8"
	geo_applied = lat is not None and lon is not None
	if geo_applied:
		radius_km = _effective_radius(actor, filters, default_radius_km)
		distance_sql = haversine_sql(
			"COALESCE(g.latitude, v.latitude)",
			"COALESCE(g.longitude, v.longitude)",
			params.add(lat, "float8"),
			params.add(lon, "float8"),
		)
		conditions.append("COALESCE(g.latitude, v.latitude) IS NOT NULL")
		conditions.append("COALESCE(g.longitude, v.longitude) IS NOT NULL")
		conditions.append(f"{distance_sql} <= {params.add(radius_km, 'float8')}")

	genres = _effective_genres(actor, filters)
	if genres:
		conditions.append(
			"(cardinality(g.required_genres) = 0 OR "
			f"ARRAY(SELECT lower(x) FROM unnest(g.required_genres) AS x) && {params.add(genres, 'text[]')})"
		)

	budget_min, budget_max = _effective_budget(actor, filters)
	if budget_min is not None:
		conditions.append(f"(g.budget IS NULL OR g.budget >= {params.add(budget_min, 'numeric')})")
	if budget_max is not None:
		conditions.append(f"(g.budget IS NULL OR g.budget <= {params.add(budget_max, 'numeric')})")

	order_by = "distance_km ASC, g.gig_date ASC, g.id" if geo_applied else "g.gig_date ASC, g.created_at DESC, g.id"
	return CandidateQuery(
		source="gigs g JOIN parties v ON v.id = g.venue_id",
		where=" AND ".join(conditions),
		params=params.values,
		select=(
			"g.id, g.title, g.required_genres, g.budget, g.currency, g.gig_date, g.venue_id, g.created_at, "
			f"v.reputation, v.reputation_scale, {distance_sql} AS distance_km"
		),
		order_by=order_by,
		radius_km=radius_km,
		geo_applied=geo_applied,
	)


def _party_candidate(record, target_role: Role) -> Candidate:
	price = record["price_min"] if target_role is Role.PERFORMER else record["price_max"]
	return Candidate(
		id=UUID(str(record["id"])),
		kind=target_role.value,
		display_name=record["display_name"] or "",
		created_at=record["created_at"],
		genres=list(record["genres"] or []),
		distance_km=record["distance_km"],
		price=price,
		reputation=record["reputation"],
		reputation_scale=int(record["reputation_scale"] or 5),
	)


def _gig_candidate(record) -> Candidate:
	return Candidate(
		id=UUID(str(record["id"])),
		kind="gig",
		display_name=record["title"],
		created_at=record["created_at"],
		genres=list(record["required_genres"] or []),
		distance_km=record["distance_km"],
		price=record["budget"],
		reputation=record["reputation"],
		reputation_scale=int(record["reputation_scale"] or 5),
		venue_id=UUID(str(record["venue_id"])),
		gig_date=record["gig_date"],
		currency=record["currency"],
	)


class CandidateRetriever:
	"""Runs compiled candidate queries against Postgres."""

	def __init__(self, *, default_radius_km: float | None = None) -> None:
		self.default_radius_km = default_radius_km or settings.default_travel_radius_km

	async def parties(self, actor: Party, filters: FeedFilters, *, limit: int, offset: int = 0) -> Retrieval:
		query = build_party_query(actor, filters, default_radius_km=self.default_radius_km)
		target_role = actor.role.opposite
		return await self._run(query, limit=limit, offset=offset, convert=lambda r: _party_candidate(r, target_role))

	async def gigs(self, actor: Party, filters: FeedFilters, *, limit: int, offset: int = 0) -> Retrieval:
		query = build_gig_query(actor, filters, default_radius_km=self.default_radius_km)
		return await self._run(query, limit=limit, offset=offset, convert=_gig_candidate)

	async def _run(self, query: CandidateQuery, *, limit: int, offset: int, convert) -> Retrieval:
		pool = await get_pool()
		fetch_sql, params = query.fetch_sql()
		async with pool.acquire() as conn:
			total = await self._count(conn, query)
			if total == 0:
				return Retrieval(total=0, radius_km=query.radius_km)
			records = await conn.fetch(fetch_sql, *params, limit, offset)
		return Retrieval(
			candidates=[convert(record) for record in records],
			total=total,
			radius_km=query.radius_km,
		)

	@staticmethod
	async def _count(conn: asyncpg.Connection, query: CandidateQuery) -> int:
		value = await conn.fetchval(query.count_sql(), *query.params)
		return int(value or 0)
