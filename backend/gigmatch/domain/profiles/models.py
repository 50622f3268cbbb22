"""Read-only view of the parties managed by the identity service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from gigmatch.domain.exceptions import ValidationError


class Role(str, Enum):
	"""Which side of the marketplace a party is on."""

	PERFORMER = "performer"
	VENUE = "venue"

	@property
	def opposite(self) -> "Role":
		return Role.VENUE if self is Role.PERFORMER else Role.PERFORMER


REPUTATION_SCALES = (5, 100)


@dataclass(slots=True)
class Party:
	"""A performer or venue as the engine sees it."""

	id: UUID
	role: Role
	display_name: str
	visible: bool
	setup_complete: bool
	accepting_bookings: bool
	created_at: datetime
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	travel_radius_km: Optional[float] = None
	genres: list[str] = field(default_factory=list)
	# Performer asking price or venue budget ceiling, depending on role
	price_min: Optional[Decimal] = None
	price_max: Optional[Decimal] = None
	reputation: Optional[float] = None
	reputation_scale: int = 5
	timezone: Optional[str] = None

	@property
	def has_coordinates(self) -> bool:
		return self.latitude is not None and self.longitude is not None

	def is_discoverable(self) -> bool:
		return self.visible and self.setup_complete and self.accepting_bookings

	@classmethod
	def from_record(cls, record) -> "Party":
		scale = int(record.get("reputation_scale") or 5)
		return cls(
			id=UUID(str(record["id"])),
			role=Role(record["role"]),
			display_name=record.get("display_name") or "",
			visible=bool(record.get("visible", True)),
			setup_complete=bool(record.get("setup_complete", False)),
			accepting_bookings=bool(record.get("accepting_bookings", True)),
			created_at=record["created_at"],
			latitude=record.get("latitude"),
			longitude=record.get("longitude"),
			travel_radius_km=record.get("travel_radius_km"),
			genres=list(record.get("genres") or []),
			price_min=record.get("price_min"),
			price_max=record.get("price_max"),
			reputation=record.get("reputation"),
			reputation_scale=scale if scale in REPUTATION_SCALES else 5,
			timezone=record.get("timezone"),
		)


def parse_party_id(value: str | UUID) -> UUID:
	if isinstance(value, UUID):
		return value
	try:
		return UUID(str(value))
	except ValueError as exc:
		raise ValidationError("invalid_party_id") from exc
