"""Gig applications and their promotion into bookings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from gigmatch.domain.bookings.models import Booking, deposit_for, schedule_window
from gigmatch.domain.bookings.repo import BookingRepository
from gigmatch.domain.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from gigmatch.domain.gigs.models import Application, ApplicationStatus, Gig, GigDraft, GigStatus
from gigmatch.domain.gigs.repo import GigRepository
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.notifications.dispatcher import APPLICATION_ACCEPTED, APPLICATION_DECLINED
from gigmatch.domain.profiles import PostgresProfileDirectory, ProfileDirectory
from gigmatch.domain.profiles.models import Role, parse_party_id
from gigmatch.infra.auth import AuthenticatedUser
from gigmatch.infra.postgres import get_pool
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GigPage:
	items: list[Gig]
	total: int
	page: int
	limit: int


@dataclass(slots=True)
class AcceptanceResult:
	application: Application
	gig: Gig
	booking: Booking


def _require_role(user: AuthenticatedUser, role: Role) -> UUID:
	if user.role != role.value:
		raise ForbiddenError(f"{role.value}s_only")
	return parse_party_id(user.id)


def _require_owner(gig: Gig, venue_id: UUID) -> None:
	if gig.venue_id != venue_id:
		raise ForbiddenError("not_gig_owner")


class GigService:
	def __init__(
		self,
		*,
		repository: GigRepository | None = None,
		bookings: BookingRepository | None = None,
		notifications: NotificationDispatcher | None = None,
		directory: ProfileDirectory | None = None,
	) -> None:
		self.repo = repository or GigRepository()
		self.bookings = bookings or BookingRepository()
		self.notifications = notifications or NotificationDispatcher()
		self.directory = directory or PostgresProfileDirectory()

	async def _get_gig(self, gig_id: UUID) -> Gig:
		gig = await self.repo.get_gig(gig_id)
		if gig is None:
			raise NotFoundError("gig_not_found")
		return gig

	async def create_gig(
		self,
		user: AuthenticatedUser,
		draft: GigDraft,
		*,
		publish: bool = False,
		now: Optional[datetime] = None,
	) -> Gig:
		"""Post a gig as a draft, or open it to applications when ``publish`` is set.

		Publishing needs a visible venue that has finished setup. Missing
		coordinates are copied from the venue profile so the gig is findable in
		geo feeds.
		"""
		venue_id = _require_role(user, Role.VENUE)
		now = now or datetime.now(timezone.utc)
		venue = await self.directory.get(venue_id)
		if venue is None:
			raise NotFoundError("actor_not_found")
		if venue.role is not Role.VENUE:
			raise ForbiddenError("role_mismatch")
		if publish and not (venue.visible and venue.setup_complete):
			raise ForbiddenError("venue_setup_incomplete")
		if draft.gig_date < now.date():
			raise ValidationError("gig_date_in_past")
		if draft.latitude is None or draft.longitude is None:
			draft.latitude, draft.longitude = venue.latitude, venue.longitude
		ratio = draft.deposit_ratio if draft.deposit_ratio is not None else Decimal(str(settings.default_deposit_ratio))
		gig = await self.repo.insert_gig(
			venue_id=venue_id,
			draft=draft,
			status=GigStatus.OPEN if publish else GigStatus.DRAFT,
			deposit_ratio=ratio,
			now=now,
		)
		logger.info("gig created", extra={"gig_id": str(gig.id), "status": gig.status.value})
		return gig

	async def list_venue_gigs(
		self,
		user: AuthenticatedUser,
		*,
		status: Optional[GigStatus] = None,
		page: int = 1,
		limit: int = 20,
	) -> GigPage:
		venue_id = _require_role(user, Role.VENUE)
		page = max(1, page)
		limit = max(1, min(limit, 50))
		items, total = await self.repo.list_for_venue(venue_id, status=status, limit=limit, offset=(page - 1) * limit)
		return GigPage(items=items, total=total, page=page, limit=limit)

	async def apply(
		self,
		user: AuthenticatedUser,
		gig_id: UUID,
		*,
		proposed_rate: Optional[Decimal] = None,
		message: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> Application:
		performer_id = _require_role(user, Role.PERFORMER)
		gig = await self._get_gig(gig_id)
		if not gig.is_open_for_applications():
			raise InvalidStateError("gig_not_accepting")
		if performer_id in gig.booked_performers:
			raise InvalidStateError("already_booked")
		application = await self.repo.insert_application(
			gig_id=gig.id,
			applicant_id=performer_id,
			proposed_rate=proposed_rate,
			message=message,
			now=now or datetime.now(timezone.utc),
		)
		obs_metrics.inc_application("applied")
		return application

	async def withdraw(self, user: AuthenticatedUser, application_id: UUID, *, now: Optional[datetime] = None) -> Application:
		applicant_id = parse_party_id(user.id)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				application = await self.repo.get_application(application_id, conn=conn, for_update=True)
				if application is None:
					raise NotFoundError("application_not_found")
				if application.applicant_id != applicant_id:
					raise ForbiddenError("not_applicant")
				if application.status is not ApplicationStatus.PENDING:
					raise InvalidStateError("application_not_pending")
				updated = await self.repo.set_application_status(
					conn,
					application.id,
					ApplicationStatus.WITHDRAWN,
					now=now or datetime.now(timezone.utc),
				)
		obs_metrics.inc_application("withdrawn")
		return updated

	async def decline(
		self,
		user: AuthenticatedUser,
		application_id: UUID,
		*,
		reason: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> Application:
		venue_id = _require_role(user, Role.VENUE)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				application = await self.repo.get_application(application_id, conn=conn, for_update=True)
				if application is None:
					raise NotFoundError("application_not_found")
				gig = await self.repo.get_gig(application.gig_id, conn=conn)
				if gig is None:
					raise NotFoundError("gig_not_found")
				_require_owner(gig, venue_id)
				if application.status is not ApplicationStatus.PENDING:
					raise InvalidStateError("application_not_pending")
				updated = await self.repo.set_application_status(
					conn,
					application.id,
					ApplicationStatus.REJECTED,
					now=now or datetime.now(timezone.utc),
					decline_reason=reason,
				)
		obs_metrics.inc_application("declined")
		await self.notifications.notify(
			updated.applicant_id,
			APPLICATION_DECLINED,
			title="Application update",
			body=f'Your application for "{gig.title}" was not accepted.',
			deep_link=f"/gigs/{gig.id}",
		)
		return updated

	async def list_applications(
		self,
		user: AuthenticatedUser,
		gig_id: UUID,
		*,
		status: Optional[ApplicationStatus] = None,
	) -> list[Application]:
		venue_id = _require_role(user, Role.VENUE)
		gig = await self._get_gig(gig_id)
		_require_owner(gig, venue_id)
		return await self.repo.list_for_gig(gig.id, status=status)

	async def my_applications(
		self,
		user: AuthenticatedUser,
		*,
		status: Optional[ApplicationStatus] = None,
		limit: int = 50,
	) -> list[Application]:
		performer_id = _require_role(user, Role.PERFORMER)
		return await self.repo.list_for_applicant(performer_id, status=status, limit=max(1, min(limit, 100)))

	async def accept_application_and_create_booking(
		self,
		user: AuthenticatedUser,
		gig_id: UUID,
		application_id: UUID,
		*,
		agreed_amount: Optional[Decimal] = None,
		now: Optional[datetime] = None,
	) -> AcceptanceResult:
		"""Accept a pending application and open a booking for it in one transaction.

		The agreed amount defaults to the applicant's proposed rate, then the gig
		budget. The venue's confirmation is preset on the new booking.
		"""
		venue_id = _require_role(user, Role.VENUE)
		now = now or datetime.now(timezone.utc)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				gig = await self.repo.get_gig(gig_id, conn=conn, for_update=True)
				if gig is None:
					raise NotFoundError("gig_not_found")
				_require_owner(gig, venue_id)
				application = await self.repo.get_application(application_id, conn=conn, for_update=True)
				if application is None or application.gig_id != gig.id:
					raise NotFoundError("application_not_found")
				if application.status is not ApplicationStatus.PENDING:
					raise InvalidStateError("application_not_pending")
				if gig.is_full:
					raise InvalidStateError("gig_filled")
				amount = agreed_amount if agreed_amount is not None else application.proposed_rate or gig.budget
				if amount is None:
					raise ValidationError("agreed_amount_required")
				amount = Decimal(amount)
				accepted = await self.repo.set_application_status(
					conn, application.id, ApplicationStatus.ACCEPTED, now=now
				)
				updated_gig = await self.repo.add_performer(conn, gig, application.applicant_id, now=now)
				starts_at, ends_at = schedule_window(gig.gig_date, gig.start_time, gig.end_time)
				booking = await self.bookings.insert(
					conn,
					performer_id=application.applicant_id,
					venue_id=gig.venue_id,
					title=gig.title,
					gig_date=gig.gig_date,
					starts_at=starts_at,
					ends_at=ends_at,
					agreed_amount=amount,
					currency=gig.currency,
					deposit_amount=deposit_for(amount, gig.deposit_ratio),
					creator_role=Role.VENUE,
					now=now,
					gig_id=gig.id,
					application_id=application.id,
				)
		obs_metrics.inc_application("accepted")
		obs_metrics.inc_booking_transition("create", booking.status.value)
		logger.info(
			"application accepted",
			extra={"gig_id": str(gig.id), "application_id": str(application.id), "booking_id": str(booking.id)},
		)
		await self.notifications.notify(
			booking.performer_id,
			APPLICATION_ACCEPTED,
			title="Application accepted",
			body=f'You have been booked for "{gig.title}". Confirm the booking to lock it in.',
			deep_link=f"/bookings/{booking.id}",
		)
		return AcceptanceResult(application=accepted, gig=updated_gig, booking=booking)
