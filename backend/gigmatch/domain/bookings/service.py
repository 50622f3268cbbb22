"""Booking orchestration: creation, lifecycle transitions, payments and contracts.

Every mutation loads the booking with ``SELECT ... FOR UPDATE`` inside a
transaction, applies a pure transition from ``lifecycle`` and writes the row
back before the lock is released. Notifications and match events go out only
after the transaction commits.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from gigmatch.domain.bookings import lifecycle
from gigmatch.domain.bookings.models import Booking, BookingStatus, deposit_for, schedule_window
from gigmatch.domain.bookings.repo import BookingRepository
from gigmatch.domain.exceptions import (
	ForbiddenError,
	InternalError,
	InvalidStateError,
	NotFoundError,
	ValidationError,
)
from gigmatch.domain.matches import events as match_events
from gigmatch.domain.matches.models import MatchStatus
from gigmatch.domain.matches.repo import MatchRepository
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.notifications.dispatcher import (
	BOOKING_CONFIRMATION,
	BOOKING_DISPUTED,
	BOOKING_REQUEST,
	GIG_CANCELLED,
	PAYMENT_RECEIVED,
	REVIEW_PROMPT,
)
from gigmatch.domain.profiles.models import Role, parse_party_id
from gigmatch.infra.auth import AuthenticatedUser
from gigmatch.infra.payments import PaymentGateway, PaymentGatewayError, get_gateway, to_minor_units
from gigmatch.infra.postgres import get_pool
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

PAYMENT_KINDS = (lifecycle.DEPOSIT, lifecycle.FINAL)
SUCCEEDED = "succeeded"


@dataclass(slots=True)
class BookingTerms:
	title: str
	gig_date: date
	agreed_amount: Decimal
	start_time: Optional[time] = None
	end_time: Optional[time] = None
	currency: Optional[str] = None
	deposit_amount: Optional[Decimal] = None
	special_requests: Optional[str] = None


@dataclass(slots=True)
class PaymentIntentResult:
	booking: Booking
	intent_id: str
	client_secret: Optional[str]
	amount: Decimal
	kind: str


@dataclass(slots=True)
class BookingPage:
	items: list[Booking]
	total: int
	page: int
	limit: int


def _validate_kind(kind: str) -> str:
	if kind not in PAYMENT_KINDS:
		raise ValidationError("invalid_payment_kind")
	return kind


class BookingService:
	def __init__(
		self,
		*,
		repository: BookingRepository | None = None,
		matches: MatchRepository | None = None,
		notifications: NotificationDispatcher | None = None,
		gateway: PaymentGateway | None = None,
	) -> None:
		self.repo = repository or BookingRepository()
		self.matches = matches or MatchRepository()
		self.notifications = notifications or NotificationDispatcher()
		self._gateway = gateway

	@property
	def gateway(self) -> PaymentGateway:
		if self._gateway is None:
			try:
				self._gateway = get_gateway()
			except PaymentGatewayError as exc:
				raise InternalError("payments_unavailable") from exc
		return self._gateway

	# --- Queries ----------------------------------------------------------

	async def get_booking(self, user: AuthenticatedUser, booking_id: UUID) -> Booking:
		booking = await self.repo.get(booking_id)
		if booking is None:
			raise NotFoundError("booking_not_found")
		lifecycle.party_role(booking, parse_party_id(user.id))
		return booking

	async def list_bookings(
		self,
		user: AuthenticatedUser,
		*,
		status: Optional[BookingStatus] = None,
		upcoming: bool = False,
		page: int = 1,
		limit: int = 20,
		now: Optional[datetime] = None,
	) -> BookingPage:
		page = max(1, page)
		limit = max(1, min(limit, 50))
		items, total = await self.repo.list_for_party(
			parse_party_id(user.id),
			Role(user.role),
			status=status,
			starts_after=(now or datetime.now(timezone.utc)) if upcoming else None,
			exclude_absorbed=upcoming,
			limit=limit,
			offset=(page - 1) * limit,
		)
		return BookingPage(items=items, total=total, page=page, limit=limit)

	async def upcoming(
		self,
		user: AuthenticatedUser,
		*,
		days: Optional[int] = None,
		now: Optional[datetime] = None,
	) -> list[Booking]:
		now = now or datetime.now(timezone.utc)
		horizon = max(1, days or settings.upcoming_days_default)
		items, _ = await self.repo.list_for_party(
			parse_party_id(user.id),
			Role(user.role),
			starts_after=now,
			starts_before=now + timedelta(days=horizon),
			exclude_absorbed=True,
			limit=200,
		)
		return items

	async def calendar(self, user: AuthenticatedUser, start: date, end: date) -> "OrderedDict[str, list[Booking]]":
		"""Bookings between two dates, grouped by gig date in ascending order."""
		if end < start:
			raise ValidationError("invalid_date_range")
		items, _ = await self.repo.list_for_party(
			parse_party_id(user.id),
			Role(user.role),
			starts_after=datetime.combine(start, time(0), tzinfo=timezone.utc),
			starts_before=datetime.combine(end + timedelta(days=1), time(0), tzinfo=timezone.utc),
			limit=500,
		)
		grouped: "OrderedDict[str, list[Booking]]" = OrderedDict()
		for booking in sorted(items, key=lambda b: (b.gig_date, b.starts_at)):
			grouped.setdefault(booking.gig_date.isoformat(), []).append(booking)
		return grouped

	# --- Creation ---------------------------------------------------------

	async def book_from_match(
		self,
		user: AuthenticatedUser,
		match_id: UUID,
		terms: BookingTerms,
		*,
		now: Optional[datetime] = None,
	) -> Booking:
		"""Turn an active match into a pending booking with the creator's confirmation set."""
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		if terms.agreed_amount < 0:
			raise ValidationError("invalid_amount")
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				match = await self.matches.get(match_id, conn=conn, for_update=True)
				if match is None:
					raise NotFoundError("match_not_found")
				role = match.role_of(actor_id)
				if role is None:
					raise ForbiddenError("not_match_party")
				if match.status is not MatchStatus.ACTIVE:
					raise InvalidStateError("match_not_active")
				starts_at, ends_at = schedule_window(terms.gig_date, terms.start_time, terms.end_time)
				deposit = terms.deposit_amount
				if deposit is None:
					deposit = deposit_for(terms.agreed_amount, settings.default_deposit_ratio)
				elif deposit < 0 or deposit > terms.agreed_amount:
					raise ValidationError("invalid_deposit")
				booking = await self.repo.insert(
					conn,
					performer_id=match.performer_id,
					venue_id=match.venue_id,
					title=terms.title,
					gig_date=terms.gig_date,
					starts_at=starts_at,
					ends_at=ends_at,
					agreed_amount=terms.agreed_amount,
					currency=terms.currency or settings.default_currency,
					deposit_amount=deposit,
					creator_role=role,
					now=now,
					match_id=match.id,
					special_requests=terms.special_requests,
				)
				converted = await self.matches.convert_to_booking(
					conn, match.id, booking.id, notify_role=role.opposite, now=now
				)
		obs_metrics.inc_booking_transition("create", booking.status.value)
		obs_metrics.inc_match_status(MatchStatus.CONVERTED.value)
		logger.info("booking created from match", extra={"match_id": str(match.id), "booking_id": str(booking.id)})
		await match_events.publish(match_events.MATCH_CONVERTED, converted)
		await self.notifications.notify(
			booking.counterpart(role),
			BOOKING_REQUEST,
			title="New booking request",
			body=f'You have a new booking request for "{booking.title}".',
			deep_link=f"/bookings/{booking.id}",
		)
		return booking

	# --- Lifecycle --------------------------------------------------------

	async def _mutate(
		self,
		booking_id: UUID,
		action: str,
		apply: Callable[[Booking], object],
	) -> tuple[Booking, object]:
		"""Run ``apply`` against the locked row and persist it when it changed."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				booking = await self.repo.get(booking_id, conn=conn, for_update=True)
				if booking is None:
					raise NotFoundError("booking_not_found")
				before = booking.mutable_columns()
				result = apply(booking)
				if booking.mutable_columns() != before:
					booking = await self.repo.save(conn, booking)
					obs_metrics.inc_booking_transition(action, booking.status.value)
		return booking, result

	async def confirm(self, user: AuthenticatedUser, booking_id: UUID, *, now: Optional[datetime] = None) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, changed = await self._mutate(booking_id, "confirm", lambda b: lifecycle.confirm(b, actor_id, now))
		if changed:
			role = booking.role_of(actor_id)
			await self.notifications.notify(
				booking.counterpart(role),
				BOOKING_CONFIRMATION,
				title="Booking confirmed" if booking.status is BookingStatus.CONFIRMED else "Booking update",
				body=f'"{booking.title}" was confirmed by the other party.',
				deep_link=f"/bookings/{booking.id}",
			)
		return booking

	async def start(self, user: AuthenticatedUser, booking_id: UUID, *, now: Optional[datetime] = None) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, _ = await self._mutate(booking_id, "start", lambda b: lifecycle.start(b, actor_id, now))
		return booking

	async def mark_complete(self, user: AuthenticatedUser, booking_id: UUID, *, now: Optional[datetime] = None) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, completed = await self._mutate(
			booking_id, "complete", lambda b: lifecycle.mark_complete(b, actor_id, now)
		)
		if completed:
			for party_id in (booking.performer_id, booking.venue_id):
				await self.notifications.notify(
					party_id,
					REVIEW_PROMPT,
					title="How did it go?",
					body=f'Leave a review for "{booking.title}".',
					deep_link=f"/bookings/{booking.id}/review",
				)
		return booking

	async def cancel(
		self,
		user: AuthenticatedUser,
		booking_id: UUID,
		*,
		reason: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, _ = await self._mutate(booking_id, "cancel", lambda b: lifecycle.cancel(b, actor_id, reason, now))
		if booking.refund_owed:
			logger.info(
				"booking cancelled with refund owed",
				extra={"booking_id": str(booking.id), "refund_amount": str(booking.refund_amount)},
			)
		await self.notifications.notify(
			booking.counterpart(booking.role_of(actor_id)),
			GIG_CANCELLED,
			title="Booking cancelled",
			body=f'"{booking.title}" has been cancelled.' + (f" Reason: {reason}" if reason else ""),
			deep_link=f"/bookings/{booking.id}",
		)
		return booking

	async def dispute(
		self,
		user: AuthenticatedUser,
		booking_id: UUID,
		*,
		reason: str,
		now: Optional[datetime] = None,
	) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, _ = await self._mutate(booking_id, "dispute", lambda b: lifecycle.dispute(b, actor_id, reason, now))
		await self.notifications.notify(
			booking.counterpart(booking.role_of(actor_id)),
			BOOKING_DISPUTED,
			title="Booking disputed",
			body=f'"{booking.title}" has been disputed.',
			deep_link=f"/bookings/{booking.id}",
		)
		return booking

	# --- Payments ---------------------------------------------------------

	async def create_payment_intent(
		self,
		user: AuthenticatedUser,
		booking_id: UUID,
		kind: str,
		*,
		now: Optional[datetime] = None,
	) -> PaymentIntentResult:
		"""Ask the gateway for an intent and store its reference on the booking.

		The gateway call runs outside the row lock; the transition is checked
		again under the lock before the reference is stored.
		"""
		_validate_kind(kind)
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		current = await self.repo.get(booking_id)
		if current is None:
			raise NotFoundError("booking_not_found")
		amount = lifecycle.begin_payment(current, actor_id, kind)
		try:
			intent = await self.gateway.create_payment_intent(
				amount=amount,
				currency=current.currency,
				metadata={"booking_id": str(current.id), "kind": kind},
				idempotency_key=f"booking:{current.id}:{kind}:{to_minor_units(amount)}",
			)
		except PaymentGatewayError as exc:
			logger.warning(
				"payment intent creation failed",
				extra={"booking_id": str(current.id), "kind": kind, "error": exc.detail},
			)
			raise InternalError("payment_gateway_error") from exc

		def _attach(booking: Booking) -> None:
			if lifecycle.begin_payment(booking, actor_id, kind) != amount:
				raise InvalidStateError("amount_changed")
			lifecycle.attach_intent(booking, kind, intent.id, amount, now)

		booking, _ = await self._mutate(booking_id, f"{kind}_intent", _attach)
		return PaymentIntentResult(
			booking=booking,
			intent_id=intent.id,
			client_secret=intent.client_secret,
			amount=amount,
			kind=kind,
		)

	async def confirm_payment(
		self,
		user: AuthenticatedUser,
		booking_id: UUID,
		kind: str,
		intent_id: str,
		*,
		now: Optional[datetime] = None,
	) -> Booking:
		"""Apply a payer-reported payment once the gateway reports it succeeded."""
		_validate_kind(kind)
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		current = await self.get_booking(user, booking_id)
		stored = current.payment.deposit_intent_id if kind == lifecycle.DEPOSIT else current.payment.final_intent_id
		if stored != intent_id:
			raise InvalidStateError("intent_mismatch")
		try:
			status = await self.gateway.retrieve_status(intent_id)
		except PaymentGatewayError as exc:
			raise InternalError("payment_gateway_error") from exc
		if status != SUCCEEDED:
			raise InvalidStateError("payment_not_succeeded")
		booking, changed = await self._mutate(
			booking_id,
			f"{kind}_paid",
			lambda b: lifecycle.confirm_payment(b, kind, intent_id, now, actor_id=actor_id),
		)
		if changed:
			await self._payment_received(booking, kind)
		return booking

	async def handle_gateway_event(
		self,
		intent_id: str,
		status: str,
		*,
		now: Optional[datetime] = None,
	) -> Optional[Booking]:
		"""Apply a signed gateway callback; unknown intents and non-success states are ignored."""
		if status != SUCCEEDED:
			logger.info("ignoring gateway event", extra={"intent_id": intent_id, "status": status})
			return None
		now = now or datetime.now(timezone.utc)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				booking = await self.repo.find_by_intent(conn, intent_id)
				if booking is None:
					logger.warning("gateway event for unknown intent", extra={"intent_id": intent_id})
					return None
				kind = lifecycle.DEPOSIT if booking.payment.deposit_intent_id == intent_id else lifecycle.FINAL
				changed = lifecycle.confirm_payment(booking, kind, intent_id, now)
				if changed:
					booking = await self.repo.save(conn, booking)
					obs_metrics.inc_booking_transition(f"{kind}_paid", booking.status.value)
		if changed:
			await self._payment_received(booking, kind)
		return booking

	async def _payment_received(self, booking: Booking, kind: str) -> None:
		label = "Deposit" if kind == lifecycle.DEPOSIT else "Final payment"
		await self.notifications.notify(
			booking.performer_id,
			PAYMENT_RECEIVED,
			title=f"{label} received",
			body=f'{label} for "{booking.title}" has been paid.',
			deep_link=f"/bookings/{booking.id}",
		)

	# --- Contracts --------------------------------------------------------

	async def upload_contract(
		self,
		user: AuthenticatedUser,
		booking_id: UUID,
		contract_url: str,
		*,
		now: Optional[datetime] = None,
	) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, _ = await self._mutate(
			booking_id, "contract_upload", lambda b: lifecycle.upload_contract(b, actor_id, contract_url, now)
		)
		return booking

	async def sign_contract(self, user: AuthenticatedUser, booking_id: UUID, *, now: Optional[datetime] = None) -> Booking:
		actor_id = parse_party_id(user.id)
		now = now or datetime.now(timezone.utc)
		booking, _ = await self._mutate(booking_id, "contract_sign", lambda b: lifecycle.sign_contract(b, actor_id, now))
		return booking
