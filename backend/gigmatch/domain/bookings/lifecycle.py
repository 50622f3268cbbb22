"""Booking state machine.

Pure functions over an in-memory ``Booking``: each checks that the actor is a
party to the booking before any other guard, validates the transition, and
mutates the booking in place. Persistence and row locking belong to the
service. Status only ever moves forward along ``PROGRESSION``; cancelled and
disputed absorb everything.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from gigmatch.domain.bookings.models import PROGRESSION, Booking, BookingStatus
from gigmatch.domain.exceptions import ForbiddenError, InvalidStateError
from gigmatch.domain.profiles.models import Role

DEPOSIT = "deposit"
FINAL = "final"

_COMPLETABLE = frozenset({BookingStatus.DEPOSIT_PAID, BookingStatus.PAID, BookingStatus.IN_PROGRESS})
_STARTABLE = frozenset({BookingStatus.DEPOSIT_PAID, BookingStatus.PAID})
_FINAL_PAYABLE = frozenset({BookingStatus.CONFIRMED, BookingStatus.DEPOSIT_PAID, BookingStatus.IN_PROGRESS})


def party_role(booking: Booking, actor_id: UUID) -> Role:
	role = booking.role_of(actor_id)
	if role is None:
		raise ForbiddenError("not_booking_party")
	return role


def _require_live(booking: Booking) -> None:
	if booking.is_terminal:
		raise InvalidStateError(f"booking_{booking.status.value}")


def _advance(booking: Booking, target: BookingStatus, now: datetime) -> None:
	if PROGRESSION.index(target) > PROGRESSION.index(booking.status):
		booking.status = target
	booking.updated_at = now


def confirm(booking: Booking, actor_id: UUID, now: datetime) -> bool:
	"""Record the actor's confirmation; both sides confirmed moves to confirmed."""
	role = party_role(booking, actor_id)
	_require_live(booking)
	if booking.confirmation.is_set(role):
		return False
	if booking.status is not BookingStatus.PENDING:
		raise InvalidStateError("not_pending")
	booking.confirmation.set(role, now)
	booking.updated_at = now
	if booking.confirmation.both:
		_advance(booking, BookingStatus.CONFIRMED, now)
	return True


def begin_payment(booking: Booking, actor_id: UUID, kind: str) -> Decimal:
	"""Validate an intent request and return the amount to charge."""
	role = party_role(booking, actor_id)
	if role is not Role.VENUE:
		raise ForbiddenError("venue_only")
	_require_live(booking)
	payment = booking.payment
	if kind == DEPOSIT:
		if payment.deposit_paid:
			raise InvalidStateError("deposit_already_paid")
		if booking.status is not BookingStatus.CONFIRMED:
			raise InvalidStateError("not_confirmed")
		return payment.deposit_amount
	if payment.final_paid:
		raise InvalidStateError("final_already_paid")
	if booking.status not in _FINAL_PAYABLE:
		raise InvalidStateError("not_payable")
	return remaining_amount(booking)


def remaining_amount(booking: Booking) -> Decimal:
	"""Agreed amount less the deposit share, whether or not the deposit was collected."""
	return booking.agreed_amount - booking.payment.deposit_amount


def attach_intent(booking: Booking, kind: str, intent_id: str, amount: Decimal, now: datetime) -> None:
	if kind == DEPOSIT:
		booking.payment.deposit_intent_id = intent_id
	else:
		booking.payment.final_intent_id = intent_id
		booking.payment.final_amount = amount
	booking.updated_at = now


def confirm_payment(
	booking: Booking,
	kind: str,
	intent_id: str,
	now: datetime,
	*,
	actor_id: Optional[UUID] = None,
) -> bool:
	"""Mark a milestone paid when the reported reference matches the stored one.

	``actor_id`` is None for gateway callbacks. Replaying an already applied
	reference is a no-op.
	"""
	if actor_id is not None:
		party_role(booking, actor_id)
	payment = booking.payment
	if kind == DEPOSIT:
		stored, paid = payment.deposit_intent_id, payment.deposit_paid
	else:
		stored, paid = payment.final_intent_id, payment.final_paid
	if paid and stored == intent_id:
		return False
	_require_live(booking)
	if paid:
		raise InvalidStateError(f"{kind}_already_paid")
	if not stored or stored != intent_id:
		raise InvalidStateError("intent_mismatch")
	if kind == DEPOSIT:
		if booking.status is not BookingStatus.CONFIRMED:
			raise InvalidStateError("not_confirmed")
		payment.deposit_paid = True
		payment.deposit_paid_at = now
		_advance(booking, BookingStatus.DEPOSIT_PAID, now)
	else:
		if booking.status not in _FINAL_PAYABLE:
			raise InvalidStateError("not_payable")
		payment.final_paid = True
		payment.final_paid_at = now
		_advance(booking, BookingStatus.PAID, now)
	return True


def start(booking: Booking, actor_id: UUID, now: datetime) -> bool:
	party_role(booking, actor_id)
	if booking.status is BookingStatus.IN_PROGRESS:
		return False
	_require_live(booking)
	if booking.status not in _STARTABLE:
		raise InvalidStateError("not_startable")
	_advance(booking, BookingStatus.IN_PROGRESS, now)
	return True


def mark_complete(booking: Booking, actor_id: UUID, now: datetime) -> bool:
	"""Record the actor's completion; returns True once the booking is completed."""
	role = party_role(booking, actor_id)
	_require_live(booking)
	if booking.status not in _COMPLETABLE:
		raise InvalidStateError("not_completable")
	if booking.completion.set(role, now):
		booking.updated_at = now
	if booking.completion.both:
		booking.status = BookingStatus.COMPLETED
		booking.completed_at = now
		booking.updated_at = now
		return True
	return False


def cancel(booking: Booking, actor_id: UUID, reason: Optional[str], now: datetime) -> None:
	role = party_role(booking, actor_id)
	_require_live(booking)
	booking.status = BookingStatus.CANCELLED
	booking.cancelled_by = role
	booking.cancelled_at = now
	booking.cancellation_reason = reason
	paid = booking.payment.paid_total()
	if paid > 0:
		booking.refund_owed = True
		booking.refund_amount = paid
	booking.updated_at = now


def dispute(booking: Booking, actor_id: UUID, reason: str, now: datetime) -> None:
	role = party_role(booking, actor_id)
	_require_live(booking)
	booking.status = BookingStatus.DISPUTED
	booking.disputed_by = role
	booking.disputed_at = now
	booking.dispute_reason = reason
	booking.updated_at = now


def upload_contract(booking: Booking, actor_id: UUID, contract_url: str, now: datetime) -> None:
	party_role(booking, actor_id)
	_require_live(booking)
	if booking.contract_signed:
		raise InvalidStateError("contract_already_signed")
	if booking.contract_url != contract_url:
		booking.signatures.clear()
	booking.contract_url = contract_url
	booking.updated_at = now


def sign_contract(booking: Booking, actor_id: UUID, now: datetime) -> bool:
	"""Record the actor's signature; returns True once both sides have signed."""
	role = party_role(booking, actor_id)
	_require_live(booking)
	if booking.signatures.is_set(role):
		return booking.contract_signed
	if not booking.contract_url:
		raise InvalidStateError("contract_missing")
	booking.signatures.set(role, now)
	booking.updated_at = now
	if booking.signatures.both and not booking.contract_signed:
		booking.contract_signed = True
		booking.contract_signed_at = now
	return booking.contract_signed
