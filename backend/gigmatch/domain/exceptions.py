"""Error taxonomy shared by every engine component.

Each error carries an HTTP status, a stable ``code`` for clients and a
machine-readable ``reason`` describing the specific guard that failed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import status

# Client-facing text for each guard; reasons without an entry use the class default
MESSAGES: dict[str, str] = {
	"actor_not_found": "Your profile could not be found.",
	"application_not_found": "Application not found.",
	"booking_not_found": "Booking not found.",
	"decision_not_found": "Decision not found.",
	"gig_not_found": "Gig not found.",
	"match_not_found": "Match not found.",
	"target_not_found": "This profile is no longer available.",
	"already_applied": "You have already applied to this gig.",
	"already_decided": "You have already responded to this profile.",
	"not_applicant": "Only the applicant can do this.",
	"not_blocker": "Only the party who blocked this match can unblock it.",
	"not_booking_party": "You are not part of this booking.",
	"not_decision_author": "You can only undo your own decisions.",
	"not_gig_owner": "Only the venue that posted this gig can do this.",
	"not_match_party": "You are not part of this match.",
	"performers_only": "Only performers can do this.",
	"venues_only": "Only venues can do this.",
	"venue_only": "Only the venue can make payments for this booking.",
	"role_mismatch": "Your account role does not match this profile.",
	"venue_setup_incomplete": "Complete your venue setup before publishing gigs.",
	"match_unavailable": "The match could not be saved. Please try again.",
	"payment_gateway_error": "The payment provider could not be reached. Please try again.",
	"payments_unavailable": "Payments are not available right now.",
	"already_booked": "This match has already been turned into a booking.",
	"amount_changed": "The payment amount changed. Please request a new payment.",
	"application_not_pending": "This application has already been handled.",
	"contract_already_signed": "You have already signed this contract.",
	"contract_missing": "No contract has been uploaded for this booking.",
	"decision_matched": "Decisions that created a match cannot be undone.",
	"deposit_already_paid": "The deposit has already been paid.",
	"final_already_paid": "The final payment has already been made.",
	"gig_filled": "This gig has all the performers it needs.",
	"gig_not_accepting": "This gig is not accepting applications.",
	"intent_mismatch": "This payment does not belong to the booking.",
	"match_blocked": "This match is blocked.",
	"match_converted": "This match has already been converted to a booking.",
	"match_not_active": "Only active matches can be booked.",
	"not_completable": "This booking cannot be marked complete yet.",
	"not_confirmed": "Both parties must confirm the booking first.",
	"not_payable": "This booking cannot take that payment now.",
	"not_pending": "This booking is no longer awaiting confirmation.",
	"not_startable": "This booking cannot be started yet.",
	"payment_not_succeeded": "The payment has not gone through yet.",
	"undo_window_elapsed": "The time to undo this decision has passed.",
	"use_booking_conversion": "Create a booking from the match instead.",
	"booking_cancelled": "This booking was cancelled.",
	"booking_completed": "This booking is already completed.",
	"booking_disputed": "This booking is under dispute.",
	"decision_quota_exhausted": "Daily decision limit reached.",
	"undo_quota_exhausted": "Daily undo limit reached.",
	"feed_rate_limited": "Too many feed requests. Please slow down.",
	"agreed_amount_required": "An agreed amount is required to create the booking.",
	"invalid_amount": "The amount must be greater than zero.",
	"invalid_date_range": "The end date must not be before the start date.",
	"gig_date_in_past": "The gig date cannot be in the past.",
	"invalid_deposit": "The deposit must be between zero and the agreed amount.",
	"invalid_party_id": "The party id is not valid.",
	"invalid_payment_kind": "Payment kind must be deposit or final.",
}


class EngineError(Exception):
	"""Base class for engine errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	code: str = "engine_error"
	reason: str = "engine_error"
	default_message: str = "The request could not be completed."

	def __init__(self, reason: str | None = None, message: str | None = None) -> None:
		if reason:
			self.reason = reason
		self.message = message or MESSAGES.get(self.reason, self.default_message)
		super().__init__(self.message)

	def to_payload(self) -> dict[str, object]:
		return {"code": self.code, "reason": self.reason, "message": self.message}


class NotFoundError(EngineError):
	"""Entity absent or not visible to the caller."""

	status_code = status.HTTP_404_NOT_FOUND
	code = "not_found"
	reason = "not_found"
	default_message = "Not found."


class ConflictError(EngineError):
	"""Uniqueness violated (duplicate decision, application, match)."""

	status_code = status.HTTP_409_CONFLICT
	code = "conflict"
	reason = "conflict"
	default_message = "This conflicts with an existing record."


class ForbiddenError(EngineError):
	"""Actor not authorised for the entity or the operation."""

	status_code = status.HTTP_403_FORBIDDEN
	code = "forbidden"
	reason = "forbidden"
	default_message = "You are not allowed to do this."


class InvalidStateError(EngineError):
	"""Transition not allowed from the current state."""

	status_code = status.HTTP_409_CONFLICT
	code = "invalid_state"
	reason = "invalid_state"
	default_message = "This action is not allowed in the current state."


class ResourceExhaustedError(EngineError):
	"""A daily quota was exceeded."""

	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	code = "resource_exhausted"
	reason = "rate_limited"
	default_message = "Limit reached. Please try again later."

	def __init__(
		self,
		reason: str | None = None,
		message: str | None = None,
		*,
		reset_at: Optional[datetime] = None,
	) -> None:
		super().__init__(reason, message)
		self.reset_at = reset_at

	def to_payload(self) -> dict[str, object]:
		payload = super().to_payload()
		if self.reset_at is not None:
			payload["reset_at"] = self.reset_at.isoformat()
		return payload


class InternalError(EngineError):
	"""Storage or collaborator failure the caller may retry."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	code = "internal"
	reason = "internal"
	default_message = "Something went wrong. Please try again."


class ValidationError(EngineError):
	"""Input rejected by a domain rule not covered by schema validation."""

	status_code = 422
	code = "validation_error"
	reason = "validation_error"
	default_message = "The request is not valid."


# Domain guard failures that release a consumed quota slot
QUOTA_REFUNDABLE = (NotFoundError, ConflictError, ForbiddenError, InvalidStateError, ValidationError)
