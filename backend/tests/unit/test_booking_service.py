from __future__ import annotations

from datetime import date, time, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from engine_fakes import NOW, FakeBookingRepo, FakeGateway, FakeMatchRepo, FakeNotificationStore
from gigmatch.domain.bookings.models import BookingStatus
from gigmatch.domain.bookings.service import BookingService, BookingTerms
from gigmatch.domain.exceptions import (
	ForbiddenError,
	InternalError,
	InvalidStateError,
	NotFoundError,
	ValidationError,
)
from gigmatch.domain.matches.models import MATCHES_STREAM, Match, MatchStatus, pair_key
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.profiles.models import Role
from gigmatch.infra import payments
from gigmatch.infra.auth import AuthenticatedUser
from gigmatch.settings import settings


@pytest.fixture
def ctx(fake_pool):
	performer_id, venue_id = uuid4(), uuid4()
	matches = FakeMatchRepo()
	match = matches.add(
		Match(
			id=uuid4(),
			performer_id=performer_id,
			venue_id=venue_id,
			pair_key=pair_key(performer_id, venue_id),
			initiated_by=Role.PERFORMER,
			status=MatchStatus.ACTIVE,
			performer_unread=0,
			venue_unread=0,
			created_at=NOW,
			last_activity_at=NOW,
		)
	)
	store = FakeNotificationStore()
	gateway = FakeGateway()
	service = BookingService(
		repository=FakeBookingRepo(),
		matches=matches,
		notifications=NotificationDispatcher(store),
		gateway=gateway,
	)
	return {
		"service": service,
		"match": match,
		"store": store,
		"gateway": gateway,
		"performer": AuthenticatedUser(id=str(performer_id), role="performer"),
		"venue": AuthenticatedUser(id=str(venue_id), role="venue"),
	}


def _terms(**overrides) -> BookingTerms:
	data = dict(
		title="Friday jazz night",
		gig_date=date(2026, 5, 8),
		agreed_amount=Decimal("1000.00"),
		start_time=time(21, 0),
		end_time=time(1, 0),
	)
	data.update(overrides)
	return BookingTerms(**data)


async def _confirmed(ctx):
	service = ctx["service"]
	booking = await service.book_from_match(ctx["venue"], ctx["match"].id, _terms(), now=NOW)
	return await service.confirm(ctx["performer"], booking.id, now=NOW)


@pytest.mark.asyncio
async def test_book_from_match_creates_pending_booking(ctx, fake_redis):
	booking = await ctx["service"].book_from_match(ctx["venue"], ctx["match"].id, _terms(), now=NOW)
	assert booking.status is BookingStatus.PENDING
	assert booking.confirmation.venue and not booking.confirmation.performer
	assert booking.payment.deposit_amount == Decimal("250.00")
	assert booking.currency == settings.default_currency
	assert booking.ends_at - booking.starts_at == timedelta(hours=4)
	match = ctx["match"]
	assert match.status is MatchStatus.CONVERTED
	assert match.booking_id == booking.id
	assert match.performer_unread == 1
	assert ctx["store"].sent == [(booking.performer_id, "booking_request")]
	assert await fake_redis.xlen(MATCHES_STREAM) == 1


@pytest.mark.asyncio
async def test_book_from_match_guards(ctx):
	service = ctx["service"]
	outsider = AuthenticatedUser(id=str(uuid4()), role="venue")
	with pytest.raises(ForbiddenError):
		await service.book_from_match(outsider, ctx["match"].id, _terms(), now=NOW)
	with pytest.raises(NotFoundError):
		await service.book_from_match(ctx["venue"], uuid4(), _terms(), now=NOW)
	with pytest.raises(ValidationError) as excinfo:
		await service.book_from_match(ctx["venue"], ctx["match"].id, _terms(deposit_amount=Decimal("1200")), now=NOW)
	assert excinfo.value.reason == "invalid_deposit"
	await service.book_from_match(ctx["performer"], ctx["match"].id, _terms(), now=NOW)
	with pytest.raises(InvalidStateError) as excinfo:
		await service.book_from_match(ctx["venue"], ctx["match"].id, _terms(), now=NOW)
	assert excinfo.value.reason == "match_not_active"


@pytest.mark.asyncio
async def test_confirm_is_idempotent(ctx):
	service = ctx["service"]
	booking = await _confirmed(ctx)
	assert booking.status is BookingStatus.CONFIRMED
	saves = service.repo.saves
	again = await service.confirm(ctx["performer"], booking.id, now=NOW + timedelta(minutes=1))
	assert again.status is BookingStatus.CONFIRMED
	assert service.repo.saves == saves
	assert [kind for _, kind in ctx["store"].sent].count("booking_confirmation") == 1


@pytest.mark.asyncio
async def test_deposit_flow_through_payer_confirmation(ctx):
	service, gateway = ctx["service"], ctx["gateway"]
	booking = await _confirmed(ctx)

	with pytest.raises(ForbiddenError):
		await service.create_payment_intent(ctx["performer"], booking.id, "deposit", now=NOW)

	result = await service.create_payment_intent(ctx["venue"], booking.id, "deposit", now=NOW)
	assert result.amount == Decimal("250.00")
	assert result.booking.payment.deposit_intent_id == result.intent_id
	assert gateway.created[0]["idempotency_key"] == f"booking:{booking.id}:deposit:25000"

	with pytest.raises(InvalidStateError) as excinfo:
		await service.confirm_payment(ctx["venue"], booking.id, "deposit", "pi_other", now=NOW)
	assert excinfo.value.reason == "intent_mismatch"

	gateway.status = "processing"
	with pytest.raises(InvalidStateError) as excinfo:
		await service.confirm_payment(ctx["venue"], booking.id, "deposit", result.intent_id, now=NOW)
	assert excinfo.value.reason == "payment_not_succeeded"

	gateway.status = "succeeded"
	paid = await service.confirm_payment(ctx["venue"], booking.id, "deposit", result.intent_id, now=NOW)
	assert paid.status is BookingStatus.DEPOSIT_PAID
	assert (paid.performer_id, "payment_received") in ctx["store"].sent


@pytest.mark.asyncio
async def test_gateway_events_settle_final_payment_once(ctx):
	service = ctx["service"]
	booking = await _confirmed(ctx)
	deposit = await service.create_payment_intent(ctx["venue"], booking.id, "deposit", now=NOW)
	await service.handle_gateway_event(deposit.intent_id, "succeeded", now=NOW)
	final = await service.create_payment_intent(ctx["venue"], booking.id, "final", now=NOW)
	assert final.amount == Decimal("750.00")

	assert await service.handle_gateway_event(final.intent_id, "processing", now=NOW) is None
	settled = await service.handle_gateway_event(final.intent_id, "succeeded", now=NOW)
	assert settled.status is BookingStatus.PAID
	assert settled.payment.paid_total() == Decimal("1000.00")

	sent_before = len(ctx["store"].sent)
	replay = await service.handle_gateway_event(final.intent_id, "succeeded", now=NOW)
	assert replay.status is BookingStatus.PAID
	assert len(ctx["store"].sent) == sent_before
	assert await service.handle_gateway_event("pi_unknown", "succeeded", now=NOW) is None


@pytest.mark.asyncio
async def test_cancel_after_deposit_owes_refund(ctx):
	service = ctx["service"]
	booking = await _confirmed(ctx)
	deposit = await service.create_payment_intent(ctx["venue"], booking.id, "deposit", now=NOW)
	await service.handle_gateway_event(deposit.intent_id, "succeeded", now=NOW)
	cancelled = await service.cancel(ctx["performer"], booking.id, reason="Double booked", now=NOW)
	assert cancelled.status is BookingStatus.CANCELLED
	assert cancelled.cancelled_by is Role.PERFORMER
	assert cancelled.refund_owed
	assert cancelled.refund_amount == Decimal("250.00")
	assert (cancelled.venue_id, "gig_cancelled") in ctx["store"].sent
	with pytest.raises(InvalidStateError) as excinfo:
		await service.create_payment_intent(ctx["venue"], booking.id, "final", now=NOW)
	assert excinfo.value.reason == "booking_cancelled"


@pytest.mark.asyncio
async def test_completion_prompts_both_parties_for_review(ctx):
	service = ctx["service"]
	booking = await _confirmed(ctx)
	deposit = await service.create_payment_intent(ctx["venue"], booking.id, "deposit", now=NOW)
	await service.handle_gateway_event(deposit.intent_id, "succeeded", now=NOW)
	started = await service.start(ctx["venue"], booking.id, now=NOW)
	assert started.status is BookingStatus.IN_PROGRESS
	half = await service.mark_complete(ctx["performer"], booking.id, now=NOW)
	assert half.status is BookingStatus.IN_PROGRESS
	done = await service.mark_complete(ctx["venue"], booking.id, now=NOW)
	assert done.status is BookingStatus.COMPLETED
	prompts = [party for party, kind in ctx["store"].sent if kind == "review_prompt"]
	assert sorted(prompts) == sorted([done.performer_id, done.venue_id])


@pytest.mark.asyncio
async def test_contract_signing_through_service(ctx):
	service = ctx["service"]
	booking = await _confirmed(ctx)
	await service.upload_contract(ctx["venue"], booking.id, "https://files.test/contract.pdf", now=NOW)
	await service.sign_contract(ctx["venue"], booking.id, now=NOW)
	signed = await service.sign_contract(ctx["performer"], booking.id, now=NOW)
	assert signed.contract_signed
	assert signed.contract_signed_at == NOW


@pytest.mark.asyncio
async def test_outsiders_cannot_read_bookings(ctx):
	booking = await _confirmed(ctx)
	outsider = AuthenticatedUser(id=str(uuid4()), role="performer")
	with pytest.raises(ForbiddenError):
		await ctx["service"].get_booking(outsider, booking.id)
	with pytest.raises(NotFoundError):
		await ctx["service"].get_booking(ctx["venue"], uuid4())


@pytest.mark.asyncio
async def test_calendar_groups_by_gig_date(ctx):
	service = ctx["service"]
	await service.book_from_match(ctx["venue"], ctx["match"].id, _terms(), now=NOW)
	grouped = await service.calendar(ctx["venue"], date(2026, 5, 1), date(2026, 5, 31))
	assert list(grouped) == ["2026-05-08"]
	assert await service.calendar(ctx["venue"], date(2026, 6, 1), date(2026, 6, 30)) == {}
	with pytest.raises(ValidationError):
		await service.calendar(ctx["venue"], date(2026, 5, 31), date(2026, 5, 1))


@pytest.mark.asyncio
async def test_upcoming_skips_cancelled_bookings(ctx):
	service = ctx["service"]
	booking = await service.book_from_match(ctx["venue"], ctx["match"].id, _terms(), now=NOW)
	assert [b.id for b in await service.upcoming(ctx["performer"], now=NOW)] == [booking.id]
	await service.cancel(ctx["venue"], booking.id, now=NOW)
	assert await service.upcoming(ctx["performer"], now=NOW) == []


@pytest.mark.asyncio
async def test_missing_gateway_configuration_is_internal(ctx, monkeypatch):
	booking = await _confirmed(ctx)
	monkeypatch.setattr(settings, "payments_secret_key", None)
	payments.set_gateway(None)
	service = BookingService(repository=ctx["service"].repo, matches=ctx["service"].matches)
	with pytest.raises(InternalError) as excinfo:
		await service.create_payment_intent(ctx["venue"], booking.id, "deposit", now=NOW)
	assert excinfo.value.reason == "payments_unavailable"
