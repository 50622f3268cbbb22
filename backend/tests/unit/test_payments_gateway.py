from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from gigmatch.infra.payments import (
	PaymentGatewayError,
	StripePaymentGateway,
	to_minor_units,
	verify_webhook_signature,
)

SECRET = "whsec_test"


def _sign(payload: bytes, ts: int, secret: str = SECRET) -> str:
	digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
	return f"t={ts},v1={digest}"


def _gateway(handler, sleeps=None, retries=3) -> StripePaymentGateway:
	async def _sleep(seconds: float) -> None:
		if sleeps is not None:
			sleeps.append(seconds)

	return StripePaymentGateway(
		http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
		secret_key="sk_test",
		api_base="https://payments.test",
		status_retries=retries,
		backoff_seconds=0.5,
		sleep=_sleep,
	)


def test_minor_units_round_half_up():
	assert to_minor_units(Decimal("250.00")) == 25000
	assert to_minor_units(Decimal("10.005")) == 1001


@pytest.mark.asyncio
async def test_create_intent_sends_idempotency_key_and_amount():
	seen: list[httpx.Request] = []

	def handler(request: httpx.Request) -> httpx.Response:
		seen.append(request)
		return httpx.Response(200, json={"id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"})

	gateway = _gateway(handler)
	intent = await gateway.create_payment_intent(
		amount=Decimal("250.00"),
		currency="USD",
		metadata={"booking_id": "b-1", "kind": "deposit"},
		idempotency_key="booking:b-1:deposit:25000",
	)
	assert intent.id == "pi_123"
	assert intent.client_secret == "pi_123_secret"
	request = seen[0]
	assert request.url.path == "/v1/payment_intents"
	assert request.headers["Idempotency-Key"] == "booking:b-1:deposit:25000"
	assert request.headers["Authorization"] == "Bearer sk_test"
	form = parse_qs(request.content.decode())
	assert form["amount"] == ["25000"]
	assert form["currency"] == ["usd"]
	assert form["metadata[kind]"] == ["deposit"]


@pytest.mark.asyncio
async def test_create_intent_is_not_retried():
	calls = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(503)

	with pytest.raises(PaymentGatewayError) as excinfo:
		await _gateway(handler).create_payment_intent(
			amount=Decimal("10"), currency="usd", metadata={}, idempotency_key="k"
		)
	assert excinfo.value.detail == "status_503"
	assert len(calls) == 1


@pytest.mark.asyncio
async def test_status_read_retries_transient_failures_with_backoff():
	responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"status": "succeeded"})])
	sleeps: list[float] = []
	gateway = _gateway(lambda request: next(responses), sleeps=sleeps)
	assert await gateway.retrieve_status("pi_123") == "succeeded"
	assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_status_read_gives_up_after_retries():
	sleeps: list[float] = []
	gateway = _gateway(lambda request: httpx.Response(500), sleeps=sleeps, retries=2)
	with pytest.raises(PaymentGatewayError) as excinfo:
		await gateway.retrieve_status("pi_123")
	assert excinfo.value.detail == "status_500"
	assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_status_read_does_not_retry_client_errors():
	calls = []

	def handler(request: httpx.Request) -> httpx.Response:
		calls.append(request)
		return httpx.Response(404)

	with pytest.raises(PaymentGatewayError):
		await _gateway(handler).retrieve_status("pi_missing")
	assert len(calls) == 1


def test_webhook_signature_accepts_valid_payload():
	payload = b'{"type":"payment_intent.succeeded"}'
	assert verify_webhook_signature(payload, _sign(payload, 1_700_000_000), SECRET, now=1_700_000_100)


def test_webhook_signature_rejects_tampering_and_stale_timestamps():
	payload = b'{"type":"payment_intent.succeeded"}'
	header = _sign(payload, 1_700_000_000)
	assert not verify_webhook_signature(payload + b" ", header, SECRET, now=1_700_000_000)
	assert not verify_webhook_signature(payload, header, "other", now=1_700_000_000)
	assert not verify_webhook_signature(payload, header, SECRET, now=1_700_000_301)
	assert not verify_webhook_signature(payload, None, SECRET)
	assert not verify_webhook_signature(payload, "t=abc,v1=00", SECRET)
