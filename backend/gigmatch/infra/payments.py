"""Payment gateway client.

The engine never moves money itself: it asks the gateway for a payment
intent, stores only the opaque reference, and later reconciles the
reference reported back by the payer or the gateway webhook.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Mapping, Optional, Protocol

import httpx

from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class PaymentGatewayError(Exception):
	"""Raised when the gateway rejects a call or cannot be reached."""

	def __init__(self, operation: str, detail: str) -> None:
		super().__init__(f"{operation}: {detail}")
		self.operation = operation
		self.detail = detail


@dataclass(frozen=True)
class PaymentIntent:
	id: str
	client_secret: Optional[str]
	status: str


class PaymentGateway(Protocol):
	"""Interface for the external charge processor."""

	async def create_payment_intent(
		self,
		*,
		amount: Decimal,
		currency: str,
		metadata: Mapping[str, str],
		idempotency_key: str,
	) -> PaymentIntent:
		...

	async def retrieve_status(self, intent_id: str) -> str:
		...


def to_minor_units(amount: Decimal) -> int:
	return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class StripePaymentGateway(PaymentGateway):
	"""Stripe REST client over httpx.

	Intent creation is never retried; the idempotency key makes a caller-level
	retry safe. Status reads retry transient failures with exponential backoff.
	"""

	http: httpx.AsyncClient
	secret_key: str
	api_base: str = "https://api.stripe.com"
	request_timeout: float = 10.0
	status_retries: int = 3
	backoff_seconds: float = 0.5
	sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

	def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
		headers = {"Authorization": f"Bearer {self.secret_key}"}
		if idempotency_key:
			headers["Idempotency-Key"] = idempotency_key
		return headers

	async def create_payment_intent(
		self,
		*,
		amount: Decimal,
		currency: str,
		metadata: Mapping[str, str],
		idempotency_key: str,
	) -> PaymentIntent:
		form: dict[str, str] = {
			"amount": str(to_minor_units(amount)),
			"currency": currency.lower(),
			"automatic_payment_methods[enabled]": "true",
		}
		for key, value in metadata.items():
			form[f"metadata[{key}]"] = str(value)
		start = time.perf_counter()
		try:
			response = await self.http.post(
				f"{self.api_base}/v1/payment_intents",
				data=form,
				headers=self._headers(idempotency_key),
				timeout=self.request_timeout,
			)
		except httpx.HTTPError as exc:
			obs_metrics.observe_payment_call("create_intent", "error", time.perf_counter() - start)
			raise PaymentGatewayError("create_intent", type(exc).__name__) from exc
		elapsed = time.perf_counter() - start
		if response.status_code >= 400:
			obs_metrics.observe_payment_call("create_intent", str(response.status_code), elapsed)
			raise PaymentGatewayError("create_intent", f"status_{response.status_code}")
		obs_metrics.observe_payment_call("create_intent", "ok", elapsed)
		body = response.json()
		return PaymentIntent(
			id=str(body["id"]),
			client_secret=body.get("client_secret"),
			status=str(body.get("status") or "requires_payment_method"),
		)

	async def retrieve_status(self, intent_id: str) -> str:
		attempts = max(1, self.status_retries + 1)
		last_error = "unknown"
		for attempt in range(attempts):
			if attempt:
				await self.sleep(self.backoff_seconds * (2 ** (attempt - 1)))
			start = time.perf_counter()
			try:
				response = await self.http.get(
					f"{self.api_base}/v1/payment_intents/{intent_id}",
					headers=self._headers(),
					timeout=self.request_timeout,
				)
			except httpx.TransportError as exc:
				obs_metrics.observe_payment_call("retrieve", "error", time.perf_counter() - start)
				last_error = type(exc).__name__
				continue
			elapsed = time.perf_counter() - start
			if response.status_code in _RETRYABLE_STATUS:
				obs_metrics.observe_payment_call("retrieve", str(response.status_code), elapsed)
				last_error = f"status_{response.status_code}"
				continue
			if response.status_code >= 400:
				obs_metrics.observe_payment_call("retrieve", str(response.status_code), elapsed)
				raise PaymentGatewayError("retrieve", f"status_{response.status_code}")
			obs_metrics.observe_payment_call("retrieve", "ok", elapsed)
			return str(response.json().get("status") or "unknown")
		logger.warning("payment status poll exhausted", extra={"intent_id": intent_id, "error": last_error})
		raise PaymentGatewayError("retrieve", last_error)


def verify_webhook_signature(
	payload: bytes,
	header: Optional[str],
	secret: str,
	*,
	tolerance_seconds: int = 300,
	now: Optional[float] = None,
) -> bool:
	"""Check a ``t=<ts>,v1=<hex>`` signature header against the raw payload."""
	if not header:
		return False
	parts: dict[str, list[str]] = {}
	for chunk in header.split(","):
		if "=" not in chunk:
			continue
		key, value = chunk.split("=", 1)
		parts.setdefault(key.strip(), []).append(value.strip())
	timestamps = parts.get("t") or []
	signatures = parts.get("v1") or []
	if not timestamps or not signatures:
		return False
	try:
		ts = int(timestamps[0])
	except ValueError:
		return False
	current = now if now is not None else time.time()
	if abs(current - ts) > tolerance_seconds:
		return False
	signed = f"{ts}.".encode() + payload
	expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
	return any(hmac.compare_digest(expected, candidate) for candidate in signatures)


_gateway: Optional[PaymentGateway] = None
_http: Optional[httpx.AsyncClient] = None


def set_gateway(gateway: Optional[PaymentGateway]) -> None:
	global _gateway
	_gateway = gateway


def get_gateway() -> PaymentGateway:
	global _gateway, _http
	if _gateway is None:
		if not settings.payments_secret_key:
			raise PaymentGatewayError("configure", "payments_secret_key_missing")
		_http = httpx.AsyncClient()
		_gateway = StripePaymentGateway(
			http=_http,
			secret_key=settings.payments_secret_key,
			api_base=settings.payments_api_base,
			request_timeout=settings.payments_timeout_seconds,
			status_retries=settings.payments_status_retries,
			backoff_seconds=settings.payments_backoff_seconds,
		)
	return _gateway


async def close_gateway() -> None:
	global _gateway, _http
	if _http is not None:
		await _http.aclose()
		_http = None
	_gateway = None
