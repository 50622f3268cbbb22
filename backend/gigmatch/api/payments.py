"""Signed payment-gateway callbacks."""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from gigmatch.api.bookings import get_service
from gigmatch.domain.bookings.service import BookingService
from gigmatch.domain.exceptions import InvalidStateError
from gigmatch.infra.payments import verify_webhook_signature
from gigmatch.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

_INTENT_EVENTS = ("payment_intent.succeeded", "payment_intent.payment_failed", "payment_intent.canceled")


@router.post("/webhook")
async def payment_webhook(
	request: Request,
	signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
	service: BookingService = Depends(get_service),
) -> dict[str, str]:
	if not settings.payments_webhook_secret:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="webhook_not_configured")
	body = await request.body()
	if not verify_webhook_signature(body, signature, settings.payments_webhook_secret):
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_signature")
	try:
		event = json.loads(body)
		event_type = str(event["type"])
		intent = event["data"]["object"]
	except (ValueError, KeyError, TypeError) as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_payload") from exc
	if event_type not in _INTENT_EVENTS:
		return {"status": "ignored"}
	try:
		booking = await service.handle_gateway_event(str(intent["id"]), str(intent.get("status") or ""))
	except InvalidStateError as exc:
		# Acknowledge so the gateway stops redelivering; the booking moved on.
		logger.warning("gateway event rejected", extra={"intent_id": str(intent.get("id")), "reason": exc.reason})
		return {"status": "ignored"}
	return {"status": "applied" if booking is not None else "ignored"}
