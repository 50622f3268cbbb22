"""Notification fan-out for engine events.

Delivery (push, email) belongs to the notification service; the engine
writes an inbox row and pushes it to connected clients. Callers invoke
``notify`` only after their transaction commits, and a failure here never
propagates back into the operation that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import UUID

from gigmatch.infra.postgres import connection
from gigmatch.infra.sockets import PartyNamespace
from gigmatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MATCH_CREATED = "match_created"
BOOKING_REQUEST = "booking_request"
BOOKING_CONFIRMATION = "booking_confirmation"
APPLICATION_ACCEPTED = "application_accepted"
APPLICATION_DECLINED = "application_declined"
GIG_CANCELLED = "gig_cancelled"
PAYMENT_RECEIVED = "payment_received"
REVIEW_PROMPT = "review_prompt"
BOOKING_DISPUTED = "booking_disputed"


@dataclass
class Notification:
	id: UUID
	recipient_id: UUID
	kind: str
	title: str
	body: str
	deep_link: Optional[str]
	created_at: datetime

	def to_dict(self) -> dict:
		return {
			"id": str(self.id),
			"recipient_id": str(self.recipient_id),
			"kind": self.kind,
			"title": self.title,
			"body": self.body,
			"deep_link": self.deep_link,
			"created_at": self.created_at.isoformat(),
		}


class NotificationStore(Protocol):
	async def create(
		self,
		*,
		recipient_id: UUID,
		kind: str,
		title: str,
		body: str,
		deep_link: Optional[str],
	) -> Notification:
		...


class NotificationRepository:
	async def create(
		self,
		*,
		recipient_id: UUID,
		kind: str,
		title: str,
		body: str,
		deep_link: Optional[str],
	) -> Notification:
		now = datetime.now(timezone.utc)
		async with connection() as conn:
			record = await conn.fetchrow(
				"""
				INSERT INTO notifications (recipient_id, kind, title, body, deep_link, created_at)
				VALUES ($1, $2, $3, $4, $5, $6)
				RETURNING id, recipient_id, kind, title, body, deep_link, created_at
				""",
				recipient_id,
				kind,
				title,
				body,
				deep_link,
				now,
			)
		return Notification(
			id=UUID(str(record["id"])),
			recipient_id=UUID(str(record["recipient_id"])),
			kind=record["kind"],
			title=record["title"],
			body=record["body"],
			deep_link=record["deep_link"],
			created_at=record["created_at"],
		)


class NotificationsNamespace(PartyNamespace):
	ack_event = "notifications:ack"

	def __init__(self) -> None:
		super().__init__("/notifications")


_namespace: NotificationsNamespace | None = None


def set_namespace(ns: NotificationsNamespace | None) -> None:
	global _namespace
	_namespace = ns


class NotificationDispatcher:
	def __init__(self, store: NotificationStore | None = None) -> None:
		self.store = store or NotificationRepository()

	async def notify(
		self,
		recipient_id: UUID,
		kind: str,
		*,
		title: str,
		body: str,
		deep_link: Optional[str] = None,
	) -> Optional[Notification]:
		try:
			notification = await self.store.create(
				recipient_id=recipient_id,
				kind=kind,
				title=title,
				body=body,
				deep_link=deep_link,
			)
			if _namespace is not None:
				await _namespace.emit_to_party(str(recipient_id), "notification:new", notification.to_dict())
		except Exception:
			obs_metrics.inc_notification(kind, "error")
			logger.exception("notification dispatch failed", extra={"kind": kind, "recipient": str(recipient_id)})
			return None
		obs_metrics.inc_notification(kind, "ok")
		return notification
