"""Match lifecycle events for the chat subsystem and connected clients."""

from __future__ import annotations

import logging

from gigmatch.domain.matches import sockets
from gigmatch.domain.matches.models import MATCHES_STREAM, Match
from gigmatch.infra.redis import redis_client
from gigmatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

MATCH_CREATED = "match.created"
MATCH_CONVERTED = "match.converted"
MATCH_STATUS = "match.status"


def match_payload(match: Match) -> dict[str, str]:
	return {
		"match_id": str(match.id),
		"performer_id": str(match.performer_id),
		"venue_id": str(match.venue_id),
		"status": match.status.value,
		"initiated_by": match.initiated_by.value,
		"booking_id": str(match.booking_id) if match.booking_id else "",
		"last_activity_at": match.last_activity_at.isoformat(),
	}


async def publish(event: str, match: Match, **fields: str) -> None:
	"""Append to the matches stream and push to both parties.

	Runs after the owning transaction commits; failures are logged, never raised.
	"""
	payload = {"event": event, **match_payload(match), **fields}
	try:
		await redis_client.xadd_capped(MATCHES_STREAM, payload)
	except Exception:
		obs_metrics.inc_event_publish_failure(MATCHES_STREAM)
		logger.exception("match event publish failed", extra={"event": event, "match_id": str(match.id)})
	for party_id in (match.performer_id, match.venue_id):
		try:
			await sockets.emit_match_event(str(party_id), event, payload)
		except Exception:
			obs_metrics.inc_event_publish_failure("socket:/matches")
			logger.exception("match socket emit failed", extra={"event": event, "match_id": str(match.id)})
