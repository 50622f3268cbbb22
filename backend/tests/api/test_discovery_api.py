from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from engine_fakes import FakeDirectory, FakeLedger, FakeMatchRepo, FakeNotificationStore, FakeRetriever
from gigmatch.api import discovery
from gigmatch.domain.discovery import limits
from gigmatch.domain.discovery.limits import DecisionQuota
from gigmatch.domain.discovery.matching import MatchCoordinator
from gigmatch.domain.discovery.service import DiscoveryService
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.profiles.models import Party, Role
from gigmatch.main import app


def _party(role: Role) -> Party:
	return Party(
		id=uuid4(),
		role=role,
		display_name=role.value.title(),
		visible=True,
		setup_complete=True,
		accepting_bookings=True,
		created_at=datetime.now(timezone.utc) - timedelta(days=30),
		genres=["funk"],
	)


def _headers(party: Party) -> dict[str, str]:
	return {"X-User-Id": str(party.id), "X-User-Role": party.role.value}


@pytest.fixture
def world(fake_pool):
	performer, venue, other_venue = _party(Role.PERFORMER), _party(Role.VENUE), _party(Role.VENUE)
	ledger = FakeLedger()
	service = DiscoveryService(
		ledger=ledger,
		directory=FakeDirectory(performer, venue, other_venue),
		quota=DecisionQuota(
			{
				limits.DECISION: {Role.PERFORMER: 2, Role.VENUE: 2},
				limits.UNDO: {Role.PERFORMER: 1, Role.VENUE: 1},
			}
		),
		coordinator=MatchCoordinator(
			ledger=ledger,
			matches=FakeMatchRepo(),
			notifications=NotificationDispatcher(FakeNotificationStore()),
			retries=1,
		),
		retriever=FakeRetriever([]),
	)
	app.dependency_overrides[discovery.get_service] = lambda: service
	try:
		yield {"performer": performer, "venue": venue, "other_venue": other_venue}
	finally:
		app.dependency_overrides.pop(discovery.get_service, None)


@pytest.mark.asyncio
async def test_missing_credentials_are_rejected(api_client):
	resp = await api_client.get("/discovery/feed", headers={"X-Request-Id": "req-401"})
	assert resp.status_code == 401
	body = resp.json()
	assert body["code"] == "http_error"
	assert body["reason"] == "invalid_token"
	assert body["request_id"] == "req-401"


@pytest.mark.asyncio
async def test_reciprocal_decisions_report_a_match(api_client, world):
	performer, venue = world["performer"], world["venue"]
	first = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(venue.id), "direction": "positive"},
		headers=_headers(performer),
	)
	assert first.status_code == 201
	assert first.json()["outcome"] == "liked"
	assert first.json()["matched"] is False

	likes = await api_client.get("/discovery/likes", headers=_headers(venue))
	assert likes.status_code == 200
	assert [item["party_id"] for item in likes.json()] == [str(performer.id)]

	second = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(performer.id), "direction": "strong_positive"},
		headers=_headers(venue),
	)
	assert second.status_code == 201
	body = second.json()
	assert body["outcome"] == "matched"
	assert body["matched"] is True
	assert body["match_id"]


@pytest.mark.asyncio
async def test_quota_exhaustion_returns_429_with_reset(api_client, world):
	performer = world["performer"]
	for target in (world["venue"], world["other_venue"]):
		resp = await api_client.post(
			"/discovery/decisions",
			json={"target_id": str(target.id), "direction": "negative"},
			headers=_headers(performer),
		)
		assert resp.status_code == 201
	extra = _party(Role.VENUE)
	resp = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(extra.id), "direction": "negative"},
		headers={**_headers(performer), "X-Request-Id": "req-429"},
	)
	assert resp.status_code == 429
	body = resp.json()
	assert body["code"] == "resource_exhausted"
	assert body["reason"] == "decision_quota_exhausted"
	assert body["message"] == "Daily decision limit reached (2 per day)."
	assert body["request_id"] == "req-429"
	reset_at = datetime.fromisoformat(body["reset_at"])
	assert reset_at.hour == 0 and reset_at.minute == 0
	assert int(resp.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_undo_and_error_bodies(api_client, world):
	performer, venue = world["performer"], world["venue"]
	created = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(venue.id), "direction": "negative"},
		headers=_headers(performer),
	)
	decision_id = created.json()["decision_id"]

	forbidden = await api_client.post(f"/discovery/decisions/{decision_id}/undo", headers=_headers(venue))
	assert forbidden.status_code == 403
	assert forbidden.json()["reason"] == "not_decision_author"
	assert forbidden.json()["message"] == "You can only undo your own decisions."

	undone = await api_client.post(f"/discovery/decisions/{decision_id}/undo", headers=_headers(performer))
	assert undone.status_code == 204

	missing = await api_client.post(f"/discovery/decisions/{uuid4()}/undo", headers=_headers(venue))
	assert missing.status_code == 404
	assert missing.json()["reason"] == "decision_not_found"


@pytest.mark.asyncio
async def test_unknown_target_and_bad_direction(api_client, world):
	performer = world["performer"]
	unknown = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(uuid4()), "direction": "positive"},
		headers=_headers(performer),
	)
	assert unknown.status_code == 404
	assert unknown.json()["reason"] == "target_not_found"
	assert unknown.json()["message"] == "This profile is no longer available."

	invalid = await api_client.post(
		"/discovery/decisions",
		json={"target_id": str(world["venue"].id), "direction": "sideways"},
		headers=_headers(performer),
	)
	assert invalid.status_code == 422
	assert invalid.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_feed_returns_empty_page(api_client, world):
	resp = await api_client.get("/discovery/feed", params={"genres": ["funk"]}, headers=_headers(world["venue"]))
	assert resp.status_code == 200
	assert resp.json() == {"items": [], "total": 0, "page": 1, "limit": 20, "has_more": False}
