from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from engine_fakes import FakeBookingRepo, FakeDirectory, FakeGigRepo, FakeNotificationStore
from gigmatch.api import gigs
from gigmatch.domain.gigs.service import GigService
from gigmatch.domain.notifications import NotificationDispatcher
from gigmatch.domain.profiles.models import Party, Role
from gigmatch.main import app


@pytest.fixture
def ctx(fake_pool):
	now = datetime.now(timezone.utc)
	venue = Party(
		id=uuid4(),
		role=Role.VENUE,
		display_name="Harbour Hall",
		visible=True,
		setup_complete=True,
		accepting_bookings=True,
		created_at=now,
		latitude=45.5,
		longitude=-73.57,
	)
	service = GigService(
		repository=FakeGigRepo(),
		bookings=FakeBookingRepo(),
		notifications=NotificationDispatcher(FakeNotificationStore()),
		directory=FakeDirectory(venue),
	)
	app.dependency_overrides[gigs.get_service] = lambda: service
	try:
		yield {
			"venue": {"X-User-Id": str(venue.id), "X-User-Role": "venue"},
			"performer": {"X-User-Id": str(uuid4()), "X-User-Role": "performer"},
			"gig_date": (now.date() + timedelta(days=30)).isoformat(),
		}
	finally:
		app.dependency_overrides.pop(gigs.get_service, None)


@pytest.mark.asyncio
async def test_posted_gig_flows_into_a_booking(api_client, ctx):
	created = await api_client.post(
		"/gigs",
		json={
			"title": "  Friday residency ",
			"gig_date": ctx["gig_date"],
			"budget": "800",
			"currency": "cad",
			"required_genres": ["Jazz", " soul "],
			"publish": True,
		},
		headers=ctx["venue"],
	)
	assert created.status_code == 201
	gig = created.json()
	assert gig["status"] == "open"
	assert gig["title"] == "Friday residency"
	assert gig["currency"] == "CAD"
	assert gig["required_genres"] == ["jazz", "soul"]

	applied = await api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=ctx["performer"])
	assert applied.status_code == 201
	application = applied.json()

	accepted = await api_client.post(
		f"/gigs/{gig['id']}/applications/{application['id']}/accept",
		headers=ctx["venue"],
	)
	assert accepted.status_code == 201
	assert accepted.json()["booking"]["status"] == "pending"
	assert accepted.json()["gig_status"] == "filled"

	listing = await api_client.get("/gigs/mine", headers=ctx["venue"])
	assert listing.status_code == 200
	assert listing.json()["total"] == 1
	assert [item["id"] for item in listing.json()["items"]] == [gig["id"]]
	assert (await api_client.get("/gigs/mine", params={"status": "draft"}, headers=ctx["venue"])).json()["items"] == []


@pytest.mark.asyncio
async def test_gig_posting_errors(api_client, ctx):
	denied = await api_client.post(
		"/gigs", json={"title": "Busking", "gig_date": ctx["gig_date"]}, headers=ctx["performer"]
	)
	assert denied.status_code == 403

	past = await api_client.post(
		"/gigs", json={"title": "Last week", "gig_date": "2020-01-01"}, headers=ctx["venue"]
	)
	assert past.status_code == 422
	assert past.json()["reason"] == "gig_date_in_past"
	assert past.json()["message"] == "The gig date cannot be in the past."

	missing = await api_client.post(f"/gigs/{uuid4()}/applications", json={}, headers=ctx["performer"])
	assert missing.status_code == 404
	assert missing.json()["message"] == "Gig not found."
