from __future__ import annotations

import json
import logging

import pytest

from gigmatch.obs import logging as obs_logging
from gigmatch.settings import settings


def _record(msg: str = "booking_transition", level: int = logging.INFO, **extra) -> logging.LogRecord:
	record = logging.LogRecord("gigmatch.test", level, __file__, 1, msg, None, None)
	for key, value in extra.items():
		setattr(record, key, value)
	return record


def test_formatter_merges_context_and_redacts():
	token = obs_logging.bind_context(request_id="req-7", party_id="v-1", role=None)
	try:
		line = obs_logging.JSONLogFormatter().format(
			_record(
				booking_id="b-1",
				client_secret="pi_secret",
				lat=45.5,
				details={"latitude": 45.5, "city": "Montreal"},
				genres=[f"g{i}" for i in range(12)],
			)
		)
	finally:
		obs_logging.reset_context(token)

	payload = json.loads(line)
	assert payload["msg"] == "booking_transition"
	assert payload["request_id"] == "req-7"
	assert payload["party_id"] == "v-1"
	assert "role" not in payload
	assert payload["booking_id"] == "b-1"
	assert payload["client_secret"] == "[redacted]"
	assert payload["lat"] == "[redacted]"
	assert payload["details"] == {"latitude": "[redacted]", "city": "Montreal"}
	assert len(payload["genres"]) == 11
	assert obs_logging.current_request_id() is None


def test_sampling_keeps_lifecycle_lines_and_warnings():
	sampler = obs_logging.InfoSamplingFilter(rate=0.0)
	assert sampler.filter(_record(booking_id="b-1"))
	assert sampler.filter(_record(level=logging.WARNING))
	assert not sampler.filter(_record("http_request"))


@pytest.mark.asyncio
async def test_metrics_endpoint_requires_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "ops-token")

	denied = await api_client.get("/metrics")
	assert denied.status_code == 403

	allowed = await api_client.get("/metrics", headers={"Authorization": "Bearer ops-token"})
	assert allowed.status_code == 200
	assert "gigmatch" in allowed.text
