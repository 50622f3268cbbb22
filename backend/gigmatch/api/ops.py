"""Health checks and the Prometheus scrape endpoint."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from gigmatch.obs import health
from gigmatch.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(admin_header: Optional[str], authorization: Optional[str]) -> str:
	if admin_header:
		return admin_header.strip()
	scheme, _, credential = (authorization or "").partition(" ")
	return credential.strip() if scheme.lower() == "bearer" else ""


async def scrape_guard(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None),
) -> None:
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if not hmac.compare_digest(_presented_token(x_admin_token, authorization), expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def live() -> dict:
	return await health.liveness()


@router.get("/health/ready")
async def ready() -> JSONResponse:
	code, body = await health.readiness()
	return JSONResponse(body, status_code=code)


@router.get("/metrics", dependencies=[Depends(scrape_guard)])
async def scrape() -> Response:
	return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
