"""Request instrumentation: latency histogram plus one access log line per call."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from gigmatch.obs import logging as obs_logging
from gigmatch.obs import metrics
from gigmatch.settings import settings

_ACCESS_LOGGER = "gigmatch.http"


def _route_template(request: Request) -> str:
	# Templates keep the metric label set bounded (no raw booking ids)
	route = request.scope.get("route")
	path = getattr(route, "path", None)
	return path if path else request.url.path


def _ensure_request_id(request: Request) -> str:
	request_id = getattr(request.state, "request_id", None)
	if not request_id:
		request_id = request.headers.get("X-Request-Id") or str(uuid4())
		request.state.request_id = request_id
	return request_id


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app, *, enabled: bool = True) -> None:
		super().__init__(app)
		self._enabled = enabled
		self._logger = obs_logging.get_logger(_ACCESS_LOGGER)

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		if not (self._enabled and settings.obs_enabled):
			return await call_next(request)

		request_id = _ensure_request_id(request)
		route = _route_template(request)
		token = obs_logging.bind_context(
			request_id=request_id,
			route=route,
			party_id=request.headers.get("X-User-Id"),
			role=request.headers.get("X-User-Role"),
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			metrics.observe_request(route, request.method, status_code, elapsed)
			self._logger.info(
				"http_request",
				extra={"method": request.method, "status": status_code, "latency_ms": round(elapsed * 1000, 3)},
			)
			obs_logging.reset_context(token)

		response.headers.setdefault("X-Request-Id", request_id)
		return response


def install(app, *, enabled: bool = True) -> None:
	app.add_middleware(ObservabilityMiddleware, enabled=enabled)
