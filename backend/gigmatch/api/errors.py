"""Global error handlers; every error body carries the request id."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gigmatch.api.request_id import get_request_id
from gigmatch.domain.exceptions import EngineError, ResourceExhaustedError

logger = logging.getLogger(__name__)


def _retry_after(reset_at: datetime) -> str:
	seconds = (reset_at - datetime.now(timezone.utc)).total_seconds()
	return str(max(1, math.ceil(seconds)))


def engine_error_response(request: Request, exc: EngineError) -> JSONResponse:
	payload = exc.to_payload()
	payload["request_id"] = get_request_id(request)
	headers: dict[str, str] = {}
	if isinstance(exc, ResourceExhaustedError) and exc.reset_at is not None:
		headers["Retry-After"] = _retry_after(exc.reset_at)
	if exc.status_code >= 500:
		logger.error("engine_error", extra={"code": exc.code, "reason": exc.reason})
	return JSONResponse(status_code=exc.status_code, content=payload, headers=headers or None)


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(EngineError)
	async def engine_exc_handler(request: Request, exc: EngineError):  # type: ignore[override]
		return engine_error_response(request, exc)

	@app.exception_handler(StarletteHTTPException)
	async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		detail = exc.detail if isinstance(exc.detail, str) else "http_error"
		payload = {
			"code": "http_error",
			"reason": detail,
			"message": detail,
			"request_id": get_request_id(request),
		}
		return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
		payload = {
			"code": "validation_error",
			"reason": "validation_error",
			"message": "request validation failed",
			"errors": jsonable_encoder(exc.errors()),
			"request_id": get_request_id(request),
		}
		return JSONResponse(status_code=422, content=payload)
