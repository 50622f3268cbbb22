"""JSON logging for the engine.

Every line is a single JSON object. Request scoped fields (request id,
route template, acting party and role) live in one context variable that
the HTTP middleware binds per request, so service code only passes the
domain fields it cares about through ``extra``.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from gigmatch.settings import settings

_LOGGER_NAME = "gigmatch"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("gigmatch_log_context", default={})

# Payment secrets and exact coordinates never reach the log stream
_REDACTED_KEYS = (
	"token",
	"secret",
	"authorization",
	"signature",
	"password",
	"email",
	"phone",
	"latitude",
	"longitude",
)
_REDACTED_EXACT = frozenset({"lat", "lon", "lng"})

_MAX_TEXT = 256
_MAX_ITEMS = 10

# Lines carrying any of these are never sampled away
_ALWAYS_KEEP = ("booking_id", "match_id", "intent_id")

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Layer ``fields`` over the current logging context; ``None`` values are skipped."""
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value is not None})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _is_secret(key: str) -> bool:
	lowered = key.lower()
	return lowered in _REDACTED_EXACT or any(word in lowered for word in _REDACTED_KEYS)


def _clean(key: str, value: Any) -> Any:
	if _is_secret(key):
		return "[redacted]"
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		cleaned = {str(k): _clean(str(k), v) for k, v in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			cleaned["…"] = f"+{len(items) - _MAX_ITEMS} keys"
		return cleaned
	if isinstance(value, (list, tuple, set, frozenset)):
		values = [_clean(key, item) for item in value]
		if len(values) > _MAX_ITEMS:
			values = values[:_MAX_ITEMS] + [f"+{len(values) - _MAX_ITEMS} more"]
		return values
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key in _STANDARD_ATTRS or key in payload:
				continue
			payload[key] = _clean(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Sample routine info lines; warnings and lifecycle events always pass."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		configured = settings.obs_log_sampling_rate_info if rate is None else rate
		self.rate = max(0.0, min(1.0, configured))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self.rate >= 1.0:
			return True
		if any(hasattr(record, key) for key in _ALWAYS_KEEP):
			return True
		return random.random() < self.rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
