"""Central registry for Prometheus metrics used across the engine."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"gigmatch_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"gigmatch_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"gigmatch_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"gigmatch_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

DECISIONS_RECORDED = Counter(
	"gigmatch_decisions_total",
	"Discovery decisions recorded",
	["role", "direction"],
)

DECISION_REJECTS = Counter(
	"gigmatch_decision_rejects_total",
	"Discovery decisions rejected before commit",
	["reason"],
)

UNDOS = Counter(
	"gigmatch_undo_total",
	"Decision undo attempts",
	["result"],
)

RATE_LIMITED = Counter(
	"gigmatch_rate_limited_total",
	"Requests rejected by a daily quota",
	["kind"],
)

MATCHES_CREATED = Counter(
	"gigmatch_matches_created_total",
	"Matches materialised",
	["result"],
)

MATCH_TX_FAILURES = Counter(
	"gigmatch_match_tx_failures_total",
	"Match transactions that failed",
	["reason"],
)

MATCH_STATUS_UPDATES = Counter(
	"gigmatch_match_status_updates_total",
	"Match status changes",
	["status"],
)

FEED_REQUESTS = Counter(
	"gigmatch_feed_requests_total",
	"Discovery feed requests",
	["kind"],
)

FEED_CANDIDATES = Summary(
	"gigmatch_feed_candidates",
	"Candidates scored per feed request",
)

APPLICATIONS = Counter(
	"gigmatch_applications_total",
	"Gig application transitions",
	["action"],
)

BOOKING_TRANSITIONS = Counter(
	"gigmatch_booking_transitions_total",
	"Booking lifecycle transitions",
	["action", "status"],
)

PAYMENT_CALLS = Counter(
	"gigmatch_payment_gateway_calls_total",
	"Payment gateway calls",
	["operation", "result"],
)

PAYMENT_LATENCY = Histogram(
	"gigmatch_payment_gateway_duration_seconds",
	"Payment gateway call latency",
	["operation"],
	buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

NOTIFICATIONS = Counter(
	"gigmatch_notifications_total",
	"Notifications dispatched",
	["kind", "result"],
)

EVENT_PUBLISH_FAILURES = Counter(
	"gigmatch_event_publish_failures_total",
	"Lifecycle events that could not be published",
	["stream"],
)

REDIS_UP = Gauge("gigmatch_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("gigmatch_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("gigmatch_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("gigmatch_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_decision(role: str, direction: str) -> None:
	DECISIONS_RECORDED.labels(role=role, direction=direction).inc()


def inc_decision_reject(reason: str) -> None:
	DECISION_REJECTS.labels(reason=reason).inc()


def inc_undo(result: str) -> None:
	UNDOS.labels(result=result).inc()


def inc_rate_limited(kind: str) -> None:
	RATE_LIMITED.labels(kind=kind).inc()


def inc_match_created(result: str) -> None:
	MATCHES_CREATED.labels(result=result).inc()


def inc_match_tx_failure(reason: str) -> None:
	MATCH_TX_FAILURES.labels(reason=reason).inc()


def inc_match_status(status: str) -> None:
	MATCH_STATUS_UPDATES.labels(status=status).inc()


def observe_feed(kind: str, candidates: int) -> None:
	FEED_REQUESTS.labels(kind=kind).inc()
	FEED_CANDIDATES.observe(candidates)


def inc_application(action: str) -> None:
	APPLICATIONS.labels(action=action).inc()


def inc_booking_transition(action: str, status: str) -> None:
	BOOKING_TRANSITIONS.labels(action=action, status=status).inc()


def observe_payment_call(operation: str, result: str, elapsed_seconds: float) -> None:
	PAYMENT_CALLS.labels(operation=operation, result=result).inc()
	PAYMENT_LATENCY.labels(operation=operation).observe(elapsed_seconds)


def inc_notification(kind: str, result: str) -> None:
	NOTIFICATIONS.labels(kind=kind, result=result).inc()


def inc_event_publish_failure(stream: str) -> None:
	EVENT_PUBLISH_FAILURES.labels(stream=stream).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
