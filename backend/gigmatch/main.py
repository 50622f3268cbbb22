"""FastAPI entrypoint for the GigMatch discovery, matching and booking engine."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gigmatch.api import bookings, discovery, gigs, matches, ops, payments
from gigmatch.api.errors import install_error_handlers
from gigmatch.api.middleware_request_id import RequestIdMiddleware
from gigmatch.domain.matches.sockets import MatchesNamespace
from gigmatch.domain.matches.sockets import set_namespace as set_matches_namespace
from gigmatch.domain.notifications import NotificationsNamespace
from gigmatch.domain.notifications import set_namespace as set_notifications_namespace
from gigmatch.infra import payments as payment_gateway
from gigmatch.infra import postgres
from gigmatch.obs import init as obs_init
from gigmatch.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	try:
		yield
	finally:
		await payment_gateway.close_gateway()
		await postgres.close_pool()


app = FastAPI(title="GigMatch Engine", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(getattr(settings, "cors_allow_origins", []))
if not allow_origins or "*" in allow_origins:
	# Starlette disallows wildcard '*' with allow_credentials=True.
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
matches_namespace = MatchesNamespace()
sio.register_namespace(matches_namespace)
set_matches_namespace(matches_namespace)
notifications_namespace = NotificationsNamespace()
sio.register_namespace(notifications_namespace)
set_notifications_namespace(notifications_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

# Ensure every request carries an X-Request-Id and make it available on request.state
app.add_middleware(RequestIdMiddleware)

app.include_router(discovery.router)
app.include_router(matches.router)
app.include_router(gigs.router)
app.include_router(bookings.router)
app.include_router(payments.router)
app.include_router(ops.router)
