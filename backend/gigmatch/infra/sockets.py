"""Socket.IO plumbing shared by the realtime namespaces."""

from __future__ import annotations

from typing import Optional

import socketio

from gigmatch.infra.auth import AuthenticatedUser, verify_access_jwt
from gigmatch.obs import metrics as obs_metrics
from gigmatch.settings import settings


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


class PartyNamespace(socketio.AsyncNamespace):
	"""Namespace that keeps each client in their personal room."""

	ack_event = "ack"

	def __init__(self, namespace: str) -> None:
		super().__init__(namespace)
		self._sessions: dict[str, AuthenticatedUser] = {}

	def _authenticate(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		auth_payload = auth or {}
		token = auth_payload.get("token")
		if token:
			return verify_access_jwt(str(token))
		user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
		role = auth_payload.get("role") or _header(scope, "x-user-role")
		if settings.is_dev() and user_id and role:
			return AuthenticatedUser(id=str(user_id), role=str(role).lower())
		raise ConnectionRefusedError("unauthenticated")

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user = self._authenticate(environ, auth)
		except Exception as exc:
			raise ConnectionRefusedError("unauthenticated") from exc
		obs_metrics.socket_connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit(self.ack_event, {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		user = self._sessions.pop(sid, None)
		if user:
			obs_metrics.socket_disconnected(self.namespace)
			await self.leave_room(sid, self.user_room(user.id))

	async def emit_to_party(self, party_id: str, event: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, event)
		await self.emit(event, payload, room=self.user_room(party_id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"party:{user_id}"
