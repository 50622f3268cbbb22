"""Authentication helpers for FastAPI endpoints.

Identity and role resolution live in the identity service; the engine only
verifies the access token it issued (HS256, settings.secret_key). In
development the X-User-Id / X-User-Role headers are honoured for local tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gigmatch.infra import jwt as jwt_helper
from gigmatch.settings import settings

ROLES = frozenset({"performer", "venue"})


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	role: str
	display_name: Optional[str] = None

	@property
	def is_performer(self) -> bool:
		return self.role == "performer"

	@property
	def is_venue(self) -> bool:
		return self.role == "venue"


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	role = str(payload.get("role") or "").strip().lower()
	if not sub or role not in ROLES:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	display_name = payload.get("name") or payload.get("display_name")
	return AuthenticatedUser(
		id=sub,
		role=role,
		display_name=str(display_name) if display_name is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated party.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id and x_user_role:
		role = x_user_role.strip().lower()
		if role not in ROLES:
			raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_role")
		return AuthenticatedUser(id=x_user_id.strip(), role=role)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def require_role(role: str):
	"""Return a dependency that admits only parties of the given role.

	Usage:
		@router.post("/gigs/{gig_id}/applications", dependencies=[Depends(require_role("performer"))])
	"""

	async def _dep(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
		if user.role == role:
			return user
		raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")

	return _dep
