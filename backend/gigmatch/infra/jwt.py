"""Access tokens shared with the identity service.

HS256 over ``settings.secret_key``; issuer and audience pin tokens to this
engine so tokens minted for other services are rejected.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from gigmatch.settings import settings

ISSUER = "gigmatch-identity"
AUDIENCE = "gigmatch-engine"
ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "role")


def encode_access(party_id: str, role: str, *, ttl_seconds: int | None = None, **claims: Any) -> str:
	now = int(time.time())
	ttl = settings.access_ttl_minutes * 60 if ttl_seconds is None else ttl_seconds
	body: Dict[str, Any] = dict(claims)
	body.update({"sub": str(party_id), "role": role, "iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + ttl})
	return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
	"""Return the validated claims; raises ``jwt.InvalidTokenError`` subclasses."""
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=5,
		options={"require": ["exp", "iat", "iss", "aud"]},
	)
	missing = [claim for claim in _REQUIRED_CLAIMS if not payload.get(claim)]
	if missing:
		raise InvalidTokenError(f"missing_claim:{missing[0]}")
	return payload
