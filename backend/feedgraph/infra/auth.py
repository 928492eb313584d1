"""Caller identity for FastAPI endpoints.

Authentication itself lives with the identity provider; this module only turns a
bearer JWT (or, in development, an ``X-User-Id`` header) into the viewer id the
relationship engine works with.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from feedgraph.infra import jwt as jwt_helper
from feedgraph.obs import logging as obs_logging
from feedgraph.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	handle: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	handle = payload.get("handle")
	return AuthenticatedUser(id=str(payload["sub"]).strip(), handle=str(handle) if handle is not None else None)


async def get_optional_user(
	request: Request,
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[AuthenticatedUser]:
	"""Resolve the caller if any identity was presented; anonymous callers get None."""
	user: Optional[AuthenticatedUser] = None
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
	# In dev only, allow the X-User-Id fallback for local tools
	elif settings.is_dev() and x_user_id and x_user_id.strip():
		user = AuthenticatedUser(id=x_user_id.strip())
	if user is not None:
		request.state.viewer_id = user.id
		obs_logging.bind_viewer(user.id)
	return user


async def get_current_user(
	user: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> AuthenticatedUser:
	if user is None:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return user
