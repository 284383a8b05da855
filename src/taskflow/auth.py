from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .settings import get_settings

logger = logging.getLogger(__name__)

_security = HTTPBasic(auto_error=False)

USER_ID_HEADER = "X-User-Id"


def _unauthorized(detail: str, scheme: Optional[str] = None) -> HTTPException:
    headers = {"WWW-Authenticate": scheme} if scheme else None
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=headers)


# PUBLIC_INTERFACE
def get_current_user(
    creds: Optional[HTTPBasicCredentials] = Depends(_security),
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> str:
    """
    Resolve the id of the user making the request.

    Behavior:
    - If settings.enable_basic_auth is True: validates HTTP Basic credentials
      against BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD; the username is the user id.
    - Otherwise (default): the X-User-Id header names the user, as set by
      the identity provider sitting in front of this service.

    Raises:
        HTTPException(401) if no identity can be established.

    Usage:
        @router.get("/", ...)
        def handler(user_id: str = Depends(get_current_user)): ...
    """
    settings = get_settings()

    if not settings.enable_basic_auth:
        user_id = (x_user_id or "").strip()
        if not user_id:
            raise _unauthorized(f"Missing {USER_ID_HEADER} header")
        return user_id

    if creds is None or not creds.username or creds.password is None:
        raise _unauthorized("Not authenticated", "Basic")

    expected_user = settings.basic_auth_username
    expected_pass = settings.basic_auth_password
    if expected_user is None or expected_pass is None:
        logger.error("basic auth enabled but BASIC_AUTH_USERNAME/BASIC_AUTH_PASSWORD not set")
        raise _unauthorized("Server authentication not configured", "Basic")

    user_ok = secrets.compare_digest(creds.username.encode(), expected_user.encode())
    pass_ok = secrets.compare_digest(creds.password.encode(), expected_pass.encode())
    if not (user_ok and pass_ok):
        logger.warning("rejected basic auth credentials for user %r", creds.username)
        raise _unauthorized("Invalid authentication credentials", "Basic")

    return creds.username
