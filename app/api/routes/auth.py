# app/api/routes/auth.py

from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from config.settings import settings
from exceptions.domain_exceptions import UnauthorizedException
from infrastructure.socketio_manager import decode_identity


bearer_scheme = HTTPBearer(auto_error=False)


async def current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    Resolve the authenticated identity from a bearer token or the auth cookie.

    Raises:
        UnauthorizedException: If no valid token is presented
    """
    token = credentials.credentials if credentials else request.cookies.get(settings.AUTH_COOKIE_NAME)
    if not token:
        raise UnauthorizedException(message="Not authenticated")

    identity_id = decode_identity(token)
    if not identity_id:
        raise UnauthorizedException(message="Invalid or expired token")
    return identity_id
