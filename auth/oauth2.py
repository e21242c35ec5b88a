"""
Bearer-token authentication: resolves the acting user for a request.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.errors import Unauthenticated
from app.logger import get_logger
from app.models import User
from app.stores import UserStore, get_user_store
from auth.jwt_handler import decode_access_token

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    users: UserStore = Depends(get_user_store),
) -> User:
    """Decode the bearer token and load the user it refers to."""
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthenticated("Not authorized, no token")

    payload = decode_access_token(credentials.credentials, request.app.state.settings)
    if not payload or not payload.get("sub"):
        raise Unauthenticated("Not authorized, token failed")

    user = users.get(payload["sub"])
    if user is None:
        logger.info(f"Token for unknown user {payload['sub']} rejected")
        raise Unauthenticated("Not authorized, user not found")

    request.state.user = user
    return user
