"""
Authorization gate: role checks and the single ownership predicate.
"""
from typing import Callable, Optional

from fastapi import Depends

from app.errors import Forbidden
from app.models import ROLE_ADMIN, User
from auth.oauth2 import get_current_user


def require_role(*roles: str) -> Callable[..., User]:
    """Dependency factory letting only users with one of ``roles`` through."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise Forbidden(f"User role {user.role} is not authorized to access this route")
        return user

    return dependency


def is_owner_or_admin(owner_id: Optional[str], user: User) -> bool:
    return user.is_admin or (owner_id is not None and owner_id == user.id)


def ensure_owner_or_admin(owner_id: Optional[str], user: User, message: str) -> None:
    if not is_owner_or_admin(owner_id, user):
        raise Forbidden(message)


require_admin = require_role(ROLE_ADMIN)
