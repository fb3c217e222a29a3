"""
Caller identity and role checks for FastAPI endpoints.

Authentication happens upstream; the gateway forwards the authenticated profile id
in the X-User-Id header (configurable). Here we only resolve it to an active profile.
"""
import logging
from typing import Callable, List, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from leavedesk.core.config import settings
from leavedesk.core.exceptions import AccessDeniedError, AuthenticationError
from leavedesk.database import get_db
from leavedesk.models.user import UserProfile, UserRole

logger = logging.getLogger(__name__)


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias=settings.user_id_header),
    db: Session = Depends(get_db),
) -> UserProfile:
    if not x_user_id:
        logger.warning("Authentication failed: missing caller identity header")
        raise AuthenticationError("Missing caller identity")

    try:
        user_id = int(x_user_id)
    except ValueError:
        logger.warning(f"Authentication failed: malformed user id {x_user_id!r}")
        raise AuthenticationError("Malformed caller identity")

    user = db.get(UserProfile, user_id)
    if user is None:
        logger.warning(f"Authentication failed: user {user_id} not found")
        raise AuthenticationError("User not found")
    if not user.is_active:
        logger.warning(f"Authentication failed: user {user_id} is inactive")
        raise AccessDeniedError("User is inactive")
    return user


def require_role(allowed_roles: List[UserRole]) -> Callable:
    """
    Dependency factory that checks if the user has one of the allowed roles.

    Usage:
        @router.post("/carry-over")
        def run(user: UserProfile = Depends(require_role([UserRole.MANAGER, UserRole.HR_ADMIN]))):
            ...
    """
    def role_checker(current_user: UserProfile = Depends(get_current_user)):
        if current_user.role not in allowed_roles:
            raise AccessDeniedError(f"Access denied. Required roles: {[r.value for r in allowed_roles]}")
        return current_user
    return role_checker


def require_hr_admin():
    return require_role([UserRole.HR_ADMIN])
