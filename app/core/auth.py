"""
Caller Identity

Authentication happens upstream (API gateway / auth service); by the time a
request reaches this service the caller has been verified and is described
by three headers:

    X-User-Id:   opaque user identifier (required on protected routes)
    X-User-Role: user | staff | admin (defaults to "user")
    X-User-Name: display name, snapshotted onto orders

The dependencies below turn those headers into a CurrentUser and enforce
the role checks the order routes need.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from app.core.exceptions import Forbidden


class UserRole(str, enum.Enum):
    """Roles known to the order pipeline."""
    USER = "user"
    STAFF = "staff"
    ADMIN = "admin"


@dataclass(frozen=True)
class CurrentUser:
    """The authenticated caller."""
    id: str
    role: UserRole = UserRole.USER
    name: str = ""

    @property
    def is_staff(self) -> bool:
        """Staff and admins may operate on any order."""
        return self.role in (UserRole.STAFF, UserRole.ADMIN)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def resolve_user(
    user_id: Optional[str],
    role: Optional[str],
    name: Optional[str] = None,
) -> Optional[CurrentUser]:
    """Build a CurrentUser from raw header values; None if they name no known caller."""
    if not user_id:
        return None
    try:
        user_role = UserRole((role or UserRole.USER.value).lower())
    except ValueError:
        return None
    return CurrentUser(id=user_id, role=user_role, name=name or "")


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="x-user-id"),
    x_user_role: Optional[str] = Header(None, alias="x-user-role"),
    x_user_name: Optional[str] = Header(None, alias="x-user-name"),
) -> CurrentUser:
    """Resolve the caller from the gateway headers."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = resolve_user(x_user_id, x_user_role, x_user_name)
    if user is None:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}")
    return user


async def require_staff(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Allow staff and admins only."""
    if not user.is_staff:
        raise Forbidden("Staff access required")
    return user


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Allow admins only."""
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
