"""Role-Based Access Control (RBAC) dependencies for FastAPI routes."""

from typing import Annotated, Optional

from fastapi import Depends, Request

from cafe_api.core.errors import Forbidden
from cafe_api.core.rbac_policy import ROLE_HIERARCHY, role_at_least
from cafe_api.db.session import DbSession
from cafe_api.models.staff import StaffRole
from cafe_api.services.session_service import SessionManager, StaffIdentity

__all__ = [
    "CurrentStaff",
    "ROLE_HIERARCHY",
    "RequireAdmin",
    "StaffRole",
    "bearer_token",
    "get_current_staff",
    "require_role",
]


def bearer_token(request: Request) -> Optional[str]:
    """Token from an ``Authorization: Bearer <token>`` header, if any."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        return token or None
    return None


def get_current_staff(request: Request, db: DbSession) -> StaffIdentity:
    """Authenticate the caller.

    The role comes from the staff record, so role changes and deactivation
    apply to tokens that were issued before them.
    """
    return SessionManager(db).authenticate(bearer_token(request))


def require_role(minimum_role: StaffRole):
    """Dependency to require a minimum role level."""

    def role_checker(
        current_staff: Annotated[StaffIdentity, Depends(get_current_staff)]
    ) -> StaffIdentity:
        if not role_at_least(current_staff.role, minimum_role):
            raise Forbidden(
                current_staff.role.value,
                f"access this resource (requires {minimum_role.value} or higher)",
            )
        return current_staff

    return role_checker


# Common role dependencies
CurrentStaff = Annotated[StaffIdentity, Depends(get_current_staff)]
RequireAdmin = Annotated[StaffIdentity, Depends(require_role(StaffRole.ADMIN))]
