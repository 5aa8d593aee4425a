"""Authentication routes."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from cafe_api.core.rate_limit import limiter
from cafe_api.core.rbac import CurrentStaff, RequireAdmin
from cafe_api.db.session import DbSession
from cafe_api.schemas.auth import (
    AccessTokenResponse,
    LoginRequest,
    RefreshRequest,
    StaffDeactivatedResponse,
    StaffIdentityResponse,
    TokenPairResponse,
)
from cafe_api.services.session_service import SessionManager

logger = logging.getLogger("auth")

router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login", response_model=TokenPairResponse)
@limiter.limit("30/minute")
def login(request: Request, login_request: LoginRequest, db: DbSession):
    """Authenticate staff and return an access/refresh token pair."""
    pair = SessionManager(db).login(
        login_request.email,
        login_request.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    return TokenPairResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


@router.post("/refresh", response_model=AccessTokenResponse)
@limiter.limit("60/minute")
def refresh(request: Request, body: RefreshRequest, db: DbSession):
    """Exchange a refresh token for a new access token."""
    token = SessionManager(db).refresh(body.refresh_token)
    return AccessTokenResponse(
        access_token=token.access_token,
        token_type=token.token_type,
        expires_in=token.expires_in,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(current_staff: CurrentStaff, db: DbSession):
    """End the current session; its access and refresh tokens stop working."""
    SessionManager(db).logout(current_staff)


@router.get("/me", response_model=StaffIdentityResponse)
def get_current_staff_info(current_staff: CurrentStaff):
    """Get current staff member info."""
    return current_staff


@router.post("/staff/{staff_id}/deactivate", response_model=StaffDeactivatedResponse)
def deactivate_staff(staff_id: int, current_staff: RequireAdmin, db: DbSession):
    """Deactivate a staff account and revoke all of its sessions."""
    if staff_id == current_staff.staff_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot deactivate your own account",
        )
    staff = SessionManager(db).deactivate_staff(staff_id)
    if staff is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Staff member not found",
        )
    logger.info(f"Staff ID {staff_id} deactivated by {current_staff.email} (ID: {current_staff.staff_id})")
    return staff
