"""Authentication schemas."""

from pydantic import BaseModel, EmailStr, Field

from cafe_api.models.staff import StaffRole


class LoginRequest(BaseModel):
    """Login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=512)


class TokenPairResponse(BaseModel):
    """Access and refresh token issued at login."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class StaffIdentityResponse(BaseModel):
    """The authenticated caller."""

    staff_id: int
    email: str
    name: str
    role: StaffRole
    session_id: int

    model_config = {"from_attributes": True}


class StaffDeactivatedResponse(BaseModel):
    id: int
    email: str
    is_active: bool

    model_config = {"from_attributes": True}
