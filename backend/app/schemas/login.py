"""Login request and token schemas for studio clients and admins."""

from pydantic import BaseModel, EmailStr


class LoginRequest(BaseModel):
    """Payload for login attempts."""

    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
