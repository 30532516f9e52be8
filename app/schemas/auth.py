"""Auth schemas: registration, verification, login."""
import re
from pydantic import BaseModel, EmailStr, field_validator

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")
PASSWORD_MIN_LENGTH = 6


class RegisterRequest(BaseModel):
    username: str
    email: EmailStr
    password: str

    @field_validator("username")
    @classmethod
    def username_valid(cls, v: str) -> str:
        v = (v or "").strip()
        if not USERNAME_RE.match(v):
            raise ValueError("Username must be 3-50 characters: letters, digits, '_', '.' or '-'.")
        return v

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, v: str) -> str:
        if len(v or "") < PASSWORD_MIN_LENGTH:
            raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters.")
        return v


class VerifyRequest(BaseModel):
    """Verify email with the code sent after registration."""
    token: str
    code: str


class ResendVerificationRequest(BaseModel):
    """Request a new verification code for a pending registration."""
    token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    id: int
    username: str
    profile_picture: str | None = None
