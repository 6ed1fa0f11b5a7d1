"""Bodies accepted and returned by the /auth and /users endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator


def _normalize_email(v: str) -> str:
    return v.lower().strip()


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Profile payload submitted by the registration form."""

    name: str = Field(..., min_length=1, max_length=128)
    email: EmailStr
    mobile: str | None = Field(None, min_length=10, max_length=20)
    dob: date | None = None
    gender: Literal["male", "female", "other"] = "other"
    address: str | None = Field(None, min_length=1, max_length=512)
    role: Literal["user", "admin"] = "user"
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Addresses compare case-insensitively."""
        return _normalize_email(v)


class LoginRequest(BaseModel):
    """Password sign-in."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Addresses compare case-insensitively."""
        return _normalize_email(v)


# ---------------------------------------------------------------------------
# One-time codes
# ---------------------------------------------------------------------------


class OtpSendRequest(BaseModel):
    """Issue (or re-issue) a one-time code for an email."""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Addresses compare case-insensitively."""
        return _normalize_email(v)


class OtpVerifyRequest(BaseModel):
    """Verify a one-time code. Malformed codes are reported in the response body."""

    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=16)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Addresses compare case-insensitively."""
        return _normalize_email(v)


class OtpResponse(BaseModel):
    """{success, message} result of an issue or verify call."""

    success: bool
    message: str
    kind: str | None = None
    expires_in: int | None = None


class ActivateRequest(BaseModel):
    """Verify a code for the authenticated account and activate it."""

    otp: str = Field(..., min_length=1, max_length=16)


# ---------------------------------------------------------------------------
# Accounts / tokens
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Identity record as exposed to the account owner."""

    id: str
    name: str
    email: str
    mobile: str | None = None
    dob: str | None = None
    gender: str = "other"
    address: str | None = None
    role: str = "user"
    email_verified: bool = False
    registration_incomplete: bool = False
    created_at: datetime
    verified_at: datetime | None = None

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    """Bearer token plus the signed-in account."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    account: AccountResponse


class RegisterResponse(TokenResponse):
    """Registration result: tokens plus the lifetime of the first one-time code."""

    otp_expires_in: int
