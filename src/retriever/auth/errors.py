"""
Closed set of authentication failure kinds.

Every collaborator (Identity Store, OTP Service, API client) reports failures
as an AuthErrorKind. User-facing text and HTTP status are looked up here and
nowhere else.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class AuthErrorKind(str, Enum):
    """Failure kinds surfaced by registration and activation."""

    # Validation
    INVALID_EMAIL = "invalid_email"
    WEAK_PASSWORD = "weak_password"
    PASSWORD_MISMATCH = "password_mismatch"
    INVALID_PROFILE = "invalid_profile"
    OTP_MALFORMED = "otp_malformed"
    # State
    EMAIL_IN_USE = "email_in_use"
    ROLE_NOT_ALLOWED = "role_not_allowed"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_AUTHENTICATED = "not_authenticated"
    NO_ACTIVATION_EMAIL = "no_activation_email"
    COUNTDOWN_EXPIRED = "countdown_expired"
    BUSY = "busy"
    RESEND_NOT_AVAILABLE = "resend_not_available"
    OTP_NOT_FOUND = "otp_not_found"
    OTP_EXPIRED = "otp_expired"
    OTP_INVALID = "otp_invalid"
    OTP_ATTEMPTS_EXCEEDED = "otp_attempts_exceeded"
    OTP_NOT_VERIFIED = "otp_not_verified"
    # Remote
    OTP_DISPATCH_FAILED = "otp_dispatch_failed"
    REMOTE_FAILURE = "remote_failure"


ERROR_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.INVALID_EMAIL: "Invalid email address.",
    AuthErrorKind.WEAK_PASSWORD: "Password too weak. Use a stronger password.",
    AuthErrorKind.PASSWORD_MISMATCH: "Passwords do not match.",
    AuthErrorKind.INVALID_PROFILE: "Please complete all required registration fields.",
    AuthErrorKind.OTP_MALFORMED: "OTP must be the numeric code from the email.",
    AuthErrorKind.EMAIL_IN_USE: "Email already registered. Please log in or reset your password.",
    AuthErrorKind.ROLE_NOT_ALLOWED: "This role cannot be chosen at registration.",
    AuthErrorKind.ACCOUNT_NOT_FOUND: "No account is registered for this email.",
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid email or password.",
    AuthErrorKind.NOT_AUTHENTICATED: "No user logged in. Please register again.",
    AuthErrorKind.NO_ACTIVATION_EMAIL: "Activation link expired or invalid. Please register again.",
    AuthErrorKind.COUNTDOWN_EXPIRED: "OTP has expired. Please resend OTP.",
    AuthErrorKind.BUSY: "A request is already in progress.",
    AuthErrorKind.RESEND_NOT_AVAILABLE: "A new OTP can be requested once the current one expires.",
    AuthErrorKind.OTP_NOT_FOUND: "No active OTP for this email. Please request a new one.",
    AuthErrorKind.OTP_EXPIRED: "OTP has expired. Please request a new one.",
    AuthErrorKind.OTP_INVALID: "Invalid OTP code.",
    AuthErrorKind.OTP_ATTEMPTS_EXCEEDED: "Too many incorrect attempts. Please request a new OTP.",
    AuthErrorKind.OTP_NOT_VERIFIED: "Email has not been verified with an OTP yet.",
    AuthErrorKind.OTP_DISPATCH_FAILED: "Failed to send OTP email. Please verify your email address.",
    AuthErrorKind.REMOTE_FAILURE: "Service unavailable. Please try again.",
}

ERROR_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.INVALID_EMAIL: 400,
    AuthErrorKind.WEAK_PASSWORD: 400,
    AuthErrorKind.PASSWORD_MISMATCH: 400,
    AuthErrorKind.INVALID_PROFILE: 422,
    AuthErrorKind.OTP_MALFORMED: 400,
    AuthErrorKind.EMAIL_IN_USE: 409,
    AuthErrorKind.ROLE_NOT_ALLOWED: 403,
    AuthErrorKind.ACCOUNT_NOT_FOUND: 404,
    AuthErrorKind.INVALID_CREDENTIALS: 401,
    AuthErrorKind.NOT_AUTHENTICATED: 401,
    AuthErrorKind.NO_ACTIVATION_EMAIL: 400,
    AuthErrorKind.COUNTDOWN_EXPIRED: 400,
    AuthErrorKind.BUSY: 409,
    AuthErrorKind.RESEND_NOT_AVAILABLE: 400,
    AuthErrorKind.OTP_NOT_FOUND: 400,
    AuthErrorKind.OTP_EXPIRED: 400,
    AuthErrorKind.OTP_INVALID: 400,
    AuthErrorKind.OTP_ATTEMPTS_EXCEEDED: 429,
    AuthErrorKind.OTP_NOT_VERIFIED: 400,
    AuthErrorKind.OTP_DISPATCH_FAILED: 502,
    AuthErrorKind.REMOTE_FAILURE: 502,
}


def error_message(kind: AuthErrorKind) -> str:
    """User-facing text for an error kind."""
    return ERROR_MESSAGES[kind]


class AuthError(ValueError):
    """Raised by auth services. Carries a closed error kind."""

    def __init__(
        self,
        kind: AuthErrorKind,
        message: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or ERROR_MESSAGES[kind]
        self.extra = extra or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.kind]
