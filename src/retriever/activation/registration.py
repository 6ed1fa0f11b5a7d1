"""Client-side registration: validate, register, hand off to activation."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from retriever.activation.client import RetrieverClient
from retriever.activation.flow import DEFAULT_TTL_SECONDS, ActivationFlow
from retriever.auth.errors import AuthError, AuthErrorKind
from retriever.auth.password import validate_password_strength
from retriever.auth.schemas import RegisterRequest

logger = structlog.get_logger()


def validate_profile(payload: dict[str, Any] | RegisterRequest) -> RegisterRequest:
    """
    Check a registration payload before any network call.

    Raises:
        AuthError: INVALID_EMAIL, PASSWORD_MISMATCH, WEAK_PASSWORD or INVALID_PROFILE.
    """
    if isinstance(payload, RegisterRequest):
        body = payload
    else:
        try:
            body = RegisterRequest.model_validate(payload)
        except ValidationError as e:
            fields = {str(err["loc"][0]) for err in e.errors() if err.get("loc")}
            if "email" in fields:
                raise AuthError(AuthErrorKind.INVALID_EMAIL) from e
            raise AuthError(AuthErrorKind.INVALID_PROFILE) from e

    if body.password != body.confirm_password:
        raise AuthError(AuthErrorKind.PASSWORD_MISMATCH)
    validate_password_strength(body.password)
    return body


class RegistrationFlow:
    """Registers an account and returns the loaded ActivationFlow for it."""

    def __init__(self, client: RetrieverClient, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    async def submit(self, payload: dict[str, Any] | RegisterRequest, **flow_kwargs: Any) -> ActivationFlow:
        """
        Register, record the pending email in the session, and enter activation.

        Raises:
            AuthError: validation failures, EMAIL_IN_USE, or OTP_DISPATCH_FAILED
                (the account exists but no code was sent).
        """
        session = self.client.session
        try:
            body = validate_profile(payload)
            result = await self.client.register(body)
        except AuthError as e:
            session.clear_pending()
            logger.info("registration_failed", kind=e.kind.value)
            raise

        session.pending_email = result.account.email
        flow = ActivationFlow(
            self.client,
            self.client,
            session,
            ttl_seconds=result.otp_expires_in or self.ttl_seconds,
            **flow_kwargs,
        )
        await flow.load()
        return flow
