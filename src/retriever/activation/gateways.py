"""Collaborator contracts the activation flow depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from retriever.auth.otp import OtpResult
    from retriever.auth.schemas import AccountResponse


@dataclass(frozen=True)
class Identity:
    """The currently authenticated identity."""

    id: str
    email: str | None = None


class IdentityGateway(Protocol):
    """Identity Store as seen from the client. Remote failures raise AuthError(REMOTE_FAILURE)."""

    async def resolve_current_identity(self) -> Identity | None:
        """One-shot lookup of the signed-in identity; None when nobody is signed in."""
        ...

    async def get_account(self, account_id: str) -> AccountResponse | None: ...

    async def mark_verified(self, account_id: str) -> AccountResponse:
        """Set email_verified and the verification timestamp on the account."""
        ...


class OtpGateway(Protocol):
    """OTP Service. Failures are reported in the result, never raised."""

    async def issue(self, email: str) -> OtpResult: ...

    async def verify(self, email: str, code: str) -> OtpResult: ...
