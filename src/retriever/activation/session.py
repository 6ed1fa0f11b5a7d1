"""Client-local session context for an in-progress activation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SessionContext:
    """
    What one device remembers between registration and activation.

    Holds the pending activation email handed over by registration and the
    bearer token of the signed-in account. Cleared on successful activation
    and on sign-out.
    """

    pending_email: str | None = None
    access_token: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None

    def clear_pending(self) -> None:
        self.pending_email = None

    def clear(self) -> None:
        self.pending_email = None
        self.access_token = None
