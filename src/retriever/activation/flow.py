"""
Activation state machine.

State progression:

    LOADING -> AWAITING_EMAIL                      (terminal: re-register)
    LOADING -> COUNTING -> VERIFYING -> ACTIVATED  (terminal: redirect home)
    COUNTING -> EXPIRED -> COUNTING                (resend)
    VERIFYING -> COUNTING | EXPIRED                (verification failed)

An account already verified short-circuits to ACTIVATED from any live state.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

import structlog

from retriever.activation.countdown import Countdown
from retriever.auth.errors import AuthError, AuthErrorKind, error_message
from retriever.auth.otp import is_well_formed, malformed_message

if TYPE_CHECKING:
    from retriever.activation.gateways import Identity, IdentityGateway, OtpGateway
    from retriever.activation.session import SessionContext
    from retriever.auth.schemas import AccountResponse

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 300
HOME_PATH = "/home"
REGISTER_PATH = "/register"
CODE_ACCEPTED_RETRY = "Your code was accepted. Submit again to finish activating your account."


class ActivationState(str, Enum):
    LOADING = "loading"
    AWAITING_EMAIL = "awaiting_email"
    COUNTING = "counting"
    EXPIRED = "expired"
    VERIFYING = "verifying"
    ACTIVATED = "activated"


VALID_TRANSITIONS: dict[ActivationState, list[ActivationState]] = {
    ActivationState.LOADING: [
        ActivationState.AWAITING_EMAIL,
        ActivationState.COUNTING,
        ActivationState.ACTIVATED,
    ],
    ActivationState.COUNTING: [
        ActivationState.EXPIRED,
        ActivationState.VERIFYING,
        ActivationState.ACTIVATED,
    ],
    ActivationState.EXPIRED: [ActivationState.COUNTING, ActivationState.ACTIVATED],
    ActivationState.VERIFYING: [
        ActivationState.ACTIVATED,
        ActivationState.COUNTING,
        ActivationState.EXPIRED,
    ],
    ActivationState.AWAITING_EMAIL: [],
    ActivationState.ACTIVATED: [],
}


def validate_transition(current: ActivationState, target: ActivationState) -> None:
    """Raises ValueError if `current -> target` is not allowed."""
    valid = VALID_TRANSITIONS.get(current, [])
    if target not in valid:
        raise ValueError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )


class ActivationFlow:
    """
    Drives OTP entry for one authenticated-but-unverified account.

    Calls into the collaborators are single-flight: while one is outstanding,
    `submit()` and `resend()` are refused with BUSY.
    """

    def __init__(
        self,
        identity: IdentityGateway,
        otp: OtpGateway,
        session: SessionContext,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        tick_interval: float = 1.0,
        auto_tick: bool = True,
        otp_length: int = 6,
    ) -> None:
        self._identity = identity
        self._otp = otp
        self.session = session
        self.ttl_seconds = ttl_seconds
        self.auto_tick = auto_tick
        self.otp_length = otp_length
        self.countdown = Countdown(ttl_seconds, on_expire=self._on_countdown_expired, interval=tick_interval)

        self.state = ActivationState.LOADING
        self.email: str | None = None
        self.account_id: str | None = None
        self.busy = False
        self.message: str | None = None
        self.error: AuthErrorKind | None = None
        self.redirect_to: str | None = None
        self._closed = False
        # set once verify succeeded; the challenge is consumed server-side
        self._otp_consumed = False

    # ------------------------------------------------------------------
    # Derived view state
    # ------------------------------------------------------------------

    @property
    def remaining(self) -> int:
        return self.countdown.remaining

    @property
    def timer_text(self) -> str:
        return self.countdown.format()

    @property
    def can_submit(self) -> bool:
        return self.state is ActivationState.COUNTING and not self.busy

    @property
    def otp_consumed(self) -> bool:
        return self._otp_consumed

    @property
    def can_resend(self) -> bool:
        return self.state is ActivationState.EXPIRED and not self.busy

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, target: ActivationState) -> None:
        validate_transition(self.state, target)
        logger.info(
            "activation_state_changed",
            from_state=self.state.value,
            to_state=target.value,
            email=self.email,
        )
        self.state = target

    def _fail(self, kind: AuthErrorKind, message: str | None = None) -> None:
        self.error = kind
        self.message = message or error_message(kind)

    def _on_countdown_expired(self) -> None:
        if self.state is ActivationState.COUNTING:
            self._transition(ActivationState.EXPIRED)

    def _await_email(self, kind: AuthErrorKind) -> None:
        self.session.clear_pending()
        self._fail(kind)
        self.redirect_to = REGISTER_PATH
        self._transition(ActivationState.AWAITING_EMAIL)

    def _activate(self) -> None:
        self.countdown.cancel()
        self.session.clear_pending()
        self.error = None
        self.message = "Your account is now active. Welcome to Item Retriever!"
        self.redirect_to = HOME_PATH
        self._transition(ActivationState.ACTIVATED)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def load(self) -> ActivationState:
        """
        Resolve the target email and enter the countdown.

        Email priority: the registration hand-off in the session, then the
        email on the signed-in account's record. Without an identity or an
        email the flow parks in AWAITING_EMAIL and makes no OTP calls.
        """
        if self.state is not ActivationState.LOADING:
            return self.state

        try:
            identity: Identity | None = await self._identity.resolve_current_identity()
        except AuthError as e:
            logger.warning("activation_identity_failed", kind=e.kind.value)
            identity = None
        if identity is None:
            self._await_email(AuthErrorKind.NOT_AUTHENTICATED)
            return self.state
        self.account_id = identity.id

        account: AccountResponse | None = None
        try:
            account = await self._identity.get_account(identity.id)
        except AuthError as e:
            logger.warning("activation_account_lookup_failed", account_id=identity.id, kind=e.kind.value)

        if account is not None and account.email_verified:
            self._activate()
            return self.state

        email = self.session.pending_email or (account.email if account else None)
        if not email:
            self._await_email(AuthErrorKind.NO_ACTIVATION_EMAIL)
            return self.state

        self.email = email
        self.session.pending_email = email
        self.message = f"Enter the OTP sent to {email} to activate your account."
        self._transition(ActivationState.COUNTING)
        if self.auto_tick:
            self.countdown.start()
        return self.state

    async def submit(self, code: str) -> bool:
        """
        Verify `code`, then mark the account verified. Returns True when activated.

        Once a code has been accepted, later calls skip verification and only
        retry marking the account verified.
        """
        if self.busy:
            self._fail(AuthErrorKind.BUSY)
            return False
        if self.state is ActivationState.EXPIRED:
            self._fail(AuthErrorKind.COUNTDOWN_EXPIRED)
            return False
        if self.state is not ActivationState.COUNTING or self.email is None or self.account_id is None:
            self._fail(AuthErrorKind.NO_ACTIVATION_EMAIL)
            return False
        code = code.strip()
        if not self._otp_consumed and not is_well_formed(code, self.otp_length):
            self._fail(AuthErrorKind.OTP_MALFORMED, malformed_message(self.otp_length))
            return False

        self.busy = True
        self.error = None
        self._transition(ActivationState.VERIFYING)
        try:
            if not self._otp_consumed:
                result = await self._otp.verify(self.email, code)
                if not result.success:
                    self._return_from_verifying(result.kind or AuthErrorKind.OTP_INVALID, result.message)
                    return False
                self._otp_consumed = True
                self.countdown.cancel()
            try:
                await self._identity.mark_verified(self.account_id)
            except AuthError as e:
                # Only the activation step is retried; the spent code no longer expires
                logger.warning("activation_mark_failed", account_id=self.account_id, kind=e.kind.value)
                self._fail(e.kind, f"{e.message} {CODE_ACCEPTED_RETRY}")
                self._transition(ActivationState.COUNTING)
                return False
            self._activate()
            logger.info("account_activated", account_id=self.account_id, email=self.email)
            return True
        finally:
            self.busy = False

    def _return_from_verifying(self, kind: AuthErrorKind, message: str) -> None:
        self._fail(kind, message)
        target = ActivationState.EXPIRED if self.countdown.expired else ActivationState.COUNTING
        self._transition(target)

    async def resend(self) -> bool:
        """Issue a new code once the countdown has expired. Returns True when sent."""
        if self.busy:
            self._fail(AuthErrorKind.BUSY)
            return False
        if self.state is not ActivationState.EXPIRED or self.email is None:
            self._fail(AuthErrorKind.RESEND_NOT_AVAILABLE)
            return False

        self.busy = True
        self.error = None
        try:
            result = await self._otp.issue(self.email)
            if not result.success:
                self._fail(result.kind or AuthErrorKind.OTP_DISPATCH_FAILED, result.message)
                return False
            if self._closed:
                return True
            self.countdown.reset(result.expires_in or self.ttl_seconds)
            if self.auto_tick:
                self.countdown.start()
            self.message = f"A new OTP has been sent to {self.email}."
            self._transition(ActivationState.COUNTING)
            return True
        finally:
            self.busy = False

    async def poll_verified(self) -> bool:
        """Re-read the account; jump to ACTIVATED if it was verified elsewhere."""
        if self.account_id is None or self.state in (ActivationState.ACTIVATED, ActivationState.AWAITING_EMAIL):
            return self.state is ActivationState.ACTIVATED
        if self.state is ActivationState.VERIFYING:
            return False
        try:
            account = await self._identity.get_account(self.account_id)
        except AuthError:
            return False
        if account is not None and account.email_verified:
            self._activate()
            return True
        return False

    def close(self) -> None:
        """Tear down the countdown. The flow cannot be resumed afterwards."""
        self._closed = True
        self.countdown.cancel()
