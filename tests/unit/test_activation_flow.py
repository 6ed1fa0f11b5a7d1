"""Unit tests for ActivationFlow against in-memory gateways."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from retriever.activation.flow import HOME_PATH, REGISTER_PATH, ActivationFlow, ActivationState
from retriever.activation.gateways import Identity
from retriever.activation.session import SessionContext
from retriever.auth.errors import AuthError, AuthErrorKind
from retriever.auth.otp import OtpResult
from retriever.auth.schemas import AccountResponse

pytestmark = pytest.mark.asyncio

EMAIL = "asha@example.com"


def _account(verified: bool = False, email: str = EMAIL) -> AccountResponse:
    return AccountResponse(
        id="acc-1",
        name="Asha Verma",
        email=email,
        email_verified=verified,
        created_at=datetime.now(timezone.utc),
    )


class FakeIdentity:
    def __init__(self, identity: Identity | None = None, account: AccountResponse | None = None) -> None:
        self.identity = identity
        self.account = account
        self.resolve_error: AuthError | None = None
        self.mark_error: AuthError | None = None
        self.marked: list[str] = []

    async def resolve_current_identity(self) -> Identity | None:
        if self.resolve_error is not None:
            raise self.resolve_error
        return self.identity

    async def get_account(self, account_id: str) -> AccountResponse | None:
        return self.account

    async def mark_verified(self, account_id: str) -> AccountResponse:
        self.marked.append(account_id)
        if self.mark_error is not None:
            raise self.mark_error
        assert self.account is not None
        self.account = self.account.model_copy(update={"email_verified": True})
        return self.account


class FakeOtp:
    def __init__(self) -> None:
        self.verify_result = OtpResult(success=True, message="OTP verified successfully.")
        self.issue_result = OtpResult(success=True, message=f"OTP sent to {EMAIL}.", expires_in=300)
        self.verified: list[tuple[str, str]] = []
        self.issued: list[str] = []
        self.gate: asyncio.Event | None = None

    async def verify(self, email: str, code: str) -> OtpResult:
        self.verified.append((email, code))
        if self.gate is not None:
            await self.gate.wait()
        return self.verify_result

    async def issue(self, email: str) -> OtpResult:
        self.issued.append(email)
        if self.gate is not None:
            await self.gate.wait()
        return self.issue_result


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity(Identity(id="acc-1", email=EMAIL), _account())


@pytest.fixture
def otp() -> FakeOtp:
    return FakeOtp()


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(pending_email=EMAIL, access_token="token")


def _flow(identity, otp, session, ttl_seconds: int = 300) -> ActivationFlow:
    return ActivationFlow(identity, otp, session, ttl_seconds=ttl_seconds, auto_tick=False)


async def _counting(identity, otp, session, ttl_seconds: int = 300) -> ActivationFlow:
    flow = _flow(identity, otp, session, ttl_seconds)
    assert await flow.load() is ActivationState.COUNTING
    return flow


def _expire(flow: ActivationFlow) -> None:
    while not flow.countdown.expired:
        flow.countdown.tick()


class TestLoad:
    async def test_enters_countdown_with_pending_email(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert flow.email == EMAIL
        assert flow.account_id == "acc-1"
        assert flow.remaining == 300
        assert flow.timer_text == "5:00"
        assert flow.can_submit is True
        assert flow.can_resend is False
        assert EMAIL in flow.message
        assert otp.issued == []

    async def test_pending_email_wins_over_account_email(self, identity, otp, session):
        identity.account = _account(email="old@example.com")
        flow = await _counting(identity, otp, session)
        assert flow.email == EMAIL

    async def test_falls_back_to_account_email(self, identity, otp):
        session = SessionContext(access_token="token")
        flow = await _counting(identity, otp, session)
        assert flow.email == EMAIL
        assert session.pending_email == EMAIL

    async def test_no_identity_parks_awaiting_email(self, otp, session):
        flow = _flow(FakeIdentity(), otp, session)
        assert await flow.load() is ActivationState.AWAITING_EMAIL
        assert flow.error is AuthErrorKind.NOT_AUTHENTICATED
        assert flow.message == "No user logged in. Please register again."
        assert flow.redirect_to == REGISTER_PATH
        assert session.pending_email is None
        assert otp.verified == [] and otp.issued == []

    async def test_identity_failure_treated_as_signed_out(self, identity, otp, session):
        identity.resolve_error = AuthError(AuthErrorKind.REMOTE_FAILURE)
        flow = _flow(identity, otp, session)
        assert await flow.load() is ActivationState.AWAITING_EMAIL
        assert flow.error is AuthErrorKind.NOT_AUTHENTICATED

    async def test_no_email_anywhere(self, otp):
        identity = FakeIdentity(Identity(id="acc-1"), None)
        flow = _flow(identity, otp, SessionContext(access_token="token"))
        assert await flow.load() is ActivationState.AWAITING_EMAIL
        assert flow.error is AuthErrorKind.NO_ACTIVATION_EMAIL

    async def test_verified_account_short_circuits(self, identity, otp, session):
        identity.account = _account(verified=True)
        flow = _flow(identity, otp, session)
        assert await flow.load() is ActivationState.ACTIVATED
        assert flow.redirect_to == HOME_PATH
        assert session.pending_email is None

    async def test_load_twice_is_noop(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert await flow.load() is ActivationState.COUNTING


class TestSubmit:
    async def test_correct_code_activates(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert await flow.submit("123456") is True
        assert flow.state is ActivationState.ACTIVATED
        assert otp.verified == [(EMAIL, "123456")]
        assert identity.marked == ["acc-1"]
        assert flow.redirect_to == HOME_PATH
        assert session.pending_email is None
        assert flow.countdown.running is False
        assert flow.error is None

    async def test_surrounding_whitespace_is_trimmed(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert await flow.submit(" 123456 ") is True
        assert otp.verified == [(EMAIL, "123456")]

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "abcdef"])
    async def test_malformed_code_never_reaches_service(self, identity, otp, session, code):
        flow = await _counting(identity, otp, session)
        assert await flow.submit(code) is False
        assert flow.state is ActivationState.COUNTING
        assert flow.error is AuthErrorKind.OTP_MALFORMED
        assert otp.verified == []

    async def test_wrong_code_returns_to_counting(self, identity, otp, session):
        otp.verify_result = OtpResult.failure(AuthErrorKind.OTP_INVALID)
        flow = await _counting(identity, otp, session)
        assert await flow.submit("000000") is False
        assert flow.state is ActivationState.COUNTING
        assert flow.error is AuthErrorKind.OTP_INVALID
        assert flow.message == "Invalid OTP code."
        assert identity.marked == []
        assert flow.can_submit is True

    async def test_mark_verified_failure_returns_to_counting(self, identity, otp, session):
        identity.mark_error = AuthError(AuthErrorKind.REMOTE_FAILURE)
        flow = await _counting(identity, otp, session)
        assert await flow.submit("123456") is False
        assert flow.state is ActivationState.COUNTING
        assert flow.error is AuthErrorKind.REMOTE_FAILURE
        assert flow.otp_consumed is True
        assert "Submit again" in flow.message

    async def test_retry_after_mark_failure_skips_spent_code(self, identity, otp, session):
        identity.mark_error = AuthError(AuthErrorKind.REMOTE_FAILURE)
        flow = await _counting(identity, otp, session)
        assert await flow.submit("123456") is False

        identity.mark_error = None
        assert await flow.submit("123456") is True
        assert flow.state is ActivationState.ACTIVATED
        assert otp.verified == [(EMAIL, "123456")]
        assert identity.marked == ["acc-1", "acc-1"]

    async def test_countdown_cannot_strand_accepted_code(self, identity, otp, session):
        identity.mark_error = AuthError(AuthErrorKind.REMOTE_FAILURE)
        flow = ActivationFlow(identity, otp, session, ttl_seconds=2, tick_interval=0.01)
        await flow.load()
        assert await flow.submit("123456") is False
        assert flow.countdown.running is False

        await asyncio.sleep(0.05)
        assert flow.state is ActivationState.COUNTING
        assert flow.can_submit is True

        identity.mark_error = None
        assert await flow.submit("") is True
        assert len(otp.verified) == 1
        flow.close()

    async def test_malformed_message_uses_configured_length(self, identity, otp, session):
        flow = ActivationFlow(identity, otp, session, auto_tick=False, otp_length=8)
        await flow.load()
        assert await flow.submit("123456") is False
        assert flow.error is AuthErrorKind.OTP_MALFORMED
        assert flow.message == "OTP must be exactly 8 digits."
        assert otp.verified == []

    async def test_refused_after_expiry(self, identity, otp, session):
        flow = await _counting(identity, otp, session, ttl_seconds=3)
        _expire(flow)
        assert flow.state is ActivationState.EXPIRED
        assert await flow.submit("123456") is False
        assert flow.error is AuthErrorKind.COUNTDOWN_EXPIRED
        assert flow.message == "OTP has expired. Please resend OTP."
        assert otp.verified == []

    async def test_refused_without_email(self, otp, session):
        flow = _flow(FakeIdentity(), otp, session)
        await flow.load()
        assert await flow.submit("123456") is False
        assert flow.error is AuthErrorKind.NO_ACTIVATION_EMAIL
        assert flow.state is ActivationState.AWAITING_EMAIL

    async def test_refused_while_busy(self, identity, otp, session):
        otp.gate = asyncio.Event()
        flow = await _counting(identity, otp, session)
        pending = asyncio.create_task(flow.submit("123456"))
        await asyncio.sleep(0)
        assert flow.busy is True
        assert flow.state is ActivationState.VERIFYING
        assert flow.can_submit is False

        assert await flow.submit("123456") is False
        assert flow.error is AuthErrorKind.BUSY
        assert await flow.resend() is False
        assert flow.error is AuthErrorKind.BUSY

        otp.gate.set()
        assert await pending is True
        assert flow.busy is False
        assert len(otp.verified) == 1

    async def test_expiry_while_verifying_lands_in_expired(self, identity, otp, session):
        otp.gate = asyncio.Event()
        otp.verify_result = OtpResult.failure(AuthErrorKind.OTP_INVALID)
        flow = await _counting(identity, otp, session, ttl_seconds=2)
        pending = asyncio.create_task(flow.submit("123456"))
        await asyncio.sleep(0)
        _expire(flow)
        assert flow.state is ActivationState.VERIFYING

        otp.gate.set()
        assert await pending is False
        assert flow.state is ActivationState.EXPIRED
        assert flow.can_resend is True

    async def test_success_after_expiry_while_verifying_still_activates(self, identity, otp, session):
        otp.gate = asyncio.Event()
        flow = await _counting(identity, otp, session, ttl_seconds=2)
        pending = asyncio.create_task(flow.submit("123456"))
        await asyncio.sleep(0)
        _expire(flow)

        otp.gate.set()
        assert await pending is True
        assert flow.state is ActivationState.ACTIVATED


class TestResend:
    async def test_not_available_while_counting(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert await flow.resend() is False
        assert flow.error is AuthErrorKind.RESEND_NOT_AVAILABLE
        assert otp.issued == []

    async def test_resend_restarts_countdown(self, identity, otp, session):
        flow = await _counting(identity, otp, session, ttl_seconds=3)
        _expire(flow)
        assert await flow.resend() is True
        assert otp.issued == [EMAIL]
        assert flow.state is ActivationState.COUNTING
        assert flow.remaining == 300
        assert flow.message == f"A new OTP has been sent to {EMAIL}."

    async def test_failed_resend_stays_expired(self, identity, otp, session):
        otp.issue_result = OtpResult.failure(AuthErrorKind.OTP_DISPATCH_FAILED)
        flow = await _counting(identity, otp, session, ttl_seconds=3)
        _expire(flow)
        assert await flow.resend() is False
        assert flow.state is ActivationState.EXPIRED
        assert flow.error is AuthErrorKind.OTP_DISPATCH_FAILED
        assert flow.can_resend is True

    async def test_verify_after_resend(self, identity, otp, session):
        flow = await _counting(identity, otp, session, ttl_seconds=3)
        _expire(flow)
        await flow.resend()
        assert await flow.submit("654321") is True
        assert flow.state is ActivationState.ACTIVATED


class TestLifecycle:
    async def test_poll_picks_up_external_verification(self, identity, otp, session):
        flow = await _counting(identity, otp, session)
        assert await flow.poll_verified() is False
        identity.account = _account(verified=True)
        assert await flow.poll_verified() is True
        assert flow.state is ActivationState.ACTIVATED

    async def test_countdown_ticks_on_its_own(self, identity, otp, session):
        flow = ActivationFlow(identity, otp, session, ttl_seconds=2, tick_interval=0.01)
        await flow.load()
        assert flow.countdown.running is True
        for _ in range(100):
            if flow.state is ActivationState.EXPIRED:
                break
            await asyncio.sleep(0.01)
        assert flow.state is ActivationState.EXPIRED
        flow.close()

    async def test_close_stops_countdown(self, identity, otp, session):
        flow = ActivationFlow(identity, otp, session, ttl_seconds=300, tick_interval=0.01)
        await flow.load()
        flow.close()
        assert flow.countdown.running is False
        remaining = flow.remaining
        await asyncio.sleep(0.05)
        assert flow.remaining == remaining
