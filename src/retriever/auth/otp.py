"""
One-time code issuance and verification.

A challenge is active while it is neither consumed nor superseded and its
expiry has not passed. Issuing a code supersedes every other active challenge
for the same email immediately, so an older code can never verify after a
resend. Only the SHA-256 of a code is stored.

Each operation owns its transaction: it commits on success and rolls back on
failure, so callers must commit their own pending work first.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from retriever.auth.errors import AuthErrorKind, error_message
from retriever.config import get_settings
from retriever.db.models import Account, OtpChallenge
from retriever.email.service import get_email_service

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from retriever.email.service import EmailService

logger = structlog.get_logger()


@dataclass(frozen=True)
class OtpResult:
    """Outcome of an issue or verify call: {success, message} plus the failure kind."""

    success: bool
    message: str
    kind: AuthErrorKind | None = None
    expires_in: int | None = None

    @classmethod
    def failure(cls, kind: AuthErrorKind, message: str | None = None) -> OtpResult:
        return cls(success=False, message=message or error_message(kind), kind=kind)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_code(length: int) -> str:
    """Uniformly random numeric code of exactly `length` digits."""
    return f"{secrets.randbelow(10**length):0{length}d}"


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def is_well_formed(code: str, length: int | None = None) -> bool:
    """True when the code is exactly `length` ASCII digits."""
    length = length or get_settings().otp_length
    return len(code) == length and code.isascii() and code.isdigit()


def malformed_message(length: int) -> str:
    return f"OTP must be exactly {length} digits."


# ---------------------------------------------------------------------------
# Issue
# ---------------------------------------------------------------------------


async def issue_otp(
    db: AsyncSession,
    email: str,
    email_service: EmailService | None = None,
) -> OtpResult:
    """
    Create a fresh challenge for `email` and dispatch its code.

    Fails when no account exists for the email, when the store lookup fails,
    or when the email dispatcher reports failure. A failed issuance leaves any
    earlier challenge untouched.
    """
    settings = get_settings()
    email = email.lower().strip()

    try:
        result = await db.execute(select(Account).where(func.lower(Account.email) == email))
        account = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.exception("otp_recipient_lookup_failed", email=email)
        await db.rollback()
        return OtpResult.failure(AuthErrorKind.REMOTE_FAILURE)
    if account is None:
        return OtpResult.failure(AuthErrorKind.ACCOUNT_NOT_FOUND)

    now = datetime.now(timezone.utc)
    superseded = await db.execute(
        update(OtpChallenge)
        .where(OtpChallenge.email == email)
        .where(OtpChallenge.consumed_at == None)  # noqa: E711
        .where(OtpChallenge.superseded_at == None)  # noqa: E711
        .values(superseded_at=now)
    )
    superseded_count = superseded.rowcount

    code = generate_code(settings.otp_length)
    challenge = OtpChallenge(
        email=email,
        code_hash=hash_code(code),
        issued_at=now,
        expires_at=now + timedelta(seconds=settings.otp_ttl_seconds),
    )
    db.add(challenge)
    account.registration_incomplete = False
    await db.flush()

    service = email_service or get_email_service()
    try:
        sent = await service.send_template(
            to=email,
            template_name="otp_code",
            context={"name": account.name, "code": code, "expires_seconds": settings.otp_ttl_seconds},
        )
    except Exception:
        logger.exception("otp_dispatch_error", email=email)
        sent = False

    if not sent:
        await db.rollback()
        logger.warning("otp_dispatch_failed", email=email)
        return OtpResult.failure(AuthErrorKind.OTP_DISPATCH_FAILED)

    await db.commit()
    if superseded_count:
        logger.info("otp_superseded", email=email, count=superseded_count)
    logger.info("otp_issued", email=email, challenge_id=challenge.id, ttl=settings.otp_ttl_seconds)
    return OtpResult(
        success=True,
        message=f"OTP sent to {email}.",
        expires_in=settings.otp_ttl_seconds,
    )


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


async def get_active_challenge(db: AsyncSession, email: str) -> OtpChallenge | None:
    """Newest challenge for the email that is neither consumed nor superseded."""
    result = await db.execute(
        select(OtpChallenge)
        .where(OtpChallenge.email == email.lower().strip())
        .where(OtpChallenge.consumed_at == None)  # noqa: E711
        .where(OtpChallenge.superseded_at == None)  # noqa: E711
        .order_by(OtpChallenge.issued_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def verify_otp(db: AsyncSession, email: str, code: str) -> OtpResult:
    """
    Consume the active challenge for `email` when `code` matches.

    Fails for a malformed code, an unknown email, an expired, consumed or
    superseded challenge, too many wrong attempts, or a mismatching code.
    A second call with the same code after success fails.
    """
    settings = get_settings()
    email = email.lower().strip()
    code = code.strip()

    if not is_well_formed(code, settings.otp_length):
        return OtpResult.failure(
            AuthErrorKind.OTP_MALFORMED,
            malformed_message(settings.otp_length),
        )

    challenge = await get_active_challenge(db, email)
    if challenge is None:
        logger.info("otp_verify_failed", email=email, reason="not_found")
        return OtpResult.failure(AuthErrorKind.OTP_NOT_FOUND)

    now = datetime.now(timezone.utc)
    if as_utc(challenge.expires_at) <= now:
        logger.info("otp_verify_failed", email=email, reason="expired")
        return OtpResult.failure(AuthErrorKind.OTP_EXPIRED)
    if challenge.attempts >= settings.otp_max_attempts:
        logger.info("otp_verify_failed", email=email, reason="attempts_exceeded")
        return OtpResult.failure(AuthErrorKind.OTP_ATTEMPTS_EXCEEDED)

    if not hmac.compare_digest(challenge.code_hash, hash_code(code)):
        challenge.attempts = (challenge.attempts or 0) + 1
        await db.commit()
        logger.info("otp_verify_failed", email=email, reason="mismatch", attempts=challenge.attempts)
        return OtpResult.failure(AuthErrorKind.OTP_INVALID)

    # Conditional update so two concurrent submissions cannot both consume it
    consumed = await db.execute(
        update(OtpChallenge)
        .where(OtpChallenge.id == challenge.id)
        .where(OtpChallenge.consumed_at == None)  # noqa: E711
        .where(OtpChallenge.superseded_at == None)  # noqa: E711
        .values(consumed_at=now)
    )
    if consumed.rowcount != 1:
        await db.rollback()
        logger.info("otp_verify_failed", email=email, reason="already_consumed")
        return OtpResult.failure(AuthErrorKind.OTP_NOT_FOUND)

    await db.commit()
    logger.info("otp_verified", email=email, challenge_id=challenge.id)
    return OtpResult(success=True, message="OTP verified successfully.")


async def has_consumed_challenge(db: AsyncSession, email: str) -> bool:
    """True when at least one challenge for the email was successfully verified."""
    result = await db.execute(
        select(func.count())
        .select_from(OtpChallenge)
        .where(OtpChallenge.email == email.lower().strip())
        .where(OtpChallenge.consumed_at != None)  # noqa: E711
    )
    return int(result.scalar_one()) > 0
