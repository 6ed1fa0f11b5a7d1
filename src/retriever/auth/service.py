"""
Account business logic.

Handles account creation, login, and the activation handshake that flips
email_verified once a one-time code has been consumed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from retriever.auth.errors import AuthError, AuthErrorKind
from retriever.auth.otp import has_consumed_challenge, issue_otp, verify_otp
from retriever.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from retriever.config import get_settings
from retriever.db.models import Account
from retriever.email.service import get_email_service

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from retriever.auth.otp import OtpResult
    from retriever.auth.schemas import RegisterRequest
    from retriever.email.service import EmailService

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Account queries
# ---------------------------------------------------------------------------


async def get_account_by_id(db: AsyncSession, account_id: str) -> Account | None:
    """Fetch an account by ID."""
    result = await db.execute(select(Account).where(Account.id == account_id))
    return result.scalar_one_or_none()


async def get_account_by_email(db: AsyncSession, email: str) -> Account | None:
    """Fetch an account by email (case-insensitive)."""
    result = await db.execute(select(Account).where(func.lower(Account.email) == email.lower().strip()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


async def create_account(db: AsyncSession, body: RegisterRequest) -> Account:
    """
    Validate a registration payload and persist a new, unverified account.

    Raises:
        AuthError: password mismatch, weak password, or email already in use.
    """
    if body.password != body.confirm_password:
        raise AuthError(AuthErrorKind.PASSWORD_MISMATCH)
    validate_password_strength(body.password)
    if body.role == "admin" and not get_settings().allow_admin_registration:
        raise AuthError(AuthErrorKind.ROLE_NOT_ALLOWED)

    email = body.email.lower().strip()
    if await get_account_by_email(db, email) is not None:
        raise AuthError(AuthErrorKind.EMAIL_IN_USE)

    account = Account(
        email=email,
        name=body.name.strip(),
        mobile=body.mobile,
        dob=body.dob.isoformat() if body.dob else None,
        gender=body.gender,
        address=body.address,
        role=body.role,
        password_hash=hash_password(body.password),
        email_verified=False,
        registration_incomplete=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(account)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("account_create_conflict", email=email)
        raise AuthError(AuthErrorKind.EMAIL_IN_USE) from None  # concurrent registration won
    logger.info("account_created", account_id=account.id, email=email, role=account.role)
    return account


async def register_account(
    db: AsyncSession,
    body: RegisterRequest,
    email_service: EmailService | None = None,
) -> tuple[Account, OtpResult]:
    """
    Create the account, then issue its first one-time code.

    When the code cannot be dispatched the account is kept, flagged
    registration_incomplete, and AuthError(OTP_DISPATCH_FAILED) is raised.
    Issuance can be retried later through issue_otp without registering again.
    """
    account = await create_account(db, body)
    account_id = account.id

    otp = await issue_otp(db, account.email, email_service)
    if not otp.success:
        await db.execute(
            update(Account).where(Account.id == account_id).values(registration_incomplete=True)
        )
        await db.commit()
        logger.warning("registration_incomplete", account_id=account_id, reason=otp.kind)
        raise AuthError(
            AuthErrorKind.OTP_DISPATCH_FAILED,
            otp.message,
            extra={"registration_incomplete": True, "account_id": account_id},
        )

    account = await get_account_by_id(db, account_id) or account
    return account, otp


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


async def authenticate_account(db: AsyncSession, email: str, password: str) -> Account:
    """
    Authenticate with email + password.

    Raises:
        AuthError: INVALID_CREDENTIALS for unknown email or wrong password.
    """
    account = await get_account_by_email(db, email)
    if account is None or not verify_password(password, account.password_hash):
        raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

    account.last_login = datetime.now(timezone.utc)
    if check_needs_rehash(account.password_hash):
        account.password_hash = hash_password(password)
        logger.info("password_rehashed", account_id=account.id)
    await db.commit()
    return account


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------


async def mark_email_verified(db: AsyncSession, account: Account) -> Account:
    """
    Flip email_verified for an account whose email passed an OTP handshake.

    Idempotent for already-verified accounts.

    Raises:
        AuthError: OTP_NOT_VERIFIED when no challenge for the email was consumed.
    """
    if account.email_verified:
        return account
    if not await has_consumed_challenge(db, account.email):
        raise AuthError(AuthErrorKind.OTP_NOT_VERIFIED)

    account.email_verified = True
    account.verified_at = datetime.now(timezone.utc)
    account.registration_incomplete = False
    await db.commit()
    logger.info("account_activated", account_id=account.id, email=account.email)

    try:
        await get_email_service().send_template(
            to=account.email,
            template_name="account_activated",
            context={"name": account.name, "home_url": f"{get_settings().frontend_base_url}/home"},
        )
    except Exception:
        logger.exception("activation_email_failed", account_id=account.id)
    return account


async def activate_account(db: AsyncSession, account: Account, code: str) -> Account:
    """
    Verify `code` against the account's email and activate it in one call.

    Raises:
        AuthError: with the kind reported by the OTP verification.
    """
    if account.email_verified:
        return account
    result = await verify_otp(db, account.email, code)
    if not result.success:
        raise AuthError(result.kind or AuthErrorKind.OTP_INVALID, result.message)
    return await mark_email_verified(db, account)
