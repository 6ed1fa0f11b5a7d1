"""Authentication endpoints under /api/v1/auth."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from retriever.auth.dependencies import get_current_account
from retriever.auth.jwt import create_access_token
from retriever.auth.otp import OtpResult, issue_otp, verify_otp
from retriever.auth.schemas import (
    AccountResponse,
    ActivateRequest,
    LoginRequest,
    OtpResponse,
    OtpSendRequest,
    OtpVerifyRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
)
from retriever.auth.service import activate_account, authenticate_account, register_account
from retriever.config import get_settings
from retriever.database import get_session
from retriever.db.models import Account
from retriever.email.service import get_email_service

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _token_fields(account: Account) -> dict[str, object]:
    settings = get_settings()
    return {
        "access_token": create_access_token(account.id, account.role),
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
        "account": AccountResponse.model_validate(account),
    }


def _otp_response(result: OtpResult) -> OtpResponse:
    return OtpResponse(
        success=result.success,
        message=result.message,
        kind=result.kind.value if result.kind else None,
        expires_in=result.expires_in,
    )


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_session),
) -> RegisterResponse:
    """Create an unverified account and send its first one-time code."""
    account, otp = await register_account(db, body, get_email_service())
    return RegisterResponse(**_token_fields(account), otp_expires_in=otp.expires_in or 0)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Login with email + password. Unverified accounts may log in to finish activation."""
    account = await authenticate_account(db, body.email, body.password)
    return TokenResponse(**_token_fields(account))


@router.post("/otp/send", response_model=OtpResponse)
async def send_otp(
    body: OtpSendRequest,
    db: AsyncSession = Depends(get_session),
) -> OtpResponse:
    """Issue a fresh code for an email, superseding any earlier one."""
    result = await issue_otp(db, body.email, get_email_service())
    return _otp_response(result)


@router.post("/otp/verify", response_model=OtpResponse)
async def verify_otp_endpoint(
    body: OtpVerifyRequest,
    db: AsyncSession = Depends(get_session),
) -> OtpResponse:
    """Consume the active code for an email."""
    result = await verify_otp(db, body.email, body.otp)
    return _otp_response(result)


@router.post("/activate", response_model=AccountResponse)
async def activate(
    body: ActivateRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    """Verify a code for the signed-in account and mark its email verified."""
    account = await activate_account(db, account, body.otp)
    return AccountResponse.model_validate(account)
