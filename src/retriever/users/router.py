"""Account endpoints under /api/v1/users/me."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from retriever.auth.dependencies import get_current_account
from retriever.auth.schemas import AccountResponse
from retriever.auth.service import mark_email_verified
from retriever.database import get_session
from retriever.db.models import Account

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me", response_model=AccountResponse)
async def get_me(account: Account = Depends(get_current_account)) -> AccountResponse:
    """Identity record of the signed-in account."""
    return AccountResponse.model_validate(account)


@router.post("/me/email-verified", response_model=AccountResponse)
async def set_email_verified(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_session),
) -> AccountResponse:
    """Record a completed OTP handshake on the signed-in account."""
    account = await mark_email_verified(db, account)
    return AccountResponse.model_validate(account)
