"""Request dependencies resolving the signed-in account."""

from __future__ import annotations

import jwt
import structlog
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from retriever.auth.jwt import verify_token
from retriever.auth.service import get_account_by_id
from retriever.database import get_session
from retriever.db.models import Account

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


async def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Account:
    """
    Resolve the bearer token to an Account.

    Every failure answers 401 with a Bearer challenge: missing header,
    undecodable or expired token, or an account deleted since sign-in.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as exc:
        logger.info("token_rejected", reason=str(exc))
        raise _unauthorized(str(exc)) from exc

    account = await get_account_by_id(db, str(claims["sub"]))
    if account is None:
        raise _unauthorized("Account not found")
    return account
