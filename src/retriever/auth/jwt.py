"""
Access tokens for signed-in accounts.

HS* algorithms sign with RETRIEVER_JWT_SECRET. Any other algorithm reads a
PEM key pair from the configured paths. Keys are loaded once per process;
tests call reset_keys() after changing settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import jwt

from retriever.config import Settings, get_settings

REQUIRED_CLAIMS = ["sub", "exp", "iat", "iss"]


@dataclass(frozen=True)
class _KeyPair:
    signing: str
    verifying: str


_keys: _KeyPair | None = None


def _read_keys(settings: Settings) -> _KeyPair:
    if settings.jwt_algorithm.upper().startswith("HS"):
        if not settings.jwt_secret:
            msg = "RETRIEVER_JWT_SECRET must be set for HMAC algorithms"
            raise RuntimeError(msg)
        return _KeyPair(settings.jwt_secret, settings.jwt_secret)
    return _KeyPair(
        signing=Path(settings.jwt_private_key_path).read_text(),
        verifying=Path(settings.jwt_public_key_path).read_text(),
    )


def _get_keys() -> _KeyPair:
    global _keys  # noqa: PLW0603
    if _keys is None:
        _keys = _read_keys(get_settings())
    return _keys


def reset_keys() -> None:
    global _keys  # noqa: PLW0603
    _keys = None


def create_access_token(account_id: str, role: str = "user") -> str:
    """Sign an access token carrying the account id as `sub` and its role."""
    settings = get_settings()
    issued = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": account_id,
        "role": role,
        "type": "access",
        "iss": settings.jwt_issuer,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_access_token_expire_minutes),
    }
    return jwt.encode(claims, _get_keys().signing, algorithm=settings.jwt_algorithm)


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Decode a token signed by this service.

    Raises:
        jwt.InvalidTokenError: Bad signature, foreign issuer, missing claims,
            expiry, or a `type` other than `expected_type`.
    """
    settings = get_settings()
    try:
        claims: dict[str, Any] = jwt.decode(
            token,
            _get_keys().verifying,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    token_type = claims.get("type")
    if token_type != expected_type:
        msg = f"Expected token type '{expected_type}', got '{token_type}'"
        raise jwt.InvalidTokenError(msg)
    return claims
