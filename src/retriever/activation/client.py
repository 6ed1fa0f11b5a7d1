"""
HTTP client for the Item Retriever API.

Implements IdentityGateway and OtpGateway over httpx so the activation flow
can run against a deployed service. Transport errors become REMOTE_FAILURE.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from retriever.activation.gateways import Identity
from retriever.activation.session import SessionContext
from retriever.auth.errors import AuthError, AuthErrorKind
from retriever.auth.otp import OtpResult
from retriever.auth.schemas import AccountResponse, RegisterRequest, RegisterResponse, TokenResponse

logger = structlog.get_logger()


def _error_from_response(response: httpx.Response) -> AuthError:
    """Rebuild the server's AuthError from a non-2xx response."""
    try:
        body: dict[str, Any] = response.json()
    except ValueError:
        body = {}
    try:
        kind = AuthErrorKind(body.get("kind", ""))
    except ValueError:
        if response.status_code == 401:
            kind = AuthErrorKind.NOT_AUTHENTICATED
        elif response.status_code == 422:
            kind = AuthErrorKind.INVALID_PROFILE
        else:
            kind = AuthErrorKind.REMOTE_FAILURE
        return AuthError(kind)
    detail = body.get("detail")
    return AuthError(kind, detail if isinstance(detail, str) else None)


def _known_kind(value: object) -> AuthErrorKind | None:
    if not value:
        return None
    try:
        return AuthErrorKind(value)
    except ValueError:
        logger.warning("unknown_error_kind", kind=value)
        return AuthErrorKind.REMOTE_FAILURE


def _otp_result(body: dict[str, Any]) -> OtpResult:
    return OtpResult(
        success=bool(body.get("success")),
        message=str(body.get("message", "")),
        kind=_known_kind(body.get("kind")),
        expires_in=body.get("expires_in"),
    )


class RetrieverClient:
    """Async API client bound to one device's SessionContext."""

    def __init__(
        self,
        base_url: str,
        session: SessionContext | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.session = session or SessionContext()
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> RetrieverClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if self.session.access_token is None:
            return {}
        return {"Authorization": f"Bearer {self.session.access_token}"}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, headers=self._auth_headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("api_request_failed", method=method, url=url, error=str(e))
            raise AuthError(AuthErrorKind.REMOTE_FAILURE) from e

    # ------------------------------------------------------------------
    # Registration / sign-in
    # ------------------------------------------------------------------

    async def register(self, body: RegisterRequest) -> RegisterResponse:
        """Create the account; stores the returned token in the session."""
        response = await self._request("POST", "/api/v1/auth/register", json=body.model_dump(mode="json"))
        if response.status_code != 201:
            raise _error_from_response(response)
        result = RegisterResponse.model_validate(response.json())
        self.session.access_token = result.access_token
        return result

    async def login(self, email: str, password: str) -> TokenResponse:
        response = await self._request("POST", "/api/v1/auth/login", json={"email": email, "password": password})
        if response.status_code != 200:
            raise _error_from_response(response)
        result = TokenResponse.model_validate(response.json())
        self.session.access_token = result.access_token
        return result

    def sign_out(self) -> None:
        self.session.clear()

    # ------------------------------------------------------------------
    # IdentityGateway
    # ------------------------------------------------------------------

    async def _me(self) -> AccountResponse | None:
        if self.session.access_token is None:
            return None
        response = await self._request("GET", "/api/v1/users/me")
        if response.status_code in (401, 403):
            return None
        if response.status_code != 200:
            raise _error_from_response(response)
        return AccountResponse.model_validate(response.json())

    async def resolve_current_identity(self) -> Identity | None:
        account = await self._me()
        if account is None:
            return None
        return Identity(id=account.id, email=account.email)

    async def get_account(self, account_id: str) -> AccountResponse | None:
        account = await self._me()
        if account is None or account.id != account_id:
            return None
        return account

    async def mark_verified(self, account_id: str) -> AccountResponse:
        response = await self._request("POST", "/api/v1/users/me/email-verified")
        if response.status_code != 200:
            raise _error_from_response(response)
        account = AccountResponse.model_validate(response.json())
        if account.id != account_id:
            raise AuthError(AuthErrorKind.NOT_AUTHENTICATED)
        return account

    # ------------------------------------------------------------------
    # OtpGateway
    # ------------------------------------------------------------------

    async def issue(self, email: str) -> OtpResult:
        try:
            response = await self._request("POST", "/api/v1/auth/otp/send", json={"email": email})
        except AuthError as e:
            return OtpResult.failure(e.kind)
        if response.status_code != 200:
            return OtpResult.failure(_error_from_response(response).kind)
        return _otp_result(response.json())

    async def verify(self, email: str, code: str) -> OtpResult:
        try:
            response = await self._request("POST", "/api/v1/auth/otp/verify", json={"email": email, "otp": code})
        except AuthError as e:
            return OtpResult.failure(e.kind)
        if response.status_code != 200:
            return OtpResult.failure(_error_from_response(response).kind)
        return _otp_result(response.json())
