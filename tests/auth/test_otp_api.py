"""Integration tests for one-time code issuance and verification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select, update

from helpers import last_code, sent_codes, wrong_code
from retriever.db.models import OtpChallenge

SEND = "/api/v1/auth/otp/send"
VERIFY = "/api/v1/auth/otp/verify"
EMAIL = "asha@example.com"


async def _verify(client: AsyncClient, code: str, email: str = EMAIL) -> dict:
    response = await client.post(VERIFY, json={"email": email, "otp": code})
    assert response.status_code == 200
    return response.json()


class TestSendOtp:
    @pytest.mark.asyncio
    async def test_send_for_registered_email(self, client: AsyncClient, registered, mock_email_service) -> None:
        response = await client.post(SEND, json={"email": EMAIL})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == f"OTP sent to {EMAIL}."
        assert data["expires_in"] == 300
        assert len(sent_codes(mock_email_service)) == 2

    @pytest.mark.asyncio
    async def test_send_for_unknown_email(self, client: AsyncClient, mock_email_service) -> None:
        data = (await client.post(SEND, json={"email": "nobody@example.com"})).json()
        assert data["success"] is False
        assert data["kind"] == "account_not_found"
        mock_email_service.send_template.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_invalid_email_is_422(self, client: AsyncClient) -> None:
        response = await client.post(SEND, json={"email": "nope"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_failed_resend_keeps_earlier_code(self, client: AsyncClient, registered, mock_email_service) -> None:
        first = last_code(mock_email_service)
        mock_email_service.send_template.return_value = False
        data = (await client.post(SEND, json={"email": EMAIL})).json()
        assert data["success"] is False
        assert data["kind"] == "otp_dispatch_failed"

        assert (await _verify(client, first))["success"] is True


class TestVerifyOtp:
    @pytest.mark.asyncio
    async def test_correct_code_verifies(self, client: AsyncClient, registered, mock_email_service) -> None:
        data = await _verify(client, last_code(mock_email_service))
        assert data["success"] is True
        assert data["message"] == "OTP verified successfully."
        assert data["kind"] is None

    @pytest.mark.asyncio
    async def test_email_case_is_ignored(self, client: AsyncClient, registered, mock_email_service) -> None:
        data = await _verify(client, last_code(mock_email_service), email="ASHA@Example.com")
        assert data["success"] is True

    @pytest.mark.asyncio
    async def test_code_cannot_be_reused(self, client: AsyncClient, registered, mock_email_service) -> None:
        code = last_code(mock_email_service)
        assert (await _verify(client, code))["success"] is True
        data = await _verify(client, code)
        assert data["success"] is False
        assert data["kind"] == "otp_not_found"

    @pytest.mark.asyncio
    async def test_wrong_code_rejected(self, client: AsyncClient, registered, mock_email_service) -> None:
        code = last_code(mock_email_service)
        data = await _verify(client, wrong_code(code))
        assert data["success"] is False
        assert data["kind"] == "otp_invalid"
        assert data["message"] == "Invalid OTP code."
        # The right code still works afterwards
        assert (await _verify(client, code))["success"] is True

    @pytest.mark.asyncio
    async def test_unknown_email_rejected(self, client: AsyncClient, registered, mock_email_service) -> None:
        data = await _verify(client, last_code(mock_email_service), email="other@example.com")
        assert data["success"] is False
        assert data["kind"] == "otp_not_found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "      ", "١٢٣٤٥٦"])
    async def test_malformed_code_rejected(self, client: AsyncClient, registered, code) -> None:
        data = await _verify(client, code)
        assert data["success"] is False
        assert data["kind"] == "otp_malformed"
        assert data["message"] == "OTP must be exactly 6 digits."

    @pytest.mark.asyncio
    async def test_superseded_code_rejected(self, client: AsyncClient, registered, mock_email_service) -> None:
        first = last_code(mock_email_service)
        await client.post(SEND, json={"email": EMAIL})
        second = last_code(mock_email_service)

        if first != second:
            data = await _verify(client, first)
            assert data["success"] is False
            assert data["kind"] == "otp_invalid"
        assert (await _verify(client, second))["success"] is True

    @pytest.mark.asyncio
    async def test_resend_marks_previous_challenge_superseded(
        self, client: AsyncClient, registered, db_session
    ) -> None:
        await client.post(SEND, json={"email": EMAIL})
        challenges = (await db_session.execute(select(OtpChallenge).order_by(OtpChallenge.issued_at))).scalars().all()
        assert len(challenges) == 2
        assert challenges[0].superseded_at is not None
        assert challenges[1].superseded_at is None

    @pytest.mark.asyncio
    async def test_expired_code_rejected(
        self, client: AsyncClient, registered, mock_email_service, db_session
    ) -> None:
        await db_session.execute(
            update(OtpChallenge).values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await db_session.commit()

        data = await _verify(client, last_code(mock_email_service))
        assert data["success"] is False
        assert data["kind"] == "otp_expired"

    @pytest.mark.asyncio
    async def test_resend_after_expiry_issues_working_code(
        self, client: AsyncClient, registered, mock_email_service, db_session
    ) -> None:
        await db_session.execute(
            update(OtpChallenge).values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
        )
        await db_session.commit()

        assert (await client.post(SEND, json={"email": EMAIL})).json()["success"] is True
        assert (await _verify(client, last_code(mock_email_service)))["success"] is True

    @pytest.mark.asyncio
    async def test_attempts_are_limited(self, client: AsyncClient, registered, mock_email_service) -> None:
        code = last_code(mock_email_service)
        for _ in range(5):
            assert (await _verify(client, wrong_code(code)))["kind"] == "otp_invalid"

        data = await _verify(client, code)
        assert data["success"] is False
        assert data["kind"] == "otp_attempts_exceeded"

        await client.post(SEND, json={"email": EMAIL})
        assert (await _verify(client, last_code(mock_email_service)))["success"] is True
