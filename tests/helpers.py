"""Payload builders and mock inspection shared by the test modules."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

VALID_PASSWORD = "Retriever2024"


def registration_payload(**overrides: Any) -> dict[str, Any]:
    """A complete, valid registration form."""
    payload: dict[str, Any] = {
        "name": "Asha Verma",
        "email": "asha@example.com",
        "mobile": "9876543210",
        "dob": "1995-04-12",
        "gender": "female",
        "address": "12 Lake Road, Pune",
        "role": "user",
        "password": VALID_PASSWORD,
        "confirm_password": VALID_PASSWORD,
    }
    payload.update(overrides)
    return payload


def sent_codes(mock_email_service: MagicMock) -> list[str]:
    """Every one-time code handed to the mocked email service, oldest first."""
    return [
        call.kwargs["context"]["code"]
        for call in mock_email_service.send_template.call_args_list
        if call.kwargs.get("template_name") == "otp_code"
    ]


def last_code(mock_email_service: MagicMock) -> str:
    codes = sent_codes(mock_email_service)
    assert codes, "no OTP was dispatched"
    return codes[-1]


def wrong_code(code: str) -> str:
    """A well-formed code guaranteed to differ from `code`."""
    return f"{(int(code) + 1) % 10**len(code):0{len(code)}d}"


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
