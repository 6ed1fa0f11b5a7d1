"""
Activation emails. Every renderer returns (subject, html_body, text_body).

All styling is inline; no <style> blocks.
"""

from __future__ import annotations

from html import escape

BG_PAGE = "#F4F6FA"
BG_CARD = "#FFFFFF"
ACCENT = "#2563EB"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4B5563"
BORDER = "#E5E7EB"


def _base_layout(content: str, app_name: str = "Item Retriever") -> str:
    """Card layout shared by every message."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="560" style="max-width: 560px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 22px; font-weight: 700; color: {ACCENT};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 36px 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You are receiving this because an {app_name} account uses this address.<br>
                                No account? Nothing to do, it will not be activated.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _code_block(code: str) -> str:
    """Render the one-time code in a large monospace box."""
    return f"""\
<p style="margin: 28px 0; text-align: center;">
    <span style="display: inline-block; padding: 14px 28px; font-family: 'SFMono-Regular', Consolas, monospace; font-size: 32px; letter-spacing: 8px; color: {TEXT_PRIMARY}; background-color: {BG_PAGE}; border: 1px solid {BORDER}; border-radius: 8px;">{code}</span>
</p>"""


def _minutes_text(expires_seconds: int) -> str:
    minutes = max(1, expires_seconds // 60)
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


def otp_code(name: str | None, code: str, expires_seconds: int = 300) -> tuple[str, str, str]:
    """
    One-time code for account activation, sent on registration and on resend.

    Returns:
        (subject, html_body, text_body)
    """
    display = escape(name or "there")
    expires = _minutes_text(expires_seconds)
    subject = "Your Item Retriever activation code"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">Activate your account</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {display},</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0;">
    Enter this code on the activation page to verify your email address.
</p>
{_code_block(code)}
<p style="color: {TEXT_SECONDARY}; font-size: 13px; line-height: 1.5; margin: 0;">
    The code expires in <strong style="color: {TEXT_PRIMARY};">{expires}</strong> and can only be used once.
    Requesting a new code invalidates this one.
</p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {name or 'there'},\n\n"
        f"Your Item Retriever activation code is: {code}\n\n"
        f"The code expires in {expires} and can only be used once. "
        f"Requesting a new code invalidates this one.\n\n"
        f"Did not sign up? The account stays inactive without this code.\n\n"
        f"-- The Item Retriever Team"
    )
    return subject, html_body, text_body


def account_activated(name: str | None, home_url: str) -> tuple[str, str, str]:
    """
    Confirmation sent once an account's email has been verified.

    Returns:
        (subject, html_body, text_body)
    """
    display = escape(name or "there")
    subject = "Your Item Retriever account is active"
    content = f"""\
<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">Account activated</h1>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 8px 0;">Hi {display},</p>
<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 24px 0;">
    Your email address has been verified. You can now report lost and found items and contact other users.
</p>
<p style="margin: 0;"><a href="{home_url}" style="color: {ACCENT}; font-weight: 600;">Open Item Retriever</a></p>"""
    html_body = _base_layout(content)
    text_body = (
        f"Hi {name or 'there'},\n\n"
        f"Your email address has been verified and your account is now active.\n\n"
        f"{home_url}\n\n"
        f"-- The Item Retriever Team"
    )
    return subject, html_body, text_body
