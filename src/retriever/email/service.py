"""
Outbound email for one-time codes and activation notices.

A provider only delivers an already rendered message and answers True or
False. EmailService sits on top: it renders named templates, throttles each
recipient through Redis when a client is available, and never retries.
"""

from __future__ import annotations

import hashlib
import ssl
from abc import ABC, abstractmethod
from collections.abc import Callable
from email.message import EmailMessage
from typing import TYPE_CHECKING, Any

import aiosmtplib
import httpx
import structlog

from retriever.config import Settings, get_settings
from retriever.email.templates import account_activated, otp_code

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger()

RESEND_ENDPOINT = "https://api.resend.com/emails"

Rendered = tuple[str, str, str]


def _render_otp_code(context: dict[str, Any], settings: Settings) -> Rendered:
    return otp_code(
        context.get("name"),
        context["code"],
        int(context.get("expires_seconds", settings.otp_ttl_seconds)),
    )


def _render_account_activated(context: dict[str, Any], settings: Settings) -> Rendered:
    return account_activated(context.get("name"), context.get("home_url", settings.frontend_base_url))


_TEMPLATE_REGISTRY: dict[str, Callable[[dict[str, Any], Settings], Rendered]] = {
    "otp_code": _render_otp_code,
    "account_activated": _render_account_activated,
}


class BaseEmailProvider(ABC):
    """Delivers one rendered message. Returns True when the provider accepted it."""

    name = "base"

    def __init__(self, from_address: str, from_name: str) -> None:
        self.sender = f"{from_name} <{from_address}>"

    @abstractmethod
    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool: ...


class SMTPProvider(BaseEmailProvider):
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        from_name: str,
        use_tls: bool = True,
    ) -> None:
        super().__init__(from_address, from_name)
        self.host = host
        self.port = port
        self.username = username or None
        self.password = password or None
        self.use_tls = use_tls

    def _build_message(self, to_email: str, subject: str, html_body: str, text_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        message = self._build_message(to_email, subject, html_body, text_body)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
                tls_context=ssl.create_default_context() if self.use_tls else None,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.exception("email_send_failed", to=to_email, provider=self.name)
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider=self.name)
        return True


class ResendProvider(BaseEmailProvider):
    """Resend HTTP API. A non-2xx answer counts as a failed dispatch."""

    name = "resend"

    def __init__(self, api_key: str, from_address: str, from_name: str, timeout: float = 10.0) -> None:
        super().__init__(from_address, from_name)
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        payload = {
            "from": self.sender,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
            "text": text_body,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_ENDPOINT,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("email_send_failed", to=to_email, provider=self.name)
            return False
        logger.info("email_sent", to=to_email, subject=subject, provider=self.name)
        return True


_PROVIDER_FACTORIES: dict[str, Callable[[Settings], BaseEmailProvider]] = {
    "smtp": lambda s: SMTPProvider(
        host=s.smtp_host,
        port=s.smtp_port,
        username=s.smtp_username,
        password=s.smtp_password,
        from_address=s.email_from_address,
        from_name=s.email_from_name,
        use_tls=s.smtp_use_tls,
    ),
    "resend": lambda s: ResendProvider(
        api_key=s.resend_api_key,
        from_address=s.email_from_address,
        from_name=s.email_from_name,
    ),
}


def _create_provider() -> BaseEmailProvider:
    settings = get_settings()
    provider_name = settings.email_provider.lower()
    factory = _PROVIDER_FACTORIES.get(provider_name)
    if factory is None:
        msg = f"Unsupported email provider: {provider_name}"
        raise ValueError(msg)
    return factory(settings)


class EmailService:
    """Template rendering plus a per-recipient hourly send cap."""

    RATE_LIMIT_WINDOW = 3600

    def __init__(
        self,
        provider: BaseEmailProvider | None = None,
        redis: Redis | None = None,
        rate_limit_max: int | None = None,
    ) -> None:
        self.provider = provider or _create_provider()
        self._redis = redis
        self.rate_limit_max = rate_limit_max or get_settings().email_rate_limit_per_hour

    @staticmethod
    def _rate_key(email: str) -> str:
        # Recipient addresses stay out of Redis key space
        return "email_rate:" + hashlib.sha256(email.strip().lower().encode()).hexdigest()

    async def _within_rate_limit(self, email: str) -> bool:
        if self._redis is None:
            return True
        key = self._rate_key(email)
        count = await self._redis.incr(key)
        if count == 1:
            await self._redis.expire(key, self.RATE_LIMIT_WINDOW)
        return count <= self.rate_limit_max

    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        """Send unless the recipient is over its hourly cap. False means nothing went out."""
        if not await self._within_rate_limit(to):
            logger.warning("email_rate_limited", to=to, subject=subject)
            return False
        return await self.provider.send(to, subject, html_body, text_body)

    async def send_template(self, to: str, template_name: str, context: dict[str, Any]) -> bool:
        """
        Render `template_name` with `context` and send it.

        Raises:
            ValueError: If the template name is unknown.
        """
        render = _TEMPLATE_REGISTRY.get(template_name)
        if render is None:
            msg = f"Unknown template: {template_name}"
            raise ValueError(msg)
        subject, html_body, text_body = render(context, get_settings())
        return await self.send_email(to, subject, html_body, text_body)


_email_service: EmailService | None = None


def get_email_service(redis: Redis | None = None) -> EmailService:
    global _email_service  # noqa: PLW0603
    if _email_service is None:
        _email_service = EmailService(redis=redis)
    return _email_service


def reset_email_service() -> None:
    global _email_service  # noqa: PLW0603
    _email_service = None
