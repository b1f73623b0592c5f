"""Outbound email: providers plus verification, invitation and assignment messages.

Providers:
  - ``log``: records messages in an in-memory outbox and logs them (default,
    used in development and tests).
  - ``resend``: posts to the Resend HTTP API with aiohttp.

Messages are plain text in English or Portuguese; the locale is taken from an
explicit value or the request's ``Accept-Language`` header.
"""
from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

import aiohttp

from app.config import APP_URL, EMAIL_SETTINGS, VERIFICATION_SETTINGS
from app.models.db.enums import Locale
from app.utils import get_logger

logger = get_logger(__name__)


class EmailDeliveryError(Exception):
    """Raised when a provider could not hand the message over."""


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str
    kind: str = "generic"


@dataclass
class SendResult:
    message_id: Optional[str] = None


class EmailProvider(ABC):
    @abstractmethod
    async def send(self, message: EmailMessage) -> SendResult:
        ...


@dataclass
class LoggingEmailProvider(EmailProvider):
    outbox: List[EmailMessage] = field(default_factory=list)

    async def send(self, message: EmailMessage) -> SendResult:
        self.outbox.append(message)
        logger.info("Email queued in local outbox", to=message.to, kind=message.kind, subject=message.subject)
        return SendResult(message_id=f"local-{uuid.uuid4().hex[:12]}")


class ResendEmailProvider(EmailProvider):
    def __init__(self, api_key: str, sender: str, api_url: str, timeout_seconds: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds

    async def send(self, message: EmailMessage) -> SendResult:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"from": self.sender, "to": [message.to], "subject": message.subject, "text": message.body}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.api_url, headers=headers, json=payload) as resp:
                    data = await resp.json(content_type=None)
                    if resp.status >= 300:
                        logger.error("Resend API rejected email", status_code=resp.status, kind=message.kind)
                        raise EmailDeliveryError(f"Resend API returned status {resp.status}")
                    return SendResult(message_id=(data or {}).get("id"))
        except asyncio.TimeoutError:
            logger.error("Resend API request timed out", kind=message.kind)
            raise EmailDeliveryError("Resend API request timed out")
        except aiohttp.ClientError as e:
            logger.error("Resend API client error", error=str(e), kind=message.kind)
            raise EmailDeliveryError(f"Resend API client error: {str(e)}")


_provider: Optional[EmailProvider] = None


def get_email_provider() -> EmailProvider:
    """Lazily build the configured provider (cached for the process)."""
    global _provider
    if _provider is not None:
        return _provider

    name = str(EMAIL_SETTINGS["provider"] or "log").lower()
    if name == "resend":
        api_key = EMAIL_SETTINGS["resend_api_key"]
        sender = EMAIL_SETTINGS["sender"]
        if not api_key or not sender:
            raise RuntimeError("RESEND_API_KEY and RESEND_SENDER_EMAIL must be configured for the resend provider")
        _provider = ResendEmailProvider(
            api_key=str(api_key),
            sender=str(sender),
            api_url=str(EMAIL_SETTINGS["resend_api_url"]),
            timeout_seconds=float(EMAIL_SETTINGS["timeout_seconds"] or 10),  # type: ignore[arg-type]
        )
    elif name == "log":
        _provider = LoggingEmailProvider()
    else:
        raise RuntimeError(f"Invalid EMAIL_PROVIDER: {name}. Must be either 'log' or 'resend'")
    return _provider


def set_email_provider(provider: Optional[EmailProvider]) -> None:
    """Replace the cached provider (``None`` rebuilds it from config)."""
    global _provider
    _provider = provider


def resolve_locale(explicit: Optional[str] = None, accept_language: Optional[str] = None) -> Locale:
    for candidate in (explicit, accept_language):
        if candidate and candidate.strip().lower().startswith("pt"):
            return Locale.PT
        if candidate and candidate.strip().lower().startswith("en"):
            return Locale.EN
    return Locale.EN


def verification_email(to: str, name: str, code: str, locale: Locale = Locale.EN) -> EmailMessage:
    minutes = VERIFICATION_SETTINGS["code_ttl_minutes"]
    url = f"{APP_URL.rstrip('/')}/{locale.value}/verify?email={to}"
    if locale == Locale.PT:
        subject = "Código de Verificação - Secret Santa"
        body = (
            f"Olá, {name}!\n\n"
            f"Seu código de verificação é: {code}\n"
            f"Você também pode verificar em: {url}\n\n"
            f"Este código expira em {minutes} minutos.\n"
            "Se você não solicitou este código, pode ignorar este e-mail.\n"
        )
    else:
        subject = "Verification Code - Secret Santa"
        body = (
            f"Hello, {name}!\n\n"
            f"Your verification code is: {code}\n"
            f"You can also verify at: {url}\n\n"
            f"This code expires in {minutes} minutes.\n"
            "If you didn't request this code, you can safely ignore this email.\n"
        )
    return EmailMessage(to=to, subject=subject, body=body, kind="verification")


def assignment_email(
    to: str,
    participant_name: str,
    recipient_name: str,
    group_name: str,
    event_date: date,
    place: str,
    budget: str,
    locale: Locale = Locale.EN,
) -> EmailMessage:
    if locale == Locale.PT:
        subject = f"Seu Amigo Secreto - {group_name}"
        body = (
            f"Olá, {participant_name}!\n\n"
            f"O sorteio do grupo {group_name} foi realizado.\n"
            f"Você vai presentear: {recipient_name}\n\n"
            f"Data: {event_date.isoformat()}\n"
            f"Local: {place}\n"
            f"Orçamento: {budget}\n\n"
            "Lembre-se: mantenha segredo!\n"
        )
    else:
        subject = f"Your Secret Santa - {group_name}"
        body = (
            f"Hello, {participant_name}!\n\n"
            f"The draw for {group_name} has been completed.\n"
            f"You are giving a gift to: {recipient_name}\n\n"
            f"Date: {event_date.isoformat()}\n"
            f"Place: {place}\n"
            f"Budget: {budget}\n\n"
            "Remember: keep it a secret!\n"
        )
    return EmailMessage(to=to, subject=subject, body=body, kind="assignment")


def invitation_email(
    to: str,
    group_name: str,
    invite_id: str,
    event_date: date,
    place: str,
    budget: str,
    locale: Locale = Locale.EN,
) -> EmailMessage:
    link = f"{APP_URL.rstrip('/')}/{locale.value}/join?inviteId={invite_id}"
    if locale == Locale.PT:
        subject = f"Você foi convidado para {group_name}!"
        body = (
            "Você foi convidado para participar de:\n\n"
            f"{group_name}\n\n"
            f"Data: {event_date.isoformat()}\n"
            f"Local: {place}\n"
            f"Orçamento: {budget}\n\n"
            f"Clique no link para entrar: {link}\n"
        )
    else:
        subject = f"You're invited to {group_name}!"
        body = (
            "You've been invited to join:\n\n"
            f"{group_name}\n\n"
            f"Date: {event_date.isoformat()}\n"
            f"Place: {place}\n"
            f"Budget: {budget}\n\n"
            f"Click the link to join: {link}\n"
        )
    return EmailMessage(to=to, subject=subject, body=body, kind="invitation")


async def send_email(message: EmailMessage) -> SendResult:
    return await get_email_provider().send(message)


__all__ = [
    "EmailDeliveryError",
    "EmailMessage",
    "SendResult",
    "EmailProvider",
    "LoggingEmailProvider",
    "ResendEmailProvider",
    "get_email_provider",
    "set_email_provider",
    "resolve_locale",
    "verification_email",
    "assignment_email",
    "invitation_email",
    "send_email",
]
