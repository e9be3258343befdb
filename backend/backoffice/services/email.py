from __future__ import annotations

import base64
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, Optional

import httpx

from backoffice.core.errors import EmailNotConfiguredError, EmailSendError
from backoffice.core.settings import settings


SUPPORTED_PROVIDERS = {"resend", "postmark", "smtp"}


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class EmailSendResult:
    provider: str
    message_id: Optional[str] = None


@dataclass
class OutboundEmail:
    to_address: str
    subject: str
    html: str
    text: Optional[str] = None
    attachments: List[EmailAttachment] = field(default_factory=list)


def _provider() -> str:
    return (settings.email_provider or "disabled").lower()


def email_is_configured() -> bool:
    provider = _provider()
    if provider not in SUPPORTED_PROVIDERS or not settings.email_from:
        return False
    if provider == "smtp":
        return bool(settings.smtp_host)
    return bool(settings.email_api_key)


def _sender() -> str:
    return formataddr((settings.email_from_name, settings.email_from or ""))


def send_email(
    *,
    to_address: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    attachments: Optional[List[EmailAttachment]] = None,
) -> EmailSendResult:
    message = OutboundEmail(
        to_address=to_address,
        subject=subject,
        html=html,
        text=text,
        attachments=list(attachments or []),
    )
    provider = _provider()
    if provider in {"disabled", "none"}:
        raise EmailNotConfiguredError(error="EMAIL_PROVIDER disabled")
    if not settings.email_from:
        raise EmailNotConfiguredError(error="EMAIL_FROM not configured")

    if provider == "resend":
        return _send_resend(message)
    if provider == "postmark":
        return _send_postmark(message)
    if provider == "smtp":
        return _send_smtp(message)

    raise EmailNotConfiguredError(error=f"Unsupported EMAIL_PROVIDER: {settings.email_provider}")


def _post_json(url: str, payload: dict, headers: dict, provider: str) -> dict:
    try:
        with httpx.Client(timeout=settings.email_timeout_seconds) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise EmailSendError(error=f"{provider} transport error: {exc}") from exc
    if resp.status_code >= 400:
        raise EmailSendError(error=f"{provider} error: {resp.status_code} {resp.text}")
    return resp.json()


def _send_resend(message: OutboundEmail) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailNotConfiguredError(error="EMAIL_API_KEY not configured for Resend")
    payload = {
        "from": _sender(),
        "to": [message.to_address],
        "subject": message.subject,
        "html": message.html,
    }
    if message.text:
        payload["text"] = message.text
    if message.attachments:
        payload["attachments"] = [
            {"filename": item.filename, "content": base64.b64encode(item.content).decode("ascii")}
            for item in message.attachments
        ]
    headers = {
        "Authorization": f"Bearer {settings.email_api_key}",
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.resend.com/emails", payload, headers, "Resend")
    return EmailSendResult(provider="resend", message_id=data.get("id"))


def _send_postmark(message: OutboundEmail) -> EmailSendResult:
    if not settings.email_api_key:
        raise EmailNotConfiguredError(error="EMAIL_API_KEY not configured for Postmark")
    payload = {
        "From": _sender(),
        "To": message.to_address,
        "Subject": message.subject,
        "HtmlBody": message.html,
    }
    if message.text:
        payload["TextBody"] = message.text
    if message.attachments:
        payload["Attachments"] = [
            {
                "Name": item.filename,
                "Content": base64.b64encode(item.content).decode("ascii"),
                "ContentType": item.content_type,
            }
            for item in message.attachments
        ]
    headers = {
        "X-Postmark-Server-Token": settings.email_api_key,
        "Content-Type": "application/json",
    }
    data = _post_json("https://api.postmarkapp.com/email", payload, headers, "Postmark")
    return EmailSendResult(provider="postmark", message_id=data.get("MessageID"))


def _send_smtp(message: OutboundEmail) -> EmailSendResult:
    if not settings.smtp_host:
        raise EmailNotConfiguredError(error="SMTP_HOST not configured")
    mail = EmailMessage()
    mail["Subject"] = message.subject
    mail["From"] = _sender()
    mail["To"] = message.to_address
    mail.set_content(message.text or "Ce message nécessite un client compatible HTML.")
    mail.add_alternative(message.html, subtype="html")
    for item in message.attachments:
        maintype, _, subtype = item.content_type.partition("/")
        mail.add_attachment(item.content, maintype=maintype, subtype=subtype or "octet-stream", filename=item.filename)

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.email_timeout_seconds) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(mail)
    except (smtplib.SMTPException, OSError) as exc:
        raise EmailSendError(error=f"SMTP error: {exc}") from exc
    return EmailSendResult(provider="smtp", message_id=mail.get("Message-ID"))
