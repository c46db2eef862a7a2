from __future__ import annotations

import asyncio
import json
import logging
import os
import smtplib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Literal, Protocol

from emailer.templates import EmailContent

LOGGER = logging.getLogger("career_navigator.emailer")

DEFAULT_SMTP_PORT = 587
DEFAULT_FROM_ADDRESS = "Career Navigator <noreply@careernavigator.example.com>"
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
RETRYABLE_ERRORS = (smtplib.SMTPException, OSError)

DeliveryStatus = Literal["sent", "fallback", "failed"]


class EmailTransport(Protocol):
    name: str

    def send(self, sender: str, recipient: str, content: EmailContent) -> None: ...


class ConsoleTransport:
    """Development transport: the message is logged instead of delivered."""

    name = "console"

    def send(self, sender: str, recipient: str, content: EmailContent) -> None:
        LOGGER.info(
            json.dumps(
                {
                    "event": "email_console_delivery",
                    "from": sender,
                    "to": recipient,
                    "subject": content.subject,
                    "body": content.body,
                }
            )
        )


class SmtpTransport:
    name = "smtp"

    def __init__(self, host: str, port: int, user: str, password: str, *, timeout: float = 30) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.timeout = timeout

    def send(self, sender: str, recipient: str, content: EmailContent) -> None:
        message = MIMEText(content.body, "plain", "utf-8")
        message["Subject"] = content.subject
        message["From"] = sender
        message["To"] = recipient
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.user, self.password)
            server.sendmail(sender, [recipient], message.as_string())


@dataclass(frozen=True)
class EmailSettings:
    service: str = "console"
    smtp_host: str = ""
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: str = ""
    smtp_password: str = ""
    from_address: str = DEFAULT_FROM_ADDRESS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS

    @classmethod
    def from_env(cls) -> EmailSettings:
        try:
            smtp_port = int(os.getenv("SMTP_PORT", str(DEFAULT_SMTP_PORT)).strip())
        except ValueError:
            smtp_port = DEFAULT_SMTP_PORT
        return cls(
            service=os.getenv("EMAIL_SERVICE", "console").strip().lower(),
            smtp_host=os.getenv("SMTP_HOST", "").strip(),
            smtp_port=smtp_port,
            smtp_user=os.getenv("SMTP_USER", "").strip(),
            smtp_password=os.getenv("SMTP_PASSWORD", "").strip(),
            from_address=os.getenv("EMAIL_FROM", DEFAULT_FROM_ADDRESS).strip(),
            max_attempts=max(1, int(os.getenv("EMAIL_MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)))),
            retry_delay_seconds=max(
                0.0,
                float(os.getenv("EMAIL_RETRY_DELAY_SECONDS", str(DEFAULT_RETRY_DELAY_SECONDS))),
            ),
        )

    @property
    def smtp_configured(self) -> bool:
        return self.service == "smtp" and all(
            [self.smtp_host, self.smtp_user, self.smtp_password]
        )


def build_transports(settings: EmailSettings) -> tuple[EmailTransport, EmailTransport | None]:
    """Return the primary transport and the fallback used once it is exhausted."""
    if settings.smtp_configured:
        primary = SmtpTransport(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
        )
        return primary, ConsoleTransport()
    if settings.service == "smtp":
        LOGGER.warning(
            json.dumps(
                {
                    "event": "smtp_not_configured",
                    "detail": "set SMTP_HOST, SMTP_USER and SMTP_PASSWORD",
                }
            )
        )
    return ConsoleTransport(), None


@dataclass(frozen=True)
class DeliveryOutcome:
    status: DeliveryStatus
    attempts: int
    transport: str
    error: str | None = None


async def deliver_with_retry(
    primary: EmailTransport,
    fallback: EmailTransport | None,
    *,
    sender: str,
    recipient: str,
    content: EmailContent,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> DeliveryOutcome:
    """Try ``primary`` up to ``max_attempts`` times with linear backoff.

    The delay before attempt ``n + 1`` is ``retry_delay_seconds * n``. When every
    attempt fails the message goes through ``fallback`` once, if there is one.
    """
    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            await asyncio.to_thread(primary.send, sender, recipient, content)
            return DeliveryOutcome(status="sent", attempts=attempt, transport=primary.name)
        except RETRYABLE_ERRORS as exc:
            last_error = exc
            if attempt == max_attempts:
                LOGGER.error(
                    json.dumps(
                        {
                            "event": "email_delivery_exhausted",
                            "recipient": recipient,
                            "transport": primary.name,
                            "attempts": attempt,
                            "error": str(exc),
                        }
                    )
                )
                break
            delay = retry_delay_seconds * attempt
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "email_delivery_retry",
                        "recipient": recipient,
                        "transport": primary.name,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "delay_seconds": delay,
                        "error": str(exc),
                    }
                )
            )
            await sleep(delay)

    error_text = str(last_error) if last_error else None
    if fallback is None:
        return DeliveryOutcome(
            status="failed",
            attempts=max_attempts,
            transport=primary.name,
            error=error_text,
        )

    try:
        await asyncio.to_thread(fallback.send, sender, recipient, content)
    except RETRYABLE_ERRORS as exc:
        return DeliveryOutcome(
            status="failed",
            attempts=max_attempts,
            transport=fallback.name,
            error=str(exc),
        )
    return DeliveryOutcome(
        status="fallback",
        attempts=max_attempts,
        transport=fallback.name,
        error=error_text,
    )
