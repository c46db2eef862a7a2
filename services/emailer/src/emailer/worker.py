from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass

from common.utils import now_utc_iso

from emailer.templates import EmailContent
from emailer.transport import (
    DeliveryOutcome,
    EmailSettings,
    EmailTransport,
    build_transports,
    deliver_with_retry,
)

LOGGER = logging.getLogger("career_navigator.emailer")
DEFAULT_LOG_CAPACITY = 1000


@dataclass
class EmailJob:
    recipient: str
    content: EmailContent
    message_type: str = "general"


@dataclass
class DeliveryLogEntry:
    id: int
    recipient: str
    subject: str
    message_type: str
    status: str
    attempts: int
    transport: str
    error: str | None
    logged_at: str


class EmailWorker:
    def __init__(
        self,
        primary: EmailTransport,
        fallback: EmailTransport | None = None,
        *,
        sender: str,
        max_attempts: int,
        retry_delay_seconds: float,
        log_capacity: int = DEFAULT_LOG_CAPACITY,
    ) -> None:
        self.queue: asyncio.Queue[EmailJob] = asyncio.Queue()
        self.primary = primary
        self.fallback = fallback
        self.sender = sender
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._log: deque[DeliveryLogEntry] = deque(maxlen=log_capacity)
        self._ids = itertools.count(1)
        self._stats = {"total": 0, "sent": 0, "fallback": 0, "failed": 0}

    @classmethod
    def from_settings(cls, settings: EmailSettings) -> EmailWorker:
        primary, fallback = build_transports(settings)
        return cls(
            primary,
            fallback,
            sender=settings.from_address,
            max_attempts=settings.max_attempts,
            retry_delay_seconds=settings.retry_delay_seconds,
        )

    async def enqueue(self, job: EmailJob) -> int:
        await self.queue.put(job)
        return self.queue.qsize()

    async def process(self, job: EmailJob) -> DeliveryLogEntry:
        try:
            outcome = await deliver_with_retry(
                self.primary,
                self.fallback,
                sender=self.sender,
                recipient=job.recipient,
                content=job.content,
                max_attempts=self.max_attempts,
                retry_delay_seconds=self.retry_delay_seconds,
            )
        except Exception as exc:
            LOGGER.exception(
                json.dumps({"event": "email_delivery_crashed", "recipient": job.recipient})
            )
            outcome = DeliveryOutcome(
                status="failed",
                attempts=1,
                transport=self.primary.name,
                error=str(exc),
            )
        entry = DeliveryLogEntry(
            id=next(self._ids),
            recipient=job.recipient,
            subject=job.content.subject,
            message_type=job.message_type,
            status=outcome.status,
            attempts=outcome.attempts,
            transport=outcome.transport,
            error=outcome.error,
            logged_at=now_utc_iso(),
        )
        self._log.append(entry)
        self._stats["total"] += 1
        self._stats[outcome.status] += 1
        LOGGER.info(json.dumps({"event": "email_delivery", **asdict(entry)}))
        return entry

    async def run(self) -> None:
        while True:
            job = await self.queue.get()
            try:
                await self.process(job)
            finally:
                self.queue.task_done()

    def recent_logs(self, limit: int) -> list[DeliveryLogEntry]:
        return list(reversed(self._log))[:limit]

    def stats(self) -> dict[str, int]:
        return dict(self._stats)
