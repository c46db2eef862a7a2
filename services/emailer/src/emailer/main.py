from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from dataclasses import asdict

from common.utils import now_utc_iso
from fastapi import FastAPI, Query
from pydantic import BaseModel, EmailStr, Field, field_validator

from emailer.templates import build_career_guidance, build_custom_email, build_job_alert
from emailer.transport import EmailSettings
from emailer.worker import DeliveryLogEntry, EmailJob, EmailWorker

worker = EmailWorker.from_settings(EmailSettings.from_env())
worker_task: asyncio.Task | None = None


class RecipientsModel(BaseModel):
    recipients: list[EmailStr] = Field(..., min_length=1)

    @field_validator("recipients", mode="before")
    @classmethod
    def normalize_recipients(cls, value: list[str]) -> list[str]:
        if not isinstance(value, list):
            return value
        return [item.strip().lower() if isinstance(item, str) else item for item in value]


class SendRequest(RecipientsModel):
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    message_type: str = "general"


class JobAlertEmailRequest(RecipientsModel):
    job_title: str = Field(..., min_length=1)
    company_name: str = Field(..., min_length=1)
    job_description: str = Field(..., min_length=1)
    apply_link: str | None = None


class CareerGuidanceRequest(RecipientsModel):
    user_name: str | None = None
    message: str = Field(..., min_length=1)
    tips: list[str] = Field(default_factory=list)


class QueuedResponse(BaseModel):
    status: str
    queued_jobs: int
    scheduled_at: str


class DeliveryLogResponse(BaseModel):
    id: int
    recipient: str
    subject: str
    message_type: str
    status: str
    attempts: int
    transport: str
    error: str | None = None
    logged_at: str


@asynccontextmanager
async def lifespan(_: FastAPI):
    global worker_task
    worker_task = asyncio.create_task(worker.run())
    try:
        yield
    finally:
        worker_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker_task


app = FastAPI(title="Career Navigator Emailer", version="1.0.0", lifespan=lifespan)


async def queue_for_recipients(recipients: list[str], build_job) -> QueuedResponse:
    queued = 0
    for recipient in recipients:
        queued = await worker.enqueue(build_job(str(recipient)))
    return QueuedResponse(status="queued", queued_jobs=queued, scheduled_at=now_utc_iso())


def to_log_response(entry: DeliveryLogEntry) -> DeliveryLogResponse:
    return DeliveryLogResponse(**asdict(entry))


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "emailer"}


@app.post("/send", response_model=QueuedResponse)
async def send(payload: SendRequest) -> QueuedResponse:
    content = build_custom_email(payload.subject, payload.message, payload.message_type)
    return await queue_for_recipients(
        payload.recipients,
        lambda recipient: EmailJob(
            recipient=recipient,
            content=content,
            message_type=payload.message_type,
        ),
    )


@app.post("/job-alert", response_model=QueuedResponse)
async def job_alert(payload: JobAlertEmailRequest) -> QueuedResponse:
    content = build_job_alert(
        payload.job_title.strip(),
        payload.company_name.strip(),
        payload.job_description,
        payload.apply_link,
    )
    return await queue_for_recipients(
        payload.recipients,
        lambda recipient: EmailJob(recipient=recipient, content=content, message_type="job_alert"),
    )


@app.post("/career-guidance", response_model=QueuedResponse)
async def career_guidance(payload: CareerGuidanceRequest) -> QueuedResponse:
    content = build_career_guidance(
        payload.message,
        user_name=payload.user_name,
        tips=payload.tips,
    )
    return await queue_for_recipients(
        payload.recipients,
        lambda recipient: EmailJob(
            recipient=recipient,
            content=content,
            message_type="career_guidance",
        ),
    )


@app.get("/logs", response_model=list[DeliveryLogResponse])
async def logs(limit: int = Query(default=50, ge=1, le=500)) -> list[DeliveryLogResponse]:
    return [to_log_response(entry) for entry in worker.recent_logs(limit)]


@app.get("/stats")
async def stats() -> dict[str, int]:
    return worker.stats()
