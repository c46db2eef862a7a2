from __future__ import annotations

import asyncio

import emailer.main as emailer_main
import pytest
from emailer.worker import DeliveryLogEntry, EmailJob
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


class FakeWorker:
    def __init__(self) -> None:
        self.jobs: list[EmailJob] = []

    async def run(self) -> None:
        await asyncio.Event().wait()

    async def enqueue(self, job: EmailJob) -> int:
        self.jobs.append(job)
        return len(self.jobs)

    def recent_logs(self, limit: int) -> list[DeliveryLogEntry]:
        entries = [
            DeliveryLogEntry(
                id=index,
                recipient=job.recipient,
                subject=job.content.subject,
                message_type=job.message_type,
                status="sent",
                attempts=1,
                transport="console",
                error=None,
                logged_at="2026-03-01T12:00:00+00:00",
            )
            for index, job in enumerate(self.jobs, start=1)
        ]
        return list(reversed(entries))[:limit]

    def stats(self) -> dict[str, int]:
        return {"total": len(self.jobs), "sent": len(self.jobs), "fallback": 0, "failed": 0}


@pytest.fixture
def fake_worker(monkeypatch: pytest.MonkeyPatch) -> FakeWorker:
    worker = FakeWorker()
    monkeypatch.setattr(emailer_main, "worker", worker)
    return worker


def test_health() -> None:
    with TestClient(emailer_main.app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "emailer"}


def test_send_queues_one_job_per_recipient(fake_worker: FakeWorker) -> None:
    with TestClient(emailer_main.app) as client:
        response = client.post(
            "/send",
            json={
                "recipients": [" One@Example.com ", "two@example.com"],
                "subject": "Platform update",
                "message": "We shipped a new feature.",
                "message_type": "announcement",
            },
        )

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "queued"
    assert body["queued_jobs"] == 2
    assert body["scheduled_at"]
    assert [job.recipient for job in fake_worker.jobs] == ["one@example.com", "two@example.com"]
    assert fake_worker.jobs[0].content.subject == "[Announcement] Platform update"
    assert fake_worker.jobs[0].message_type == "announcement"


@pytest.mark.parametrize(
    "payload",
    [
        {"recipients": [], "subject": "Hi", "message": "Hello"},
        {"recipients": ["not-an-email"], "subject": "Hi", "message": "Hello"},
        {"recipients": ["one@example.com"], "subject": "x" * 201, "message": "Hello"},
    ],
)
def test_send_validates_payload(fake_worker: FakeWorker, payload: dict) -> None:
    with TestClient(emailer_main.app) as client:
        response = client.post("/send", json=payload)

    assert response.status_code == 422
    assert fake_worker.jobs == []


def test_job_alert_builds_alert_content(fake_worker: FakeWorker) -> None:
    with TestClient(emailer_main.app) as client:
        response = client.post(
            "/job-alert",
            json={
                "recipients": ["one@example.com"],
                "job_title": "Backend Engineer",
                "company_name": "Acme",
                "job_description": "Build Python APIs",
                "apply_link": "https://jobs.example.com/1",
            },
        )

    assert response.status_code == 200
    job = fake_worker.jobs[0]
    assert job.message_type == "job_alert"
    assert job.content.subject == "New Job Alert: Backend Engineer at Acme"
    assert "Apply now: https://jobs.example.com/1" in job.content.body


def test_career_guidance_includes_tips(fake_worker: FakeWorker) -> None:
    with TestClient(emailer_main.app) as client:
        response = client.post(
            "/career-guidance",
            json={
                "recipients": ["one@example.com", "two@example.com"],
                "user_name": "Ada",
                "message": "Keep learning.",
                "tips": ["Update your resume", "Network weekly"],
            },
        )

    assert response.json()["queued_jobs"] == 2
    body = fake_worker.jobs[0].content.body
    assert body.startswith("Hello Ada!")
    assert "- Update your resume" in body
    assert fake_worker.jobs[1].message_type == "career_guidance"


def test_logs_and_stats(fake_worker: FakeWorker) -> None:
    with TestClient(emailer_main.app) as client:
        client.post(
            "/send",
            json={
                "recipients": ["one@example.com", "two@example.com"],
                "subject": "Hi",
                "message": "Hello",
            },
        )
        logs = client.get("/logs", params={"limit": 1})
        stats = client.get("/stats")

    assert logs.status_code == 200
    assert [entry["recipient"] for entry in logs.json()] == ["two@example.com"]
    assert stats.json() == {"total": 2, "sent": 2, "fallback": 0, "failed": 0}
