from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import emailer.main as emailer_main
import pytest
from careers import notifier
from careers.main import create_app
from fastapi.testclient import TestClient

pytestmark = [pytest.mark.integration, pytest.mark.smoke]

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-secret"


class StubResponse:
    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> dict[str, Any]:
        return self._payload


class StubAsyncClient:
    def __init__(self, response: StubResponse) -> None:
        self.response = response
        self.urls: list[str] = []

    async def __aenter__(self) -> StubAsyncClient:
        return self

    async def __aexit__(self, *_: object) -> bool:
        return False

    async def request(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        del method, kwargs
        self.urls.append(url)
        return self.response


class FakeWorker:
    def __init__(self) -> None:
        self.queued_jobs = 0

    async def run(self) -> None:
        await asyncio.Event().wait()

    async def enqueue(self, job: emailer_main.EmailJob) -> int:
        del job
        self.queued_jobs += 1
        return self.queued_jobs


def test_smoke_careers_ready_and_recommending(tmp_path: Path) -> None:
    app = create_app(
        database_path=str(tmp_path / "careers.sqlite3"),
        upload_dir=str(tmp_path / "uploads"),
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
    )

    with TestClient(app) as client:
        health = client.get("/health")
        admin_token = client.post(
            "/api/admin/login",
            json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
        ).json()["token"]
        client.post(
            "/api/jobs",
            json={
                "title": "Backend Engineer",
                "company": "Acme",
                "location": "Remote",
                "description": "Build Python APIs",
                "skills": ["Python", "FastAPI"],
            },
            headers={"Authorization": f"Bearer {admin_token}"},
        )
        user_token = client.post(
            "/api/auth/register",
            json={
                "name": "Ada",
                "email": "ada@example.com",
                "password": "secret123",
                "skills": ["Python"],
            },
        ).json()["token"]
        response = client.get(
            "/api/recommendations",
            headers={"Authorization": f"Bearer {user_token}"},
        )

    assert health.status_code == 200
    assert response.status_code == 200
    body = response.json()
    assert body["recommended_count"] == 1
    assert body["recommendations"][0]["title"] == "Backend Engineer"


def test_smoke_careers_email_relay_contract(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    upstream_payload = {"total": 4, "sent": 3, "fallback": 1, "failed": 0}
    stub = StubAsyncClient(response=StubResponse(200, upstream_payload))
    monkeypatch.setattr(notifier.httpx, "AsyncClient", lambda *_, **__: stub)
    app = create_app(
        database_path=str(tmp_path / "careers.sqlite3"),
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        emailer=notifier.EmailerClient("http://emailer.test"),
    )

    with TestClient(app) as client:
        admin_token = client.post(
            "/api/admin/login",
            json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
        ).json()["token"]
        response = client.get(
            "/api/email/status",
            headers={"Authorization": f"Bearer {admin_token}"},
        )

    assert response.status_code == 200
    assert response.json() == upstream_payload
    assert stub.urls == ["http://emailer.test/stats"]


def test_smoke_emailer_send(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_worker = FakeWorker()
    monkeypatch.setattr(emailer_main, "worker", fake_worker)

    with TestClient(emailer_main.app) as client:
        health = client.get("/health")
        response = client.post(
            "/send",
            json={
                "recipients": ["one@example.com"],
                "subject": "Hello",
                "message": "Welcome aboard",
            },
        )

    assert health.status_code == 200
    assert response.status_code == 200
    assert response.json()["queued_jobs"] == 1
