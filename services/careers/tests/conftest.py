from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from careers.main import create_app
from fastapi.testclient import TestClient

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-secret"


class FakeEmailer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def send_custom(self, recipients: list[str], **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("send", {"recipients": recipients, **kwargs}))
        return {"status": "queued", "queued_jobs": len(recipients)}

    async def send_job_alert(self, recipients: list[str], **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("job-alert", {"recipients": recipients, **kwargs}))
        return {"status": "queued", "queued_jobs": len(recipients)}

    async def stats(self) -> dict[str, Any]:
        return {"total": 3, "sent": 2, "fallback": 1, "failed": 0}


@pytest.fixture
def emailer() -> FakeEmailer:
    return FakeEmailer()


@pytest.fixture
def client(tmp_path: Path, emailer: FakeEmailer):
    app = create_app(
        database_path=str(tmp_path / "careers.sqlite3"),
        upload_dir=str(tmp_path / "uploads"),
        max_upload_bytes=1024,
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        emailer=emailer,
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client: TestClient) -> dict[str, str]:
    response = client.post(
        "/api/admin/login",
        json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def register_user(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Register a user and return ``{"user": ..., "headers": ...}``."""

    def _register(email: str, *, skills: list[str] | None = None, **fields: Any) -> dict[str, Any]:
        payload = {
            "name": fields.pop("name", email.split("@")[0].title()),
            "email": email,
            "password": fields.pop("password", "secret123"),
            "skills": skills or [],
            **fields,
        }
        response = client.post("/api/auth/register", json=payload)
        assert response.status_code == 201, response.text
        body = response.json()
        return {"user": body["user"], "headers": {"Authorization": f"Bearer {body['token']}"}}

    return _register


@pytest.fixture
def create_job(client: TestClient, admin_headers: dict[str, str]) -> Callable[..., dict[str, Any]]:
    def _create(title: str, *, skills: list[str] | None = None, **fields: Any) -> dict[str, Any]:
        payload = {
            "title": title,
            "company": fields.pop("company", "Acme"),
            "location": fields.pop("location", "Remote"),
            "description": fields.pop("description", f"{title} role"),
            "skills": skills or [],
            **fields,
        }
        response = client.post("/api/jobs", json=payload, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create
