from __future__ import annotations

from typing import Any

import httpx
import pytest
from careers import notifier
from careers.notifier import EmailerClient
from fastapi import HTTPException
from fastapi.testclient import TestClient

pytestmark = pytest.mark.integration


class StubResponse:
    def __init__(self, status_code: int, payload: dict[str, Any]) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> dict[str, Any]:
        return self._payload


class StubAsyncClient:
    def __init__(self, response: StubResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[dict[str, Any]] = []

    async def __aenter__(self) -> StubAsyncClient:
        return self

    async def __aexit__(self, *_: object) -> bool:
        return False

    async def request(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


def test_preferences_default_and_update(client: TestClient, register_user) -> None:
    account = register_user("ada@example.com")

    defaults = client.get("/api/email/preferences", headers=account["headers"])
    updated = client.put(
        "/api/email/preferences",
        json={"job_alerts": False, "marketing": True},
        headers=account["headers"],
    )
    reread = client.get("/api/email/preferences", headers=account["headers"])

    assert defaults.json() == {
        "job_alerts": True,
        "career_guidance": True,
        "notifications": True,
        "marketing": False,
    }
    assert updated.status_code == 200
    assert reread.json() == {
        "job_alerts": False,
        "career_guidance": True,
        "notifications": True,
        "marketing": True,
    }


def test_send_to_user_relays_to_emailer(client: TestClient, admin_headers, emailer) -> None:
    response = client.post(
        "/api/email/send-to-user",
        json={"email": "ada@example.com", "subject": "Hi", "message": "Hello there"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["recipients"] == 1
    assert emailer.calls == [
        (
            "send",
            {
                "recipients": ["ada@example.com"],
                "subject": "Hi",
                "message": "Hello there",
                "message_type": "general",
            },
        )
    ]


def test_send_to_all_respects_category_preferences(
    client: TestClient,
    admin_headers,
    register_user,
    emailer,
) -> None:
    ada = register_user("ada@example.com")
    register_user("grace@example.com")
    client.put(
        "/api/email/preferences",
        json={"career_guidance": False},
        headers=ada["headers"],
    )

    guidance = client.post(
        "/api/email/send-to-all",
        json={"subject": "Tips", "message": "Practice", "message_type": "guidance"},
        headers=admin_headers,
    )
    general = client.post(
        "/api/email/send-to-all",
        json={"subject": "News", "message": "Update"},
        headers=admin_headers,
    )

    assert guidance.json()["recipients"] == 1
    assert emailer.calls[0][1]["recipients"] == ["grace@example.com"]
    assert general.json()["recipients"] == 2


def test_send_to_all_without_recipients_is_not_found(client: TestClient, admin_headers) -> None:
    response = client.post(
        "/api/email/send-to-all",
        json={"subject": "News", "message": "Update"},
        headers=admin_headers,
    )

    assert response.status_code == 404


def test_job_alert_targets_matching_opted_in_users(
    client: TestClient,
    admin_headers,
    register_user,
    create_job,
    emailer,
) -> None:
    register_user("ada@example.com", skills=["Python"])
    opted_out = register_user("grace@example.com", skills=["Python"])
    register_user("linus@example.com", skills=["C"])
    client.put(
        "/api/email/preferences",
        json={"job_alerts": False},
        headers=opted_out["headers"],
    )
    job = create_job("Python Developer", skills=["Python", "FastAPI"], company="Acme")

    response = client.post(
        "/api/email/job-alert",
        json={"job_id": job["id"], "apply_link": "https://jobs.example.com/1"},
        headers=admin_headers,
    )
    unknown = client.post("/api/email/job-alert", json={"job_id": 999}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["recipients"] == 1
    kind, payload = emailer.calls[0]
    assert kind == "job-alert"
    assert payload["recipients"] == ["ada@example.com"]
    assert payload["job_title"] == "Python Developer"
    assert payload["company_name"] == "Acme"
    assert payload["apply_link"] == "https://jobs.example.com/1"
    assert unknown.status_code == 404


def test_email_status_returns_emailer_stats(client: TestClient, admin_headers) -> None:
    response = client.get("/api/email/status", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"total": 3, "sent": 2, "fallback": 1, "failed": 0}


@pytest.mark.asyncio
async def test_emailer_client_posts_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = StubAsyncClient(response=StubResponse(200, {"status": "queued", "queued_jobs": 1}))
    monkeypatch.setattr(notifier.httpx, "AsyncClient", lambda *_, **__: stub)

    result = await EmailerClient("http://emailer:8002/").send_custom(
        ["ada@example.com"],
        subject="Hi",
        message="Hello",
        message_type="general",
    )

    assert result == {"status": "queued", "queued_jobs": 1}
    assert stub.requests[0]["method"] == "POST"
    assert stub.requests[0]["url"] == "http://emailer:8002/send"
    assert stub.requests[0]["json"]["recipients"] == ["ada@example.com"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("stub", "expected_status"),
    [
        (StubAsyncClient(error=httpx.ConnectError("refused")), 502),
        (StubAsyncClient(response=StubResponse(422, {"detail": "bad recipients"})), 422),
        (StubAsyncClient(response=StubResponse(503, {"detail": "down"})), 502),
    ],
)
async def test_emailer_client_maps_upstream_failures(
    monkeypatch: pytest.MonkeyPatch,
    stub: StubAsyncClient,
    expected_status: int,
) -> None:
    monkeypatch.setattr(notifier.httpx, "AsyncClient", lambda *_, **__: stub)

    with pytest.raises(HTTPException) as exc_info:
        await EmailerClient().stats()

    assert exc_info.value.status_code == expected_status
