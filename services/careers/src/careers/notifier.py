from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from fastapi import HTTPException

DEFAULT_EMAILER_BASE_URL = "http://localhost:8002"
LOGGER = logging.getLogger("career_navigator.careers")


class EmailerClient:
    """Relay for the emailer service.

    Upstream failures surface as ``HTTPException`` so routes can let them
    propagate unchanged.
    """

    def __init__(self, base_url: str = DEFAULT_EMAILER_BASE_URL, *, timeout: float = 15) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        request_kwargs: dict[str, Any] = {}
        if payload is not None:
            request_kwargs["json"] = payload

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=f"{self.base_url}{path}",
                    **request_kwargs,
                )
        except httpx.RequestError as exc:
            LOGGER.warning(
                json.dumps(
                    {
                        "event": "emailer_unavailable",
                        "method": method,
                        "path": path,
                        "error": str(exc),
                    }
                )
            )
            raise HTTPException(status_code=502, detail="Upstream emailer is unavailable") from exc

        try:
            response_payload = response.json()
        except ValueError:
            response_payload = {}

        if response.status_code >= 400:
            detail = "Upstream emailer request failed"
            if isinstance(response_payload, dict):
                detail = response_payload.get("detail", detail)
            if 400 <= response.status_code < 500:
                raise HTTPException(status_code=response.status_code, detail=detail)
            raise HTTPException(status_code=502, detail=detail)

        return response_payload

    async def send_custom(
        self,
        recipients: list[str],
        *,
        subject: str,
        message: str,
        message_type: str,
    ) -> dict[str, Any]:
        return await self.request(
            "POST",
            "/send",
            {
                "recipients": recipients,
                "subject": subject,
                "message": message,
                "message_type": message_type,
            },
        )

    async def send_job_alert(
        self,
        recipients: list[str],
        *,
        job_title: str,
        company_name: str,
        job_description: str,
        apply_link: str | None,
    ) -> dict[str, Any]:
        return await self.request(
            "POST",
            "/job-alert",
            {
                "recipients": recipients,
                "job_title": job_title,
                "company_name": company_name,
                "job_description": job_description,
                "apply_link": apply_link,
            },
        )

    async def stats(self) -> dict[str, Any]:
        return await self.request("GET", "/stats")
