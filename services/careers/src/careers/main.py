from __future__ import annotations

import json
import logging
import math
import os
import tempfile
import threading
import time
import uuid
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from common.utils import any_skill_overlaps, now_utc, now_utc_iso, split_skills
from fastapi import FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from careers import scorer
from careers.models import (
    AdminAccount,
    AdminSessionResponse,
    AdminStats,
    Application,
    ApplyRequest,
    EmailPreferences,
    EmailRelayResponse,
    Job,
    JobAlertRequest,
    JobCreateRequest,
    JobListResponse,
    JobUpdateRequest,
    LoginRequest,
    Message,
    MessageListResponse,
    MessageSendRequest,
    Pagination,
    Principal,
    RecommendationsResponse,
    RecommendedJob,
    ResumeFile,
    SendToAllRequest,
    SendToUserRequest,
    SkillSearchResponse,
    SubjectType,
    UserAccount,
    UserProfileUpdateRequest,
    UserRegisterRequest,
    UsersBySkillsResponse,
    UserSessionResponse,
    UserSkillMatch,
)
from careers.notifier import DEFAULT_EMAILER_BASE_URL, EmailerClient
from careers.repository import CareersRepository
from careers.security import parse_bearer_token

DEFAULT_DATA_DIR = os.path.join(tempfile.gettempdir(), "career-navigator")
DEFAULT_DB_PATH = os.path.join(DEFAULT_DATA_DIR, "careers.sqlite3")
DEFAULT_UPLOAD_DIR = os.path.join(DEFAULT_DATA_DIR, "uploads")
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_TOKEN_TTL_HOURS = 24
DEFAULT_ADMIN_EMAIL = "admin@careernavigator.example.com"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_NAME = "Admin"

RESUME_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
LOGGER = logging.getLogger("career_navigator.careers")


class MetricsSnapshot(BaseModel):
    generated_at: str
    totals: dict[str, int]
    endpoints: dict[str, dict[str, float | int]]


class MetricsStore:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._totals = {"requests": 0, "errors": 0}
        self._endpoints: dict[str, dict[str, float | int]] = {}

    def observe(self, *, method: str, path: str, status_code: int, duration_ms: float) -> None:
        key = f"{method} {path}"
        bucket = f"{status_code // 100}xx"
        with self._lock:
            self._totals["requests"] += 1
            if status_code >= 400:
                self._totals["errors"] += 1
            endpoint = self._endpoints.setdefault(
                key,
                {
                    "count": 0,
                    "2xx": 0,
                    "4xx": 0,
                    "5xx": 0,
                    "latency_ms_sum": 0.0,
                    "latency_ms_avg": 0.0,
                },
            )
            endpoint["count"] = int(endpoint["count"]) + 1
            if bucket in ("2xx", "4xx", "5xx"):
                endpoint[bucket] = int(endpoint[bucket]) + 1
            endpoint["latency_ms_sum"] = float(endpoint["latency_ms_sum"]) + duration_ms
            endpoint["latency_ms_avg"] = (
                float(endpoint["latency_ms_sum"]) / int(endpoint["count"])
            )

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                generated_at=now_utc_iso(),
                totals=dict(self._totals),
                endpoints={key: dict(value) for key, value in self._endpoints.items()},
            )


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def to_recommended_job(scored: scorer.ScoredJob) -> RecommendedJob:
    return RecommendedJob(
        **scored.job.model_dump(),
        match_score=scored.match_score,
        matched_skills=scored.matched_skills,
        breakdown=scored.breakdown,
    )


def is_message_visible(message: Message, user_skills: list[str]) -> bool:
    """Skill-targeted announcements only reach users with an overlapping skill."""
    if message.recipient_type == "user" or not message.target_skills:
        return True
    return any(any_skill_overlaps(skill, user_skills) for skill in message.target_skills)


def email_preference_category(message_type: str) -> str:
    if message_type == "guidance":
        return "career_guidance"
    return "notifications"


def write_resume_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def remove_files(paths: list[str]) -> None:
    for path in paths:
        Path(path).unlink(missing_ok=True)


def create_app(
    *,
    database_path: str | None = None,
    upload_dir: str | None = None,
    max_upload_bytes: int | None = None,
    admin_email: str | None = None,
    admin_password: str | None = None,
    admin_name: str | None = None,
    token_ttl_hours: int | None = None,
    emailer: EmailerClient | None = None,
) -> FastAPI:
    resolved_path = database_path or os.getenv("CAREERS_DB_PATH", DEFAULT_DB_PATH)
    resolved_upload_dir = Path(upload_dir or os.getenv("CAREERS_UPLOAD_DIR", DEFAULT_UPLOAD_DIR))
    resolved_max_upload = max_upload_bytes or int(
        os.getenv("CAREERS_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))
    )
    resolved_ttl = token_ttl_hours or int(
        os.getenv("CAREERS_TOKEN_TTL_HOURS", str(DEFAULT_TOKEN_TTL_HOURS))
    )
    resolved_admin_email = admin_email or os.getenv("CAREERS_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL)
    resolved_admin_password = admin_password or os.getenv(
        "CAREERS_ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD
    )
    resolved_admin_name = admin_name or os.getenv("CAREERS_ADMIN_NAME", DEFAULT_ADMIN_NAME)
    resolved_emailer = emailer or EmailerClient(
        os.getenv("EMAILER_BASE_URL", DEFAULT_EMAILER_BASE_URL)
    )

    repository = CareersRepository(database_path=resolved_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(repository.connect)
        await run_in_threadpool(
            lambda: repository.ensure_admin(
                email=resolved_admin_email,
                password=resolved_admin_password,
                name=resolved_admin_name,
            )
        )
        app.state.repository = repository
        app.state.emailer = resolved_emailer
        app.state.metrics = MetricsStore()
        try:
            yield
        finally:
            await run_in_threadpool(repository.close)

    app = FastAPI(title="Career Navigator", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            request.app.state.metrics.observe(
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=duration_ms,
            )
            LOGGER.exception(
                json.dumps(
                    {
                        "event": "request_complete",
                        "request_id": request_id,
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": 500,
                        "duration_ms": round(duration_ms, 3),
                        "error": str(exc),
                    }
                )
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"x-request-id": request_id},
            )

        duration_ms = (time.perf_counter() - started) * 1000
        request.app.state.metrics.observe(
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        response.headers["x-request-id"] = request_id
        LOGGER.info(
            json.dumps(
                {
                    "event": "request_complete",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 3),
                    "source_ip": request.client.host if request.client else None,
                }
            )
        )
        return response

    async def require_principal(request: Request, subject_type: SubjectType | None) -> Principal:
        token = parse_bearer_token(request.headers.get("authorization"))
        if token is None:
            raise HTTPException(status_code=401, detail="Access token required")
        principal = await run_in_threadpool(request.app.state.repository.resolve_session, token)
        if principal is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        if subject_type is not None and principal.subject_type != subject_type:
            raise HTTPException(status_code=403, detail=f"{subject_type.title()} access required")
        return principal

    async def require_user(request: Request) -> UserAccount:
        principal = await require_principal(request, "user")
        user = await run_in_threadpool(
            request.app.state.repository.get_user,
            principal.subject_id,
        )
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return user

    async def require_admin(request: Request) -> AdminAccount:
        principal = await require_principal(request, "admin")
        admin = await run_in_threadpool(
            request.app.state.repository.get_admin,
            principal.subject_id,
        )
        if admin is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return admin

    async def get_active_job_or_404(request: Request, job_id: int) -> Job:
        job = await run_in_threadpool(request.app.state.repository.get_job, job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    async def relay_email(
        request: Request,
        admin: AdminAccount,
        action: str,
        delivery: Awaitable[dict[str, Any]],
    ) -> dict[str, Any]:
        emailer_response = await delivery
        LOGGER.info(
            json.dumps(
                {
                    "event": "email_relayed",
                    "request_id": getattr(request.state, "request_id", None),
                    "action": action,
                    "admin_id": admin.id,
                }
            )
        )
        return emailer_response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "careers"}

    @app.get("/metrics", response_model=MetricsSnapshot)
    async def metrics(request: Request) -> MetricsSnapshot:
        return request.app.state.metrics.snapshot()

    @app.post("/api/auth/register", response_model=UserSessionResponse, status_code=201)
    async def register(payload: UserRegisterRequest, request: Request) -> UserSessionResponse:
        user = await run_in_threadpool(request.app.state.repository.create_user, payload)
        if user is None:
            raise HTTPException(status_code=400, detail="User already exists with this email")
        token = await run_in_threadpool(
            lambda: request.app.state.repository.create_session(
                "user", user.id, ttl_hours=resolved_ttl
            )
        )
        return UserSessionResponse(user=user, token=token)

    @app.post("/api/auth/login", response_model=UserSessionResponse)
    async def login(payload: LoginRequest, request: Request) -> UserSessionResponse:
        user = await run_in_threadpool(
            request.app.state.repository.authenticate_user,
            str(payload.email),
            payload.password,
        )
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid email or password")
        token = await run_in_threadpool(
            lambda: request.app.state.repository.create_session(
                "user", user.id, ttl_hours=resolved_ttl
            )
        )
        return UserSessionResponse(user=user, token=token)

    @app.get("/api/auth/profile", response_model=UserAccount)
    async def get_profile(request: Request) -> UserAccount:
        return await require_user(request)

    @app.put("/api/auth/profile", response_model=UserAccount)
    async def update_profile(payload: UserProfileUpdateRequest, request: Request) -> UserAccount:
        user = await require_user(request)
        updated = await run_in_threadpool(
            request.app.state.repository.update_user_profile,
            user.id,
            payload,
        )
        if updated is None:
            raise HTTPException(status_code=404, detail="User not found")
        return updated

    @app.post("/api/auth/logout")
    async def logout(request: Request) -> dict[str, bool]:
        principal = await require_principal(request, None)
        await run_in_threadpool(
            request.app.state.repository.revoke_session,
            principal.token_hash,
        )
        return {"logged_out": True}

    @app.post("/api/admin/login", response_model=AdminSessionResponse)
    async def admin_login(payload: LoginRequest, request: Request) -> AdminSessionResponse:
        admin = await run_in_threadpool(
            request.app.state.repository.authenticate_admin,
            str(payload.email),
            payload.password,
        )
        if admin is None:
            raise HTTPException(status_code=401, detail="Invalid email or password")
        token = await run_in_threadpool(
            lambda: request.app.state.repository.create_session(
                "admin", admin.id, ttl_hours=resolved_ttl
            )
        )
        return AdminSessionResponse(admin=admin, token=token)

    @app.get("/api/admin/stats", response_model=AdminStats)
    async def admin_stats(request: Request) -> AdminStats:
        await require_admin(request)
        return await run_in_threadpool(request.app.state.repository.admin_stats)

    @app.get("/api/admin/users", response_model=list[UserAccount])
    async def admin_users(request: Request) -> list[UserAccount]:
        await require_admin(request)
        return await run_in_threadpool(request.app.state.repository.list_users)

    @app.post("/api/jobs", response_model=Job, status_code=201)
    async def create_job(payload: JobCreateRequest, request: Request) -> Job:
        admin = await require_admin(request)
        return await run_in_threadpool(
            lambda: request.app.state.repository.create_job(payload, created_by=admin.id)
        )

    @app.get("/api/jobs", response_model=JobListResponse)
    async def list_jobs(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        search: str | None = Query(default=None),
        location: str | None = Query(default=None),
        experience: str | None = Query(default=None),
    ) -> JobListResponse:
        jobs, total = await run_in_threadpool(
            lambda: request.app.state.repository.list_jobs(
                page=page,
                limit=limit,
                search=(search or "").strip() or None,
                location=(location or "").strip() or None,
                experience=(experience or "").strip() or None,
            )
        )
        return JobListResponse(jobs=jobs, pagination=build_pagination(page, limit, total))

    @app.get("/api/jobs/applications/my", response_model=list[Application])
    async def my_applications(request: Request) -> list[Application]:
        user = await require_user(request)
        return await run_in_threadpool(request.app.state.repository.list_applications, user.id)

    @app.get("/api/jobs/{job_id}", response_model=Job)
    async def get_job(job_id: int, request: Request) -> Job:
        return await get_active_job_or_404(request, job_id)

    @app.put("/api/jobs/{job_id}", response_model=Job)
    async def update_job(job_id: int, payload: JobUpdateRequest, request: Request) -> Job:
        await require_admin(request)
        job = await run_in_threadpool(request.app.state.repository.update_job, job_id, payload)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    @app.delete("/api/jobs/{job_id}")
    async def delete_job(job_id: int, request: Request) -> dict[str, bool]:
        await require_admin(request)
        deleted = await run_in_threadpool(request.app.state.repository.soft_delete_job, job_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Job not found")
        return {"deleted": True}

    @app.post("/api/jobs/{job_id}/apply", status_code=201)
    async def apply_to_job(
        job_id: int,
        request: Request,
        payload: ApplyRequest | None = None,
    ) -> dict[str, int | str]:
        user = await require_user(request)
        await get_active_job_or_404(request, job_id)
        created = await run_in_threadpool(
            lambda: request.app.state.repository.create_application(
                user.id,
                job_id,
                status="applied",
                notes=payload.notes if payload else None,
            )
        )
        if not created:
            raise HTTPException(status_code=400, detail="You have already applied for this job")
        return {"job_id": job_id, "status": "applied"}

    @app.get("/api/recommendations", response_model=RecommendationsResponse)
    async def recommendations(request: Request) -> RecommendationsResponse:
        user = await require_user(request)
        jobs = await run_in_threadpool(request.app.state.repository.list_active_jobs)
        try:
            result = scorer.recommend(
                scorer.UserProfile(skills=user.skills, profile_summary=user.profile_summary),
                jobs,
                now_utc(),
            )
        except scorer.EmptySkillSet as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        recommended = [to_recommended_job(item) for item in result.recommendations]
        return RecommendationsResponse(
            recommendations=recommended,
            user_skills=user.skills,
            total_jobs_considered=result.total_jobs_considered,
            recommended_count=len(recommended),
        )

    @app.get("/api/recommendations/by-skills", response_model=SkillSearchResponse)
    async def recommendations_by_skills(
        request: Request,
        skills: str | None = Query(default=None),
    ) -> SkillSearchResponse:
        await require_user(request)
        search_skills = split_skills(skills)
        if not search_skills:
            raise HTTPException(status_code=400, detail="Skills parameter is required")
        jobs = await run_in_threadpool(request.app.state.repository.list_active_jobs)
        matches = [to_recommended_job(item) for item in scorer.recommend_by_skills(search_skills, jobs)]
        return SkillSearchResponse(
            jobs=matches,
            search_skills=search_skills,
            total_matches=len(matches),
        )

    @app.post("/api/recommendations/{job_id}/save", status_code=201)
    async def save_job(job_id: int, request: Request) -> dict[str, int | str]:
        user = await require_user(request)
        await get_active_job_or_404(request, job_id)
        created = await run_in_threadpool(
            lambda: request.app.state.repository.create_application(
                user.id,
                job_id,
                status="saved",
                notes=None,
            )
        )
        if not created:
            raise HTTPException(status_code=400, detail="Job already saved or applied")
        return {"job_id": job_id, "status": "saved"}

    @app.get("/api/recommendations/saved/my", response_model=list[Application])
    async def saved_jobs(request: Request) -> list[Application]:
        user = await require_user(request)
        return await run_in_threadpool(
            lambda: request.app.state.repository.list_applications(
                user.id,
                status="saved",
                active_jobs_only=True,
            )
        )

    @app.post("/api/messages/send", response_model=Message, status_code=201)
    async def send_message(payload: MessageSendRequest, request: Request) -> Message:
        admin = await require_admin(request)
        if payload.recipient_type == "user":
            recipient = await run_in_threadpool(
                request.app.state.repository.get_user,
                payload.recipient_id,
            )
            if recipient is None:
                raise HTTPException(status_code=404, detail="Recipient user not found")
        message = await run_in_threadpool(
            request.app.state.repository.create_message,
            admin.id,
            payload,
        )
        LOGGER.info(
            json.dumps(
                {
                    "event": "message_sent",
                    "request_id": getattr(request.state, "request_id", None),
                    "message_id": message.id,
                    "recipient_type": message.recipient_type,
                    "target_skills": message.target_skills,
                }
            )
        )
        return message

    @app.get("/api/messages/my", response_model=MessageListResponse)
    async def my_messages(
        request: Request,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=20, ge=1, le=100),
    ) -> MessageListResponse:
        user = await require_user(request)
        inbox = await run_in_threadpool(request.app.state.repository.list_inbox, user.id)
        visible = [message for message in inbox if is_message_visible(message, user.skills)]
        offset = (page - 1) * limit
        return MessageListResponse(
            messages=visible[offset : offset + limit],
            pagination=build_pagination(page, limit, len(visible)),
        )

    @app.patch("/api/messages/{message_id}/read")
    async def mark_message_read(message_id: int, request: Request) -> dict[str, int | bool]:
        user = await require_user(request)
        inbox = await run_in_threadpool(request.app.state.repository.list_inbox, user.id)
        if not any(
            message.id == message_id and is_message_visible(message, user.skills)
            for message in inbox
        ):
            raise HTTPException(status_code=404, detail="Message not found")
        await run_in_threadpool(
            request.app.state.repository.mark_message_read,
            message_id,
            user.id,
        )
        return {"id": message_id, "is_read": True}

    @app.get("/api/messages/sent", response_model=list[Message])
    async def sent_messages(request: Request) -> list[Message]:
        admin = await require_admin(request)
        return await run_in_threadpool(request.app.state.repository.list_sent_messages, admin.id)

    @app.get("/api/messages/users-by-skills", response_model=UsersBySkillsResponse)
    async def users_by_skills(
        request: Request,
        skills: str | None = Query(default=None),
    ) -> UsersBySkillsResponse:
        await require_admin(request)
        search_skills = split_skills(skills)
        if not search_skills:
            raise HTTPException(status_code=400, detail="Skills parameter is required")
        users = await run_in_threadpool(request.app.state.repository.list_users)
        matches = [
            UserSkillMatch(id=user.id, name=user.name, email=user.email, skills=user.skills)
            for user in users
            if any(any_skill_overlaps(skill, user.skills) for skill in search_skills)
        ]
        return UsersBySkillsResponse(
            users=matches,
            search_skills=search_skills,
            total_matches=len(matches),
        )

    @app.post("/api/upload/resume", response_model=ResumeFile, status_code=201)
    async def upload_resume(request: Request, resume: UploadFile = File(...)) -> ResumeFile:
        user = await require_user(request)
        mime_type = resume.content_type or ""
        if mime_type not in RESUME_MIME_TYPES:
            raise HTTPException(
                status_code=400,
                detail="Only PDF, DOC, and DOCX files are allowed",
            )
        content = await resume.read(resolved_max_upload + 1)
        if not content:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        if len(content) > resolved_max_upload:
            raise HTTPException(status_code=400, detail="File too large")

        original_name = resume.filename or "resume"
        filename = f"resume-{uuid.uuid4().hex}{Path(original_name).suffix.lower()}"
        file_path = resolved_upload_dir / filename
        await run_in_threadpool(write_resume_file, file_path, content)
        try:
            stored, superseded = await run_in_threadpool(
                lambda: request.app.state.repository.replace_resume(
                    user.id,
                    filename=filename,
                    original_name=original_name,
                    file_path=str(file_path),
                    file_size=len(content),
                    mime_type=mime_type,
                )
            )
        except Exception:
            await run_in_threadpool(remove_files, [str(file_path)])
            raise
        await run_in_threadpool(remove_files, superseded)
        return ResumeFile(**stored.model_dump())

    @app.get("/api/upload/my", response_model=ResumeFile)
    async def my_resume(request: Request) -> ResumeFile:
        user = await require_user(request)
        stored = await run_in_threadpool(request.app.state.repository.get_latest_resume, user.id)
        if stored is None:
            raise HTTPException(status_code=404, detail="No resume uploaded")
        return ResumeFile(**stored.model_dump())

    @app.get("/api/upload/download/{file_id}")
    async def download_resume(file_id: int, request: Request) -> FileResponse:
        user = await require_user(request)
        stored = await run_in_threadpool(
            request.app.state.repository.get_resume_file,
            file_id,
            user.id,
        )
        if stored is None or not Path(stored.file_path).exists():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(
            stored.file_path,
            media_type=stored.mime_type,
            filename=stored.original_name,
        )

    @app.delete("/api/upload/{file_id}")
    async def delete_resume(file_id: int, request: Request) -> dict[str, bool]:
        user = await require_user(request)
        stored = await run_in_threadpool(
            request.app.state.repository.delete_resume_file,
            file_id,
            user.id,
        )
        if stored is None:
            raise HTTPException(status_code=404, detail="File not found")
        await run_in_threadpool(remove_files, [stored.file_path])
        return {"deleted": True}

    @app.get("/api/email/preferences", response_model=EmailPreferences)
    async def get_email_preferences(request: Request) -> EmailPreferences:
        user = await require_user(request)
        return await run_in_threadpool(
            request.app.state.repository.get_email_preferences,
            user.id,
        )

    @app.put("/api/email/preferences", response_model=EmailPreferences)
    async def update_email_preferences(
        payload: EmailPreferences,
        request: Request,
    ) -> EmailPreferences:
        user = await require_user(request)
        return await run_in_threadpool(
            request.app.state.repository.update_email_preferences,
            user.id,
            payload,
        )

    @app.post("/api/email/send-to-user", response_model=EmailRelayResponse)
    async def send_email_to_user(payload: SendToUserRequest, request: Request) -> EmailRelayResponse:
        admin = await require_admin(request)
        emailer_response = await relay_email(
            request,
            admin,
            "send_to_user",
            request.app.state.emailer.send_custom(
                [str(payload.email)],
                subject=payload.subject,
                message=payload.message,
                message_type=payload.message_type,
            ),
        )
        return EmailRelayResponse(recipients=1, emailer_response=emailer_response)

    @app.post("/api/email/send-to-all", response_model=EmailRelayResponse)
    async def send_email_to_all(payload: SendToAllRequest, request: Request) -> EmailRelayResponse:
        admin = await require_admin(request)
        users = await run_in_threadpool(
            request.app.state.repository.list_email_recipients,
            email_preference_category(payload.message_type),
        )
        if not users:
            raise HTTPException(status_code=404, detail="No users have opted in to this email")
        emailer_response = await relay_email(
            request,
            admin,
            "send_to_all",
            request.app.state.emailer.send_custom(
                [user.email for user in users],
                subject=payload.subject,
                message=payload.message,
                message_type=payload.message_type,
            ),
        )
        return EmailRelayResponse(recipients=len(users), emailer_response=emailer_response)

    @app.post("/api/email/job-alert", response_model=EmailRelayResponse)
    async def send_job_alert(payload: JobAlertRequest, request: Request) -> EmailRelayResponse:
        admin = await require_admin(request)
        job = await get_active_job_or_404(request, payload.job_id)
        users = await run_in_threadpool(
            request.app.state.repository.list_email_recipients,
            "job_alerts",
        )
        matching = [user for user in users if scorer.matched_skills(job.skills, user.skills)]
        if not matching:
            raise HTTPException(status_code=404, detail="No users match this job alert")
        emailer_response = await relay_email(
            request,
            admin,
            "job_alert",
            request.app.state.emailer.send_job_alert(
                [user.email for user in matching],
                job_title=job.title,
                company_name=job.company,
                job_description=job.description or "",
                apply_link=payload.apply_link,
            ),
        )
        return EmailRelayResponse(recipients=len(matching), emailer_response=emailer_response)

    @app.get("/api/email/status")
    async def email_status(request: Request) -> dict[str, Any]:
        await require_admin(request)
        return await request.app.state.emailer.stats()

    return app


app = create_app()
