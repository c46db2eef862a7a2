from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from common.utils import clean_skills
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from careers.scorer import ExperienceLevel, JobPosting, JobStatus, ScoreBreakdown

MessageType = Literal["general", "urgent", "announcement", "guidance", "job_alert"]
EmailMessageType = Literal["general", "urgent", "announcement", "guidance"]
RecipientType = Literal["all_users", "user"]
SubjectType = Literal["user", "admin"]


def _clean_optional_skills(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    return clean_skills(value)


class Principal(BaseModel):
    subject_type: SubjectType
    subject_id: int
    token_hash: str


class UserRegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = None
    profile_summary: str | None = None
    skills: list[str] = Field(default_factory=list)

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str]:
        return clean_skills(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = None
    profile_summary: str | None = None
    skills: list[str] | None = None

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str] | None:
        return _clean_optional_skills(value)


class UserAccount(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    address: str | None = None
    profile_summary: str | None = None
    skills: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class AdminAccount(BaseModel):
    id: int
    name: str
    email: str
    created_at: str


class UserSessionResponse(BaseModel):
    user: UserAccount
    token: str


class AdminSessionResponse(BaseModel):
    admin: AdminAccount
    token: str


class JobCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    company: str = Field(..., min_length=1, max_length=255)
    location: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    experience_level: ExperienceLevel = "Entry Level"
    salary_range: str | None = Field(default=None, max_length=100)
    requirements: str | None = None
    skills: list[str] = Field(default_factory=list)
    job_type: str = Field(default="Full-time", max_length=50)
    status: JobStatus = "active"

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str]:
        return clean_skills(value)


class JobUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    company: str | None = Field(default=None, min_length=1, max_length=255)
    location: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    experience_level: ExperienceLevel | None = None
    salary_range: str | None = Field(default=None, max_length=100)
    requirements: str | None = None
    skills: list[str] | None = None
    job_type: str | None = Field(default=None, max_length=50)
    status: JobStatus | None = None

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str] | None:
        return _clean_optional_skills(value)


class Job(JobPosting):
    id: int
    location: str | None = None
    salary_range: str | None = None
    requirements: str | None = None
    job_type: str = "Full-time"
    created_by: int | None = None
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class JobListResponse(BaseModel):
    jobs: list[Job]
    pagination: Pagination


class ApplyRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class Application(BaseModel):
    id: int
    job_id: int
    status: str
    applied_at: str
    notes: str | None = None
    title: str
    company: str
    location: str | None = None
    salary_range: str | None = None


class RecentApplication(BaseModel):
    id: int
    status: str
    applied_at: str
    user_name: str
    job_title: str


class AdminStats(BaseModel):
    total_users: int
    total_jobs: int
    total_applications: int
    total_messages: int
    recent_applications: list[RecentApplication]


class RecommendedJob(BaseModel):
    id: int
    title: str
    company: str
    location: str | None = None
    experience_level: str | None = None
    salary_range: str | None = None
    description: str | None = None
    requirements: str | None = None
    skills: list[str]
    job_type: str
    created_at: datetime
    match_score: int
    matched_skills: list[str]
    breakdown: ScoreBreakdown | None = None


class RecommendationsResponse(BaseModel):
    recommendations: list[RecommendedJob]
    user_skills: list[str]
    total_jobs_considered: int
    recommended_count: int


class SkillSearchResponse(BaseModel):
    jobs: list[RecommendedJob]
    search_skills: list[str]
    total_matches: int


class MessageSendRequest(BaseModel):
    subject: str | None = Field(default=None, max_length=255)
    content: str = Field(..., min_length=1)
    recipient_type: RecipientType
    recipient_id: int | None = None
    message_type: MessageType = "general"
    target_skills: list[str] = Field(default_factory=list)

    @field_validator("target_skills", mode="before")
    @classmethod
    def _clean_target_skills(cls, value: list[str] | None) -> list[str]:
        return clean_skills(value)

    @model_validator(mode="after")
    def validate_recipient(self) -> MessageSendRequest:
        if self.recipient_type == "user" and self.recipient_id is None:
            raise ValueError("recipient_id is required for user messages.")
        return self


class Message(BaseModel):
    id: int
    sender_id: int | None = None
    sender_name: str | None = None
    recipient_type: RecipientType
    recipient_id: int | None = None
    subject: str | None = None
    content: str
    message_type: str
    target_skills: list[str] = Field(default_factory=list)
    created_at: str
    is_read: bool = False


class MessageListResponse(BaseModel):
    messages: list[Message]
    pagination: Pagination


class UserSkillMatch(BaseModel):
    id: int
    name: str
    email: str
    skills: list[str]


class UsersBySkillsResponse(BaseModel):
    users: list[UserSkillMatch]
    search_skills: list[str]
    total_matches: int


class ResumeFile(BaseModel):
    id: int
    filename: str
    original_name: str
    file_size: int
    mime_type: str
    uploaded_at: str


class StoredResumeFile(ResumeFile):
    user_id: int
    file_path: str


class EmailPreferences(BaseModel):
    job_alerts: bool = True
    career_guidance: bool = True
    notifications: bool = True
    marketing: bool = False


class SendToUserRequest(BaseModel):
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    message_type: EmailMessageType = "general"


class SendToAllRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1)
    message_type: EmailMessageType = "general"


class JobAlertRequest(BaseModel):
    job_id: int
    apply_link: str | None = Field(default=None, max_length=500)


class EmailRelayResponse(BaseModel):
    recipients: int
    emailer_response: dict[str, Any]
