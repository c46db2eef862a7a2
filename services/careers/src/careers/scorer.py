"""Job recommendation scoring.

A match score is a weighted sum of four independent sub-scores:

* skill overlap (up to 60 points),
* profile-summary keyword overlap (up to 25 points),
* experience-level proximity (10 or 5 points),
* recency of the posting (5 or 2 points),

clamped to 100 and rounded half-up. Everything here is a pure function of its
inputs, including the ``now`` timestamp, so callers fetch users and jobs and
pass them in.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Literal

from common.utils import any_skill_overlaps, clean_skills
from pydantic import BaseModel, Field, field_validator

SKILL_WEIGHT = 60.0
KEYWORD_WEIGHT = 25.0
EXPERIENCE_EXACT_BONUS = 10.0
EXPERIENCE_NEAR_BONUS = 5.0
FRESH_POSTING_BONUS = 5.0
RECENT_POSTING_BONUS = 2.0
FRESH_POSTING_DAYS = 7
RECENT_POSTING_DAYS = 30
MIN_KEYWORD_LENGTH = 4
MAX_SCORE = 100
MIN_RECOMMENDATION_SCORE = 30
MAX_RECOMMENDATIONS = 20

EXPERIENCE_LEVELS: dict[str, int] = {
    "Entry Level": 1,
    "Junior": 2,
    "Mid Level": 3,
    "Senior": 4,
    "Lead": 5,
}
# No per-user experience data exists, so every user is treated as mid level.
ASSUMED_USER_EXPERIENCE = 3
DEFAULT_JOB_EXPERIENCE = 3

ExperienceLevel = Literal["Entry Level", "Junior", "Mid Level", "Senior", "Lead"]
JobStatus = Literal["active", "deleted"]


class EmptySkillSet(ValueError):
    """Raised when recommendations are requested for a user without skills."""

    def __init__(self) -> None:
        super().__init__("Please update your profile with skills to get recommendations")


class UserProfile(BaseModel):
    skills: list[str] = Field(default_factory=list)
    profile_summary: str | None = None

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str]:
        return clean_skills(value)


class JobPosting(BaseModel):
    id: int | str
    title: str
    company: str = ""
    description: str | None = ""
    skills: list[str] = Field(default_factory=list)
    experience_level: str | None = None
    created_at: datetime
    status: JobStatus = "active"

    @field_validator("skills", mode="before")
    @classmethod
    def _clean_skills(cls, value: list[str] | None) -> list[str]:
        return clean_skills(value)


class ScoreBreakdown(BaseModel):
    skills: float
    keywords: float
    experience: float
    recency: float
    total: float


class ScoredJob(BaseModel):
    job: JobPosting
    match_score: int = Field(ge=0, le=MAX_SCORE)
    matched_skills: list[str] = Field(default_factory=list)
    breakdown: ScoreBreakdown | None = None


class RecommendationResult(BaseModel):
    recommendations: list[ScoredJob]
    total_jobs_considered: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def matched_skills(job_skills: list[str], candidate_skills: list[str]) -> list[str]:
    return [skill for skill in job_skills if any_skill_overlaps(skill, candidate_skills)]


def skill_overlap_score(matched_count: int, job_skill_count: int) -> float:
    if job_skill_count == 0:
        return 0.0
    return (matched_count / job_skill_count) * SKILL_WEIGHT


def keyword_overlap_score(profile_summary: str | None, job: JobPosting) -> float:
    if not profile_summary:
        return 0.0
    relevant = [
        token for token in profile_summary.lower().split() if len(token) >= MIN_KEYWORD_LENGTH
    ]
    if not relevant:
        return 0.0
    haystack = f"{job.title} {job.description or ''}".lower()
    matches = sum(1 for token in relevant if token in haystack)
    return min((matches / len(relevant)) * KEYWORD_WEIGHT, KEYWORD_WEIGHT)


def experience_score(experience_level: str | None) -> float:
    job_level = EXPERIENCE_LEVELS.get(experience_level or "", DEFAULT_JOB_EXPERIENCE)
    distance = abs(ASSUMED_USER_EXPERIENCE - job_level)
    if distance <= 1:
        return EXPERIENCE_EXACT_BONUS
    if distance <= 2:
        return EXPERIENCE_NEAR_BONUS
    return 0.0


def recency_score(created_at: datetime, now: datetime) -> float:
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    age_days = math.floor((now - created_at).total_seconds() / 86400)
    if age_days <= FRESH_POSTING_DAYS:
        return FRESH_POSTING_BONUS
    if age_days <= RECENT_POSTING_DAYS:
        return RECENT_POSTING_BONUS
    return 0.0


def score(user: UserProfile, job: JobPosting, now: datetime) -> ScoredJob:
    matched = matched_skills(job.skills, user.skills)
    skills_part = skill_overlap_score(len(matched), len(job.skills))
    keywords_part = keyword_overlap_score(user.profile_summary, job)
    experience_part = experience_score(job.experience_level)
    recency_part = recency_score(job.created_at, now)

    total = min(skills_part + keywords_part + experience_part + recency_part, float(MAX_SCORE))
    total = max(total, 0.0)
    return ScoredJob(
        job=job,
        match_score=min(round_half_up(total), MAX_SCORE),
        matched_skills=matched,
        breakdown=ScoreBreakdown(
            skills=round(skills_part, 4),
            keywords=round(keywords_part, 4),
            experience=experience_part,
            recency=recency_part,
            total=round(total, 4),
        ),
    )


def recommend(
    user: UserProfile,
    jobs: list[JobPosting],
    now: datetime,
    *,
    min_score: int = MIN_RECOMMENDATION_SCORE,
    limit: int = MAX_RECOMMENDATIONS,
) -> RecommendationResult:
    """Rank ``jobs`` for ``user``.

    ``jobs`` must already be restricted to active postings. Ties keep their
    input order.
    """
    if not user.skills:
        raise EmptySkillSet()

    scored = [score(user, job, now) for job in jobs]
    relevant = [item for item in scored if item.match_score >= min_score]
    relevant.sort(key=lambda item: item.match_score, reverse=True)
    return RecommendationResult(
        recommendations=relevant[:limit],
        total_jobs_considered=len(jobs),
    )


def recommend_by_skills(skills: list[str], jobs: list[JobPosting]) -> list[ScoredJob]:
    search_skills = clean_skills(skills)
    results: list[ScoredJob] = []
    for job in jobs:
        matched = matched_skills(job.skills, search_skills)
        if not matched:
            continue
        results.append(
            ScoredJob(
                job=job,
                match_score=round_half_up((len(matched) / len(job.skills)) * MAX_SCORE),
                matched_skills=matched,
            )
        )
    results.sort(key=lambda item: item.match_score, reverse=True)
    return results
