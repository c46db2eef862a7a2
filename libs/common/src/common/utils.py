from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime


def now_utc() -> datetime:
    return datetime.now(UTC)


def now_utc_iso() -> str:
    return now_utc().isoformat()


def normalize_whitespace(text: str) -> str:
    return " ".join(text.split())


def clean_skills(skills: Iterable[str] | None) -> list[str]:
    """Strip skill tokens and drop blanks, keeping the original order and casing."""
    return [skill.strip() for skill in skills or [] if skill and skill.strip()]


def split_skills(raw: str | None) -> list[str]:
    """Parse a comma separated query value such as ``"python, django"``."""
    if not raw:
        return []
    return clean_skills(raw.split(","))


def skills_overlap(left: str, right: str) -> bool:
    """Case-insensitive containment in either direction, so ``"Java"`` overlaps ``"JavaScript"``."""
    left_lower = left.lower()
    right_lower = right.lower()
    return left_lower in right_lower or right_lower in left_lower


def any_skill_overlaps(skill: str, candidates: Iterable[str]) -> bool:
    return any(skills_overlap(skill, candidate) for candidate in candidates)
