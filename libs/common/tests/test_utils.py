from __future__ import annotations

from datetime import datetime

import pytest
from common.utils import (
    any_skill_overlaps,
    clean_skills,
    normalize_whitespace,
    now_utc_iso,
    skills_overlap,
    split_skills,
)

pytestmark = pytest.mark.unit


def test_skills_overlap_is_case_insensitive_and_bidirectional() -> None:
    assert skills_overlap("python", "Python")
    assert skills_overlap("Java", "JavaScript")
    assert skills_overlap("JavaScript", "java")
    assert not skills_overlap("React", "Node.js")


def test_any_skill_overlaps_checks_every_candidate() -> None:
    assert any_skill_overlaps("Django", ["Flask", "django rest framework"])
    assert not any_skill_overlaps("Go", [])


def test_split_skills_trims_and_drops_blank_entries() -> None:
    assert split_skills(" python, , Django ,") == ["python", "Django"]
    assert split_skills(None) == []


def test_clean_skills_keeps_order_and_casing() -> None:
    assert clean_skills(["  React", "", "   ", "Node.js "]) == ["React", "Node.js"]


def test_now_utc_iso_returns_parseable_utc_timestamp() -> None:
    parsed = datetime.fromisoformat(now_utc_iso())
    assert parsed.tzinfo is not None
    assert parsed.utcoffset() is not None
    assert parsed.utcoffset().total_seconds() == 0


def test_normalize_whitespace_collapses_runs_and_newlines() -> None:
    assert normalize_whitespace("  Job\r\nAlert:\t Backend  ") == "Job Alert: Backend"
