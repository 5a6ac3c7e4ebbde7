"""Shared fixtures and record factories for the choice-filling tests."""

from __future__ import annotations

import pytest

from tnea_choice_filling import db
from tnea_choice_filling.core.models import CourseEntry, CutoffRecord, SeatRecord


def make_seat(
    seat_id: str,
    college_code="100",
    college_name: str = "Chennai Inst",
    course_code: str = "CS",
    course_name: str = "Computer Science",
    **counts,
) -> SeatRecord:
    """Build a SeatRecord from portal-shaped keys; counts are per category, e.g. MBC=5."""
    return SeatRecord.model_validate({
        "_id": seat_id,
        "colCode": college_code,
        "colName": college_name,
        "branCode": course_code,
        "branName": course_name,
        **counts,
    })


def make_cutoff(college_code=100, course_code: str = "CS", **scores) -> CutoffRecord:
    """Build a CutoffRecord from dataset-shaped keys; scores are per category, e.g. MBC="90.5"."""
    return CutoffRecord.model_validate({
        "coc": college_code,
        "con": "",
        "brc": course_code,
        "brn": "",
        **scores,
    })


def make_courses(*codes: str) -> list[CourseEntry]:
    return [CourseEntry.model_validate({"branCode": code, "branName": code}) for code in codes]


@pytest.fixture
async def data_dir(tmp_path, monkeypatch):
    """Point the history database at a temp dir and create its tables."""
    monkeypatch.setenv("TNEA_DATA_DIR", str(tmp_path))
    await db.close_db()
    await db.init_db()
    yield tmp_path
    await db.close_db()
