"""Local reference datasets — historical cutoffs and the course whitelist.

Both files are JSON arrays of objects in the shape the TNEA cutoff sheets
and branch lists use. A missing or malformed file raises DatasetError; a
valid but empty array loads as an empty list.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from .models import CourseEntry, CutoffRecord

logger = logging.getLogger(__name__)

DEFAULT_CUTOFF_FILE = "./data/2024cutoff.json"
DEFAULT_COURSES_FILE = "./data/preferred_courses.json"

T = TypeVar("T", bound=BaseModel)


class DatasetError(Exception):
    """A dataset file could not be read or does not hold the expected records."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


def _read_records(path: Path | str, model: type[T]) -> list[T]:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise DatasetError(path, "file not found") from exc
    except OSError as exc:
        raise DatasetError(path, f"unreadable ({exc.strerror or exc})") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DatasetError(path, f"invalid JSON at line {exc.lineno}: {exc.msg}") from exc

    if not isinstance(data, list):
        raise DatasetError(path, f"expected a JSON array, got {type(data).__name__}")

    try:
        return TypeAdapter(list[model]).validate_python(data)
    except ValidationError as exc:
        raise DatasetError(path, f"{exc.error_count()} invalid record(s): {exc.errors()[0]['msg']}") from exc


def load_cutoffs(path: Path | str = DEFAULT_CUTOFF_FILE) -> list[CutoffRecord]:
    """Load historical cutoff records from a JSON file."""
    records = _read_records(path, CutoffRecord)
    if not records:
        logger.warning("Cutoff dataset %s is empty; no choices can be generated", path)
    else:
        logger.info("Loaded %d cutoff records from %s", len(records), path)
    return records


def load_courses(path: Path | str = DEFAULT_COURSES_FILE) -> list[CourseEntry]:
    """Load the preferred-course whitelist from a JSON file."""
    records = _read_records(path, CourseEntry)
    if not records:
        logger.warning("Course whitelist %s is empty; no choices can be generated", path)
    else:
        logger.info("Loaded %d preferred courses from %s", len(records), path)
    return records
