"""Pydantic data models — the shared business objects.

Seat, cutoff and course records are parsed straight from the JSON the TNEA
portal and the local datasets use, so field aliases follow those wire names
(`colCode`, `brc`, `branCode`, ...). College codes are canonicalized once
here so the ranking code can compare them as plain strings.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Category(str, Enum):
    """Reservation category codes used by the seat matrix and cutoff tables."""

    OC = "OC"
    BC = "BC"
    BCM = "BCM"
    MBC = "MBC"
    SC = "SC"
    SCA = "SCA"
    ST = "ST"


CATEGORY_CODES = tuple(c.value for c in Category)

DEFAULT_CATEGORY = Category.MBC
DEFAULT_MIN_CUTOFF = 85.0


def normalize_college_code(value: Any) -> str:
    """Canonical string form of a college code.

    The portal sends `colCode` as a string while the cutoff files carry `coc`
    as a number, so `100`, `100.0`, `"100"` and `"0100"` all map to `"100"`.
    """
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    text = str(value).strip()
    if text.isascii() and text.isdigit():
        return str(int(text))
    return text


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _display_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _collect_categories(data: Any, target: str) -> Any:
    """Fold the flat per-category keys of a raw record into one mapping."""
    if not isinstance(data, dict) or target in data:
        return data
    data = dict(data)
    data[target] = {code: data[code] for code in CATEGORY_CODES if code in data}
    return data


class SeatRecord(BaseModel):
    """One (college, course) offering in the live seat matrix."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    seat_id: str = Field(alias="_id")
    college_code: str = Field(alias="colCode")
    college_name: str = Field("", alias="colName")
    course_code: str = Field(alias="branCode")
    course_name: str = Field("", alias="branName")
    fee_code: str | None = Field(None, alias="feeCode")
    allot_seq: int | None = Field(None, alias="allotSeq")
    seats_by_category: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw open-seat count per category code, as delivered",
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_categories(cls, data: Any) -> Any:
        return _collect_categories(data, "seats_by_category")

    @field_validator("college_code", mode="before")
    @classmethod
    def _canonical_college(cls, value: Any) -> str:
        return normalize_college_code(value)

    @field_validator("seat_id", "course_code", "fee_code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("college_name", "course_name", mode="before")
    @classmethod
    def _names(cls, value: Any) -> str:
        return _display_text(value)

    def open_seats(self, category: Category | str) -> float | None:
        """Open seats for a category, or None when the count is not a number."""
        raw = self.seats_by_category.get(Category(category).value)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return None
        return raw

    def is_available(self, category: Category | str) -> bool:
        seats = self.open_seats(category)
        return seats is not None and seats > 0


class CutoffRecord(BaseModel):
    """One historical admission cutoff entry, keyed by (college, course)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    college_code: str = Field(alias="coc")
    college_name: str = Field("", alias="con")
    course_code: str = Field(alias="brc")
    course_name: str = Field("", alias="brn")
    code: str | None = None
    cutoff_by_category: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw cutoff value per category: number, numeric string, or garbage",
    )

    @model_validator(mode="before")
    @classmethod
    def _fold_categories(cls, data: Any) -> Any:
        return _collect_categories(data, "cutoff_by_category")

    @field_validator("college_code", mode="before")
    @classmethod
    def _canonical_college(cls, value: Any) -> str:
        return normalize_college_code(value)

    @field_validator("course_code", "code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("college_name", "course_name", mode="before")
    @classmethod
    def _names(cls, value: Any) -> str:
        return _display_text(value)


class CourseEntry(BaseModel):
    """A whitelisted course the candidate is willing to accept."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    course_code: str = Field(alias="branCode")
    course_name: str = Field("", alias="branName")

    @field_validator("course_code", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("course_name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _display_text(value)


class SelectionCandidate(BaseModel):
    """A seat that survived filtering and has a resolved numeric cutoff."""

    seat_id: str
    college_name: str
    course_name: str
    cutoff: float


class ChoiceReference(BaseModel):
    """Human-readable companion of a submitted seat ID."""

    college_name: str
    course_name: str
    cutoff: float


class RankingParameters(BaseModel):
    """User preferences for one ranking computation."""

    district_preferences: list[str] = Field(
        description="District name fragments; a college must contain one to be listed",
    )
    top_district_preferences: list[str] = Field(
        default_factory=list,
        description="Districts whose high-cutoff colleges are listed first",
    )
    min_cutoff: float = Field(
        DEFAULT_MIN_CUTOFF,
        description="Cutoff a top-district college must strictly exceed to be prioritized",
    )
    category: Category = DEFAULT_CATEGORY


class RankingDiagnostics(BaseModel):
    """Counts of records the ranking dropped or resolved through a fallback."""

    unmatched_count: int = Field(0, description="Seats with neither an exact nor a CS cutoff record")
    without_cutoff: list[str] = Field(
        default_factory=list,
        description="Colleges whose cutoff record had no parseable score (deduplicated)",
    )
    course_fallback_count: int = Field(0, description="Seats scored through the college's CS cutoff")
    baseline_fallback_count: int = Field(0, description="Seats scored through the OC column")
    candidate_count: int = Field(0, description="Seats with a resolved cutoff, before the district filter")
    district_match_count: int = 0
    priority_count: int = Field(0, description="Seats placed in the top-district group")


class RankingResult(BaseModel):
    """Ordered choice list with index-aligned references."""

    selection_ids: list[str]
    references: list[ChoiceReference]
    diagnostics: RankingDiagnostics = Field(default_factory=RankingDiagnostics)
