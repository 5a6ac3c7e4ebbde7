"""Choice ranking engine.

Turns the live seat matrix, the historical cutoff table and the course
whitelist into an ordered choice list. Pure and deterministic: no I/O and no
state kept between calls, so the same inputs always give the same list.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Optional, Sequence

from .models import (
    Category,
    ChoiceReference,
    CourseEntry,
    CutoffRecord,
    RankingDiagnostics,
    RankingParameters,
    RankingResult,
    SeatRecord,
    SelectionCandidate,
)

logger = logging.getLogger(__name__)

# Cutoff of a college's flagship course stands in when its own row is missing.
PROXY_COURSE_CODE = "CS"
BASELINE_CATEGORY = Category.OC

_LEADING_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class PreconditionError(ValueError):
    """A required dataset or parameter is missing, so no ranking is attempted."""


def parse_score(value: Any) -> Optional[float]:
    """Parse a cutoff cell loosely, the way the cutoff sheets are written.

    Numbers pass through; strings are read from their leading numeric prefix
    ("90.5", " 90.5 ", "90.5*"). Anything else returns None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value.strip())
        if not match:
            return None
        score = float(match.group())
    else:
        return None
    return score if math.isfinite(score) else None


def _contains_any(name: str, fragments: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(fragment.lower() in lowered for fragment in fragments)


def _check_preconditions(
    seats: Sequence[SeatRecord],
    cutoffs: Sequence[CutoffRecord],
    courses: Sequence[CourseEntry],
    params: RankingParameters,
) -> None:
    if not seats:
        raise PreconditionError("Seat matrix not loaded. Please fetch available seats first.")
    if not cutoffs:
        raise PreconditionError("Cutoff data not loaded. Please load cutoff data first.")
    if not courses:
        raise PreconditionError("Course preferences not loaded. Please load course preferences first.")
    districts = params.district_preferences
    if not districts or not all(isinstance(d, str) for d in districts):
        raise PreconditionError("districtChoices is required and must be a non-empty array of strings")


def _first_match_index(cutoffs: Sequence[CutoffRecord]) -> dict[tuple[str, str], CutoffRecord]:
    """Map (college, course) to the first cutoff record carrying that pair."""
    index: dict[tuple[str, str], CutoffRecord] = {}
    for record in cutoffs:
        index.setdefault((record.college_code, record.course_code), record)
    return index


def resolve_candidates(
    seats: Sequence[SeatRecord],
    cutoffs: Sequence[CutoffRecord],
    courses: Sequence[CourseEntry],
    category: Category,
    diagnostics: RankingDiagnostics,
) -> list[SelectionCandidate]:
    """Filter seats and attach a numeric cutoff to each survivor, in seat order."""
    allowed = {course.course_code for course in courses}
    index = _first_match_index(cutoffs)
    candidates = []

    for seat in seats:
        if seat.course_code not in allowed:
            continue
        if not seat.is_available(category):
            continue

        record = index.get((seat.college_code, seat.course_code))
        if record is None:
            record = index.get((seat.college_code, PROXY_COURSE_CODE))
            if record is None:
                diagnostics.unmatched_count += 1
                continue
            diagnostics.course_fallback_count += 1

        score = parse_score(record.cutoff_by_category.get(category.value))
        if score is None:
            score = parse_score(record.cutoff_by_category.get(BASELINE_CATEGORY.value))
            if score is None:
                if seat.college_name not in diagnostics.without_cutoff:
                    diagnostics.without_cutoff.append(seat.college_name)
                continue
            diagnostics.baseline_fallback_count += 1

        candidates.append(SelectionCandidate(
            seat_id=seat.seat_id,
            college_name=seat.college_name,
            course_name=seat.course_name,
            cutoff=score,
        ))

    return candidates


def rank_choices(
    seats: Sequence[SeatRecord],
    cutoffs: Sequence[CutoffRecord],
    courses: Sequence[CourseEntry],
    params: RankingParameters,
) -> RankingResult:
    """Rank available seats into a choice list.

    Candidates are ordered by cutoff, highest first, then narrowed to the
    preferred districts. Colleges in a top district whose cutoff is strictly
    above ``params.min_cutoff`` move to the front; every other candidate
    keeps its place behind them. Ties keep seat-matrix order.

    Raises:
        PreconditionError: a dataset is empty or no district was given.
    """
    _check_preconditions(seats, cutoffs, courses, params)

    diagnostics = RankingDiagnostics()
    candidates = resolve_candidates(seats, cutoffs, courses, params.category, diagnostics)
    diagnostics.candidate_count = len(candidates)

    by_cutoff = sorted(candidates, key=lambda c: c.cutoff, reverse=True)
    in_districts = [c for c in by_cutoff if _contains_any(c.college_name, params.district_preferences)]
    diagnostics.district_match_count = len(in_districts)

    priority = []
    others = []
    for candidate in in_districts:
        if (
            _contains_any(candidate.college_name, params.top_district_preferences)
            and candidate.cutoff > params.min_cutoff
        ):
            priority.append(candidate)
        else:
            others.append(candidate)
    diagnostics.priority_count = len(priority)

    ordered = priority + others
    logger.debug(
        "Ranked %d choices (%d candidates, %d unmatched, %d without cutoff)",
        len(ordered),
        diagnostics.candidate_count,
        diagnostics.unmatched_count,
        len(diagnostics.without_cutoff),
    )
    return RankingResult(
        selection_ids=[c.seat_id for c in ordered],
        references=[
            ChoiceReference(college_name=c.college_name, course_name=c.course_name, cutoff=c.cutoff)
            for c in ordered
        ],
        diagnostics=diagnostics,
    )
