"""Per-client choice-filling session.

Holds the portal session token and the three datasets the ranking needs.
Each reload replaces its snapshot wholesale; nothing is merged.
"""

from __future__ import annotations

import logging
from typing import Optional

from .core.clients.portal import NotLoggedInError, PortalLogin
from .core.models import CourseEntry, CutoffRecord, RankingParameters, RankingResult, SeatRecord
from .core.ranking import rank_choices

logger = logging.getLogger(__name__)


class ChoiceSession:
    """State carried between tool calls for one connected client."""

    def __init__(self):
        self.session_id: Optional[str] = None
        self.user_name: str = ""
        self.seats: list[SeatRecord] = []
        self.cutoffs: list[CutoffRecord] = []
        self.courses: list[CourseEntry] = []
        self.last_result: Optional[RankingResult] = None

    @property
    def logged_in(self) -> bool:
        return bool(self.session_id)

    def start(self, login: PortalLogin) -> None:
        self.session_id = login.session_id
        self.user_name = login.name

    def require_login(self) -> str:
        if not self.session_id:
            raise NotLoggedInError()
        return self.session_id

    def replace_seats(self, seats: list[SeatRecord]) -> None:
        self.seats = list(seats)
        # a ranking over the old matrix may reference seats that no longer exist
        self.last_result = None

    def replace_cutoffs(self, cutoffs: list[CutoffRecord]) -> None:
        self.cutoffs = list(cutoffs)

    def replace_courses(self, courses: list[CourseEntry]) -> None:
        self.courses = list(courses)

    def generate(self, params: RankingParameters) -> RankingResult:
        """Rank the current snapshots and remember the result for submission."""
        result = rank_choices(self.seats, self.cutoffs, self.courses, params)
        self.last_result = result
        logger.info(
            "Generated %d choices for category %s (%d top-district)",
            len(result.selection_ids),
            params.category.value,
            result.diagnostics.priority_count,
        )
        return result

    def status(self) -> dict:
        return {
            "logged_in": self.logged_in,
            "user_name": self.user_name or None,
            "seat_records": len(self.seats),
            "cutoff_records": len(self.cutoffs),
            "preferred_courses": len(self.courses),
            "generated_choices": len(self.last_result.selection_ids) if self.last_result else 0,
        }
