"""TNEA Choice Filling MCP Server.

FastMCP server with tools to log in to the TNEA portal, fetch the seat
matrix, load cutoff and course datasets, generate a ranked choice list,
and submit it.
Run: tnea-choice-filling-mcp
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations
from sqlalchemy.exc import SQLAlchemyError

from . import history
from .core import datasets
from .core.clients import portal
from .core.models import DEFAULT_CATEGORY, DEFAULT_MIN_CUTOFF, Category, RankingParameters, RankingResult
from .db import close_db, init_db
from .session import ChoiceSession

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 10

LOCAL = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=False)
PORTAL_READ = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)
PORTAL_WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=True, idempotentHint=True, openWorldHint=True)
PORTAL_SESSION = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=False, openWorldHint=True)
SESSION_WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=False)

session = ChoiceSession()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Initialize the history database for the lifetime of the server."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    await init_db()
    try:
        yield
    finally:
        await close_db()


mcp = FastMCP(
    "TNEA Choice Filling",
    instructions=(
        "Automates TNEA engineering counselling choice filling: log in, fetch the seat matrix, "
        "load cutoff and course data, generate a ranked choice list by district and cutoff, "
        "then submit it to the portal."
    ),
    lifespan=lifespan,
)


def _credentials(email: str, password: str) -> tuple[str, str]:
    email = email or os.environ.get("TNEA_EMAIL", "")
    password = password or os.environ.get("TNEA_PASSWORD", "")
    if not email or not password:
        raise ValueError("Login requires email and password (or TNEA_EMAIL and TNEA_PASSWORD in the environment)")
    return email, password


def _format_preview(result: RankingResult, limit: int) -> str:
    lines = [
        f"{i}. {ref.college_name}\n   {ref.course_name} (Cutoff: {ref.cutoff:g})"
        for i, ref in enumerate(result.references[:limit], start=1)
    ]
    text = "\n\n".join(lines)
    remaining = len(result.selection_ids) - limit
    if remaining > 0:
        text += f"\n\n... and {remaining} more"
    return text


# ─── Tool 1: Login ───────────────────────────────────────────────────────────


@mcp.tool(annotations=PORTAL_SESSION)
async def login(email: str = "", password: str = "") -> dict:
    """Log in to the TNEA portal and start a session.

    Args:
        email: Portal login email/username. Falls back to TNEA_EMAIL.
        password: Portal password. Falls back to TNEA_PASSWORD.
    """
    email, password = _credentials(email, password)
    result = await portal.login(email, password)
    session.start(result)
    return {
        "title": "Login",
        "user_name": result.name,
        "user_id": result.user_id,
        "summary": f"Login successful. Welcome {result.name}".rstrip(),
    }


# ─── Tool 2: Seat Matrix ─────────────────────────────────────────────────────


@mcp.tool(annotations=PORTAL_READ)
async def get_available_seats() -> dict:
    """Fetch the current seat matrix from the TNEA portal.

    Replaces the session's seat matrix and stores a snapshot locally.
    """
    session_id = session.require_login()
    seats = await portal.fetch_seat_matrix(session_id)
    session.replace_seats(seats)

    snapshot_id = None
    try:
        snapshot_id = await history.record_seat_snapshot(seats)
    except SQLAlchemyError as exc:
        logger.warning("Could not store seat snapshot: %s", exc)

    available = portal.count_available(seats)
    return {
        "title": "Seat Matrix",
        "total_records": len(seats),
        "available_records": available,
        "snapshot_id": snapshot_id,
        "summary": f"Fetched {len(seats)} total seats, {available} have availability"
        + (f". Stored as snapshot {snapshot_id}." if snapshot_id is not None else "."),
    }


@mcp.tool(annotations=LOCAL)
async def load_seat_snapshot(snapshot_id: int = 0) -> dict:
    """Load a previously fetched seat matrix from local history instead of the portal.

    Args:
        snapshot_id: Stored snapshot to load. 0 loads the most recent one.
    """
    if snapshot_id <= 0:
        latest = await history.latest_seat_snapshot()
        if latest is None:
            raise LookupError("No stored seat snapshots. Fetch available seats first.")
        snapshot_id = latest["snapshot_id"]

    seats = await history.load_seat_snapshot(snapshot_id)
    session.replace_seats(seats)
    available = portal.count_available(seats)
    return {
        "title": "Seat Matrix (stored)",
        "snapshot_id": snapshot_id,
        "total_records": len(seats),
        "available_records": available,
        "summary": f"Loaded snapshot {snapshot_id}: {len(seats)} total seats, {available} have availability",
    }


# ─── Tool 3: Cutoff Data ─────────────────────────────────────────────────────


@mcp.tool(annotations=LOCAL)
async def load_cutoff_data(cutoff_file_path: str = "") -> dict:
    """Load historical cutoff data from a JSON file.

    Args:
        cutoff_file_path: Path to the cutoff JSON file.
                          Defaults to TNEA_CUTOFF_FILE or ./data/2024cutoff.json.
    """
    path = cutoff_file_path or os.environ.get("TNEA_CUTOFF_FILE", datasets.DEFAULT_CUTOFF_FILE)
    cutoffs = await asyncio.to_thread(datasets.load_cutoffs, path)
    session.replace_cutoffs(cutoffs)
    return {
        "title": "Cutoff Data",
        "path": path,
        "record_count": len(cutoffs),
        "summary": f"Loaded {len(cutoffs)} cutoff records from {path}",
    }


# ─── Tool 4: Course Preferences ──────────────────────────────────────────────


@mcp.tool(annotations=LOCAL)
async def load_course_preferences(courses_file_path: str = "") -> dict:
    """Load the preferred course list from a JSON file.

    Args:
        courses_file_path: Path to the courses JSON file.
                           Defaults to TNEA_COURSES_FILE or ./data/preferred_courses.json.
    """
    path = courses_file_path or os.environ.get("TNEA_COURSES_FILE", datasets.DEFAULT_COURSES_FILE)
    courses = await asyncio.to_thread(datasets.load_courses, path)
    session.replace_courses(courses)
    return {
        "title": "Course Preferences",
        "path": path,
        "course_count": len(courses),
        "courses": [c.course_code for c in courses],
        "summary": f"Loaded {len(courses)} preferred courses from {path}",
    }


# ─── Tool 5: Generate Choices ────────────────────────────────────────────────


@mcp.tool(annotations=SESSION_WRITE)
async def generate_choices(
    district_choices: list[str],
    top_pref_dist: Optional[list[str]] = None,
    min_cutoff: float = DEFAULT_MIN_CUTOFF,
    category: Category = DEFAULT_CATEGORY,
) -> dict:
    """Generate a ranked choice list from the loaded seats, cutoffs, and courses.

    Colleges are sorted by last year's cutoff (highest first) and limited to the
    preferred districts. Colleges in a top-priority district whose cutoff is
    above min_cutoff are listed first.

    Args:
        district_choices: District names to include (matched against college names).
        top_pref_dist: Districts whose high-cutoff colleges go to the top of the list.
        min_cutoff: Cutoff a top-district college must exceed to be prioritized. Default 85.
        category: Reservation category for seat availability and cutoffs. Default 'MBC'.
    """
    params = RankingParameters(
        district_preferences=district_choices,
        top_district_preferences=top_pref_dist or [],
        min_cutoff=min_cutoff,
        category=category,
    )
    result = session.generate(params)
    count = len(result.selection_ids)

    summary = f"Generated {count} choices"
    if count:
        summary += f"\n\nTop {min(count, PREVIEW_SIZE)} choices:\n{_format_preview(result, PREVIEW_SIZE)}"

    return {
        "title": "Generated Choices",
        "category": params.category.value,
        "choice_count": count,
        "selections": result.selection_ids,
        "references": [r.model_dump() for r in result.references],
        "diagnostics": result.diagnostics.model_dump(),
        "summary": summary,
    }


# ─── Tool 6: Submit Choices ──────────────────────────────────────────────────


@mcp.tool(annotations=PORTAL_WRITE)
async def submit_choices(selections: Optional[list[str]] = None) -> dict:
    """Submit a choice list to the TNEA portal, replacing any saved choices.

    Args:
        selections: Seat IDs in preference order. Defaults to the last generated list.
    """
    session_id = session.require_login()
    if selections is None:
        if session.last_result is None:
            raise ValueError("Submit choices requires a selections array or a previously generated choice list")
        if not session.last_result.selection_ids:
            raise ValueError("The last generated choice list is empty; pass selections explicitly to clear saved choices")
        selections = list(session.last_result.selection_ids)

    response = await portal.submit_selections(session_id, selections)

    submission_id = None
    try:
        submission_id = await history.record_submission(selections, response)
    except SQLAlchemyError as exc:
        logger.warning("Could not store submission: %s", exc)

    return {
        "title": "Choices Submitted",
        "submitted": len(selections),
        "submission_id": submission_id,
        "response": response,
        "summary": f"Choices submitted successfully. Submitted {len(selections)} choices.",
    }


# ─── Tool 7: Session Status ──────────────────────────────────────────────────


@mcp.tool(annotations=LOCAL)
async def get_session_status() -> dict:
    """Current session state: login, loaded datasets and stored history."""
    status = session.status()
    latest = None
    submissions = []
    try:
        latest = await history.latest_seat_snapshot()
        submissions = await history.recent_submissions(limit=1)
    except SQLAlchemyError as exc:
        logger.warning("Could not read choice history: %s", exc)

    lines = [
        f"Session Status: {'Active' if status['logged_in'] else 'Not logged in'}",
        f"Seat Matrix: {status['seat_records']} records loaded",
        f"Cutoff Data: {status['cutoff_records']} records loaded",
        f"Course Preferences: {status['preferred_courses']} courses loaded",
        f"Generated Choices: {status['generated_choices']}",
    ]
    if latest:
        lines.append(f"Last seat snapshot: {latest['fetched_at']} ({latest['record_count']} records)")
    if submissions:
        last = submissions[0]
        lines.append(f"Last submission: {last['submitted_at']} ({last['selection_count']} choices)")

    return {
        "title": "Session Status",
        **status,
        "last_seat_snapshot": latest,
        "last_submission": submissions[0] if submissions else None,
        "summary": "\n".join(lines),
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
