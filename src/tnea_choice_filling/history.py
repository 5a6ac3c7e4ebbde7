"""Choice-filling history — persisted seat snapshots and submissions.

Every seat-matrix fetch is stored whole, and every submission is stored with
the portal's reply, so the status tool can say when data was last refreshed
and what was last sent.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func, select

from .core.clients.portal import count_available
from .core.models import SeatRecord
from .db import get_session_factory
from .sqlmodels import SeatSnapshot, Submission

logger = logging.getLogger(__name__)


async def record_seat_snapshot(seats: Sequence[SeatRecord]) -> int:
    """Persist a fetched seat matrix. Returns the snapshot ID."""
    snapshot = SeatSnapshot(
        record_count=len(seats),
        available_count=count_available(list(seats)),
        payload=json.dumps([s.model_dump(mode="json", by_alias=True) for s in seats]),
        fetched_at=datetime.utcnow(),
    )
    session_factory = get_session_factory()
    async with session_factory() as session:
        session.add(snapshot)
        await session.commit()
    logger.info("Stored seat snapshot %d (%d records)", snapshot.id, snapshot.record_count)
    return snapshot.id


async def record_submission(selections: Sequence[str], response: Any) -> int:
    """Persist a submitted choice list with the portal's acknowledgement."""
    submission = Submission(
        selection_count=len(selections),
        selections=json.dumps(list(selections)),
        response=json.dumps(response, default=str),
        submitted_at=datetime.utcnow(),
    )
    session_factory = get_session_factory()
    async with session_factory() as session:
        session.add(submission)
        await session.commit()
    return submission.id


async def latest_seat_snapshot() -> Optional[dict]:
    """Summary of the most recent stored seat matrix, without its payload."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(
            select(SeatSnapshot).order_by(SeatSnapshot.fetched_at.desc(), SeatSnapshot.id.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        total = await session.scalar(select(func.count()).select_from(SeatSnapshot))

    if row is None:
        return None
    return {
        "snapshot_id": row.id,
        "record_count": row.record_count,
        "available_count": row.available_count,
        "fetched_at": row.fetched_at.isoformat(),
        "stored_snapshots": total,
    }


async def load_seat_snapshot(snapshot_id: int) -> list[SeatRecord]:
    """Rebuild the seat records of a stored snapshot."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        row = await session.get(SeatSnapshot, snapshot_id)
    if row is None:
        raise LookupError(f"No seat snapshot with id {snapshot_id}")
    return [SeatRecord.model_validate(r) for r in json.loads(row.payload)]


async def recent_submissions(limit: int = 5) -> list[dict]:
    """Most recent submissions, newest first."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(
            select(Submission).order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(limit)
        )
        rows = result.scalars().all()

    return [
        {
            "submission_id": r.id,
            "selection_count": r.selection_count,
            "selections": json.loads(r.selections),
            "response": json.loads(r.response) if r.response else None,
            "submitted_at": r.submitted_at.isoformat(),
        }
        for r in rows
    ]
