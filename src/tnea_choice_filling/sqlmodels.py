"""SQLAlchemy models for local SQLite choice-filling history.

Keeps each fetched seat matrix and each submitted choice list so a session
can be audited after the fact. Ranking itself never reads from here; it
works on the in-memory session snapshot.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SeatSnapshot(Base):
    """One fetched seat matrix, stored whole."""

    __tablename__ = "seat_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False)
    available_count: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_seat_snapshot_fetched", "fetched_at"),
    )


class Submission(Base):
    """A choice list sent to the portal and the portal's reply."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    selection_count: Mapped[int] = mapped_column(Integer, nullable=False)
    selections: Mapped[str] = mapped_column(Text, nullable=False)
    response: Mapped[str] = mapped_column(Text, default="")
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_submission_submitted", "submitted_at"),
    )
