"""SQLite storage for seat snapshots and submissions.

The database lives at <data dir>/data.db, where the data dir is
$TNEA_DATA_DIR, then $DATA_DIR, then ~/.tnea-mcp. The engine is created
lazily on first use and disposed by close_db() at server shutdown.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "~/.tnea-mcp"
DB_FILENAME = "data.db"


def get_data_dir() -> Path:
    """Resolve the data directory from the environment, creating it if needed."""
    configured = os.environ.get("TNEA_DATA_DIR") or os.environ.get("DATA_DIR") or DEFAULT_DATA_DIR
    data_dir = Path(configured).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def _on_connect(dbapi_connection, connection_record):
    # WAL lets get_session_status read while a snapshot is being written
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(f"sqlite+aiosqlite:///{get_db_path()}", echo=False)
        event.listen(_engine.sync_engine, "connect", _on_connect)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_db() -> Path:
    """Create the history tables if missing and return the database path."""
    from .sqlmodels import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    db_path = get_db_path()
    logger.info("Choice history database ready at %s", db_path)
    return db_path


async def close_db():
    """Dispose the engine so the next call starts from a fresh configuration."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
