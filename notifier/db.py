# notifier/db.py
from __future__ import annotations

import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import DeclarativeBase

from notifier.config import settings

logger = logging.getLogger("uvicorn.error")


class Base(DeclarativeBase):
    pass


def _ensure_sqlite_dir(dsn: str) -> None:
    """If using SQLite, make sure the folder exists so SQLAlchemy can create the file."""
    if not dsn.startswith("sqlite"):
        return
    try:
        # Handle sqlite+aiosqlite:///./data/notifications.db
        # or sqlite+aiosqlite:////code/data/notifications.db
        sep = "///" if "///" in dsn else "//"
        path_part = dsn.split(sep, 1)[1] if sep in dsn else ""
        if path_part and path_part != ":memory:":
            path = pathlib.Path(path_part).resolve()
            path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("[DB] Could not ensure SQLite directory exists: %s", e)


def create_engine(dsn: Optional[str] = None) -> AsyncEngine:
    """
    Build an AsyncEngine for the given DSN (defaults to settings.DATABASE_URL).
    The caller owns the engine and disposes it on shutdown.
    """
    dsn = dsn or settings.DATABASE_URL
    _ensure_sqlite_dir(dsn)
    engine = create_async_engine(
        dsn,
        echo=False,
        pool_pre_ping=True,
    )
    logger.info("[DB] engine initialized for %s", dsn.split("@")[-1])
    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """
    Validate connectivity and create the queue table if it does not exist yet.
    """
    # register the ORM table on Base.metadata
    from notifier.models import jobs  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise
