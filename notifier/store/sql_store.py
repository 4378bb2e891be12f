# notifier/store/sql_store.py
# SQLAlchemy-backed queue store (local development / self-hosted Postgres).
from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from notifier.db import make_sessionmaker
from notifier.models.jobs import NotificationJob
from notifier.models.queue_models import QueueJob, STATUS_PENDING, STATUS_SENT, STATUS_FAILED, parse_row
from notifier.store.base import JobId, StoreError

logger = logging.getLogger("uvicorn.error")


def _row_to_job(row: NotificationJob) -> QueueJob | None:
    return parse_row({
        "id": row.id,
        "status": row.status,
        "created_at": row.created_at,
        "fcm_token": row.fcm_token,
        "title": row.title,
        "body": row.body,
        "data": row.data,
        "type": row.type,
        "attempts": row.attempts,
        "sent_at": row.sent_at,
        "error_message": row.error_message,
    })


class SqlQueueStore:
    def __init__(self, engine: AsyncEngine, sessionmaker: async_sessionmaker[AsyncSession] | None = None):
        self.engine = engine
        self._sessionmaker = sessionmaker or make_sessionmaker(engine)

    async def fetch_pending(self, limit: int) -> List[QueueJob]:
        stmt = (
            select(NotificationJob)
            .where(NotificationJob.status == STATUS_PENDING)
            .order_by(NotificationJob.created_at.asc(), NotificationJob.id.asc())
            .limit(limit)
        )
        try:
            async with self._sessionmaker() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StoreError(f"fetch pending failed: {e}") from e
        jobs = [_row_to_job(r) for r in rows]
        return [j for j in jobs if j is not None]

    async def _update(self, job_id: JobId, **values) -> None:
        stmt = update(NotificationJob).where(NotificationJob.id == int(job_id)).values(**values)
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(f"update job {job_id} failed: {e}") from e
        if result.rowcount == 0:
            logger.warning("[STORE] update matched no row id=%s", job_id)

    async def mark_sent(self, job_id: JobId, sent_at: datetime) -> None:
        await self._update(job_id, status=STATUS_SENT, sent_at=sent_at, error_message=None)

    async def mark_failed(self, job_id: JobId, attempts: int, error_message: str) -> None:
        await self._update(job_id, status=STATUS_FAILED, attempts=attempts, error_message=error_message)

    async def aclose(self) -> None:
        await self.engine.dispose()
