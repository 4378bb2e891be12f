# notifier/store/base.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol, Union

from notifier.models.queue_models import QueueJob

JobId = Union[int, str]


class StoreError(Exception):
    """Queue store read/update failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class QueueStore(Protocol):
    async def fetch_pending(self, limit: int) -> List[QueueJob]:
        """Pending jobs, oldest created_at first, at most `limit` rows."""
        ...

    async def mark_sent(self, job_id: JobId, sent_at: datetime) -> None:
        ...

    async def mark_failed(self, job_id: JobId, attempts: int, error_message: str) -> None:
        ...

    async def aclose(self) -> None:
        ...
