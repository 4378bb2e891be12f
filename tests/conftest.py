from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from notifier.delivery.base import DeliveryResult, PushRequest
from notifier.models.queue_models import QueueJob
from notifier.store.base import StoreError

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_job(job_id, minutes: int = 0, **overrides) -> QueueJob:
    row = {
        "id": job_id,
        "status": "pending",
        "created_at": (T0 + timedelta(minutes=minutes)).isoformat(),
        "fcm_token": f"token-{job_id}",
        "title": f"Title {job_id}",
        "body": f"Body {job_id}",
        "data": None,
        "type": "ride",
        "attempts": None,
    }
    row.update(overrides)
    return QueueJob.model_validate(row)


class FakeStore:
    """In-memory store that records every call."""

    def __init__(self, jobs: Optional[List[QueueJob]] = None, fetch_error: Optional[Exception] = None):
        self.jobs = {j.id: j for j in (jobs or [])}
        self.fetch_error = fetch_error
        self.fetch_calls: List[int] = []
        self.updates: List[tuple] = []
        self.fail_updates_for: set = set()

    async def fetch_pending(self, limit: int) -> List[QueueJob]:
        self.fetch_calls.append(limit)
        if self.fetch_error:
            raise self.fetch_error
        pending = [j for j in self.jobs.values() if j.status == "pending"]
        pending.sort(key=lambda j: j.created_at or T0)
        return [j.model_copy() for j in pending[:limit]]

    async def mark_sent(self, job_id, sent_at):
        self.updates.append(("sent", job_id))
        if job_id in self.fail_updates_for:
            raise StoreError("update rejected", status_code=500)
        job = self.jobs[job_id]
        job.status, job.sent_at, job.error_message = "sent", sent_at, None

    async def mark_failed(self, job_id, attempts, error_message):
        self.updates.append(("failed", job_id))
        if job_id in self.fail_updates_for:
            raise StoreError("update rejected", status_code=500)
        job = self.jobs[job_id]
        job.status, job.attempts, job.error_message = "failed", attempts, error_message

    async def aclose(self):
        pass


class FakeSender:
    """Succeeds unless the token is listed in `errors` (token -> message)."""

    def __init__(self, errors: Optional[Dict[str, str]] = None, raise_for: Optional[set] = None):
        self.errors = errors or {}
        self.raise_for = raise_for or set()
        self.requests: List[PushRequest] = []

    async def send(self, request: PushRequest) -> DeliveryResult:
        self.requests.append(request)
        if request.token in self.raise_for:
            raise RuntimeError("sender blew up")
        if request.token in self.errors:
            return DeliveryResult.failure(self.errors[request.token])
        return DeliveryResult.success(f"projects/demo/messages/{request.token}")


@pytest.fixture
def fake_sender():
    return FakeSender()
