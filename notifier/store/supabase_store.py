#===========================================================================
# notifier/store/supabase_store.py
# Supabase (PostgREST) queue store.
# Reads pending rows and patches their status over the REST API.
#===========================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from notifier.config import settings
from notifier.models.queue_models import QueueJob, STATUS_PENDING, STATUS_SENT, STATUS_FAILED, parse_row
from notifier.store.base import JobId, StoreError

logger = logging.getLogger("uvicorn.error")


def _headers(service_key: str) -> Dict[str, str]:
    return {
        "apikey": service_key,
        "Authorization": f"Bearer {service_key}",
        "Content-Type": "application/json",
        "Prefer": "return=minimal",
    }


def _short(text: str, limit: int = 300) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."


class SupabaseQueueStore:
    """
    Queue store backed by a Supabase table through PostgREST.

    The httpx client is long-lived and shared across cycles; pass one in to
    control transport/timeouts (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str | None = None,
        service_key: str | None = None,
        table: str | None = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self.table = table or settings.QUEUE_TABLE
        key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
        )
        self._headers = _headers(key)

    @property
    def _table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    async def _request(self, method: str, params: Dict[str, str], json: Any = None) -> httpx.Response:
        try:
            r = await self._client.request(
                method, self._table_url, params=params, json=json, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {self.table} failed: {e}") from e
        if r.status_code >= 400:
            raise StoreError(
                f"{method} {self.table} returned {r.status_code}",
                status_code=r.status_code,
                detail=_short(r.text),
            )
        return r

    async def fetch_pending(self, limit: int) -> List[QueueJob]:
        params = {
            "select": "*",
            "status": f"eq.{STATUS_PENDING}",
            "order": "created_at.asc",
            "limit": str(limit),
        }
        r = await self._request("GET", params)
        try:
            rows = r.json()
        except ValueError as e:
            raise StoreError(f"GET {self.table} returned non-JSON body", detail=_short(r.text)) from e
        if not isinstance(rows, list):
            raise StoreError(f"GET {self.table} returned unexpected payload", detail=_short(r.text))
        jobs: List[QueueJob] = []
        for row in rows:
            if not isinstance(row, dict):
                logger.error("[STORE] skipping non-object row in %s: %r", self.table, row)
                continue
            job = parse_row(row)
            if job is not None:
                jobs.append(job)
        return jobs

    async def _patch(self, job_id: JobId, changes: Dict[str, Any]) -> None:
        await self._request("PATCH", {"id": f"eq.{job_id}"}, json=changes)

    async def mark_sent(self, job_id: JobId, sent_at: datetime) -> None:
        await self._patch(job_id, {
            "status": STATUS_SENT,
            "sent_at": sent_at.isoformat(),
            "error_message": None,
        })

    async def mark_failed(self, job_id: JobId, attempts: int, error_message: str) -> None:
        await self._patch(job_id, {
            "status": STATUS_FAILED,
            "attempts": attempts,
            "error_message": error_message,
        })

    async def aclose(self) -> None:
        await self._client.aclose()
