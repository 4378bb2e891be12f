# ---------------------------------
# notifier/workers/queue_processor.py
# ---------------------------------
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from notifier.config import settings
from notifier.delivery.base import PushRequest, PushSender
from notifier.models.queue_models import QueueJob
from notifier.store.base import QueueStore, JobId

logger = logging.getLogger("uvicorn.error")

CHAT_TYPE = "chat"


# ---------------------------
# Per-job outcomes
# ---------------------------

@dataclass
class JobSent:
    job_id: JobId
    sent_at: datetime
    message_id: Optional[str] = None
    update_error: Optional[str] = None


@dataclass
class JobFailed:
    job_id: JobId
    attempts: int
    error_message: str
    update_error: Optional[str] = None


JobOutcome = Union[JobSent, JobFailed]


@dataclass
class CycleReport:
    skipped: bool = False
    fetch_error: Optional[str] = None
    outcomes: List[JobOutcome] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, JobSent))

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, JobFailed))


def select_channel(job_type: Optional[str], chat_channel: str, default_channel: str) -> str:
    return chat_channel if job_type == CHAT_TYPE else default_channel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------
# Processor
# ---------------------------

class QueueProcessor:
    """
    Runs polling cycles over the pending queue: fetch a bounded FIFO batch,
    deliver each job, write the result back. One cycle at a time; a trigger
    that arrives while a cycle is running is skipped.
    """

    def __init__(
        self,
        store: QueueStore,
        sender: PushSender,
        batch_size: int | None = None,
        chat_channel: str | None = None,
        default_channel: str | None = None,
    ):
        self.store = store
        self.sender = sender
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.chat_channel = chat_channel or settings.CHAT_CHANNEL_ID
        self.default_channel = default_channel or settings.DEFAULT_CHANNEL_ID
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def build_request(self, job: QueueJob) -> PushRequest:
        return PushRequest(
            token=job.recipient_token,
            title=job.title,
            body=job.body,
            data=dict(job.data),
            channel_id=select_channel(job.type, self.chat_channel, self.default_channel),
        )

    async def run_cycle(self) -> CycleReport:
        if self._lock.locked():
            logger.info("[WORKER] cycle already in progress; skipping trigger")
            return CycleReport(skipped=True)
        async with self._lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleReport:
        logger.debug("[WORKER] polling queue...")
        report = CycleReport()
        try:
            jobs = await self.store.fetch_pending(self.batch_size)
        except Exception as e:
            logger.error("[WORKER] queue fetch failed: %s", e)
            report.fetch_error = str(e) or e.__class__.__name__
            return report

        if not jobs:
            logger.debug("[WORKER] no pending notifications")
            return report

        logger.info("[WORKER] processing %d notification(s)", len(jobs))
        for job in jobs:
            report.outcomes.append(await self._process_job(job))

        logger.info("[WORKER] cycle done sent=%d failed=%d", report.sent, report.failed)
        return report

    async def _process_job(self, job: QueueJob) -> JobOutcome:
        if job.invalid_reason:
            logger.warning("[WORKER] not sending malformed job id=%s", job.id)
            return await self._record_failure(job, job.invalid_reason)
        try:
            request = self.build_request(job)
            logger.info("[WORKER] sending id=%s title=%r channel=%s", job.id, job.title, request.channel_id)
            result = await self.sender.send(request)
        except Exception as e:
            # sender contract is to return a failed result; anything raised still stays with this job
            logger.exception("[WORKER] unexpected delivery error id=%s", job.id)
            return await self._record_failure(job, str(e) or e.__class__.__name__)

        if result.ok:
            return await self._record_success(job, result.message_id)
        logger.warning("[WORKER] send failed id=%s: %s", job.id, result.error)
        return await self._record_failure(job, result.error or "unknown delivery error")

    async def _record_success(self, job: QueueJob, message_id: Optional[str]) -> JobSent:
        outcome = JobSent(job_id=job.id, sent_at=_utcnow(), message_id=message_id)
        try:
            await self.store.mark_sent(job.id, outcome.sent_at)
            logger.info("[WORKER] sent and updated id=%s", job.id)
        except Exception as e:
            outcome.update_error = str(e) or e.__class__.__name__
            logger.error("[WORKER] sent but status update failed id=%s: %s", job.id, e)
        return outcome

    async def _record_failure(self, job: QueueJob, message: str) -> JobFailed:
        outcome = JobFailed(job_id=job.id, attempts=job.attempts + 1, error_message=message)
        try:
            await self.store.mark_failed(job.id, outcome.attempts, outcome.error_message)
        except Exception as e:
            outcome.update_error = str(e) or e.__class__.__name__
            logger.error("[WORKER] failure status update failed id=%s: %s", job.id, e)
        return outcome


# ---------------------------
# Scheduler
# ---------------------------

async def worker_loop(processor: QueueProcessor, stop_event: asyncio.Event, interval: float | None = None) -> None:
    interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
    logger.info("[WORKER] started (interval=%ss batch=%d)", interval, processor.batch_size)

    while not stop_event.is_set():
        try:
            await processor.run_cycle()
        except Exception:
            logger.exception("[WORKER] cycle crashed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue

    logger.info("[WORKER] stopped")
