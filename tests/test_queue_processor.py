import asyncio
import json

import httpx

from conftest import FakeSender, FakeStore, make_job
from notifier.store.base import StoreError
from notifier.store.supabase_store import SupabaseQueueStore
from notifier.workers.queue_processor import (
    JobFailed,
    JobSent,
    QueueProcessor,
    select_channel,
    worker_loop,
)


def _processor(store, sender, **kw):
    return QueueProcessor(store, sender, chat_channel="chat_ch", default_channel="rides_ch", **kw)


def test_all_jobs_sent():
    store = FakeStore([make_job(1), make_job(2, minutes=1), make_job(3, minutes=2)])
    sender = FakeSender()
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert store.fetch_calls == [10]
    assert len(sender.requests) == 3
    assert len(store.updates) == 3
    assert report.sent == 3 and report.failed == 0
    for job in store.jobs.values():
        assert job.status == "sent"
        assert job.sent_at is not None
        assert job.error_message is None
    assert not [j for j in store.jobs.values() if j.status == "pending"]


def test_failure_is_isolated_and_recorded():
    store = FakeStore([make_job("a"), make_job("b", minutes=1, attempts=2), make_job("c", minutes=2)])
    sender = FakeSender(errors={"token-b": "invalid token"})
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert [r.token for r in sender.requests] == ["token-a", "token-b", "token-c"]
    assert store.jobs["a"].status == "sent"
    assert store.jobs["c"].status == "sent"
    b = store.jobs["b"]
    assert b.status == "failed"
    assert b.attempts == 3
    assert b.error_message == "invalid token"
    assert b.sent_at is None
    assert [type(o) for o in report.outcomes] == [JobSent, JobFailed, JobSent]


def test_missing_attempts_counts_from_zero():
    store = FakeStore([make_job("a"), make_job("b", minutes=1)])
    sender = FakeSender(errors={"token-b": "invalid token"})
    asyncio.run(_processor(store, sender).run_cycle())

    assert store.jobs["a"].status == "sent"
    assert store.jobs["b"].status == "failed"
    assert store.jobs["b"].attempts == 1
    assert store.jobs["b"].error_message == "invalid token"


def test_sender_exception_marks_job_failed_and_continues():
    store = FakeStore([make_job(1), make_job(2, minutes=1)])
    sender = FakeSender(raise_for={"token-1"})
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert store.jobs[1].status == "failed"
    assert store.jobs[1].error_message == "sender blew up"
    assert store.jobs[2].status == "sent"
    assert report.failed == 1 and report.sent == 1


def test_fetch_error_touches_nothing():
    store = FakeStore([make_job(1)], fetch_error=StoreError("connection refused"))
    sender = FakeSender()
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert len(store.fetch_calls) == 1
    assert sender.requests == []
    assert store.updates == []
    assert report.fetch_error == "connection refused"
    assert report.outcomes == []


def test_empty_queue_is_a_noop():
    store = FakeStore([])
    sender = FakeSender()
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert store.fetch_calls == [10]
    assert sender.requests == []
    assert store.updates == []
    assert not report.skipped


def test_second_cycle_only_sees_remaining_pending():
    store = FakeStore([make_job(i, minutes=i) for i in range(12)])
    sender = FakeSender()
    proc = _processor(store, sender)

    first = asyncio.run(proc.run_cycle())
    assert [o.job_id for o in first.outcomes] == list(range(10))
    second = asyncio.run(proc.run_cycle())
    assert [o.job_id for o in second.outcomes] == [10, 11]
    third = asyncio.run(proc.run_cycle())
    assert third.outcomes == []


def test_update_failure_is_logged_not_raised():
    store = FakeStore([make_job(1), make_job(2, minutes=1)])
    store.fail_updates_for = {1}
    sender = FakeSender()
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert len(sender.requests) == 2
    assert store.updates == [("sent", 1), ("sent", 2)]
    assert report.outcomes[0].update_error
    assert store.jobs[2].status == "sent"


def test_channel_follows_job_type():
    store = FakeStore([make_job(1, type="chat"), make_job(2, minutes=1, type="ride_request"),
                       make_job(3, minutes=2, type=None)])
    sender = FakeSender()
    asyncio.run(_processor(store, sender).run_cycle())

    channels = [r.channel_id for r in sender.requests]
    assert channels == ["chat_ch", "rides_ch", "rides_ch"]


def test_request_carries_job_content():
    store = FakeStore([make_job(1, data={"ride_id": 42, "kind": "offer"})])
    sender = FakeSender()
    asyncio.run(_processor(store, sender).run_cycle())

    req = sender.requests[0]
    assert req.token == "token-1"
    assert req.title == "Title 1"
    assert req.body == "Body 1"
    assert req.data == {"ride_id": "42", "kind": "offer"}


def test_select_channel():
    assert select_channel("chat", "c", "d") == "c"
    assert select_channel("CHAT", "c", "d") == "d"
    assert select_channel(None, "c", "d") == "d"


def test_overlapping_cycle_is_skipped():
    class SlowStore(FakeStore):
        async def fetch_pending(self, limit):
            await asyncio.sleep(0.05)
            return await super().fetch_pending(limit)

    store = SlowStore([make_job(1)])
    sender = FakeSender()
    proc = _processor(store, sender)

    async def run_both():
        return await asyncio.gather(proc.run_cycle(), proc.run_cycle())

    first, second = asyncio.run(run_both())
    assert not first.skipped
    assert second.skipped
    assert len(store.fetch_calls) == 1
    assert len(sender.requests) == 1
    assert not proc.busy


def test_worker_loop_polls_until_stopped():
    store = FakeStore([make_job(1)])
    sender = FakeSender()
    proc = _processor(store, sender)

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(worker_loop(proc, stop, interval=0.01))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

    asyncio.run(scenario())
    assert len(store.fetch_calls) >= 2
    assert len(sender.requests) == 1
    assert store.jobs[1].status == "sent"


def test_malformed_row_is_failed_and_does_not_block_queue():
    rows = [
        {"id": "bad1", "status": "pending", "created_at": "2026-01-01T09:00:00+00:00",
         "fcm_token": "tok-0", "title": 12345, "body": "b", "attempts": None},
        {"id": "ok2", "status": "pending", "created_at": "2026-01-01T09:00:05+00:00",
         "fcm_token": "tok-2", "title": "Ride update", "body": "Driver arriving", "type": "ride"},
    ]
    patches = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=rows)
        patches.append((request.url.params["id"], json.loads(request.content)))
        return httpx.Response(204)

    store = SupabaseQueueStore(base_url="https://demo.supabase.co", service_key="k", table="q",
                               client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    sender = FakeSender()
    report = asyncio.run(_processor(store, sender).run_cycle())

    assert report.fetch_error is None
    assert [r.token for r in sender.requests] == ["tok-2"]
    assert [type(o) for o in report.outcomes] == [JobFailed, JobSent]
    failed_id, failed_body = patches[0]
    assert failed_id == "eq.bad1"
    assert failed_body["status"] == "failed"
    assert failed_body["attempts"] == 1
    assert "title" in failed_body["error_message"]
    assert patches[1][0] == "eq.ok2"
    assert patches[1][1]["status"] == "sent"
