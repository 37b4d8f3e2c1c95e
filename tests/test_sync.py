"""
Tests for replaying queued mutations once connectivity returns.
"""
import asyncio
import json

import httpx

from caseworker.context import WorkerContext
from caseworker.network import FetchRequest
from caseworker.worker import ServiceWorker

from conftest import url

CASE = {"patient_id": "P1", "exam_date": "2024-01-01", "doctor_name": "Dr. A", "location": "Main", "exam_type": "EEG"}


def _post_case(payload: dict = CASE) -> FetchRequest:
    return FetchRequest(
        method="POST",
        url=url("/api/cases"),
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload).encode("utf-8"),
    )


async def test_offline_case_is_replayed_when_connectivity_returns(worker, upstream, context):
    """Test that an offline case is replayed once back online"""
    page = context.clients.connect(url("/"), controlled=True)
    upstream.online = False
    queued = (await worker.fetch(_post_case())).json()
    assert queued["queued"] is True

    upstream.online = True
    [report] = await worker.connectivity_restored()

    assert report.replayed == [queued["id"]]
    assert report.failed == []
    assert report.remaining == 0
    assert await context.queue.count() == 0

    [replay] = upstream.calls_to("/api/cases", method="POST")[-1:]
    assert json.loads(replay.content) == CASE
    assert replay.headers["content-type"] == "application/json"

    message = await page.next_message(timeout=1)
    assert message["type"] == "SYNC_COMPLETE"
    assert message["timestamp"] == report.timestamp


async def test_connectivity_without_registered_sync_does_nothing(worker, upstream):
    """Test that connectivity with nothing registered replays nothing"""
    assert await worker.connectivity_restored() == []
    assert upstream.calls_to("/api/cases", method="POST") == []


async def test_connectivity_consumes_registered_tags(worker, upstream, context):
    """Test that a successful sync clears its registration"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    assert len(await worker.connectivity_restored()) == 1
    assert context.sync_registry.pending() == []
    assert await worker.connectivity_restored() == []


async def test_replays_in_enqueue_order(worker, upstream, context):
    """Test that entries replay in the order they were queued"""
    upstream.online = False
    await worker.fetch(_post_case({"patient_id": "P1"}))
    await worker.fetch(FetchRequest(method="PUT", url=url("/api/cases/1"), body=b'{"notes": "n"}'))
    await worker.fetch(FetchRequest(method="DELETE", url=url("/api/cases/2")))
    upstream.online = True
    upstream.calls.clear()

    await worker.sync()

    assert [(call.method, call.url.path) for call in upstream.calls] == [
        ("POST", "/api/cases"),
        ("PUT", "/api/cases/1"),
        ("DELETE", "/api/cases/2"),
    ]


async def test_failed_replay_stays_queued_and_still_notifies(worker, upstream, context):
    """Test that a failed replay stays queued and still notifies"""
    page = context.clients.connect(url("/"), controlled=True)
    upstream.online = False
    await worker.fetch(_post_case())

    report = await worker.sync()

    assert report.attempted == 1
    assert report.replayed == []
    assert len(report.failed) == 1
    assert report.remaining == 1
    assert await context.queue.count() == 1
    assert (await page.next_message(timeout=1))["type"] == "SYNC_COMPLETE"


async def test_server_error_on_replay_keeps_entry(worker, upstream, context):
    """Test that a 5xx replay keeps the entry"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True
    upstream.set("/api/cases", {"error": "Internal server error"}, status=500, method="POST")

    report = await worker.sync()

    assert report.failed and not report.replayed
    assert await context.queue.count() == 1


async def test_partial_failure_removes_only_successes(worker, upstream, context):
    """Test that only replayed entries are removed"""
    upstream.online = False
    await worker.fetch(FetchRequest(method="PUT", url=url("/api/cases/1"), body=b"{}"))
    await worker.fetch(FetchRequest(method="PUT", url=url("/api/cases/2"), body=b"{}"))
    upstream.online = True
    upstream.fail_urls.add(url("/api/cases/2"))

    report = await worker.sync()

    assert len(report.replayed) == 1
    assert len(report.failed) == 1
    [left] = await context.queue.all()
    assert left.url == url("/api/cases/2")


async def test_second_drain_replays_nothing(worker, upstream, context):
    """Test that a second drain has nothing left to replay"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    first = await worker.sync()
    second = await worker.sync()

    assert len(first.replayed) == 1
    assert second.attempted == 0
    assert len(upstream.calls_to("/api/cases", method="POST")) == 2  # offline attempt + one replay


async def test_concurrent_drains_share_one_pass(worker, upstream, context):
    """Test that concurrent drains share one pass"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    first, second = await asyncio.gather(worker.sync(), worker.sync())

    assert first is second
    assert len(upstream.calls_to("/api/cases", method="POST")) == 2


async def test_unknown_sync_tag_is_ignored(worker, upstream, context):
    """Test that an unknown sync tag does not drain"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    assert await worker.sync("some-other-tag") is None
    assert await context.queue.count() == 1


async def test_periodic_sync_drains_queue(worker, upstream, context):
    """Test that the periodic tag drains the queue"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    report = await worker.periodic_sync()

    assert len(report.replayed) == 1
    assert await worker.periodic_sync("unrelated") is None


async def test_replay_preserves_method_headers_and_body(worker, upstream, context):
    """Test that a replay sends the captured request"""
    upstream.online = False
    await worker.fetch(FetchRequest(
        method="PUT",
        url=url("/api/cases/9"),
        headers={"Content-Type": "application/json", "X-Client": "tablet-3"},
        body=b'{"status": "done"}',
    ))
    upstream.online = True
    upstream.calls.clear()

    await worker.sync()

    [replay] = upstream.calls
    assert replay.method == "PUT"
    assert replay.headers["x-client"] == "tablet-3"
    assert replay.content == b'{"status": "done"}'


async def test_report_to_dict(worker):
    """Test that the sync report serializes every field"""
    report = await worker.sync()
    data = report.to_dict()
    assert data["attempted"] == 0
    assert data["remaining"] == 0
    assert set(data) == {"attempted", "replayed", "failed", "remaining", "timestamp"}


# =============================================================================
# Re-triggering left-over entries
# =============================================================================

async def test_undecodable_replay_does_not_block_later_entries(worker, upstream, context):
    """Test that a replay with a corrupt body fails alone and the pass continues"""
    page = context.clients.connect(url("/"), controlled=True)
    upstream.online = False
    first = (await worker.fetch(FetchRequest(method="PUT", url=url("/api/cases/1"), body=b"{}"))).json()
    second = (await worker.fetch(_post_case())).json()
    upstream.online = True
    upstream.corrupt_urls.add(url("/api/cases/1"))

    report = await worker.sync()

    assert report.failed == [first["id"]]
    assert report.replayed == [second["id"]]
    assert [m.id for m in await context.queue.all()] == [first["id"]]
    assert (await page.next_message(timeout=1))["type"] == "SYNC_COMPLETE"


async def test_failed_drain_stays_registered_for_connectivity(worker, upstream, context):
    """Test that entries left by a failed drain replay on the next connectivity signal"""
    upstream.online = False
    await worker.fetch(_post_case())
    report = await worker.sync()
    assert report.remaining == 1
    assert context.sync_registry.pending() == [context.sync_tag]

    upstream.online = True
    [retry] = await worker.connectivity_restored()

    assert len(retry.replayed) == 1
    assert await context.queue.count() == 0
    assert context.sync_registry.pending() == []


async def test_restart_with_queued_entries_registers_sync(worker, upstream, context, settings):
    """Test that a restarted worker replays entries queued by the previous run"""
    upstream.online = False
    await worker.fetch(_post_case())
    upstream.online = True

    restarted = WorkerContext.from_settings(settings, transport=httpx.MockTransport(upstream.handler))
    try:
        new_worker = ServiceWorker(restarted)
        await new_worker.start()
        assert restarted.sync_registry.pending() == [restarted.sync_tag]

        [report] = await new_worker.connectivity_restored()
        assert len(report.replayed) == 1
        assert await restarted.queue.count() == 0
    finally:
        await restarted.aclose()


async def test_start_with_empty_queue_registers_nothing(worker, context):
    """Test that a clean start has no pending sync"""
    assert context.sync_registry.pending() == []
