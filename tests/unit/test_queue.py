"""Tests for the background auto-connect queue."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from suggestion_engine.api.routes_queue import event_stream
from suggestion_engine.cancellation import cancellable
from suggestion_engine.exceptions import AIError, ErrorCode
from suggestion_engine.models.domain import JobStatus, RelationshipType
from suggestion_engine.models.suggestions import RelationshipSuggestion
from suggestion_engine.queue.auto_connect import BackgroundSuggestionQueue


class FakeManager:
    def __init__(self, fail_for=(), block=False, confidence=0.95):
        self.calls = []
        self.fail_for = set(fail_for)
        self.block = block
        self.confidence = confidence

    async def suggest_relationships(self, working_set, target_id, cancel=None):
        self.calls.append(target_id)
        if self.block:
            await cancellable(asyncio.Event().wait(), cancel)
        if target_id in self.fail_for:
            raise AIError(ErrorCode.PROVIDER_ERROR, f"provider failed for {target_id}")
        return [
            RelationshipSuggestion(
                id=f"rel-{target_id}",
                target_item_id=target_id,
                suggested_item_id="p1",
                suggested_item_title="Study 1 on sleep and memory",
                relationship_type=RelationshipType.SUPPORTS,
                confidence=self.confidence,
            )
        ]


class Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


async def drain(queue, rounds=100):
    for _ in range(rounds):
        await asyncio.sleep(0)
        status = queue.get_status()
        if status.pending == 0 and status.processing == 0:
            return
    raise AssertionError("queue did not drain")


@pytest.fixture
def fake_manager():
    return FakeManager()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
async def make_queue(settings, fake_manager, clock, no_sleep):
    queues = []

    def _make(manager=None, **overrides):
        queue = BackgroundSuggestionQueue(
            manager or fake_manager,
            settings.model_copy(update=overrides),
            now=clock,
            sleep=no_sleep,
        )
        queues.append(queue)
        return queue

    yield _make
    for queue in queues:
        await queue.stop()


class TestEnqueueGating:
    async def test_cold_start_is_rejected(self, make_queue, working_set_factory):
        queue = make_queue()
        assert queue.enqueue(working_set_factory(2), "p1") is None
        assert queue.jobs() == []

    async def test_below_minimum_items_is_rejected(self, make_queue, working_set_factory):
        queue = make_queue(auto_connect_min_items=5)
        assert queue.enqueue(working_set_factory(4), "p1") is None
        assert queue.enqueue(working_set_factory(5), "p1") is not None

    async def test_disabled_is_rejected(self, make_queue, working_set):
        queue = make_queue(enable_auto_connect=False)
        assert queue.enqueue(working_set, "p1") is None

    async def test_unknown_item_is_rejected(self, make_queue, working_set):
        assert make_queue().enqueue(working_set, "missing") is None

    async def test_duplicate_active_job_is_rejected(self, make_queue, working_set):
        queue = make_queue()
        assert queue.enqueue(working_set, "p1") is not None
        assert queue.enqueue(working_set, "p1") is None
        await drain(queue)
        # Finished jobs no longer block a new request for the same item.
        assert queue.enqueue(working_set, "p1") is not None


async def test_jobs_run_in_enqueue_order(make_queue, fake_manager, working_set):
    queue = make_queue()
    for item_id in ("p4", "p2", "p6"):
        queue.enqueue(working_set, item_id)
    await drain(queue)
    assert fake_manager.calls == ["p4", "p2", "p6"]
    assert queue.get_status().completed == 3


async def test_full_queue_evicts_oldest_pending(make_queue, fake_manager, working_set):
    queue = make_queue(auto_connect_max_queue_size=2)
    first = queue.enqueue(working_set, "p3")
    second = queue.enqueue(working_set, "p4")
    third = queue.enqueue(working_set, "p5")

    assert queue.get_job(first) is None
    assert [j.id for j in queue.jobs()] == [second, third]
    assert queue.get_status().pending == 2

    await drain(queue)
    assert fake_manager.calls == ["p4", "p5"]


async def test_processing_delay_precedes_each_job(make_queue, sleeps, working_set):
    queue = make_queue(auto_connect_processing_delay_ms=1500)
    queue.enqueue(working_set, "p1")
    queue.enqueue(working_set, "p2")
    await drain(queue)
    assert sleeps == [1.5, 1.5]


async def test_failed_job_does_not_stop_worker(make_queue, working_set):
    manager = FakeManager(fail_for={"p2"})
    queue = make_queue(manager)
    ids = [queue.enqueue(working_set, item_id) for item_id in ("p1", "p2", "p3")]
    await drain(queue)

    statuses = [queue.get_job(job_id).status for job_id in ids]
    assert statuses == [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.COMPLETED]
    assert "provider failed for p2" in queue.get_job(ids[1]).error
    assert queue.running


async def test_job_timestamps_follow_lifecycle(make_queue, clock, working_set):
    queue = make_queue()
    job_id = queue.enqueue(working_set, "p1")
    await drain(queue)
    job = queue.get_job(job_id)
    assert job.created_at <= job.started_at <= job.finished_at
    assert job.status.terminal


async def test_completed_job_publishes_event(make_queue, working_set):
    queue = make_queue(auto_connect_auto_apply_confidence=0.9)
    subscription = queue.subscribe()
    job_id = queue.enqueue(working_set, "p3")

    event = await asyncio.wait_for(anext(subscription), timeout=1)
    assert event.job_id == job_id
    assert event.item_id == "p3"
    assert [s.suggested_item_id for s in event.suggestions] == ["p1"]
    assert event.auto_apply_candidates == ["rel-p3"]
    assert queue.get_suggestions_for_item("p3") == event.suggestions


async def test_low_confidence_suggestions_are_not_auto_apply_candidates(make_queue, working_set):
    queue = make_queue(FakeManager(confidence=0.7), auto_connect_auto_apply_confidence=0.9)
    subscription = queue.subscribe()
    queue.enqueue(working_set, "p3")
    event = await asyncio.wait_for(anext(subscription), timeout=1)
    assert event.auto_apply_candidates == []


async def test_unsubscribe_ends_iteration(make_queue, working_set):
    queue = make_queue()
    with queue.subscribe() as subscription:
        pass
    assert subscription.closed

    queue.enqueue(working_set, "p1")
    await drain(queue)
    assert [event async for event in subscription] == []


async def test_slow_subscriber_keeps_newest_events(make_queue, working_set):
    queue = make_queue()
    subscription = queue.subscribe()
    subscription._inbox = asyncio.Queue(maxsize=1)
    queue.enqueue(working_set, "p1")
    queue.enqueue(working_set, "p2")
    await drain(queue)

    event = await asyncio.wait_for(anext(subscription), timeout=1)
    assert event.item_id == "p2"


async def test_finished_jobs_are_purged_after_retention(make_queue, clock, working_set):
    queue = make_queue(auto_connect_retention_s=300)
    old = queue.enqueue(working_set, "p1")
    await drain(queue)
    assert queue.get_job(old) is not None

    clock.advance(301)
    queue.enqueue(working_set, "p2")
    await drain(queue)
    assert queue.get_job(old) is None
    assert queue.get_suggestions_for_item("p1") == []


async def test_cancel_pending_job(make_queue, fake_manager, working_set):
    queue = make_queue()
    keep = queue.enqueue(working_set, "p1")
    drop = queue.enqueue(working_set, "p2")

    assert queue.cancel_job(drop)
    await drain(queue)

    assert fake_manager.calls == ["p1"]
    assert queue.get_job(drop).status is JobStatus.FAILED
    assert queue.get_job(drop).error == "cancelled"
    assert not queue.cancel_job(keep)
    assert not queue.cancel_job("unknown")


async def test_clear_removes_queued_jobs(make_queue, fake_manager, working_set):
    queue = make_queue()
    queue.enqueue(working_set, "p1")
    queue.enqueue(working_set, "p2")
    assert queue.clear() == 2
    await drain(queue)
    assert fake_manager.calls == []
    assert queue.jobs() == []


async def test_stop_aborts_in_flight_job(make_queue, working_set):
    queue = make_queue(FakeManager(block=True))
    job_id = queue.enqueue(working_set, "p1")
    for _ in range(100):
        await asyncio.sleep(0)
        if queue.get_status().processing == 1:
            break
    assert queue.get_status().current_item_id == "p1"

    await queue.stop()
    assert not queue.running
    assert queue.get_job(job_id).status is JobStatus.FAILED

    # A later enqueue starts a fresh worker.
    assert queue.enqueue(working_set, "p2") is not None
    assert queue.running


async def test_start_is_idempotent(make_queue):
    queue = make_queue()
    queue.start()
    worker = queue._worker
    queue.start()
    assert queue._worker is worker


class TestEventStream:
    async def test_subscribes_only_once_read(self, make_queue):
        queue = make_queue()
        stream = event_stream(queue)
        assert queue.subscriber_count == 0
        await stream.aclose()
        assert queue.subscriber_count == 0

    async def test_frames_events_and_unsubscribes_on_close(self, make_queue, working_set):
        queue = make_queue()
        stream = event_stream(queue)
        frame = asyncio.ensure_future(anext(stream))
        for _ in range(5):
            await asyncio.sleep(0)
        assert queue.subscriber_count == 1

        job_id = queue.enqueue(working_set, "p3")
        text = await asyncio.wait_for(frame, timeout=1)
        assert text.startswith("event: suggestions_ready\ndata: ")
        assert f'"job_id": "{job_id}"' in text

        await stream.aclose()
        assert queue.subscriber_count == 0
