"""Background auto-connect queue: single-worker FIFO of relationship-suggestion jobs."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import uuid4

from suggestion_engine.cancellation import CancellationToken, cancellable_sleep
from suggestion_engine.config.settings import Settings
from suggestion_engine.context.adaptive import Tier, classify
from suggestion_engine.exceptions import AIError
from suggestion_engine.models.domain import Job, JobStatus, WorkingSet, utcnow
from suggestion_engine.models.suggestions import RelationshipSuggestion
from suggestion_engine.observability.logger import get_logger
from suggestion_engine.observability.metrics import log_queue_metrics
from suggestion_engine.suggestions.manager import SuggestionManager

logger = get_logger("auto_connect")

SUBSCRIPTION_INBOX_SIZE = 100


@dataclass
class SuggestionsReady:
    job_id: str
    item_id: str
    suggestions: list[RelationshipSuggestion]
    # Suggestions at or above the auto-apply confidence. Reported only, never applied.
    auto_apply_candidates: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class QueueStatus:
    pending: int
    processing: int
    completed: int
    failed: int
    running: bool
    current_item_id: str | None = None


class Subscription:
    """Async iterator over completed-job events with a bounded inbox.

    When the consumer falls behind, the oldest undelivered event is dropped.
    """

    def __init__(self, on_close: Callable[[Subscription], None], maxsize: int = SUBSCRIPTION_INBOX_SIZE) -> None:
        self._inbox: asyncio.Queue[SuggestionsReady | None] = asyncio.Queue(maxsize=maxsize)
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: SuggestionsReady) -> None:
        if self._closed:
            return
        if self._inbox.full():
            self._inbox.get_nowait()
            logger.warning("subscription_event_dropped", item_id=event.item_id)
        self._inbox.put_nowait(event)

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_close(self)
        if self._inbox.full():
            self._inbox.get_nowait()
        self._inbox.put_nowait(None)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> SuggestionsReady:
        event = await self._inbox.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class BackgroundSuggestionQueue:
    """Runs relationship suggestions for newly added items, one job at a time.

    Jobs are processed strictly in enqueue order with a fixed delay before each call.
    A failing job is recorded as failed and never stops the worker. Finished jobs are
    purged after the retention window.
    """

    def __init__(
        self,
        manager: SuggestionManager,
        settings: Settings,
        now: Callable[[], datetime] = utcnow,
        sleep=cancellable_sleep,
    ) -> None:
        self._manager = manager
        self._settings = settings
        self._now = now
        self._sleep = sleep
        self._jobs: OrderedDict[str, Job] = OrderedDict()
        self._subscriptions: list[Subscription] = []
        self._wakeup = asyncio.Event()
        self._cancel = CancellationToken()
        self._worker: asyncio.Task | None = None
        self._current: Job | None = None

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # --- Enqueue -------------------------------------------------------------

    def enqueue(self, working_set: WorkingSet, item_id: str) -> str | None:
        """Queue a job for ``item_id``; returns the job id, or None when rejected.

        Must be called from the event loop; the worker is started on demand.
        """
        reason = self._rejection_reason(working_set, item_id)
        if reason is not None:
            logger.info("auto_connect_rejected", item_id=item_id, reason=reason)
            return None

        pending = [j for j in self._jobs.values() if j.status is JobStatus.PENDING]
        if len(pending) >= self._settings.auto_connect_max_queue_size:
            evicted = pending[0]
            del self._jobs[evicted.id]
            logger.info("auto_connect_evicted", job_id=evicted.id, item_id=evicted.item_id)

        job = Job(id=uuid4().hex, item_id=item_id, working_set=working_set, created_at=self._now())
        self._jobs[job.id] = job
        logger.info("auto_connect_enqueued", job_id=job.id, item_id=item_id, pending=len(pending) + 1)
        self._wakeup.set()
        self.start()
        return job.id

    def _rejection_reason(self, working_set: WorkingSet, item_id: str) -> str | None:
        settings = self._settings
        count = len(working_set.items)
        if not settings.enable_auto_connect:
            return "disabled"
        if classify(count) is Tier.COLD_START:
            return "cold_start"
        if count < settings.auto_connect_min_items:
            return "too_few_items"
        if working_set.get_item(item_id) is None:
            return "unknown_item"
        if any(j.item_id == item_id and not j.status.terminal for j in self._jobs.values()):
            return "duplicate"
        return None

    # --- Worker lifecycle ----------------------------------------------------

    def start(self) -> None:
        """Start the worker if it is not already running; a second call is a no-op."""
        if self.running:
            return
        if self._cancel.cancelled:
            self._cancel = CancellationToken()
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info("auto_connect_started")

    async def stop(self) -> None:
        """Stop the worker, aborting any in-flight delay or completion call."""
        worker = self._worker
        if worker is None:
            return
        self._cancel.cancel()
        self._wakeup.set()
        await asyncio.gather(worker, return_exceptions=True)
        self._worker = None
        logger.info("auto_connect_stopped")

    async def _run(self) -> None:
        cancel = self._cancel
        while not cancel.cancelled:
            self._purge_expired()
            if self._next_pending() is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            try:
                await self._sleep(self._settings.auto_connect_processing_delay_ms / 1000, cancel)
            except AIError as e:
                if e.cancelled:
                    break
                raise
            # The head may have been evicted or cancelled during the delay.
            job = self._next_pending()
            if job is not None:
                await self._process(job, cancel)

    async def _process(self, job: Job, cancel: CancellationToken) -> None:
        job.transition(JobStatus.PROCESSING, self._now())
        self._current = job
        logger.info("auto_connect_processing", job_id=job.id, item_id=job.item_id)
        try:
            suggestions = await self._manager.suggest_relationships(
                job.working_set, job.item_id, cancel=cancel
            )
        except Exception as e:
            job.error = str(e)
            job.transition(JobStatus.FAILED, self._now())
            logger.warning("auto_connect_job_failed", job_id=job.id, item_id=job.item_id, error=str(e))
        else:
            job.suggestions = suggestions
            job.transition(JobStatus.COMPLETED, self._now())
            logger.info(
                "auto_connect_job_completed",
                job_id=job.id,
                item_id=job.item_id,
                suggestions=len(suggestions),
            )
            self._publish(job, suggestions)
        finally:
            self._current = None
            status = self.get_status()
            log_queue_metrics(status.pending, status.processing, status.completed, status.failed)

    def _next_pending(self) -> Job | None:
        return next((j for j in self._jobs.values() if j.status is JobStatus.PENDING), None)

    def _purge_expired(self) -> None:
        cutoff = self._now() - timedelta(seconds=self._settings.auto_connect_retention_s)
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status.terminal and job.finished_at is not None and job.finished_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug("auto_connect_purged", count=len(expired))

    # --- Subscriptions -------------------------------------------------------

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self._subscriptions.remove)
        self._subscriptions.append(subscription)
        return subscription

    def _publish(self, job: Job, suggestions: list[RelationshipSuggestion]) -> None:
        threshold = self._settings.auto_connect_auto_apply_confidence
        event = SuggestionsReady(
            job_id=job.id,
            item_id=job.item_id,
            suggestions=suggestions,
            auto_apply_candidates=[s.id for s in suggestions if s.confidence >= threshold],
            timestamp=self._now(),
        )
        for subscription in list(self._subscriptions):
            subscription.push(event)

    # --- Inspection ----------------------------------------------------------

    def get_status(self) -> QueueStatus:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return QueueStatus(
            pending=counts[JobStatus.PENDING],
            processing=counts[JobStatus.PROCESSING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            running=self.running,
            current_item_id=self._current.item_id if self._current is not None else None,
        )

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def jobs(self) -> list[Job]:
        return list(self._jobs.values())

    def get_suggestions_for_item(self, item_id: str) -> list[RelationshipSuggestion]:
        """Suggestions from the most recent completed job for ``item_id``."""
        for job in reversed(self._jobs.values()):
            if job.item_id == item_id and job.status is JobStatus.COMPLETED:
                return list(job.suggestions or [])
        return []

    def cancel_job(self, job_id: str) -> bool:
        """Cancel a pending job. Jobs already processing or finished are left alone."""
        job = self._jobs.get(job_id)
        if job is None or job.status is not JobStatus.PENDING:
            return False
        job.error = "cancelled"
        job.transition(JobStatus.FAILED, self._now())
        logger.info("auto_connect_job_cancelled", job_id=job_id, item_id=job.item_id)
        return True

    def clear(self) -> int:
        """Drop every job except the one being processed; returns how many were removed."""
        removable = [job_id for job_id, job in self._jobs.items() if job.status is not JobStatus.PROCESSING]
        for job_id in removable:
            del self._jobs[job_id]
        logger.info("auto_connect_cleared", removed=len(removable))
        return len(removable)
