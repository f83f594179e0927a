"""Reminder and cleanup jobs: scheduling, cancellation and firing."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

import structlog

from eventboard.domain import errors
from eventboard.domain.models import (
    Event,
    JobBatchResult,
    JobKind,
    JobPayload,
    NotificationPurpose,
    ReminderJob,
)
from eventboard.repos.base import EventStore, JobQueue
from eventboard.services.announcements import AnnouncementRenderer
from eventboard.services.locks import EventLocks
from eventboard.services.messages import reminder_notice
from eventboard.services.notifications import NotificationDispatcher

logger = structlog.get_logger(__name__)

REMINDER_OFFSETS: dict[JobKind, timedelta] = {
    JobKind.REMINDER_24H: timedelta(hours=24),
    JobKind.REMINDER_12H: timedelta(hours=12),
    JobKind.REMINDER_1H: timedelta(hours=1),
}

REMINDER_LABELS: dict[JobKind, str] = {
    JobKind.REMINDER_24H: "24 hours",
    JobKind.REMINDER_12H: "12 hours",
    JobKind.REMINDER_1H: "1 hour",
}

CLEANUP_DELAY = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _delay_ms(fire_at: datetime, now: datetime) -> int:
    return max(0, int((fire_at - now).total_seconds() * 1000))


def reminder_fire_times(event_date: datetime, now: datetime) -> list[tuple[JobKind, datetime]]:
    """Return ``(kind, fire_at)`` for every reminder still ahead of *now*.

    Thresholds that have already passed are skipped, not backfilled.
    """
    return [
        (kind, event_date - offset)
        for kind, offset in REMINDER_OFFSETS.items()
        if event_date - offset > now
    ]


def reminder_job_name(event_id: str, participant_id: str, kind: JobKind) -> str:
    return f"reminder_{event_id}_{participant_id}_{REMINDER_LABELS[kind].replace(' ', '')}"


def cleanup_job_name(event_id: str) -> str:
    return f"cleanup_{event_id}"


class ReminderOrchestrator:
    """Turns an event's date and roster into delayed jobs and reacts when they fire.

    Job payloads only identify the event; at fire time the event is always
    reloaded from the store and the job is dropped if it no longer applies.
    """

    def __init__(
        self,
        store: EventStore,
        queue: JobQueue,
        dispatcher: NotificationDispatcher,
        announcements: AnnouncementRenderer,
        clock: Callable[[], datetime] = _utcnow,
        locks: EventLocks | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.dispatcher = dispatcher
        self.announcements = announcements
        self._clock = clock
        self.locks = locks if locks is not None else EventLocks()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _settle(self, operations: list[Awaitable[object]], action: str, event_id: str) -> JobBatchResult:
        results = await asyncio.gather(*operations, return_exceptions=True)
        result = JobBatchResult()
        for outcome in results:
            if isinstance(outcome, BaseException) or outcome is False:
                result.failed += 1
                if isinstance(outcome, BaseException):
                    failure = errors.SchedulerFailure(f"Could not {action} job: {outcome}")
                    logger.warning(failure.message, event_id=event_id)
            else:
                result.succeeded += 1
        if results:
            logger.debug(f"Jobs {action}: {result.summary()}", event_id=event_id)
        return result

    async def schedule_reminders(
        self,
        event: Event,
        participant_ids: list[str],
        now: datetime | None = None,
    ) -> JobBatchResult:
        now = now or self._clock()
        operations = []
        for participant_id in participant_ids:
            for kind, fire_at in reminder_fire_times(event.date, now):
                payload = JobPayload(
                    event_id=event.id,
                    participant_id=participant_id,
                    kind=kind,
                    event_date=event.date,
                )
                name = reminder_job_name(event.id, participant_id, kind)
                operations.append(self.queue.enqueue(name, payload, _delay_ms(fire_at, now), now=now))
        return await self._settle(operations, "schedule", event.id)

    async def schedule_cleanup(self, event: Event, now: datetime | None = None) -> ReminderJob | None:
        now = now or self._clock()
        payload = JobPayload(event_id=event.id, kind=JobKind.CLEANUP, event_date=event.date)
        try:
            job = await self.queue.enqueue(
                cleanup_job_name(event.id),
                payload,
                _delay_ms(event.date + CLEANUP_DELAY, now),
                now=now,
            )
        except Exception as exc:
            logger.warning(f"Could not schedule cleanup job: {exc}", event_id=event.id)
            return None
        logger.debug("Scheduled cleanup", event_id=event.id, fire_at=job.fire_at.isoformat())
        return job

    async def _cancel(self, jobs: list[ReminderJob], event_id: str) -> JobBatchResult:
        return await self._settle([self.queue.cancel(job.id) for job in jobs], "cancel", event_id)

    async def cancel_event_jobs(self, event_id: str) -> JobBatchResult:
        """Cancel every pending reminder and cleanup job of an event."""
        try:
            jobs = await self.queue.list_pending(event_id=event_id)
        except Exception as exc:
            logger.warning(f"Could not list jobs: {exc}", event_id=event_id)
            return JobBatchResult(failed=1)
        logger.debug("Cancelling event jobs", event_id=event_id, count=len(jobs))
        return await self._cancel(jobs, event_id)

    async def cancel_participant_jobs(self, event_id: str, participant_id: str) -> JobBatchResult:
        try:
            jobs = await self.queue.list_pending(event_id=event_id, participant_id=participant_id)
        except Exception as exc:
            logger.warning(f"Could not list jobs: {exc}", event_id=event_id, participant_id=participant_id)
            return JobBatchResult(failed=1)
        return await self._cancel(jobs, event_id)

    async def reschedule(self, event: Event, now: datetime | None = None) -> JobBatchResult:
        """Drop every job of the event and rebuild them from its current date."""
        now = now or self._clock()
        await self.cancel_event_jobs(event.id)
        result = await self.schedule_reminders(event, event.participant_ids(), now=now)
        await self.schedule_cleanup(event, now=now)
        return result

    async def reconcile(self, now: datetime | None = None) -> int:
        """Give every stored event without a pending cleanup job a fresh one."""
        now = now or self._clock()
        restored = 0
        for event_id in await self.store.list_ids():
            pending = await self.queue.list_pending(event_id=event_id)
            if any(job.payload.kind == JobKind.CLEANUP for job in pending):
                continue
            event = await self.store.get(event_id)
            if event is None:
                continue
            if await self.schedule_cleanup(event, now=now) is not None:
                restored += 1
        if restored:
            logger.info("Restored missing cleanup jobs", count=restored)
        return restored

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    async def handle_job(self, job: ReminderJob, now: datetime | None = None) -> None:
        now = now or self._clock()
        if job.payload.kind == JobKind.CLEANUP:
            await self._fire_cleanup(job, now)
        else:
            await self._fire_reminder(job, now)

    async def _fire_reminder(self, job: ReminderJob, now: datetime) -> None:
        payload = job.payload
        event = await self.store.get(payload.event_id)
        if event is None:
            logger.debug("Event no longer exists, skipping reminder", event_id=payload.event_id)
            return
        if event.participant(payload.participant_id) is None:
            logger.debug(
                "User no longer participating, skipping reminder",
                event_id=event.id,
                participant_id=payload.participant_id,
            )
            return
        if event.date != payload.event_date:
            logger.debug("Reminder was scheduled for an older date, skipping", event_id=event.id)
            return

        await self.dispatcher.send(
            event.id,
            payload.participant_id,
            NotificationPurpose.REMINDER,
            reminder_notice(event, REMINDER_LABELS[payload.kind]),
        )
        logger.debug(
            "Sent reminder",
            event_id=event.id,
            participant_id=payload.participant_id,
            kind=str(payload.kind),
        )

    async def _fire_cleanup(self, job: ReminderJob, now: datetime) -> None:
        event_id = job.payload.event_id
        # Shared with EventService; the date is re-checked under it.
        async with self.locks.hold(event_id):
            event = await self.store.get(event_id)
            if event is None:
                return
            if event.date > now:
                logger.warning("Cleanup fired before the event date, ignoring", event_id=event_id)
                return

            try:
                await self.dispatcher.prune_completed(event, now=now)
            except Exception:
                logger.exception("Failed to prune DMs", event_id=event_id)
            finally:
                await self.dispatcher.forget_event(event_id)
            await self.cancel_event_jobs(event_id)
            try:
                await self.announcements.remove(event)
            except Exception as exc:
                logger.debug(f"Failed to delete event message: {exc}", event_id=event_id)
            await self.store.delete(event_id)
        logger.info("Event auto-deleted after event time", event_id=event_id)
