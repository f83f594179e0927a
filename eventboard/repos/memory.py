"""In-memory repositories for events, DM tracking and delayed jobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from eventboard.domain import errors
from eventboard.domain.models import DMRecord, Event, JobPayload, ReminderJob
from eventboard.repos.base import DMTrackingRepository, EventStore, JobQueue


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def matches(job: ReminderJob, event_id: str | None, participant_id: str | None) -> bool:
    if event_id is not None and job.payload.event_id != event_id:
        return False
    if participant_id is not None and job.payload.participant_id != participant_id:
        return False
    return True


class InMemoryEventStore(EventStore):
    """Dict-backed store of serialized Event records, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    async def get(self, event_id: str) -> Event | None:
        raw = self._store.get(event_id)
        if raw is None:
            return None
        return Event.model_validate_json(raw)

    async def put(self, event: Event) -> Event:
        raw = self._store.get(event.id)
        current = Event.model_validate_json(raw).revision if raw is not None else 0
        if current != event.revision:
            raise errors.Conflict()
        stored = event.model_copy(update={"revision": event.revision + 1})
        self._store[event.id] = stored.model_dump_json(by_alias=True)
        return stored

    async def delete(self, event_id: str) -> None:
        self._store.pop(event_id, None)

    async def list_ids(self) -> list[str]:
        return list(self._store)


class InMemoryDMTrackingRepository(DMTrackingRepository):
    """Dict of event id to list of DMRecord."""

    def __init__(self) -> None:
        self._records: dict[str, list[DMRecord]] = {}

    async def add(self, record: DMRecord) -> None:
        self._records.setdefault(record.event_id, []).append(record)

    async def list_for_event(self, event_id: str) -> list[DMRecord]:
        return list(self._records.get(event_id, []))

    async def delete_for_event(self, event_id: str) -> None:
        self._records.pop(event_id, None)


class InMemoryJobQueue(JobQueue):
    """Delayed job queue kept in process memory."""

    def __init__(self) -> None:
        self._jobs: dict[str, ReminderJob] = {}
        self._delayed: set[str] = set()
        self._active: set[str] = set()

    async def enqueue(
        self,
        name: str,
        payload: JobPayload,
        delay_ms: int,
        *,
        now: datetime | None = None,
    ) -> ReminderJob:
        now = now or _utcnow()
        job = ReminderJob(
            name=name,
            payload=payload,
            fire_at=now + timedelta(milliseconds=delay_ms),
            created_at=now,
        )
        self._jobs[job.id] = job
        self._delayed.add(job.id)
        return job

    async def cancel(self, job_id: str) -> bool:
        if job_id not in self._delayed:
            return False
        self._delayed.discard(job_id)
        self._jobs.pop(job_id, None)
        return True

    async def list_pending(
        self,
        event_id: str | None = None,
        participant_id: str | None = None,
    ) -> list[ReminderJob]:
        pending = [self._jobs[jid] for jid in self._delayed]
        return sorted(
            (job for job in pending if matches(job, event_id, participant_id)),
            key=lambda job: job.fire_at,
        )

    async def claim_due(self, now: datetime, limit: int = 50) -> list[ReminderJob]:
        due = sorted(
            (self._jobs[jid] for jid in self._delayed if self._jobs[jid].fire_at <= now),
            key=lambda job: job.fire_at,
        )[:limit]
        for job in due:
            self._delayed.discard(job.id)
            self._active.add(job.id)
        return due

    async def complete(self, job_id: str) -> None:
        self._active.discard(job_id)
        self._jobs.pop(job_id, None)

    async def requeue_stalled(self, now: datetime | None = None) -> int:
        stalled = list(self._active)
        for job_id in stalled:
            self._active.discard(job_id)
            self._delayed.add(job_id)
        return len(stalled)
