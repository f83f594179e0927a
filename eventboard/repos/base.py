"""Storage contracts shared by the in-memory and Redis backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from eventboard.domain.models import DMRecord, Event, JobPayload, ReminderJob


class EventStore(ABC):
    """Durable map of event id to Event record."""

    @abstractmethod
    async def get(self, event_id: str) -> Event | None: ...

    @abstractmethod
    async def put(self, event: Event) -> Event:
        """Write *event* if the stored revision still equals ``event.revision``.

        Returns the stored copy with its revision bumped. Raises
        ``Conflict`` when another writer got there first.
        """

    @abstractmethod
    async def delete(self, event_id: str) -> None: ...

    @abstractmethod
    async def list_ids(self) -> list[str]: ...


class DMTrackingRepository(ABC):
    """Per-event record set of sent direct notifications."""

    @abstractmethod
    async def add(self, record: DMRecord) -> None: ...

    @abstractmethod
    async def list_for_event(self, event_id: str) -> list[DMRecord]: ...

    @abstractmethod
    async def delete_for_event(self, event_id: str) -> None: ...


class JobQueue(ABC):
    """Durable queue of delayed jobs.

    Jobs move from *delayed* to *active* when claimed and disappear once
    completed. Jobs left active by a crashed worker are put back with
    ``requeue_stalled``.
    """

    @abstractmethod
    async def enqueue(
        self,
        name: str,
        payload: JobPayload,
        delay_ms: int,
        *,
        now: datetime | None = None,
    ) -> ReminderJob: ...

    @abstractmethod
    async def cancel(self, job_id: str) -> bool:
        """Remove a still-delayed job. Returns False if it was not pending."""

    @abstractmethod
    async def list_pending(
        self,
        event_id: str | None = None,
        participant_id: str | None = None,
    ) -> list[ReminderJob]: ...

    @abstractmethod
    async def claim_due(self, now: datetime, limit: int = 50) -> list[ReminderJob]: ...

    @abstractmethod
    async def complete(self, job_id: str) -> None: ...

    @abstractmethod
    async def requeue_stalled(self, now: datetime | None = None) -> int: ...
