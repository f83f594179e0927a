"""Event lifecycle: creation, registration, role changes, rescheduling, deletion."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from eventboard.domain import errors
from eventboard.domain.bus import EventBus
from eventboard.domain.events import (
    EventCancelled,
    EventCreated,
    EventRescheduled,
    ParticipantJoined,
    ParticipantRoleChanged,
    ParticipantWithdrew,
)
from eventboard.domain.models import (
    ChangeTimeRequest,
    CreateEventRequest,
    DeleteResult,
    Event,
    Participant,
    PurgeResult,
    Requester,
)
from eventboard.repos.base import EventStore
from eventboard.services import roster
from eventboard.services.auth import Authorizer
from eventboard.services.reminders import ReminderOrchestrator
from eventboard.services.timezones import parse_event_datetime

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventService:
    """Validates and applies every mutation of an Event.

    Each operation loads the event, checks the transition, persists it with
    a revision check and then publishes a domain event for side effects.
    Operations on the same event id are serialized within the process.
    """

    def __init__(
        self,
        store: EventStore,
        bus: EventBus,
        orchestrator: ReminderOrchestrator,
        authorizer: Authorizer,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.bus = bus
        self.orchestrator = orchestrator
        self.authorizer = authorizer
        self._clock = clock
        self.locks = orchestrator.locks

    def _future_date(self, date: str, time: str, timezone_name: str) -> datetime:
        when = parse_event_datetime(date, time, timezone_name)
        if when <= self._clock():
            raise errors.ValidationError("Event date must be in the future.")
        return when

    async def get(self, event_id: str) -> Event:
        event = await self.store.get(event_id)
        if event is None:
            raise errors.NotFound()
        return event

    async def list_events(self) -> list[Event]:
        events = []
        for event_id in await self.store.list_ids():
            event = await self.store.get(event_id)
            if event is not None:
                events.append(event)
        return sorted(events, key=lambda e: e.date)

    async def create(self, request: CreateEventRequest, requester: Requester) -> Event:
        if not self.authorizer.can_create(requester):
            raise errors.Forbidden("You are not authorized to create events.")
        date = self._future_date(request.date, request.time, request.timezone)

        event = Event(
            type=request.type,
            date=date,
            organizer=requester.user_id,
            description=request.description,
            group_type=request.group_type,
        )
        event = await self.store.put(event)
        logger.info(
            "Event created",
            event_id=event.id,
            organizer=event.organizer,
            group_type=str(event.group_type),
        )
        await self.bus.publish(EventCreated(event_id=event.id))
        return await self.store.get(event.id) or event

    async def join(
        self,
        event_id: str,
        user_id: str,
        role: str,
        class_name: str | None = None,
    ) -> Event:
        parsed_role = roster.parse_role(role)
        canonical_class = roster.validate_class(parsed_role, class_name)

        async with self.locks.hold(event_id):
            event = await self.get(event_id)
            roster.check_can_join(event, user_id, parsed_role)
            event.participants.append(
                Participant(id=user_id, role=parsed_role, class_name=canonical_class)
            )
            event = await self.store.put(event)

        logger.info("User joined event", event_id=event_id, user_id=user_id, role=str(parsed_role))
        await self.bus.publish(ParticipantJoined(event_id=event_id, user_id=user_id))
        return event

    async def change_role(
        self,
        event_id: str,
        user_id: str,
        new_role: str,
        new_class: str | None = None,
    ) -> Event:
        parsed_role = roster.parse_role(new_role)
        canonical_class = roster.validate_class(parsed_role, new_class)

        async with self.locks.hold(event_id):
            event = await self.get(event_id)
            participant = event.participant(user_id)
            if participant is None:
                raise errors.NotParticipating()

            old_role, old_class = participant.role, participant.class_name
            if parsed_role == old_role:
                # Class-only change keeps the slot, so no quota check.
                if canonical_class == old_class:
                    raise errors.ValidationError("You already have that role.")
            else:
                roster.check_role_quota(event, parsed_role, exclude=user_id)

            participant.role = parsed_role
            participant.class_name = canonical_class
            event = await self.store.put(event)

        logger.info(
            "User changed role",
            event_id=event_id,
            user_id=user_id,
            old_role=str(old_role),
            new_role=str(parsed_role),
        )
        await self.bus.publish(
            ParticipantRoleChanged(
                event_id=event_id,
                user_id=user_id,
                old_role=old_role,
                old_class=old_class,
                new_role=parsed_role,
                new_class=canonical_class,
            )
        )
        return event

    async def withdraw(self, event_id: str, user_id: str) -> Event:
        async with self.locks.hold(event_id):
            event = await self.get(event_id)
            if event.participant(user_id) is None:
                raise errors.NotParticipating()
            event.participants = [p for p in event.participants if p.id != user_id]
            event = await self.store.put(event)

        logger.info("User withdrew from event", event_id=event_id, user_id=user_id)
        await self.bus.publish(ParticipantWithdrew(event_id=event_id, user_id=user_id))
        return event

    async def change_time(
        self,
        event_id: str,
        requester: Requester,
        request: ChangeTimeRequest,
    ) -> Event:
        async with self.locks.hold(event_id):
            event = await self.get(event_id)
            if not self.authorizer.can_manage(requester, event):
                raise errors.Forbidden("Only the event organizer can change the event time.")
            new_date = self._future_date(request.date, request.time, request.timezone)

            old_date = event.date
            event.date = new_date
            event = await self.store.put(event)

        logger.info(
            "Event time changed",
            event_id=event_id,
            old_date=old_date.isoformat(),
            new_date=new_date.isoformat(),
        )
        await self.bus.publish(
            EventRescheduled(event_id=event_id, old_date=old_date, new_date=new_date)
        )
        return event

    async def delete(self, event_id: str, requester: Requester) -> DeleteResult:
        async with self.locks.hold(event_id):
            event = await self.get(event_id)
            if not self.authorizer.can_manage(requester, event):
                raise errors.Forbidden("Only the event organizer can delete this event.")

            jobs = await self.orchestrator.cancel_event_jobs(event_id)
            logger.debug(f"Reminders cancelled: {jobs.summary()}", event_id=event_id)
            await self.bus.publish(EventCancelled(event=event))
            await self.store.delete(event_id)
            await self.orchestrator.dispatcher.forget_event(event_id)

        logger.info("Event deleted", event_id=event_id, requester=requester.user_id)
        return DeleteResult(
            event_id=event_id,
            jobs_cancelled=jobs.succeeded,
            jobs_failed=jobs.failed,
        )

    async def purge(self, requester: Requester) -> PurgeResult:
        """Remove every event without notifying anyone. Authorized roles only."""
        if not self.authorizer.has_authorized_role(requester):
            raise errors.Forbidden("Only authorized roles can purge events.")

        result = PurgeResult()
        for event_id in await self.store.list_ids():
            async with self.locks.hold(event_id):
                event = await self.store.get(event_id)
                if event is None:
                    continue
                jobs = await self.orchestrator.cancel_event_jobs(event_id)
                try:
                    await self.orchestrator.announcements.remove(event)
                except Exception as exc:
                    logger.debug(f"Failed to delete event message: {exc}", event_id=event_id)
                await self.store.delete(event_id)
                await self.orchestrator.dispatcher.forget_event(event_id)
            result.events_purged += 1
            result.jobs_cancelled += jobs.succeeded
            result.jobs_failed += jobs.failed

        logger.info(
            "All events purged",
            requester=requester.user_id,
            events=result.events_purged,
            jobs_cancelled=result.jobs_cancelled,
        )
        return result
