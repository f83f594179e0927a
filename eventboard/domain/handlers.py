"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

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
from eventboard.domain.models import Event, NotificationPurpose, role_display
from eventboard.repos.base import EventStore
from eventboard.services import messages
from eventboard.services.announcements import AnnouncementRenderer
from eventboard.services.notifications import NotificationDispatcher
from eventboard.services.reminders import ReminderOrchestrator

logger = structlog.get_logger(__name__)


class HandlerRegistry:
    """Wires domain-event handlers to the bus.

    Handlers reload the event from the store instead of trusting the
    published payload, and never raise: every side effect here is best
    effort once the state change itself has been committed.
    """

    def __init__(
        self,
        bus: EventBus,
        store: EventStore,
        orchestrator: ReminderOrchestrator,
        dispatcher: NotificationDispatcher,
        announcements: AnnouncementRenderer,
    ) -> None:
        self.bus = bus
        self.store = store
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher
        self.announcements = announcements
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(EventCreated, self.on_event_created)
        self.bus.subscribe(ParticipantJoined, self.on_participant_joined)
        self.bus.subscribe(ParticipantRoleChanged, self.on_role_changed)
        self.bus.subscribe(ParticipantWithdrew, self.on_participant_withdrew)
        self.bus.subscribe(EventRescheduled, self.on_event_rescheduled)
        self.bus.subscribe(EventCancelled, self.on_event_cancelled)

    async def _refresh_announcement(self, event: Event) -> None:
        try:
            await self.announcements.update(event)
        except Exception as exc:
            logger.debug(f"Failed to update event message: {exc}", event_id=event.id)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def on_event_created(self, event: EventCreated) -> None:
        stored = await self.store.get(event.event_id)
        if stored is None:
            return

        # 1. Announce and remember where
        try:
            stored.message_id = await self.announcements.publish(stored)
            stored = await self.store.put(stored)
        except errors.Conflict:
            logger.warning("Event changed while announcing, message id not saved", event_id=stored.id)
        except Exception:
            logger.exception("Failed to announce event", event_id=stored.id)

        # 2. Cleanup shortly after the event date
        await self.orchestrator.schedule_cleanup(stored)

    async def on_participant_joined(self, event: ParticipantJoined) -> None:
        stored = await self.store.get(event.event_id)
        if stored is None:
            return
        participant = stored.participant(event.user_id)
        if participant is None:
            return

        await self.orchestrator.schedule_reminders(stored, [participant.id])
        await self.dispatcher.send(
            stored.id,
            participant.id,
            NotificationPurpose.REGISTRATION,
            messages.registration_notice(stored, participant),
        )
        await self._refresh_announcement(stored)

    async def on_role_changed(self, event: ParticipantRoleChanged) -> None:
        stored = await self.store.get(event.event_id)
        if stored is None:
            return

        await self.dispatcher.send(
            stored.id,
            event.user_id,
            NotificationPurpose.ROLE_CHANGE,
            messages.role_change_notice(
                role_display(event.old_role, event.old_class),
                role_display(event.new_role, event.new_class),
            ),
        )
        await self._refresh_announcement(stored)

    async def on_participant_withdrew(self, event: ParticipantWithdrew) -> None:
        await self.orchestrator.cancel_participant_jobs(event.event_id, event.user_id)

        stored = await self.store.get(event.event_id)
        if stored is None:
            return
        await self.dispatcher.send(
            stored.id,
            event.user_id,
            NotificationPurpose.WITHDRAWAL,
            messages.withdrawal_notice(stored),
        )
        await self._refresh_announcement(stored)

    async def on_event_rescheduled(self, event: EventRescheduled) -> None:
        stored = await self.store.get(event.event_id)
        if stored is None:
            return

        await self.orchestrator.reschedule(stored)
        await self.dispatcher.fan_out(
            stored.id,
            [p.id for p in stored.participants if p.id != stored.organizer],
            NotificationPurpose.TIME_CHANGE,
            lambda _user_id: messages.time_change_notice(stored, event.old_date),
        )
        await self._refresh_announcement(stored)

    async def on_event_cancelled(self, event: EventCancelled) -> None:
        snapshot = event.event
        recipients = {p.id: p for p in snapshot.participants if p.id != snapshot.organizer}

        await self.dispatcher.fan_out(
            snapshot.id,
            list(recipients),
            NotificationPurpose.CANCELLATION,
            lambda user_id: messages.cancellation_notice(snapshot, recipients[user_id]),
        )
        try:
            await self.announcements.remove(snapshot)
        except Exception as exc:
            logger.debug(f"Failed to delete event message: {exc}", event_id=snapshot.id)
