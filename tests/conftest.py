"""Shared fixtures: a controllable clock and a fully wired in-memory stack."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import pytest

# Must be set before eventboard.main is imported by any test module.
os.environ.setdefault("EVENTBOARD_BACKEND", "memory")
os.environ.setdefault("EVENTBOARD_RUN_WORKER", "false")
os.environ.setdefault("EVENTBOARD_AUTHORIZED_USER_IDS", "organizer-1")
os.environ.setdefault("EVENTBOARD_AUTHORIZED_ROLE_IDS", "officer")

from eventboard.domain.bus import EventBus  # noqa: E402
from eventboard.domain.handlers import HandlerRegistry  # noqa: E402
from eventboard.domain.models import CreateEventRequest, Event, Requester  # noqa: E402
from eventboard.repos.memory import (  # noqa: E402
    InMemoryDMTrackingRepository,
    InMemoryEventStore,
    InMemoryJobQueue,
)
from eventboard.services.announcements import InMemoryAnnouncementBoard  # noqa: E402
from eventboard.services.auth import Authorizer  # noqa: E402
from eventboard.services.events import EventService  # noqa: E402
from eventboard.services.messenger import InMemoryMessenger  # noqa: E402
from eventboard.services.notifications import NotificationDispatcher  # noqa: E402
from eventboard.services.reminders import ReminderOrchestrator  # noqa: E402
from eventboard.services.worker import JobWorker  # noqa: E402

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
ORGANIZER = Requester(user_id="organizer-1")


class Clock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now += delta
        return self.now


@pytest.fixture()
def clock() -> Clock:
    return Clock(NOW)


@pytest.fixture()
def env(clock):
    """Fresh bus + repos + services for each test."""
    store = InMemoryEventStore()
    dm_repo = InMemoryDMTrackingRepository()
    queue = InMemoryJobQueue()
    messenger = InMemoryMessenger()
    board = InMemoryAnnouncementBoard()
    bus = EventBus()

    dispatcher = NotificationDispatcher(messenger, dm_repo, clock=clock)
    orchestrator = ReminderOrchestrator(store, queue, dispatcher, board, clock=clock)
    authorizer = Authorizer(["organizer-1"], ["officer"])
    service = EventService(store, bus, orchestrator, authorizer, clock=clock)
    registry = HandlerRegistry(
        bus=bus,
        store=store,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        announcements=board,
    )
    worker = JobWorker(queue, orchestrator.handle_job, clock=clock)

    class Env:
        pass

    e = Env()
    e.clock = clock
    e.store = store
    e.dm_repo = dm_repo
    e.queue = queue
    e.messenger = messenger
    e.board = board
    e.bus = bus
    e.dispatcher = dispatcher
    e.orchestrator = orchestrator
    e.service = service
    e.registry = registry
    e.worker = worker
    return e


def create_request(when: datetime = NOW + timedelta(days=2), **overrides) -> CreateEventRequest:
    defaults = dict(
        type="savage_raids",
        date=when.strftime("%Y-%m-%d"),
        time=when.strftime("%H:%M"),
        timezone="UTC",
        group_type="standard",
        description="Weekly clear",
    )
    defaults.update(overrides)
    return CreateEventRequest(**defaults)


async def create_event(env, when: datetime = NOW + timedelta(days=2), **overrides) -> Event:
    return await env.service.create(create_request(when, **overrides), ORGANIZER)
