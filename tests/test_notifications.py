"""Tests for direct-notification delivery, tracking and pruning."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import ORGANIZER, create_event
from eventboard.domain.models import Event, Notification, NotificationPurpose
from eventboard.repos.memory import InMemoryDMTrackingRepository
from eventboard.services.messenger import InMemoryMessenger
from eventboard.services.notifications import NotificationDispatcher

_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
_NOTE = Notification(title="Hello", body="World")


class FlakyMessenger(InMemoryMessenger):
    """Refuses to deliver to users in *unreachable*."""

    def __init__(self, unreachable=()) -> None:
        super().__init__()
        self.unreachable = set(unreachable)

    async def send_direct(self, user_id, notification):
        if user_id in self.unreachable:
            raise RuntimeError("Cannot send messages to this user")
        return await super().send_direct(user_id, notification)


@pytest.fixture()
def messenger():
    return FlakyMessenger(unreachable={"closed-dms"})


@pytest.fixture()
def dispatcher(messenger):
    return NotificationDispatcher(messenger, InMemoryDMTrackingRepository(), clock=lambda: _NOW)


def _event(date) -> Event:
    return Event(id="event_1", type="maps", date=date, organizer="org")


async def test_send_tracks_record(dispatcher):
    message_id = await dispatcher.send("event_1", "alice", NotificationPurpose.REGISTRATION, _NOTE)

    [record] = await dispatcher.dm_repo.list_for_event("event_1")
    assert record.message_id == message_id
    assert record.purpose == NotificationPurpose.REGISTRATION
    assert record.created_at == _NOW
    assert record.key == f"alice_registration_{int(_NOW.timestamp() * 1000)}_{message_id}"


async def test_send_failure_is_swallowed_and_untracked(dispatcher):
    result = await dispatcher.send("event_1", "closed-dms", NotificationPurpose.REGISTRATION, _NOTE)
    assert result is None
    assert await dispatcher.dm_repo.list_for_event("event_1") == []


async def test_fan_out_isolates_failures(dispatcher, messenger):
    sent, failed = await dispatcher.fan_out(
        "event_1",
        ["alice", "closed-dms", "bob"],
        NotificationPurpose.CANCELLATION,
        lambda user_id: Notification(title="Cancelled", body=user_id),
    )

    assert (sent, failed) == (2, 1)
    assert [n.body for n in messenger.messages_for("bob")] == ["bob"]
    assert len(await dispatcher.dm_repo.list_for_event("event_1")) == 2


async def test_prune_skips_upcoming_event(dispatcher, messenger):
    await dispatcher.send("event_1", "alice", NotificationPurpose.REGISTRATION, _NOTE)

    assert await dispatcher.prune_completed(_event(_NOW + timedelta(hours=1)), now=_NOW) == 0
    assert len(messenger.messages_for("alice")) == 1
    assert len(await dispatcher.dm_repo.list_for_event("event_1")) == 1


async def test_prune_keeps_role_changes(dispatcher, messenger):
    for purpose in (
        NotificationPurpose.REGISTRATION,
        NotificationPurpose.ROLE_CHANGE,
        NotificationPurpose.REMINDER,
        NotificationPurpose.TIME_CHANGE,
    ):
        await dispatcher.send("event_1", "alice", purpose, Notification(title=purpose.value, body=""))

    deleted = await dispatcher.prune_completed(_event(_NOW - timedelta(minutes=5)), now=_NOW)

    assert deleted == 3
    assert [n.title for n in messenger.messages_for("alice")] == ["role_change"]
    assert await dispatcher.dm_repo.list_for_event("event_1") == []


async def test_prune_tolerates_messages_already_gone(dispatcher, messenger):
    kept = await dispatcher.send("event_1", "alice", NotificationPurpose.REGISTRATION, _NOTE)
    await dispatcher.send("event_1", "bob", NotificationPurpose.REMINDER, _NOTE)
    await messenger.delete_direct("alice", kept)

    deleted = await dispatcher.prune_completed(_event(_NOW), now=_NOW)

    assert deleted == 1
    assert messenger.messages_for("bob") == []
    assert await dispatcher.dm_repo.list_for_event("event_1") == []


# ---------------------------------------------------------------------------
# Through the event service
# ---------------------------------------------------------------------------


async def test_undeliverable_participant_does_not_block_operations(env):
    env.messenger.send_direct = _failing_for("closed-dms", env.messenger.send_direct)
    event = await create_event(env)

    await env.service.join(event.id, "closed-dms", "dps")
    await env.service.join(event.id, "alice", "dps")
    result = await env.service.delete(event.id, ORGANIZER)

    assert result.jobs_cancelled == 7
    assert env.messenger.messages_for("closed-dms") == []
    assert env.messenger.messages_for("alice")[-1].title == "Event Cancelled"


def _failing_for(user_id, send):
    async def send_direct(target, notification):
        if target == user_id:
            raise RuntimeError("Cannot send messages to this user")
        return await send(target, notification)

    return send_direct
