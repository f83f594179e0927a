"""Direct notifications with purpose tracking and selective retraction."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from eventboard.domain import errors
from eventboard.domain.models import DMRecord, Event, Notification, NotificationPurpose
from eventboard.repos.base import DMTrackingRepository
from eventboard.services.messenger import Messenger

logger = structlog.get_logger(__name__)

# Retracted once the event is over; role changes stay visible.
PRUNED_PURPOSES = frozenset(
    {
        NotificationPurpose.REGISTRATION,
        NotificationPurpose.WITHDRAWAL,
        NotificationPurpose.CANCELLATION,
        NotificationPurpose.REMINDER,
        NotificationPurpose.TIME_CHANGE,
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Sends direct notifications and remembers them per event.

    Delivery problems never propagate: ``send`` logs a ``DispatchFailure``
    and returns None so the operation that triggered it still succeeds.
    """

    def __init__(
        self,
        messenger: Messenger,
        dm_repo: DMTrackingRepository,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.messenger = messenger
        self.dm_repo = dm_repo
        self._clock = clock

    async def send(
        self,
        event_id: str,
        user_id: str,
        purpose: NotificationPurpose,
        content: Notification,
    ) -> str | None:
        try:
            message_id = await self.messenger.send_direct(user_id, content)
        except Exception as exc:
            failure = errors.DispatchFailure(f"Could not send {purpose} notification to {user_id}: {exc}")
            logger.warning(failure.message, event_id=event_id, user_id=user_id, purpose=str(purpose))
            return None

        record = DMRecord(
            event_id=event_id,
            user_id=user_id,
            message_id=message_id,
            purpose=purpose,
            created_at=self._clock(),
        )
        try:
            await self.dm_repo.add(record)
        except Exception:
            logger.exception("Failed to track DM message", event_id=event_id, message_id=message_id)
        return message_id

    async def fan_out(
        self,
        event_id: str,
        user_ids: list[str],
        purpose: NotificationPurpose,
        content_for: Callable[[str], Notification],
    ) -> tuple[int, int]:
        """Notify every user concurrently. Returns ``(sent, failed)``."""
        results = await asyncio.gather(
            *(self.send(event_id, uid, purpose, content_for(uid)) for uid in user_ids)
        )
        sent = sum(1 for r in results if r is not None)
        failed = len(results) - sent
        logger.debug(
            "Notification fan-out finished",
            event_id=event_id,
            purpose=str(purpose),
            sent=sent,
            failed=failed,
        )
        return sent, failed

    async def prune_completed(self, event: Event, now: datetime | None = None) -> int:
        """Retract logistics notifications of a finished event.

        Does nothing while the event is still upcoming. Returns the number of
        messages deleted; tracking records are dropped afterwards.
        """
        now = now or self._clock()
        if event.date > now:
            logger.debug("Event is still upcoming, skipping DM pruning", event_id=event.id)
            return 0

        records = await self.dm_repo.list_for_event(event.id)
        logger.debug("Pruning DMs for completed event", event_id=event.id, count=len(records))

        async def retract(record: DMRecord) -> bool:
            if record.purpose not in PRUNED_PURPOSES:
                return False
            try:
                await self.messenger.delete_direct(record.user_id, record.message_id)
            except Exception as exc:
                logger.debug(
                    "Could not delete DM message",
                    event_id=event.id,
                    user_id=record.user_id,
                    message_id=record.message_id,
                    error=str(exc),
                )
                return False
            return True

        deleted = await asyncio.gather(*(retract(r) for r in records))
        await self.dm_repo.delete_for_event(event.id)
        return sum(deleted)

    async def forget_event(self, event_id: str) -> None:
        await self.dm_repo.delete_for_event(event_id)
