"""Domain events emitted during the event lifecycle."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from eventboard.domain.models import Event, Role


class EventCreated(BaseModel):
    """Fired when a new Event is persisted."""

    event_id: str


class ParticipantJoined(BaseModel):
    event_id: str
    user_id: str


class ParticipantRoleChanged(BaseModel):
    event_id: str
    user_id: str
    old_role: Role
    old_class: str | None = None
    new_role: Role
    new_class: str | None = None


class ParticipantWithdrew(BaseModel):
    event_id: str
    user_id: str


class EventRescheduled(BaseModel):
    """Fired after a new date has been committed."""

    event_id: str
    old_date: datetime
    new_date: datetime


class EventCancelled(BaseModel):
    """Fired before a cancelled event is removed from the store.

    Carries the last stored snapshot because handlers still need the roster.
    """

    event: Event
