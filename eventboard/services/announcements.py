"""Announcement surface: the public post that shows an event and its roster."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

import structlog

from eventboard.domain.models import (
    GROUP_TYPE_LABELS,
    LIGHT_PARTY_ROLE_LIMITS,
    ROLE_LABELS,
    ROLE_LIMITS,
    Event,
    GroupType,
    Role,
)
from eventboard.services.messages import format_when

logger = structlog.get_logger(__name__)


def render_announcement(event: Event) -> str:
    """Render the roster grouped by role, in join order within each role."""
    lines = [
        event.type_label,
        f"Date: {format_when(event.date)}",
        f"Organizer: {event.organizer}",
        f"Group: {GROUP_TYPE_LABELS[event.group_type]}",
    ]
    if event.description:
        lines.append(event.description)
    lines.append(f"Participants ({len(event.participants)}/{event.capacity})")

    for role in Role:
        members = [p for p in event.participants if p.role == role]
        if not members:
            continue
        if event.group_type == GroupType.STANDARD and role in ROLE_LIMITS:
            header = f"{ROLE_LABELS[role]}s ({len(members)}/{ROLE_LIMITS[role]}):"
        elif event.group_type == GroupType.LIGHT_PARTY and role in LIGHT_PARTY_ROLE_LIMITS:
            header = f"{ROLE_LABELS[role]}s ({len(members)}/{LIGHT_PARTY_ROLE_LIMITS[role]}):"
        else:
            header = f"{ROLE_LABELS[role]}s:"
        lines.append(header)
        for p in members:
            lines.append(f"  {p.id} ({p.class_name})" if p.class_name else f"  {p.id}")
    return "\n".join(lines)


class AnnouncementRenderer(ABC):
    @abstractmethod
    async def publish(self, event: Event) -> str:
        """Post the announcement and return its message id."""

    @abstractmethod
    async def update(self, event: Event) -> None: ...

    @abstractmethod
    async def remove(self, event: Event) -> None: ...


class InMemoryAnnouncementBoard(AnnouncementRenderer):
    def __init__(self) -> None:
        self.posts: dict[str, str] = {}

    async def publish(self, event: Event) -> str:
        message_id = uuid.uuid4().hex
        self.posts[message_id] = render_announcement(event)
        logger.info("Announcement published", event_id=event.id, message_id=message_id)
        return message_id

    async def update(self, event: Event) -> None:
        if event.message_id is None or event.message_id not in self.posts:
            raise LookupError(f"No announcement for event {event.id}")
        self.posts[event.message_id] = render_announcement(event)

    async def remove(self, event: Event) -> None:
        if event.message_id is not None:
            self.posts.pop(event.message_id, None)
