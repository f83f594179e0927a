"""Authorization checks for organizer-only and restricted operations."""

from __future__ import annotations

from collections.abc import Iterable

from eventboard.domain.models import Event, Requester


class Authorizer:
    def __init__(
        self,
        authorized_user_ids: Iterable[str] = (),
        authorized_role_ids: Iterable[str] = (),
        restrict_event_creation: bool = True,
    ) -> None:
        self.authorized_user_ids = frozenset(authorized_user_ids)
        self.authorized_role_ids = frozenset(authorized_role_ids)
        self.restrict_event_creation = restrict_event_creation

    def has_authorized_role(self, requester: Requester) -> bool:
        return bool(self.authorized_role_ids.intersection(requester.role_ids))

    def can_create(self, requester: Requester) -> bool:
        if not self.restrict_event_creation:
            return True
        return requester.user_id in self.authorized_user_ids or self.has_authorized_role(requester)

    def can_manage(self, requester: Requester, event: Event) -> bool:
        return requester.user_id == event.organizer or self.has_authorized_role(requester)
