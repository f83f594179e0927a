"""Roster rules: role/class validation, capacity and role quotas."""

from __future__ import annotations

from eventboard.domain import errors
from eventboard.domain.models import (
    ROLE_CLASSES,
    ROLE_LABELS,
    ROLE_LIMITS,
    Event,
    GroupType,
    Role,
)


def parse_role(raw: str) -> Role:
    try:
        return Role(raw.strip().lower())
    except ValueError:
        raise errors.InvalidRole(f"Invalid role: {raw}.") from None


def validate_class(role: Role, class_name: str | None) -> str | None:
    """Return the canonical class name for *role*, or None when unset."""
    if not class_name:
        return None
    for allowed in ROLE_CLASSES[role]:
        if allowed.lower() == class_name.strip().lower():
            return allowed
    raise errors.InvalidClass(f"{class_name} is not a valid class for {ROLE_LABELS[role]}.")


def check_role_quota(event: Event, role: Role, exclude: str | None = None) -> None:
    """Raise ``RoleFull`` when a standard group has no slot left for *role*.

    *exclude* leaves the acting user's own slot out of the count so a
    participant can swap into the slot they are vacating.
    """
    if event.group_type != GroupType.STANDARD:
        return
    limit = ROLE_LIMITS.get(role)
    if limit is None:
        return
    if event.role_count(role, exclude=exclude) >= limit:
        raise errors.RoleFull(ROLE_LABELS[role])


def check_can_join(event: Event, user_id: str, role: Role) -> None:
    if event.participant(user_id) is not None:
        raise errors.AlreadyParticipating()
    # Capacity first: a full event rejects joins whatever the role.
    if len(event.participants) >= event.capacity:
        raise errors.EventFull()
    check_role_quota(event, role)
