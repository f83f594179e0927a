"""Domain models for the community event board."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

try:
    from enum import StrEnum
except ImportError:  # pragma: no cover - fallback for older Python runtimes

    class StrEnum(str, Enum):
        def __str__(self) -> str:
            return self.value


class EventType(StrEnum):
    MAPS = "maps"
    EXTREME_TRIALS = "extreme_trials"
    SAVAGE_RAIDS = "savage_raids"
    ULTIMATE_RAIDS = "ultimate_raids"
    VARIANT_DUNGEONS = "variant_dungeons"
    MOUNT_FARM = "mount_farm"
    OCCULT_CRESCENT = "occult_crescent"
    BLUE_MAGE_SKILL_FARM = "blue_mage_skill_farm"
    MINION_FARM = "minion_farm"
    TREASURE_TROVE_FARM = "treasure_trove_farm"
    DEEP_DUNGEON = "deep_dungeon"
    OTHER = "other"


class GroupType(StrEnum):
    STANDARD = "standard"
    NON_STANDARD = "non_standard"
    LIGHT_PARTY = "light_party"


class Role(StrEnum):
    TANK = "tank"
    HEALER = "healer"
    DPS = "dps"
    BLUE_MAGE = "blue_mage"


class NotificationPurpose(StrEnum):
    REGISTRATION = "registration"
    WITHDRAWAL = "withdrawal"
    ROLE_CHANGE = "role_change"
    CANCELLATION = "cancellation"
    REMINDER = "reminder"
    TIME_CHANGE = "time_change"


class JobKind(StrEnum):
    REMINDER_24H = "reminder@24h"
    REMINDER_12H = "reminder@12h"
    REMINDER_1H = "reminder@1h"
    CLEANUP = "cleanup"


class EventState(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

EVENT_TYPE_LABELS: dict[EventType, str] = {
    EventType.MAPS: "Maps",
    EventType.EXTREME_TRIALS: "Extreme Trials",
    EventType.SAVAGE_RAIDS: "Savage Raids",
    EventType.ULTIMATE_RAIDS: "Ultimate Raids",
    EventType.VARIANT_DUNGEONS: "Variant Dungeons",
    EventType.MOUNT_FARM: "Mount Farm",
    EventType.OCCULT_CRESCENT: "Occult Crescent",
    EventType.BLUE_MAGE_SKILL_FARM: "Blue Mage Skill Farm",
    EventType.MINION_FARM: "Minion Farm",
    EventType.TREASURE_TROVE_FARM: "Treasure Trove Farm",
    EventType.DEEP_DUNGEON: "Deep Dungeon",
    EventType.OTHER: "Other",
}

ROLE_LABELS: dict[Role, str] = {
    Role.TANK: "Tank",
    Role.HEALER: "Healer",
    Role.DPS: "DPS",
    Role.BLUE_MAGE: "Blue Mage",
}

ROLE_CLASSES: dict[Role, tuple[str, ...]] = {
    Role.TANK: ("Paladin", "Warrior", "Dark Knight", "Gunbreaker"),
    Role.HEALER: ("White Mage", "Scholar", "Astrologian", "Sage"),
    Role.DPS: (
        "Monk",
        "Dragoon",
        "Ninja",
        "Samurai",
        "Reaper",
        "Bard",
        "Machinist",
        "Dancer",
        "Black Mage",
        "Summoner",
        "Red Mage",
        "Pictomancer",
        "Viper",
    ),
    Role.BLUE_MAGE: (),
}

# Enforced only for standard groups; blue mage has no quota.
ROLE_LIMITS: dict[Role, int] = {Role.TANK: 2, Role.HEALER: 2, Role.DPS: 4}

# Display-only composition hint for light parties.
LIGHT_PARTY_ROLE_LIMITS: dict[Role, int] = {Role.TANK: 1, Role.HEALER: 1, Role.DPS: 2}

GROUP_CAPACITY: dict[GroupType, int] = {
    GroupType.STANDARD: 8,
    GroupType.NON_STANDARD: 8,
    GroupType.LIGHT_PARTY: 4,
}

GROUP_TYPE_LABELS: dict[GroupType, str] = {
    GroupType.STANDARD: "Standard (2T/2H/4D)",
    GroupType.NON_STANDARD: "Non-standard (Any roles)",
    GroupType.LIGHT_PARTY: "Light Party (1T/1H/2D)",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _new_event_id() -> str:
    return f"event_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def role_display(role: Role, class_name: str | None = None) -> str:
    label = ROLE_LABELS[role]
    return f"{label} - {class_name}" if class_name else label


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: Role = Role.DPS
    class_name: str | None = Field(default=None, alias="class")

    @property
    def display_role(self) -> str:
        return role_display(self.role, self.class_name)


class Event(BaseModel):
    id: str = Field(default_factory=_new_event_id)
    type: EventType
    date: datetime
    organizer: str
    description: str = ""
    group_type: GroupType = GroupType.STANDARD
    participants: list[Participant] = Field(default_factory=list)
    message_id: str | None = None
    revision: int = 0
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("date", "created_at")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("participants", mode="before")
    @classmethod
    def _upgrade_legacy_participants(cls, value: Any) -> Any:
        # Old records stored bare user ids, or entries without a role.
        if not isinstance(value, list):
            return value
        upgraded = []
        for entry in value:
            if isinstance(entry, str):
                upgraded.append({"id": entry, "role": Role.DPS, "class": None})
            elif isinstance(entry, dict) and not entry.get("role"):
                upgraded.append({**entry, "role": Role.DPS, "class": None})
            else:
                upgraded.append(entry)
        return upgraded

    @property
    def capacity(self) -> int:
        return GROUP_CAPACITY[self.group_type]

    @property
    def type_label(self) -> str:
        return EVENT_TYPE_LABELS[self.type]

    def participant(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.id == user_id:
                return p
        return None

    def participant_ids(self) -> list[str]:
        return [p.id for p in self.participants]

    def role_count(self, role: Role, exclude: str | None = None) -> int:
        return sum(1 for p in self.participants if p.role == role and p.id != exclude)

    def state_at(self, now: datetime) -> EventState:
        if self.date > now:
            return EventState.SCHEDULED
        return EventState.COMPLETED


class DMRecord(BaseModel):
    """A direct notification sent on behalf of an event."""

    event_id: str
    user_id: str
    message_id: str
    purpose: NotificationPurpose
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> str:
        return f"{self.user_id}_{self.purpose}_{int(self.created_at.timestamp() * 1000)}_{self.message_id}"


class JobPayload(BaseModel):
    event_id: str
    participant_id: str | None = None
    kind: JobKind
    event_date: datetime


class ReminderJob(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    payload: JobPayload
    fire_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)


class Notification(BaseModel):
    """Platform-neutral content of a direct notification."""

    title: str
    body: str
    fields: list[tuple[str, str]] = Field(default_factory=list)


class Requester(BaseModel):
    user_id: str
    role_ids: list[str] = Field(default_factory=list)


class JobBatchResult(BaseModel):
    succeeded: int = 0
    failed: int = 0

    def summary(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed"


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreateEventRequest(BaseModel):
    type: EventType
    date: str
    time: str
    timezone: str
    group_type: GroupType = GroupType.STANDARD
    description: str = ""


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str
    class_name: str | None = Field(default=None, alias="class")


class ChangeRoleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str
    class_name: str | None = Field(default=None, alias="class")


class ChangeTimeRequest(BaseModel):
    date: str
    time: str
    timezone: str


class DeleteResult(BaseModel):
    event_id: str
    jobs_cancelled: int
    jobs_failed: int


class PurgeResult(BaseModel):
    events_purged: int = 0
    jobs_cancelled: int = 0
    jobs_failed: int = 0
