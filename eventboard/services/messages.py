"""Content of the direct notifications sent to participants."""

from __future__ import annotations

from datetime import datetime

from eventboard.domain.models import Event, Notification, Participant


def format_when(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def registration_notice(event: Event, participant: Participant) -> Notification:
    return Notification(
        title="Event Registration Confirmed",
        body=f"You have successfully registered for: {event.type_label}",
        fields=[
            ("Date & Time", format_when(event.date)),
            ("Role", participant.display_role),
        ],
    )


def withdrawal_notice(event: Event) -> Notification:
    return Notification(
        title="You Withdrew From Event",
        body=f"You have successfully withdrawn from the {event.type_label} event.",
    )


def role_change_notice(old_display: str, new_display: str) -> Notification:
    return Notification(
        title="Role Updated",
        body=f"Your role for the event has been changed from {old_display} to {new_display}.",
    )


def time_change_notice(event: Event, old_date: datetime) -> Notification:
    return Notification(
        title="Event Time Changed",
        body=f"The time for {event.type_label} has been changed by the organizer.",
        fields=[
            ("Old Time", format_when(old_date)),
            ("New Time", format_when(event.date)),
        ],
    )


def cancellation_notice(event: Event, participant: Participant) -> Notification:
    return Notification(
        title="Event Cancelled",
        body=f"The {event.type_label} event you registered for has been cancelled by the organizer.",
        fields=[
            ("Originally Scheduled", format_when(event.date)),
            ("Your Role", participant.display_role),
        ],
    )


def reminder_notice(event: Event, remaining: str) -> Notification:
    fields = [("Date & Time", format_when(event.date))]
    if event.description:
        fields.append(("Description", event.description))
    return Notification(
        title=f"Event Reminder - {remaining} remaining",
        body=f"Don't forget about the {event.type_label} event!",
        fields=fields,
    )
