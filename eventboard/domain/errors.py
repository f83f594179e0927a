"""Typed failures raised by event operations.

Every rejection carries a message that names the violated constraint so the
command layer can show it to the user verbatim.
"""

from __future__ import annotations


class EventBoardError(Exception):
    status_code = 400
    code = "error"
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EventBoardError):
    status_code = 422
    code = "validation_error"
    default_message = "Invalid input."


class InvalidRole(EventBoardError):
    status_code = 422
    code = "invalid_role"
    default_message = "Invalid role."


class InvalidClass(EventBoardError):
    status_code = 422
    code = "invalid_class"
    default_message = "Invalid class for this role."


class AlreadyParticipating(EventBoardError):
    status_code = 409
    code = "already_participating"
    default_message = "You are already participating in this event!"


class EventFull(EventBoardError):
    status_code = 409
    code = "event_full"
    default_message = "This event is full!"


class RoleFull(EventBoardError):
    status_code = 409
    code = "role_full"

    def __init__(self, role_label: str) -> None:
        self.role_label = role_label
        super().__init__(f"All {role_label} slots are filled.")


class NotParticipating(EventBoardError):
    status_code = 409
    code = "not_participating"
    default_message = "You are not participating in this event."


class Forbidden(EventBoardError):
    status_code = 403
    code = "forbidden"
    default_message = "You are not authorized to perform this action."


class NotFound(EventBoardError):
    status_code = 404
    code = "not_found"
    default_message = "Event not found."


class Conflict(EventBoardError):
    """Another write to the same event won the race; safe to retry."""

    status_code = 409
    code = "conflict"
    default_message = "The event was modified concurrently, please retry."


class DispatchFailure(EventBoardError):
    code = "dispatch_failure"
    default_message = "Notification could not be delivered."


class SchedulerFailure(EventBoardError):
    code = "scheduler_failure"
    default_message = "Job could not be scheduled or cancelled."
