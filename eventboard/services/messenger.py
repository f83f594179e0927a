"""Outbound direct-message port."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

import structlog

from eventboard.domain.models import Notification

logger = structlog.get_logger(__name__)


class Messenger(ABC):
    """Delivers direct messages to users of the chat platform."""

    @abstractmethod
    async def send_direct(self, user_id: str, notification: Notification) -> str:
        """Send *notification* to *user_id* and return the platform message id."""

    @abstractmethod
    async def delete_direct(self, user_id: str, message_id: str) -> None: ...


class InMemoryMessenger(Messenger):
    """Keeps every delivered message in a per-user inbox.

    Used for local runs and tests; a chat-platform adapter replaces it in
    production.
    """

    def __init__(self) -> None:
        self.inbox: dict[str, dict[str, Notification]] = {}

    async def send_direct(self, user_id: str, notification: Notification) -> str:
        message_id = uuid.uuid4().hex
        self.inbox.setdefault(user_id, {})[message_id] = notification
        logger.info("Direct message sent", user_id=user_id, message_id=message_id, title=notification.title)
        return message_id

    async def delete_direct(self, user_id: str, message_id: str) -> None:
        messages = self.inbox.get(user_id, {})
        if message_id not in messages:
            raise LookupError(f"Unknown message {message_id} for user {user_id}")
        del messages[message_id]

    def messages_for(self, user_id: str) -> list[Notification]:
        return list(self.inbox.get(user_id, {}).values())
