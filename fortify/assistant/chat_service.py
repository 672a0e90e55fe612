"""Server-side handling for the chat endpoint."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fortify.datetime_utils import iso_timestamp

from .llm import CompletionProvider
from .reminder_fields import MissingFields, ReminderFieldExtractor, format_confirmation, is_reminder_request
from .reminder_store import Reminder, ReminderStore

LOGGER = logging.getLogger(__name__)


class InvalidChatRequest(ValueError):
    """Raised when a chat request carries no message."""


@dataclass(frozen=True)
class ChatReply:
    response: str
    timestamp: str
    reminder: Reminder | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "timestamp": self.timestamp,
            "reminder": self.reminder.to_dict() if self.reminder else None,
        }


def normalize_history(raw: Any) -> list[dict[str, str]]:
    """Keep only well-formed ``{role, content}`` entries from a request body."""
    if not isinstance(raw, list):
        return []
    history: list[dict[str, str]] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role")
        content = entry.get("content")
        if role in {"user", "assistant"} and isinstance(content, str):
            history.append({"role": role, "content": content})
    return history


class ChatService:
    """Answers chat messages, creating reminders when the message asks for one.

    Reminder-flavoured messages never reach the completion provider: they are
    answered either with a confirmation or with a prompt for the missing
    fields.
    """

    def __init__(
        self,
        store: ReminderStore,
        provider: CompletionProvider,
        *,
        now: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self._now = now
        self.logger = logger or LOGGER

    def handle(self, message: str, history: Iterable[dict[str, str]] = ()) -> ChatReply:
        text = (message or "").strip() if isinstance(message, str) else ""
        if not text:
            raise InvalidChatRequest("Message is required")

        if is_reminder_request(text):
            reference = self._now() if self._now else None
            result = ReminderFieldExtractor.extract(text, reference)
            if isinstance(result, MissingFields):
                self.logger.info("Reminder request missing %s", ", ".join(result.fields))
                return ChatReply(response=result.message, timestamp=iso_timestamp())
            reminder = self.store.create_from_draft(result)
            response = format_confirmation(reminder.title, reminder.date, reminder.time)
            return ChatReply(response=response, timestamp=iso_timestamp(), reminder=reminder)

        response = self.provider.complete(text, list(history))
        return ChatReply(response=response, timestamp=iso_timestamp())
