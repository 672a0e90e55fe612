"""Process-lifetime reminder storage."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any

from fortify.datetime_utils import is_date_string, is_time_string, iso_timestamp

from .reminder_fields import ReminderDraft

LOGGER = logging.getLogger(__name__)


class ReminderStoreError(RuntimeError):
    """Base class for reminder store failures."""


class ReminderNotFoundError(ReminderStoreError):
    """Raised when an operation targets an unknown reminder id."""

    def __init__(self, reminder_id: str) -> None:
        super().__init__(f"Reminder not found: {reminder_id}")
        self.reminder_id = reminder_id


class InvalidReminderError(ReminderStoreError, ValueError):
    """Raised when required reminder fields are missing or malformed."""


@dataclass(frozen=True)
class Reminder:
    id: str
    title: str
    time: str
    date: str
    description: str = ""
    completed: bool = False
    created_at: str = field(default_factory=iso_timestamp)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "time": self.time,
            "date": self.date,
            "description": self.description,
            "completed": self.completed,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Reminder:
        return cls(
            id=str(payload.get("id") or ""),
            title=str(payload.get("title") or ""),
            time=str(payload.get("time") or ""),
            date=str(payload.get("date") or ""),
            description=str(payload.get("description") or ""),
            completed=bool(payload.get("completed")),
            created_at=str(payload.get("createdAt") or ""),
        )


class ReminderStore:
    """In-memory reminder list.

    Thread-safe: the API server handles requests on worker threads, so all
    access to the list is guarded by a lock. Ids are millisecond timestamps,
    bumped when two reminders land in the same millisecond, and never reused.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._reminders: list[Reminder] = []
        self._last_id = 0

    def create(self, title: str, time: str, date: str, description: str | None = None) -> Reminder:
        title = (title or "").strip()
        time = (time or "").strip()
        date = (date or "").strip()
        if not title or not time or not date:
            raise InvalidReminderError("Title, time, and date are required")
        if not is_time_string(time):
            raise InvalidReminderError(f"Invalid time: {time}")
        if not is_date_string(date):
            raise InvalidReminderError(f"Invalid date: {date}")
        with self._lock:
            reminder = Reminder(
                id=self._next_id(),
                title=title,
                time=time,
                date=date,
                description=description or "",
            )
            self._reminders.append(reminder)
        LOGGER.info("Created reminder %s (%s on %s at %s)", reminder.id, title, date, time)
        return reminder

    def create_from_draft(self, draft: ReminderDraft) -> Reminder:
        return self.create(draft.title, draft.time, draft.date, draft.description)

    def list_reminders(self) -> list[Reminder]:
        with self._lock:
            return list(self._reminders)

    def get(self, reminder_id: str) -> Reminder:
        with self._lock:
            for reminder in self._reminders:
                if reminder.id == reminder_id:
                    return reminder
        raise ReminderNotFoundError(reminder_id)

    def set_completed(self, reminder_id: str, completed: bool) -> Reminder:
        with self._lock:
            for index, reminder in enumerate(self._reminders):
                if reminder.id == reminder_id:
                    updated = replace(reminder, completed=bool(completed))
                    self._reminders[index] = updated
                    break
            else:
                raise ReminderNotFoundError(reminder_id)
        LOGGER.debug("Reminder %s completed=%s", reminder_id, updated.completed)
        return updated

    def delete(self, reminder_id: str) -> bool:
        """Remove a reminder; returns False (not an error) if it was already gone."""
        with self._lock:
            before = len(self._reminders)
            self._reminders = [reminder for reminder in self._reminders if reminder.id != reminder_id]
            removed = len(self._reminders) != before
        if removed:
            LOGGER.info("Deleted reminder %s", reminder_id)
        return removed

    def _next_id(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)
