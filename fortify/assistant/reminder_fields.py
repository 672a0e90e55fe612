"""Reminder field extraction for FORTify.

This module turns a free-text reminder request into a structured draft
(title, date, time) or reports which of those fields the user still has to
supply. It is used server-side by the chat endpoint.

Examples:
- "remind me to buy milk tomorrow morning" -> buy milk tomorrow morning / +1 day / 09:00
- "add a reminder for my medication today at 3pm" -> Take medication / today / 15:00
- "remind me to call Anna" -> missing date, time
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta

from fortify.datetime_utils import format_display_date, format_display_time, local_now

FIELD_TITLE = "task/title"
FIELD_DATE = "date"
FIELD_TIME = "time"

_FIELD_HINTS = {
    FIELD_TITLE: "what you'd like to be reminded about",
    FIELD_DATE: "when (date)",
    FIELD_TIME: "what time",
}

# Checked in order; the first lexicon entry with a matching keyword wins.
TITLE_LEXICON: tuple[tuple[tuple[str, ...], str], ...] = (
    (("groceries", "grocery"), "Get groceries"),
    (("medication", "medicine"), "Take medication"),
    (("doctor", "appointment"), "Doctor appointment"),
)

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

TIME_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("noon", "12:00"), "12:00"),
    (("morning",), "09:00"),
    (("afternoon",), "14:00"),
    (("evening",), "18:00"),
)

_TITLE_PATTERN = re.compile(r"remind me to (.+?)(?:\s+(?:for|at|on)\b|$)", re.IGNORECASE)
_TIME_PATTERN = re.compile(r"(?<![\d:])(\d{1,2})(?::(\d{2}))?\s*(am|pm)?(?![\w:])", re.IGNORECASE)


@dataclass(frozen=True)
class ReminderDraft:
    """A fully extracted reminder candidate, not yet stored."""

    title: str
    date: str
    time: str
    source_text: str

    @property
    def description(self) -> str:
        return f'Created from chat: "{self.source_text}"'


@dataclass(frozen=True)
class MissingFields:
    """Extraction result when one or more reminder fields were not found."""

    fields: tuple[str, ...]
    source_text: str

    @property
    def message(self) -> str:
        names = ", ".join(self.fields)
        hints = " and ".join(_FIELD_HINTS[field] for field in self.fields)
        return (
            "I'd be happy to create a reminder for you! "
            f"However, I need you to specify the {names}. Please tell me {hints}."
        )


def is_reminder_request(text: str) -> bool:
    """Return True when the utterance carries a reminder keyword."""
    lowered = (text or "").lower()
    return "reminder" in lowered or "remind me" in lowered


class ReminderFieldExtractor:
    """Extracts reminder title, date and time from a single utterance.

    All methods are static; the only external input is the wall-clock date,
    which callers may pin by passing ``now``.
    """

    @staticmethod
    def extract(utterance: str, now: datetime | None = None) -> ReminderDraft | MissingFields:
        """Extract a reminder draft from text.

        Args:
            utterance: Raw transcript or chat message
            now: Reference time for relative dates (defaults to local now)

        Returns:
            ReminderDraft when title, date and time were all found, otherwise
            MissingFields naming exactly the absent ones

        Raises:
            ValueError: if the utterance is not a reminder request
        """
        if not is_reminder_request(utterance):
            raise ValueError("utterance does not request a reminder")
        reference = now or local_now()
        title = ReminderFieldExtractor.extract_title(utterance)
        date = ReminderFieldExtractor.extract_date(utterance, reference)
        time = ReminderFieldExtractor.extract_time(utterance)

        missing: list[str] = []
        if not title:
            missing.append(FIELD_TITLE)
        if not date:
            missing.append(FIELD_DATE)
        if not time:
            missing.append(FIELD_TIME)
        if missing:
            return MissingFields(fields=tuple(missing), source_text=utterance)
        return ReminderDraft(title=title, date=date, time=time, source_text=utterance)  # type: ignore[arg-type]

    # ========================================================================
    # Title
    # ========================================================================

    @staticmethod
    def extract_title(text: str) -> str | None:
        """Resolve the reminder title from the lexicon or a "remind me to" clause."""
        lowered = text.lower()
        for keywords, canonical in TITLE_LEXICON:
            if any(keyword in lowered for keyword in keywords):
                return canonical
        match = _TITLE_PATTERN.search(text)
        if match:
            title = match.group(1).strip()
            return title or None
        return None

    # ========================================================================
    # Date
    # ========================================================================

    @staticmethod
    def extract_date(text: str, now: datetime) -> str | None:
        """Resolve the reminder date as ISO ``YYYY-MM-DD``.

        Any weekday name maps to tomorrow rather than the next occurrence of
        that weekday.
        """
        lowered = text.lower()
        today = now.date()
        tomorrow = today + timedelta(days=1)
        if "tomorrow" in lowered:
            return tomorrow.isoformat()
        if "today" in lowered:
            return today.isoformat()
        if any(day in lowered for day in WEEKDAY_NAMES):
            return tomorrow.isoformat()
        return None

    # ========================================================================
    # Time
    # ========================================================================

    @staticmethod
    def extract_time(text: str) -> str | None:
        """Resolve the reminder time as 24h ``HH:MM``."""
        lowered = text.lower()
        for keywords, value in TIME_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return value
        bare: str | None = None
        for match in _TIME_PATTERN.finditer(lowered):
            parsed = ReminderFieldExtractor.normalize_time(match.group(1), match.group(2), match.group(3))
            if not parsed:
                continue
            if match.group(2) or match.group(3):
                return parsed
            # A bare number ("take 2 pills at 3pm") only counts when nothing better follows.
            bare = bare or parsed
        return bare

    @staticmethod
    def normalize_time(hour_token: str, minute_token: str | None, meridiem: str | None) -> str | None:
        """Convert hour/minute/meridiem tokens to ``HH:MM``.

        Args:
            hour_token: One or two digit hour
            minute_token: Two digit minutes or None
            meridiem: "am", "pm" or None

        Returns:
            Time string or None when the tokens are out of range
        """
        try:
            hour = int(hour_token)
            minute = int(minute_token) if minute_token else 0
        except ValueError:
            return None
        if minute > 59:
            return None
        if meridiem:
            meridiem = meridiem.lower()
            if not 1 <= hour <= 12:
                return None
            if meridiem == "pm" and hour != 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
        elif hour > 23:
            return None
        return f"{hour:02d}:{minute:02d}"


def format_confirmation(title: str, date: str, time: str) -> str:
    """Build the spoken confirmation for a newly created reminder."""
    return (
        f'I\'ve created a reminder for "{title}" on {format_display_date(date)} '
        f"at {format_display_time(time)}. You can see it in the Reminders tab!"
    )
