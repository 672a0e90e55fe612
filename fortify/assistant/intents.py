"""Voice command classification.

Each finalized transcript is classified into exactly one intent. Matching is
case-insensitive substring matching, checked in priority order with the first
match winning:

1. Microphone control ("mic on", "stop microphone", ...)
2. Reminder creation ("remind me", "add reminder", bare "reminder")
3. Calendar creation ("add event", "add to calendar", ...)
4. Bare navigation keywords ("chat", "calendar", "to do", "home", ...)
5. Compound navigation ("go to ...", "switch to ...", "change to ...")
6. Anything else is unrecognized
"""

from __future__ import annotations

import re
from dataclasses import dataclass

VIEW_REMINDERS = "reminders"
VIEW_CHAT = "chat"
VIEW_CALENDAR = "calendar"
VIEW_DAILY_ASSISTANT = "daily-assistant"

MICROPHONE_ON_PHRASES = ("microphone on", "mic on", "start microphone")
MICROPHONE_OFF_PHRASES = ("microphone off", "mic off", "stop microphone")
REMINDER_PHRASES = ("remind me", "add reminder", "create reminder", "reminder")
CALENDAR_PHRASES = ("add event", "schedule event", "add to calendar")
COMPOUND_NAVIGATION_PHRASES = ("go to", "switch to", "change to")

NAVIGATION_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("reminder", "reminders", "todo", "to-do", "to do"), VIEW_REMINDERS),
    (("chat", "conversation", "talk"), VIEW_CHAT),
    (("calendar", "schedule"), VIEW_CALENDAR),
    (("daily", "assistant", "home"), VIEW_DAILY_ASSISTANT),
)

# Nested targets accepted after "go to"/"switch to"/"change to".
COMPOUND_TARGET_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("reminder", "todo", "to-do", "to do"), VIEW_REMINDERS),
    (("chat",), VIEW_CHAT),
    (("calendar",), VIEW_CALENDAR),
    (("daily", "assistant", "home"), VIEW_DAILY_ASSISTANT),
)

EXAMPLE_COMMANDS = (
    "remind me to...",
    "go to reminders",
    "switch to chat",
    "go to calendar",
    "open daily assistant",
)


@dataclass(frozen=True)
class Navigate:
    target: str | None
    text: str = ""


@dataclass(frozen=True)
class CreateReminder:
    text: str


@dataclass(frozen=True)
class CreateCalendarEvent:
    text: str


@dataclass(frozen=True)
class MicrophoneControl:
    enable: bool
    text: str = ""


@dataclass(frozen=True)
class Unrecognized:
    text: str


Intent = Navigate | CreateReminder | CreateCalendarEvent | MicrophoneControl | Unrecognized

# Intents after which the microphone is reopened instead of going idle.
CONTINUING_INTENTS = (Navigate, CreateReminder, CreateCalendarEvent, MicrophoneControl)


def normalize_transcript(text: str | None) -> str:
    """Lowercase and collapse whitespace for keyword matching."""
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


def _match_target(text: str, table: tuple[tuple[tuple[str, ...], str], ...]) -> str | None:
    for keywords, target in table:
        if _contains_any(text, keywords):
            return target
    return None


def classify_utterance(transcript: str) -> Intent:
    """Classify one finalized transcript into an intent."""
    text = (transcript or "").strip()
    lowered = normalize_transcript(text)
    if _contains_any(lowered, MICROPHONE_ON_PHRASES):
        return MicrophoneControl(enable=True, text=text)
    if _contains_any(lowered, MICROPHONE_OFF_PHRASES):
        return MicrophoneControl(enable=False, text=text)
    if _contains_any(lowered, REMINDER_PHRASES):
        return CreateReminder(text=text)
    if _contains_any(lowered, CALENDAR_PHRASES):
        return CreateCalendarEvent(text=text)
    target = _match_target(lowered, NAVIGATION_KEYWORDS)
    if target:
        return Navigate(target=target, text=text)
    if _contains_any(lowered, COMPOUND_NAVIGATION_PHRASES):
        return Navigate(target=_match_target(lowered, COMPOUND_TARGET_KEYWORDS), text=text)
    return Unrecognized(text=text)


def keeps_listening(intent: Intent) -> bool:
    """Return True when the microphone should reopen after this intent."""
    if isinstance(intent, MicrophoneControl):
        return intent.enable
    return isinstance(intent, CONTINUING_INTENTS)


def format_help_message(transcript: str) -> str:
    """Build the message shown for an unrecognized command."""
    examples = ", ".join(f'"{example}"' for example in EXAMPLE_COMMANDS[:-1])
    return f'Command not recognized: "{transcript}". Try saying {examples}, or "{EXAMPLE_COMMANDS[-1]}".'
