"""Tests for voice command classification."""

from __future__ import annotations

import pytest
from fortify.assistant.intents import (
    VIEW_CALENDAR,
    VIEW_CHAT,
    VIEW_DAILY_ASSISTANT,
    VIEW_REMINDERS,
    CreateCalendarEvent,
    CreateReminder,
    MicrophoneControl,
    Navigate,
    Unrecognized,
    classify_utterance,
    format_help_message,
    keeps_listening,
    normalize_transcript,
)


class TestMicrophoneControl:
    """Microphone phrases take priority over everything else."""

    @pytest.mark.parametrize("text", ["microphone on", "Mic on please", "start microphone"])
    def test_on(self, text):
        assert classify_utterance(text) == MicrophoneControl(enable=True, text=text)

    @pytest.mark.parametrize("text", ["microphone off", "MIC OFF", "stop microphone"])
    def test_off(self, text):
        assert classify_utterance(text) == MicrophoneControl(enable=False, text=text)

    def test_beats_reminder(self):
        assert isinstance(classify_utterance("mic off and add reminder"), MicrophoneControl)


class TestCreation:
    """Reminder and calendar creation phrases."""

    @pytest.mark.parametrize(
        "text",
        ["Remind me to call mom at 3pm tomorrow", "add reminder", "create reminder", "reminder"],
    )
    def test_reminder(self, text):
        assert classify_utterance(text) == CreateReminder(text=text)

    def test_reminders_view_word_is_still_reminder_creation(self):
        assert isinstance(classify_utterance("go to reminders"), CreateReminder)

    @pytest.mark.parametrize("text", ["add event lunch with Sue", "schedule event", "add to calendar"])
    def test_calendar(self, text):
        assert classify_utterance(text) == CreateCalendarEvent(text=text)

    def test_reminder_beats_calendar(self):
        assert isinstance(classify_utterance("add reminder and add event"), CreateReminder)


class TestNavigation:
    """Bare and compound navigation."""

    @pytest.mark.parametrize(
        ("text", "target"),
        [
            ("todo", VIEW_REMINDERS),
            ("show my to do list", VIEW_REMINDERS),
            ("to-do", VIEW_REMINDERS),
            ("chat", VIEW_CHAT),
            ("let's talk", VIEW_CHAT),
            ("conversation", VIEW_CHAT),
            ("calendar", VIEW_CALENDAR),
            ("what's my schedule", VIEW_CALENDAR),
            ("daily", VIEW_DAILY_ASSISTANT),
            ("home", VIEW_DAILY_ASSISTANT),
            ("open daily assistant", VIEW_DAILY_ASSISTANT),
        ],
    )
    def test_bare_keywords(self, text, target):
        intent = classify_utterance(text)
        assert isinstance(intent, Navigate)
        assert intent.target == target

    def test_compound_without_target_keeps_view(self):
        intent = classify_utterance("go to the kitchen")
        assert intent == Navigate(target=None, text="go to the kitchen")

    def test_compound_with_target(self):
        assert classify_utterance("Switch to chat").target == VIEW_CHAT

    def test_case_and_whitespace_insensitive(self):
        assert classify_utterance("  GO   TO\tCALENDAR ").target == VIEW_CALENDAR


class TestUnrecognized:
    """Everything else falls through."""

    def test_unrecognized(self):
        assert classify_utterance("what's the weather") == Unrecognized(text="what's the weather")

    def test_empty(self):
        assert classify_utterance("") == Unrecognized(text="")


class TestContinuation:
    """Which intents keep the microphone open."""

    @pytest.mark.parametrize(
        "intent",
        [
            Navigate(target=VIEW_CHAT),
            Navigate(target=None),
            CreateReminder(text="remind me"),
            CreateCalendarEvent(text="add event"),
            MicrophoneControl(enable=True),
        ],
    )
    def test_continuing(self, intent):
        assert keeps_listening(intent) is True

    @pytest.mark.parametrize("intent", [Unrecognized(text="hello"), MicrophoneControl(enable=False)])
    def test_not_continuing(self, intent):
        assert keeps_listening(intent) is False


class TestHelpers:
    """Tests for helper functions."""

    def test_normalize_transcript(self):
        assert normalize_transcript("  Go\n To  Chat ") == "go to chat"
        assert normalize_transcript(None) == ""

    def test_help_message_lists_examples(self):
        message = format_help_message("blah")
        assert message.startswith('Command not recognized: "blah".')
        assert '"remind me to..."' in message
        assert message.endswith('or "open daily assistant".')
