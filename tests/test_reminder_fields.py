"""Tests for reminder field extraction."""

from __future__ import annotations

import pytest
from fortify.assistant.reminder_fields import (
    FIELD_DATE,
    FIELD_TIME,
    FIELD_TITLE,
    MissingFields,
    ReminderDraft,
    ReminderFieldExtractor,
    format_confirmation,
    is_reminder_request,
)

# ============================================================================
# Full extraction
# ============================================================================


class TestExtract:
    """Tests for ReminderFieldExtractor.extract."""

    def test_complete_request_builds_draft(self, fixed_now):
        result = ReminderFieldExtractor.extract("Remind me to call mom at 3pm tomorrow", fixed_now)
        assert isinstance(result, ReminderDraft)
        assert result.title == "call mom"
        assert result.date == "2025-01-16"
        assert result.time == "15:00"

    def test_keyword_time_and_relative_date(self, fixed_now):
        result = ReminderFieldExtractor.extract("remind me to buy milk tomorrow morning", fixed_now)
        assert isinstance(result, ReminderDraft)
        assert result.date == "2025-01-16"
        assert result.time == "09:00"
        assert result.title == "buy milk tomorrow morning"

    def test_draft_description_quotes_source(self, fixed_now):
        text = "remind me to get groceries today at 10am"
        result = ReminderFieldExtractor.extract(text, fixed_now)
        assert isinstance(result, ReminderDraft)
        assert result.description == f'Created from chat: "{text}"'

    def test_missing_time_only(self, fixed_now):
        result = ReminderFieldExtractor.extract("remind me to water the plants tomorrow", fixed_now)
        assert isinstance(result, MissingFields)
        assert result.fields == (FIELD_TIME,)

    def test_missing_date_and_time(self, fixed_now):
        result = ReminderFieldExtractor.extract("remind me to take my medicine", fixed_now)
        assert isinstance(result, MissingFields)
        assert result.fields == (FIELD_DATE, FIELD_TIME)

    def test_missing_everything(self, fixed_now):
        result = ReminderFieldExtractor.extract("set a reminder", fixed_now)
        assert isinstance(result, MissingFields)
        assert result.fields == (FIELD_TITLE, FIELD_DATE, FIELD_TIME)

    def test_non_reminder_text_rejected(self, fixed_now):
        with pytest.raises(ValueError):
            ReminderFieldExtractor.extract("what's the weather like", fixed_now)

    def test_extraction_is_pure(self, fixed_now):
        text = "remind me to see the doctor on friday at 2:30 pm"
        first = ReminderFieldExtractor.extract(text, fixed_now)
        second = ReminderFieldExtractor.extract(text, fixed_now)
        assert first == second


class TestMissingFieldsMessage:
    """Tests for the prompt listing missing fields."""

    def test_single_field_message(self):
        missing = MissingFields(fields=(FIELD_TIME,), source_text="remind me")
        assert missing.message == (
            "I'd be happy to create a reminder for you! However, I need you to specify the time. "
            "Please tell me what time."
        )

    def test_multiple_fields_message(self):
        missing = MissingFields(fields=(FIELD_TITLE, FIELD_DATE), source_text="remind me")
        assert "specify the task/title, date." in missing.message
        assert "what you'd like to be reminded about and when (date)" in missing.message


# ============================================================================
# Title
# ============================================================================


class TestExtractTitle:
    """Tests for title resolution."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("remind me to buy groceries", "Get groceries"),
            ("reminder for my medication", "Take medication"),
            ("remind me about the doctor", "Doctor appointment"),
            ("remind me about my appointment", "Doctor appointment"),
        ],
    )
    def test_lexicon_wins(self, text, expected):
        assert ReminderFieldExtractor.extract_title(text) == expected

    def test_lexicon_order_is_priority(self):
        assert ReminderFieldExtractor.extract_title("remind me to take medicine to the doctor") == "Take medication"

    def test_pattern_stops_at_preposition(self):
        assert ReminderFieldExtractor.extract_title("remind me to walk the dog at 5pm") == "walk the dog"

    def test_pattern_runs_to_end_of_text(self):
        assert ReminderFieldExtractor.extract_title("Remind me to feed the cat") == "feed the cat"

    def test_no_title(self):
        assert ReminderFieldExtractor.extract_title("reminder at 5pm") is None


# ============================================================================
# Date
# ============================================================================


class TestExtractDate:
    """Tests for date resolution."""

    def test_tomorrow(self, fixed_now):
        assert ReminderFieldExtractor.extract_date("tomorrow please", fixed_now) == "2025-01-16"

    def test_today(self, fixed_now):
        assert ReminderFieldExtractor.extract_date("today", fixed_now) == "2025-01-15"

    @pytest.mark.parametrize("weekday", ["monday", "Wednesday", "SUNDAY"])
    def test_any_weekday_means_tomorrow(self, fixed_now, weekday):
        assert ReminderFieldExtractor.extract_date(f"on {weekday}", fixed_now) == "2025-01-16"

    def test_month_rollover(self):
        from datetime import datetime

        assert ReminderFieldExtractor.extract_date("tomorrow", datetime(2024, 12, 31, 9, 0)) == "2025-01-01"

    def test_no_date(self, fixed_now):
        assert ReminderFieldExtractor.extract_date("next week sometime", fixed_now) is None


# ============================================================================
# Time
# ============================================================================


class TestExtractTime:
    """Tests for time resolution."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("at noon", "12:00"),
            ("at 12:00", "12:00"),
            ("in the morning", "09:00"),
            ("this afternoon", "14:00"),
            ("in the evening", "18:00"),
        ],
    )
    def test_keywords(self, text, expected):
        assert ReminderFieldExtractor.extract_time(text) == expected

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("at 3pm", "15:00"),
            ("at 3 pm", "15:00"),
            ("at 7:45am", "07:45"),
            ("at 12am", "00:00"),
            ("at 12pm", "12:00"),
            ("at 12:30 am", "00:30"),
            ("at 16:20", "16:20"),
            ("at 9", "09:00"),
        ],
    )
    def test_numeric(self, text, expected):
        assert ReminderFieldExtractor.extract_time(text) == expected

    def test_meridiem_preferred_over_bare_number(self):
        assert ReminderFieldExtractor.extract_time("take 2 pills at 8pm") == "20:00"

    def test_out_of_range_ignored(self):
        assert ReminderFieldExtractor.extract_time("at 25:00") is None
        assert ReminderFieldExtractor.extract_time("at 13pm") is None

    def test_no_time(self):
        assert ReminderFieldExtractor.extract_time("call mom tomorrow") is None


class TestNormalizeTime:
    """Tests for the 12h to 24h conversion."""

    def test_minutes_out_of_range(self):
        assert ReminderFieldExtractor.normalize_time("3", "75", None) is None

    def test_midnight_and_noon(self):
        assert ReminderFieldExtractor.normalize_time("12", None, "am") == "00:00"
        assert ReminderFieldExtractor.normalize_time("12", None, "PM") == "12:00"


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Remind me to call", True),
            ("add a REMINDER", True),
            ("remember the milk", False),
            ("", False),
        ],
    )
    def test_is_reminder_request(self, text, expected):
        assert is_reminder_request(text) is expected

    def test_format_confirmation(self):
        message = format_confirmation("call mom", "2025-01-16", "15:00")
        assert message == (
            'I\'ve created a reminder for "call mom" on 1/16/2025 at 3:00 PM. You can see it in the Reminders tab!'
        )
