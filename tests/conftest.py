"""Shared test fixtures and configuration for the FORTify test suite.

This module provides reusable fixtures for common test scenarios including:
- A manually driven scheduler for timer-based behaviour
- Scriptable microphone and speech synthesizer fakes
- LLM configuration factories
- Reminder store helpers
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from unittest.mock import Mock

import pytest
from fortify.assistant.config import LLMConfig
from fortify.assistant.reminder_store import ReminderStore
from fortify.assistant.speech import MicrophoneSession, RecognitionError, SpeechOptions, SpeechSynthesizer

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Scheduler / Speech Fakes
# ============================================================================


class ManualTimer:
    def __init__(self, scheduler: ManualScheduler, due: float, callback: Callable[[], None]) -> None:
        self.scheduler = scheduler
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test calls ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self, self.now + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [timer for timer in self.timers if not timer.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [timer for timer in self.pending if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda item: item.due)
            self.now = timer.due
            timer.cancelled = True
            timer.callback()
        self.now = target


class FakeMicrophone(MicrophoneSession):
    """Microphone session driven entirely by the test."""

    def __init__(self, scheduler: ManualScheduler, **kwargs: Any) -> None:
        super().__init__(scheduler, **kwargs)
        self.start_count = 0
        self.stop_count = 0

    def _begin_capture(self, capture_id: int) -> None:
        self.start_count += 1
        self._emit_started(capture_id)

    def _end_capture(self, capture_id: int) -> None:
        self.stop_count += 1

    def hear(self, text: str) -> None:
        """Deliver a final transcript and end the capture."""
        capture_id = self._capture_id
        self._emit_result(capture_id, text)
        self._emit_ended(capture_id)

    def result_only(self, text: str) -> None:
        self._emit_result(self._capture_id, text)

    def fail(self, error: RecognitionError, reason: str | None = None) -> None:
        capture_id = self._capture_id
        self._emit_error(capture_id, error, reason)
        self._emit_ended(capture_id)

    def end(self) -> None:
        self._emit_ended(self._capture_id)


class FakeSynthesizer(SpeechSynthesizer):
    """Speech sink that records utterances and finishes on demand."""

    def __init__(self, scheduler: ManualScheduler, **kwargs: Any) -> None:
        super().__init__(scheduler, **kwargs)
        self.spoken: list[tuple[str, SpeechOptions]] = []
        self.stopped = 0

    def _start_output(self, utterance_id: int, text: str, options: SpeechOptions) -> None:
        self.spoken.append((text, options))

    def _stop_output(self, utterance_id: int) -> None:
        self.stopped += 1

    def finish(self) -> None:
        self._emit_ended(self._utterance_id)

    def fail(self, error: str = "synthesis-failed") -> None:
        self._emit_error(self._utterance_id, error)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def microphone(scheduler):
    return FakeMicrophone(scheduler)


@pytest.fixture
def synthesizer(scheduler):
    return FakeSynthesizer(scheduler)


# ============================================================================
# Backend Fixtures
# ============================================================================


@pytest.fixture
def fixed_now():
    """Wednesday 2025-01-15 at 10:00 local time."""
    return datetime(2025, 1, 15, 10, 0, 0)


@pytest.fixture
def store():
    return ReminderStore()


@pytest.fixture
def make_llm_config():
    """Factory fixture for creating LLM configs with custom overrides.

    Usage:
        config = make_llm_config(provider="groq", groq_api_key="key")
    """

    def _create_config(**overrides: Any) -> LLMConfig:
        defaults = {
            "provider": "openai",
            "system_prompt": "You are a helpful assistant.",
            "openai_model": "gpt-3.5-turbo",
            "openai_api_key": "test_key",
            "openai_base_url": "https://api.openai.com/v1",
            "openai_timeout": 30,
            "groq_model": "llama-3.1-8b-instant",
            "groq_api_key": None,
            "groq_base_url": "https://api.groq.com/openai/v1",
            "groq_timeout": 30,
        }
        defaults.update(overrides)
        return LLMConfig(**defaults)  # type: ignore[arg-type]

    return _create_config


@pytest.fixture
def speech_rig():
    """Factory producing a fresh (scheduler, microphone, synthesizer) triple."""

    def _create() -> tuple[ManualScheduler, FakeMicrophone, FakeSynthesizer]:
        clock = ManualScheduler()
        return clock, FakeMicrophone(clock), FakeSynthesizer(clock)

    return _create
