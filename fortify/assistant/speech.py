"""Speech I/O capabilities consumed by the dialogue coordinator.

Two independent event sources:

- MicrophoneSession: single-utterance speech recognition. Each ``start()``
  captures at most one finalized transcript and then ends. A no-speech
  watchdog force-stops a capture that produced nothing within the timeout.
- SpeechSynthesizer: text-to-speech playback. A new ``speak()`` cancels the
  utterance in flight and lets the cancellation settle before starting.

Concrete backends subclass these and report progress through the protected
``_emit_*`` helpers, tagging every report with the capture/utterance id they
were started with so late reports from an abandoned run are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

LOGGER = logging.getLogger(__name__)

DEFAULT_NO_SPEECH_TIMEOUT = 30.0
DEFAULT_SETTLE_DELAY = 0.1


class SpeechUnavailableError(RuntimeError):
    """Raised when speech recognition or synthesis cannot be used at all."""


class MicrophoneEventKind(Enum):
    STARTED = "started"
    RESULT = "result"
    ERROR = "error"
    ENDED = "ended"


class RecognitionError(Enum):
    PERMISSION_DENIED = "permission-denied"
    NO_SPEECH = "no-speech-timeout"
    ABORTED = "aborted"
    OTHER = "other"


@dataclass(frozen=True)
class MicrophoneEvent:
    kind: MicrophoneEventKind
    text: str | None = None
    error: RecognitionError | None = None
    reason: str | None = None


class SynthesisEventKind(Enum):
    STARTED = "started"
    ENDED = "ended"
    ERROR = "error"


@dataclass(frozen=True)
class SynthesisEvent:
    kind: SynthesisEventKind
    error: str | None = None


@dataclass(frozen=True)
class SpeechOptions:
    rate: float = 1.3
    pitch: float = 1.15
    volume: float = 0.95


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


MicrophoneListener = Callable[[MicrophoneEvent], None]
SynthesisListener = Callable[[SynthesisEvent], None]


class MicrophoneSession:
    """Base class for single-utterance speech recognition sessions."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        no_speech_timeout: float = DEFAULT_NO_SPEECH_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.no_speech_timeout = no_speech_timeout
        self.logger = logger or LOGGER
        self._listener: MicrophoneListener | None = None
        self._active = False
        self._capture_id = 0
        self._result_seen = False
        self._watchdog: TimerHandle | None = None

    def set_listener(self, listener: MicrophoneListener | None) -> None:
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            self.logger.debug("Microphone already capturing; start ignored")
            return
        self._capture_id += 1
        self._active = True
        self._result_seen = False
        self._arm_watchdog()
        try:
            self._begin_capture(self._capture_id)
        except Exception:
            self._active = False
            self._cancel_watchdog()
            raise

    def stop(self) -> None:
        """End the current capture now; ENDED is emitted before returning."""
        if not self._active:
            return
        capture_id = self._capture_id
        self._end_capture(capture_id)
        self._emit_ended(capture_id)

    # Backend hooks ----------------------------------------------------------

    def _begin_capture(self, capture_id: int) -> None:
        raise NotImplementedError

    def _end_capture(self, capture_id: int) -> None:
        raise NotImplementedError

    # Event helpers ----------------------------------------------------------

    def _is_current(self, capture_id: int) -> bool:
        return self._active and capture_id == self._capture_id

    def _emit_started(self, capture_id: int) -> None:
        if self._is_current(capture_id):
            self._dispatch(MicrophoneEvent(MicrophoneEventKind.STARTED))

    def _emit_result(self, capture_id: int, text: str) -> None:
        if not self._is_current(capture_id) or self._result_seen:
            return
        self._result_seen = True
        self._cancel_watchdog()
        self._dispatch(MicrophoneEvent(MicrophoneEventKind.RESULT, text=text))

    def _emit_error(self, capture_id: int, error: RecognitionError, reason: str | None = None) -> None:
        if self._is_current(capture_id):
            self._dispatch(MicrophoneEvent(MicrophoneEventKind.ERROR, error=error, reason=reason))

    def _emit_ended(self, capture_id: int) -> None:
        if not self._is_current(capture_id):
            return
        self._active = False
        self._cancel_watchdog()
        self._dispatch(MicrophoneEvent(MicrophoneEventKind.ENDED))

    def _dispatch(self, event: MicrophoneEvent) -> None:
        if self._listener:
            self._listener(event)

    # Watchdog ---------------------------------------------------------------

    def _arm_watchdog(self) -> None:
        self._cancel_watchdog()
        capture_id = self._capture_id
        self._watchdog = self.scheduler.call_later(
            self.no_speech_timeout,
            lambda: self._on_watchdog(capture_id),
        )

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _on_watchdog(self, capture_id: int) -> None:
        self._watchdog = None
        if not self._is_current(capture_id) or self._result_seen:
            return
        self.logger.info("No speech detected for %.0f seconds - turning off microphone", self.no_speech_timeout)
        self._end_capture(capture_id)
        self._emit_ended(capture_id)


class SpeechSynthesizer:
    """Base class for speech playback sinks.

    ``cancel()`` is silent: it stops output without emitting ENDED or ERROR.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        logger: logging.Logger | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.settle_delay = settle_delay
        self.logger = logger or LOGGER
        self._listener: SynthesisListener | None = None
        self._speaking = False
        self._utterance_id = 0
        self._pending: TimerHandle | None = None

    def set_listener(self, listener: SynthesisListener | None) -> None:
        self._listener = listener

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def busy(self) -> bool:
        return self._speaking or self._pending is not None

    def speak(self, text: str, options: SpeechOptions | None = None) -> None:
        options = options or SpeechOptions()
        needs_settle = self.busy
        self.cancel()
        self._utterance_id += 1
        utterance_id = self._utterance_id
        if needs_settle and self.settle_delay > 0:
            self._pending = self.scheduler.call_later(
                self.settle_delay,
                lambda: self._begin(utterance_id, text, options),
            )
        else:
            self._begin(utterance_id, text, options)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        if self._speaking:
            self._speaking = False
            self._stop_output(self._utterance_id)

    def _begin(self, utterance_id: int, text: str, options: SpeechOptions) -> None:
        self._pending = None
        if utterance_id != self._utterance_id:
            return
        self._speaking = True
        self._dispatch(SynthesisEvent(SynthesisEventKind.STARTED))
        try:
            self._start_output(utterance_id, text, options)
        except Exception as exc:
            self.logger.error("Speech synthesis failed to start: %s", exc, exc_info=True)
            self._emit_error(utterance_id, str(exc))

    # Backend hooks ----------------------------------------------------------

    def _start_output(self, utterance_id: int, text: str, options: SpeechOptions) -> None:
        raise NotImplementedError

    def _stop_output(self, utterance_id: int) -> None:
        raise NotImplementedError

    # Event helpers ----------------------------------------------------------

    def _emit_ended(self, utterance_id: int) -> None:
        if not self._speaking or utterance_id != self._utterance_id:
            return
        self._speaking = False
        self._dispatch(SynthesisEvent(SynthesisEventKind.ENDED))

    def _emit_error(self, utterance_id: int, error: str) -> None:
        if not self._speaking or utterance_id != self._utterance_id:
            return
        self._speaking = False
        self._dispatch(SynthesisEvent(SynthesisEventKind.ERROR, error=error))

    def _dispatch(self, event: SynthesisEvent) -> None:
        if self._listener:
            self._listener(event)


# ============================================================================
# Voice selection
# ============================================================================


@dataclass(frozen=True)
class VoiceInfo:
    name: str
    language: str | None = None
    default: bool = False


_PREFERRED_VOICE_MARKERS = (
    "neural",
    "natural",
    "enhanced",
    "premium",
    "samantha",
    "karen",
    "victoria",
    "susan",
    "zira",
    "hazel",
)
_FEMALE_MARKERS = ("female", "woman", "girl")


def _is_high_quality(name: str) -> bool:
    lowered = name.lower()
    if ("google" in lowered or "microsoft" in lowered) and "US" in name:
        return True
    return "azure" in lowered or "wavenet" in lowered


def select_voice(voices: Sequence[VoiceInfo]) -> VoiceInfo | None:
    """Pick the most natural sounding voice available.

    Preference order: enhanced/neural/natural or named expressive voices,
    then high-quality cloud voices, then any voice flagged female, then the
    platform default, then the first voice listed.
    """
    if not voices:
        return None
    tiers: tuple[Callable[[VoiceInfo], bool], ...] = (
        lambda voice: any(marker in voice.name.lower() for marker in _PREFERRED_VOICE_MARKERS),
        lambda voice: _is_high_quality(voice.name),
        lambda voice: any(marker in voice.name.lower() for marker in _FEMALE_MARKERS),
        lambda voice: voice.default,
    )
    for matches in tiers:
        for voice in voices:
            if matches(voice):
                return voice
    return voices[0]
