"""Dialogue coordinator for the hands-free voice client.

The coordinator owns the listening/speaking state and the restart policy.
It consumes events from a ``MicrophoneSession`` and a ``SpeechSynthesizer``,
classifies each transcript, dispatches the matching action and decides
whether the microphone reopens afterwards.

States::

    IDLE ──start_listening()──▶ LISTENING ──ENDED, pending speech──▶ SPEAKING
     ▲                              │                                  │
     │                ENDED, continuing intent                  speech ended,
     │                              ▼                            continuing
     └──────── ENDED, stop ── RESTART_PENDING ◀────────────────────────┘
                                    │ 500 ms
                                    ▼
                                LISTENING

The microphone and the synthesizer are never active at the same time: speech
only starts once the capture has ended, and the microphone only opens once
synthesis has been cancelled or has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .api_client import ApiClientError, ChatResponse
from .intents import (
    CreateCalendarEvent,
    CreateReminder,
    Intent,
    MicrophoneControl,
    Navigate,
    Unrecognized,
    classify_utterance,
    format_help_message,
    keeps_listening,
)
from .reminder_store import Reminder
from .speech import (
    MicrophoneEvent,
    MicrophoneEventKind,
    MicrophoneSession,
    RecognitionError,
    Scheduler,
    SpeechOptions,
    SpeechSynthesizer,
    SpeechUnavailableError,
    SynthesisEvent,
    SynthesisEventKind,
    TimerHandle,
)

LOGGER = logging.getLogger(__name__)

MODE_NAVIGATION = "navigation"
MODE_CHAT = "chat"

PERMISSION_DENIED_MESSAGE = "Microphone access denied. Please allow microphone access and try again."
RECOGNITION_ERROR_MESSAGE = "Speech recognition error: {reason}. Please try again."
SPEECH_UNAVAILABLE_MESSAGE = "Speech recognition is not available on this device."
REQUEST_FAILED_MESSAGE = "Sorry, I'm having trouble connecting right now. Please try again."


class DialogueState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"
    RESTART_PENDING = "restart_pending"


class ChatClient(Protocol):
    async def chat(self, message: str, history: list[dict[str, str]]) -> ChatResponse: ...


@dataclass(frozen=True)
class DialogueSnapshot:
    state: DialogueState
    mode: str
    manually_stopped: bool
    restart_pending: bool
    continue_after_capture: bool
    pending_speech: str | None
    continue_after_speech: bool
    requests_in_flight: int
    active_view: str | None
    last_intent: Intent | None


class DialogueCoordinator:
    """Drive one microphone and one speech sink through a voice conversation."""

    def __init__(
        self,
        *,
        microphone: MicrophoneSession,
        synthesizer: SpeechSynthesizer,
        scheduler: Scheduler,
        chat_client: ChatClient,
        mode: str = MODE_NAVIGATION,
        restart_delay: float = 0.5,
        speech_options: SpeechOptions | None = None,
        on_navigate: Callable[[str], None] | None = None,
        on_notice: Callable[[str], None] | None = None,
        on_reminder_created: Callable[[Reminder], None] | None = None,
        spawn: Callable[[Coroutine[Any, Any, None]], Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if mode not in {MODE_NAVIGATION, MODE_CHAT}:
            raise ValueError(f"Unknown dialogue mode: {mode}")
        self.microphone = microphone
        self.synthesizer = synthesizer
        self.scheduler = scheduler
        self.chat_client = chat_client
        self.restart_delay = restart_delay
        self.speech_options = speech_options or SpeechOptions()
        self.logger = logger or LOGGER
        self._on_navigate = on_navigate
        self._on_notice = on_notice
        self._on_reminder_created = on_reminder_created
        self._spawn = spawn or self._spawn_task
        self._tasks: set[asyncio.Task[None]] = set()

        self._mode = mode
        self._state = DialogueState.IDLE
        self._manually_stopped = False
        self._restart_handle: TimerHandle | None = None
        self._continue_after_capture = False
        self._pending_speech: tuple[str, bool] | None = None
        self._continue_after_speech = False
        self._requests_in_flight = 0
        self._epoch = 0
        self._active_view: str | None = None
        self._last_intent: Intent | None = None
        self._history: list[dict[str, str]] = []

        microphone.set_listener(self.handle_microphone_event)
        synthesizer.set_listener(self.handle_synthesis_event)

    # ========================================================================
    # Public surface
    # ========================================================================

    @property
    def state(self) -> DialogueState:
        return self._state

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_listening(self) -> bool:
        return self._state == DialogueState.LISTENING

    @property
    def is_speaking(self) -> bool:
        return self._state == DialogueState.SPEAKING

    @property
    def history(self) -> list[dict[str, str]]:
        return list(self._history)

    def snapshot(self) -> DialogueSnapshot:
        return DialogueSnapshot(
            state=self._state,
            mode=self._mode,
            manually_stopped=self._manually_stopped,
            restart_pending=self._restart_handle is not None,
            continue_after_capture=self._continue_after_capture,
            pending_speech=self._pending_speech[0] if self._pending_speech else None,
            continue_after_speech=self._continue_after_speech,
            requests_in_flight=self._requests_in_flight,
            active_view=self._active_view,
            last_intent=self._last_intent,
        )

    def set_mode(self, mode: str) -> None:
        if mode not in {MODE_NAVIGATION, MODE_CHAT}:
            raise ValueError(f"Unknown dialogue mode: {mode}")
        if mode != self._mode:
            self.logger.info("Voice mode: %s -> %s", self._mode, mode)
            self._mode = mode

    def start_listening(self) -> None:
        """Open the microphone at the user's request."""
        if self._state == DialogueState.LISTENING and self.microphone.active:
            return
        self._cancel_restart()
        if self.synthesizer.busy:
            self.synthesizer.cancel()
        self._pending_speech = None
        self._open_microphone()

    def stop_listening(self) -> None:
        """Stop listening and speaking; no automatic restart follows."""
        self._epoch += 1
        self._cancel_restart()
        self._pending_speech = None
        self._continue_after_capture = False
        self._continue_after_speech = False
        if self.synthesizer.busy:
            self.synthesizer.cancel()
        if self.microphone.active:
            self._manually_stopped = True
            self.microphone.stop()
        self._set_state(DialogueState.IDLE)

    def toggle_listening(self) -> bool:
        """Stop everything unless idle, otherwise open the microphone.

        Returns True when the microphone was opened.
        """
        if self._state is not DialogueState.IDLE:
            self.stop_listening()
            return False
        self.start_listening()
        return True

    def speak(self, text: str, *, continue_listening: bool = False) -> None:
        """Queue a spoken message, yielding the microphone first if needed."""
        self._queue_speech(text, continue_listening)

    async def aclose(self) -> None:
        self.stop_listening()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ========================================================================
    # Microphone events
    # ========================================================================

    def handle_microphone_event(self, event: MicrophoneEvent) -> None:
        if event.kind == MicrophoneEventKind.STARTED:
            self.logger.debug("Microphone started")
        elif event.kind == MicrophoneEventKind.RESULT:
            self._handle_result(event.text or "")
        elif event.kind == MicrophoneEventKind.ERROR:
            self._handle_recognition_error(event.error or RecognitionError.OTHER, event.reason)
        elif event.kind == MicrophoneEventKind.ENDED:
            self._handle_capture_ended()

    def _handle_result(self, transcript: str) -> None:
        if self._state == DialogueState.SPEAKING:
            # Barge-in: the user talked over the response.
            self.logger.info("Speech interrupted by user; discarding transcript")
            self.synthesizer.cancel()
            self._pending_speech = None
            self._continue_after_speech = False
            if self.microphone.active:
                self._set_state(DialogueState.LISTENING)
            else:
                # The transcript arrived from a finished capture; open a fresh one
                # so the follow-up utterance is heard.
                self._open_microphone()
            self._continue_after_capture = True
            return
        if self._state != DialogueState.LISTENING:
            self.logger.debug("Ignoring transcript in state %s", self._state.value)
            return
        text = transcript.strip()
        if not text:
            return

        intent = classify_utterance(text)
        self._last_intent = intent
        self.logger.info("Voice command %r -> %s", text, type(intent).__name__)

        self._act(intent)
        self._continue_after_capture = self._continues(intent)
        if isinstance(intent, Unrecognized) and self._mode == MODE_NAVIGATION:
            self._notify(format_help_message(text))

    def _act(self, intent: Intent) -> None:
        if isinstance(intent, Navigate):
            if intent.target:
                self._active_view = intent.target
                if self._on_navigate:
                    self._on_navigate(intent.target)
        elif isinstance(intent, (CreateReminder, CreateCalendarEvent)):
            self._forward(intent.text, conversational=False, continue_after=True)
        elif isinstance(intent, MicrophoneControl):
            if not intent.enable:
                self._manually_stopped = True
        elif isinstance(intent, Unrecognized) and self._mode == MODE_CHAT:
            self._forward(intent.text, conversational=True, continue_after=True)

    def _continues(self, intent: Intent) -> bool:
        if isinstance(intent, Unrecognized):
            return self._mode == MODE_CHAT
        return keeps_listening(intent)

    def _handle_recognition_error(self, error: RecognitionError, reason: str | None) -> None:
        if self._state != DialogueState.LISTENING:
            return
        if error == RecognitionError.PERMISSION_DENIED:
            self.logger.warning("Microphone permission denied")
            self._notify(PERMISSION_DENIED_MESSAGE)
        elif error == RecognitionError.OTHER:
            self.logger.warning("Speech recognition error: %s", reason)
            self._notify(RECOGNITION_ERROR_MESSAGE.format(reason=reason or "unknown"))
        else:
            self.logger.debug("Recognition ended without speech (%s)", error.value)
        self._continue_after_capture = False
        self._set_state(DialogueState.IDLE)
        if self.microphone.active:
            self.microphone.stop()
        if self._pending_speech:
            text, _ = self._pending_speech
            self._pending_speech = None
            self._speak(text, continue_after=False)

    def _handle_capture_ended(self) -> None:
        if self._manually_stopped:
            self._manually_stopped = False
            self._continue_after_capture = False
            self._cancel_restart()
            pending = self._pending_speech
            self._pending_speech = None
            if pending:
                self._speak(pending[0], continue_after=False)
            else:
                self._set_state(DialogueState.IDLE)
            return
        if self._state != DialogueState.LISTENING:
            return
        if self._pending_speech:
            text, continue_after = self._pending_speech
            self._pending_speech = None
            self._speak(text, continue_after=continue_after)
            return
        if self._continue_after_capture:
            self._schedule_restart()
        else:
            self._set_state(DialogueState.IDLE)

    # ========================================================================
    # Synthesis events
    # ========================================================================

    def handle_synthesis_event(self, event: SynthesisEvent) -> None:
        if event.kind == SynthesisEventKind.STARTED:
            self.logger.debug("Speech started")
            return
        if event.kind == SynthesisEventKind.ERROR:
            self.logger.warning("Speech synthesis error: %s", event.error)
        if self._state != DialogueState.SPEAKING:
            return
        if self._continue_after_speech:
            self._schedule_restart()
        else:
            self._set_state(DialogueState.IDLE)

    # ========================================================================
    # Outbound requests
    # ========================================================================

    def _forward(self, text: str, *, conversational: bool, continue_after: bool) -> None:
        history = list(self._history) if conversational else []
        self._requests_in_flight += 1
        self._spawn(
            self._send(text, history, epoch=self._epoch, conversational=conversational, continue_after=continue_after)
        )

    async def _send(
        self,
        text: str,
        history: list[dict[str, str]],
        *,
        epoch: int,
        conversational: bool,
        continue_after: bool,
    ) -> None:
        try:
            reply = await self.chat_client.chat(text, history)
        except ApiClientError as exc:
            self.logger.warning("Chat request failed: %s", exc)
            self._notify(REQUEST_FAILED_MESSAGE)
            return
        finally:
            self._requests_in_flight -= 1

        if conversational:
            self._history.append({"role": "user", "content": text})
            self._history.append({"role": "assistant", "content": reply.response})
        if reply.reminder and self._on_reminder_created:
            self._on_reminder_created(reply.reminder)
        self._notify(reply.response)
        # A manual stop since the request went out cancels the hands-free follow-up.
        self._queue_speech(reply.response, continue_after and epoch == self._epoch)

    # ========================================================================
    # Internals
    # ========================================================================

    def _queue_speech(self, text: str, continue_after: bool) -> None:
        if self._state == DialogueState.LISTENING:
            self._pending_speech = (text, continue_after)
            if self.microphone.active:
                # Yield the microphone; the ENDED handler speaks the queued text.
                self.microphone.stop()
            else:
                self._handle_capture_ended()
            return
        self._speak(text, continue_after=continue_after)

    def _speak(self, text: str, *, continue_after: bool) -> None:
        self._cancel_restart()
        self._continue_after_speech = continue_after
        self._set_state(DialogueState.SPEAKING)
        self.synthesizer.speak(text, self.speech_options)

    def _open_microphone(self) -> None:
        self._continue_after_capture = False
        self._manually_stopped = False
        self._set_state(DialogueState.LISTENING)
        try:
            self.microphone.start()
        except SpeechUnavailableError as exc:
            self.logger.error("Microphone unavailable: %s", exc)
            self._notify(SPEECH_UNAVAILABLE_MESSAGE)
            self._set_state(DialogueState.IDLE)

    def _schedule_restart(self) -> None:
        if self._restart_handle is not None:
            return
        self._set_state(DialogueState.RESTART_PENDING)
        self._restart_handle = self.scheduler.call_later(self.restart_delay, self._restart)

    def _restart(self) -> None:
        self._restart_handle = None
        if self._state != DialogueState.RESTART_PENDING:
            return
        self.logger.debug("Reopening microphone")
        self._open_microphone()

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None

    def _set_state(self, state: DialogueState) -> None:
        if state != self._state:
            self.logger.debug("Dialogue state: %s -> %s", self._state.value, state.value)
            self._state = state

    def _notify(self, message: str) -> None:
        if self._on_notice:
            self._on_notice(message)

    def _spawn_task(self, coro: Coroutine[Any, Any, None]) -> Awaitable[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
