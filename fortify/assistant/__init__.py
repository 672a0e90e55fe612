"""
Reminder and voice dialogue implementation for FORTify

This package provides both halves of the assistant:

- REST backend: chat endpoint, in-memory reminder store, health check
- Reminder extraction: natural-language title/date/time field parsing
- Completion service: OpenAI-compatible chat completion (OpenAI or Groq)
- Voice client: intent classification and the dialogue coordinator that
  owns the microphone/speech lifecycle
- Speech I/O: Wyoming protocol STT/TTS backends with local capture/playback

Key modules:
- config: Configuration management from environment variables
- reminder_fields: Reminder draft extraction from utterances
- reminder_store: Process-lifetime reminder CRUD
- chat_service: Server-side /api/chat handling
- api_server: Threaded HTTP server for the REST API
- llm: Completion providers and the offline fallback replies
- api_client: Async client used by the voice client
- intents: Utterance classification
- speech: Microphone/synthesizer base classes and voice selection
- audio: arecord capture, player subprocesses, phrase recording
- wyoming: Wyoming STT/TTS helpers and speech backends
- dialogue: Listening/speaking state machine
"""

from __future__ import annotations

__all__ = [
    "config",
    "reminder_fields",
    "reminder_store",
    "llm",
    "chat_service",
    "api_server",
    "api_client",
    "intents",
    "speech",
    "audio",
    "wyoming",
    "dialogue",
]
