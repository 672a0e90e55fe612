"""Configuration helpers for the FORTify assistant."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from fortify.utils import parse_float, parse_int, split_csv

DEFAULT_PORT = 5000
DEFAULT_API_URL = "http://127.0.0.1:5000"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
LLM_PROVIDERS = {"openai", "groq", "none"}
VOICE_MODES = {"navigation", "chat"}


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class MicConfig:
    command: list[str]
    rate: int
    width: int
    channels: int
    chunk_ms: int

    @property
    def bytes_per_chunk(self) -> int:
        samples = int(self.rate * (self.chunk_ms / 1000))
        return samples * self.width * self.channels


@dataclass(frozen=True)
class PhraseConfig:
    min_seconds: float
    max_seconds: float
    silence_ms: int
    rms_floor: int


@dataclass(frozen=True)
class ServerConfig:
    bind_address: str
    port: int
    allowed_origins: tuple[str, ...] = ("*",)


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    system_prompt: str
    openai_model: str
    openai_api_key: str | None
    openai_base_url: str
    openai_timeout: int
    groq_model: str
    groq_api_key: str | None
    groq_base_url: str
    groq_timeout: int
    max_tokens: int = 200
    temperature: float = 0.7


@dataclass(frozen=True)
class VoiceConfig:
    api_url: str
    mode: Literal["navigation", "chat"]
    language: str
    restart_delay: float
    no_speech_timeout: float
    speech_settle_delay: float
    rate: float
    pitch: float
    volume: float
    tts_voice: str | None


@dataclass(frozen=True)
class AssistantConfig:
    server: ServerConfig
    llm: LLMConfig
    voice: VoiceConfig
    mic: MicConfig
    phrase: PhraseConfig
    stt_endpoint: WyomingEndpoint
    tts_endpoint: WyomingEndpoint

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AssistantConfig:
        source = os.environ if env is None else env

        origins = tuple(split_csv(source.get("FORTIFY_ALLOWED_ORIGINS"))) or ("*",)
        server = ServerConfig(
            bind_address=source.get("FORTIFY_BIND_ADDRESS", "0.0.0.0"),
            port=parse_int(source.get("PORT"), DEFAULT_PORT),
            allowed_origins=origins,
        )

        system_prompt = source.get("FORTIFY_SYSTEM_PROMPT", "").strip()
        prompt_file = source.get("FORTIFY_SYSTEM_PROMPT_FILE")
        if not system_prompt and prompt_file:
            candidate = Path(prompt_file)
            if candidate.is_file():
                system_prompt = candidate.read_text(encoding="utf-8").strip()
        if not system_prompt:
            system_prompt = DEFAULT_SYSTEM_PROMPT

        groq_api_key = _strip_or_none(source.get("GROQ_API_KEY"))
        default_provider = "groq" if groq_api_key else "openai"
        llm = LLMConfig(
            provider=_normalize_choice(source.get("FORTIFY_LLM_PROVIDER"), LLM_PROVIDERS, default_provider),
            system_prompt=system_prompt,
            openai_model=source.get("OPENAI_MODEL", "gpt-3.5-turbo"),
            openai_api_key=_strip_or_none(source.get("OPENAI_API_KEY")),
            openai_base_url=source.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            openai_timeout=parse_int(source.get("OPENAI_TIMEOUT_SECONDS"), 30),
            groq_model=source.get("GROQ_MODEL", "llama-3.1-8b-instant"),
            groq_api_key=groq_api_key,
            groq_base_url=source.get("GROQ_BASE_URL", GROQ_BASE_URL),
            groq_timeout=parse_int(source.get("GROQ_TIMEOUT_SECONDS"), 30),
            max_tokens=parse_int(source.get("FORTIFY_LLM_MAX_TOKENS"), 200),
            temperature=parse_float(source.get("FORTIFY_LLM_TEMPERATURE"), 0.7),
        )

        voice = VoiceConfig(
            api_url=(source.get("FORTIFY_API_URL") or DEFAULT_API_URL).rstrip("/"),
            mode=_normalize_choice(source.get("FORTIFY_VOICE_MODE"), VOICE_MODES, "navigation"),  # type: ignore[arg-type]
            language=source.get("FORTIFY_VOICE_LANGUAGE", "en-US"),
            restart_delay=max(0.0, parse_float(source.get("FORTIFY_RESTART_DELAY_SECONDS"), 0.5)),
            no_speech_timeout=max(1.0, parse_float(source.get("FORTIFY_NO_SPEECH_TIMEOUT_SECONDS"), 30.0)),
            speech_settle_delay=max(0.0, parse_float(source.get("FORTIFY_SPEECH_SETTLE_SECONDS"), 0.1)),
            rate=parse_float(source.get("FORTIFY_SPEECH_RATE"), 1.3),
            pitch=parse_float(source.get("FORTIFY_SPEECH_PITCH"), 1.15),
            volume=max(0.0, min(1.0, parse_float(source.get("FORTIFY_SPEECH_VOLUME"), 0.95))),
            tts_voice=_strip_or_none(source.get("FORTIFY_TTS_VOICE")),
        )

        mic_cmd = shlex.split(
            source.get(
                "FORTIFY_MIC_CMD",
                "arecord -q -t raw -f S16_LE -c 1 -r 16000 -",
            )
        )
        mic = MicConfig(
            command=mic_cmd,
            rate=parse_int(source.get("FORTIFY_MIC_RATE"), 16000),
            width=parse_int(source.get("FORTIFY_MIC_WIDTH"), 2),
            channels=parse_int(source.get("FORTIFY_MIC_CHANNELS"), 1),
            chunk_ms=parse_int(source.get("FORTIFY_MIC_CHUNK_MS"), 30),
        )
        phrase = PhraseConfig(
            min_seconds=parse_float(source.get("FORTIFY_MIN_PHRASE_SECONDS"), 1.0),
            max_seconds=parse_float(source.get("FORTIFY_MAX_PHRASE_SECONDS"), 10.0),
            silence_ms=parse_int(source.get("FORTIFY_SILENCE_MS"), 1200),
            rms_floor=parse_int(source.get("FORTIFY_RMS_THRESHOLD"), 120),
        )

        stt_endpoint = WyomingEndpoint(
            host=source.get("WYOMING_WHISPER_HOST", "127.0.0.1"),
            port=parse_int(source.get("WYOMING_WHISPER_PORT"), 10300),
            model=source.get("FORTIFY_STT_MODEL"),
        )
        tts_endpoint = WyomingEndpoint(
            host=source.get("WYOMING_PIPER_HOST", "127.0.0.1"),
            port=parse_int(source.get("WYOMING_PIPER_PORT"), 10200),
            model=None,
        )

        return AssistantConfig(
            server=server,
            llm=llm,
            voice=voice,
            mic=mic,
            phrase=phrase,
            stt_endpoint=stt_endpoint,
            tts_endpoint=tts_endpoint,
        )


DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant designed specifically for senior citizens. Your responses should be:

1. Clear and simple language
2. Professional and respectful (never use terms like "sweetie", "dear", or "honey")
3. Avoid complex medical advice
4. Focus on daily living assistance
5. Be warm but professional
6. Keep responses SHORT and concise - maximum 2 sentences
7. Ask only ONE question at a time, never multiple questions
8. Get straight to the point

You can help with:
- Daily reminders and scheduling
- Simple explanations of technology
- General questions about health and wellness
- Memory assistance
- Social connection topics
- Basic problem-solving

Always maintain a respectful, professional tone. Keep responses brief and focused."""


def _normalize_choice(value: str | None, allowed: set[str], default: str) -> str:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in allowed:
        return lowered
    return default
