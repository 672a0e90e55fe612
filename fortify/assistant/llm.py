"""Completion provider abstractions."""

from __future__ import annotations

import json
import logging
import re
import urllib.error
import urllib.request
from collections.abc import Iterable

from .config import LLMConfig

ERROR_RESPONSE = "Sorry, I encountered an error. Please try again."

# Keywords are regex fragments anchored at a word start.
_FALLBACK_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("hello", r"hi\b"),
        "Hello! I'm your AI assistant. I'm here to help with your daily needs. How can I assist you today?",
    ),
    (
        ("medication", "medicine"),
        "I can help you set up medication reminders. Please use the Reminders tab to create a reminder "
        "for taking your medications at the right time.",
    ),
    (
        ("appointment", "doctor"),
        "I can help you remember appointments. Use the Reminders tab to add your doctor's appointments "
        "or other important events.",
    ),
    (
        ("technology", "computer"),
        "I'm here to help explain technology in simple terms. Feel free to ask me about using your "
        "computer, phone, or other devices.",
    ),
    (
        ("health", "wellness"),
        "I can provide general wellness information, but always consult with your healthcare provider "
        "for medical advice.",
    ),
)

DEFAULT_FALLBACK = (
    "I'm here to help! I can assist with reminders, explain technology, answer general questions, "
    "and provide support for daily living. What would you like to know?"
)


def fallback_response(message: str) -> str:
    """Pick a canned reply for when no language model is reachable."""
    lowered = (message or "").lower()
    for keywords, reply in _FALLBACK_RULES:
        if any(re.search(rf"\b{keyword}", lowered) for keyword in keywords):
            return reply
    return DEFAULT_FALLBACK


def build_messages(system_prompt: str, message: str, history: Iterable[dict[str, str]]) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt.strip()}]
    for entry in history:
        role = entry.get("role")
        content = entry.get("content")
        if role in {"user", "assistant"} and isinstance(content, str) and content:
            messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": message.strip()})
    return messages


class CompletionProvider:
    def complete(self, message: str, history: Iterable[dict[str, str]] = ()) -> str:
        raise NotImplementedError


class FallbackProvider(CompletionProvider):
    """Answer from the canned reply table only."""

    def complete(self, message: str, history: Iterable[dict[str, str]] = ()) -> str:
        return fallback_response(message)


class OpenAICompatibleProvider(CompletionProvider):
    """Call OpenAI-compatible chat completion endpoints (OpenAI, Groq)."""

    def __init__(
        self,
        config: LLMConfig,
        *,
        model: str,
        api_key: str | None,
        base_url: str,
        timeout: int,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._logger = logger or logging.getLogger(__name__)

    def complete(self, message: str, history: Iterable[dict[str, str]] = ()) -> str:
        payload = self._build_payload(message, list(history))
        try:
            return self._call_api(payload)
        except Exception as exc:
            self._logger.error("Completion call failed: %s", exc, exc_info=True)
            return fallback_response(message)

    def _build_payload(self, message: str, history: list[dict[str, str]]) -> dict:
        return {
            "model": self.model,
            "messages": build_messages(self.config.system_prompt, message, history),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

    def _call_api(self, payload: dict) -> str:
        if not self.api_key:
            raise RuntimeError("API key is not set")

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            data=data,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            raise RuntimeError(f"Completion HTTP error: {exc.code}") from exc

        parsed = json.loads(body)
        choices = parsed.get("choices") or []
        if not choices:
            raise RuntimeError("Completion response missing choices")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise RuntimeError("Completion response missing content")
        return str(content).strip()


def build_completion_provider(config: LLMConfig, logger: logging.Logger | None = None) -> CompletionProvider:
    provider = (config.provider or "").strip().lower()
    if provider == "groq" and config.groq_api_key:
        return OpenAICompatibleProvider(
            config,
            model=config.groq_model,
            api_key=config.groq_api_key,
            base_url=config.groq_base_url,
            timeout=config.groq_timeout,
            logger=logger,
        )
    if provider == "openai" and config.openai_api_key:
        return OpenAICompatibleProvider(
            config,
            model=config.openai_model,
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            timeout=config.openai_timeout,
            logger=logger,
        )
    return FallbackProvider()
