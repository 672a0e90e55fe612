"""Async client for the FORTify REST API."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import httpx

from .reminder_store import Reminder


class ApiClientError(RuntimeError):
    """Generic REST API failure (network, server error, malformed body)."""


class ApiNotFoundError(ApiClientError):
    """Raised when the API returns 404."""


@dataclass(frozen=True)
class ChatResponse:
    response: str
    timestamp: str
    reminder: Reminder | None = None


@dataclass(slots=True)
class FortifyApiClient:
    base_url: str
    timeout: float = 15.0
    transport: httpx.AsyncBaseTransport | None = None
    _client: httpx.AsyncClient = field(init=False, repr=False)
    _closed: bool = field(init=False, default=True, repr=False)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("API base URL is not configured")
        self._client = httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
            transport=self.transport,
        )
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    async def chat(self, message: str, history: Iterable[dict[str, str]] = ()) -> ChatResponse:
        payload = {"message": message, "conversationHistory": list(history)}
        data = await self._request("POST", "/api/chat", json_payload=payload)
        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise ApiClientError("Chat response missing text")
        reminder_payload = data.get("reminder")
        reminder = Reminder.from_dict(reminder_payload) if isinstance(reminder_payload, dict) else None
        return ChatResponse(
            response=data["response"],
            timestamp=str(data.get("timestamp") or ""),
            reminder=reminder,
        )

    async def list_reminders(self) -> list[Reminder]:
        data = await self._request("GET", "/api/reminders")
        if not isinstance(data, list):
            return []
        return [Reminder.from_dict(item) for item in data if isinstance(item, dict)]

    async def create_reminder(self, title: str, time: str, date: str, description: str = "") -> Reminder:
        payload = {"title": title, "time": time, "date": date, "description": description}
        data = await self._request("POST", "/api/reminders", json_payload=payload)
        return Reminder.from_dict(data)

    async def set_completed(self, reminder_id: str, completed: bool) -> Reminder:
        data = await self._request("PUT", f"/api/reminders/{reminder_id}", json_payload={"completed": completed})
        return Reminder.from_dict(data)

    async def delete_reminder(self, reminder_id: str) -> None:
        await self._request("DELETE", f"/api/reminders/{reminder_id}")

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/api/health")

    async def _request(self, method: str, path: str, *, json_payload: Any | None = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json_payload)
        except httpx.HTTPError as exc:
            logging.getLogger(__name__).warning("API %s %s failed: %s", method, path, exc)
            raise ApiClientError(f"API request failed: {exc}") from exc
        if response.status_code == 404:
            raise ApiNotFoundError(_error_detail(response) or f"{path} not found")
        if response.status_code >= 400:
            detail = _error_detail(response) or response.text
            raise ApiClientError(f"API error {response.status_code}: {detail}")
        try:
            return response.json()
        except ValueError as exc:
            raise ApiClientError("API returned invalid JSON") from exc


def _error_detail(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str):
            return error
    return None
