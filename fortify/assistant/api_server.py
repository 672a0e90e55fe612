"""Threaded HTTP server exposing the FORTify REST API."""

from __future__ import annotations

import json
import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import unquote

from .chat_service import ChatService, InvalidChatRequest, normalize_history
from .config import ServerConfig
from .llm import ERROR_RESPONSE
from .reminder_store import InvalidReminderError, ReminderNotFoundError, ReminderStore

LOGGER = logging.getLogger(__name__)

REMINDERS_PATH = "/api/reminders"
HEALTH_MESSAGE = "FORTif.ai Chatbot API is running"


class ApiHttpServer:
    """Serve the chat and reminder endpoints behind a lightweight HTTP server."""

    def __init__(
        self,
        *,
        store: ReminderStore,
        chat: ChatService,
        config: ServerConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.chat = chat
        self.config = config
        self.logger = logger or LOGGER
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def server_address(self) -> tuple[str, int] | None:
        if not self._server:
            return None
        host, port = self._server.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        if self._server:
            return
        handler_cls = self._build_handler()
        try:
            server = ThreadingHTTPServer((self.config.bind_address, self.config.port), handler_cls)
        except OSError as exc:  # pragma: no cover - dependant on environment
            self.logger.error("api http: failed to bind %s:%s (%s)", self.config.bind_address, self.config.port, exc)
            raise
        self._server = server
        thread = threading.Thread(target=server.serve_forever, name="fortify-api-http", daemon=True)
        thread.start()
        self._thread = thread
        host, port = self.server_address or (self.config.bind_address, self.config.port)
        origins = ", ".join(self.config.allowed_origins)
        self.logger.info("api http: serving on http://%s:%s/api (allowed origins: %s)", host, port, origins)

    def stop(self) -> None:
        server = self._server
        if not server:
            return
        self.logger.info("api http: shutting down")
        server.shutdown()
        server.server_close()
        if self._thread:
            self._thread.join(timeout=2)
        self._server = None
        self._thread = None

    def _build_handler(self):
        outer = self

        class ApiRequestHandler(BaseHTTPRequestHandler):
            def log_message(self, _format, *_args):  # noqa: D401
                return

            def _set_common_headers(self) -> None:
                origin = self.headers.get("Origin")
                allowed_origin = outer._allowed_origin(origin)
                if allowed_origin:
                    self.send_header("Access-Control-Allow-Origin", allowed_origin)
                    if allowed_origin != "*":
                        self.send_header("Vary", "Origin")
                self.send_header("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS")
                self.send_header("Access-Control-Allow-Headers", "Accept, Content-Type")
                self.send_header("Cache-Control", "no-store, max-age=0")

            def do_OPTIONS(self) -> None:  # noqa: N802
                self.send_response(HTTPStatus.NO_CONTENT)
                self._set_common_headers()
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802
                path = self._path()
                if path == "/api/health":
                    self._send_json(HTTPStatus.OK, {"status": "OK", "message": HEALTH_MESSAGE})
                elif path == REMINDERS_PATH:
                    self._guarded(self._handle_list_reminders, "Failed to fetch reminders")
                else:
                    self._send_error_json(HTTPStatus.NOT_FOUND, "Not Found")

            def do_POST(self) -> None:  # noqa: N802
                path = self._path()
                if path == "/api/chat":
                    self._guarded(self._handle_chat, ERROR_RESPONSE)
                elif path == REMINDERS_PATH:
                    self._guarded(self._handle_create_reminder, "Failed to create reminder")
                else:
                    self._send_error_json(HTTPStatus.NOT_FOUND, "Not Found")

            def do_PUT(self) -> None:  # noqa: N802
                reminder_id = self._reminder_id()
                if reminder_id is None:
                    self._send_error_json(HTTPStatus.NOT_FOUND, "Not Found")
                    return
                self._guarded(lambda: self._handle_update_reminder(reminder_id), "Failed to update reminder")

            def do_DELETE(self) -> None:  # noqa: N802
                reminder_id = self._reminder_id()
                if reminder_id is None:
                    self._send_error_json(HTTPStatus.NOT_FOUND, "Not Found")
                    return
                self._guarded(lambda: self._handle_delete_reminder(reminder_id), "Failed to delete reminder")

            def _handle_chat(self) -> None:
                data = self._read_json_or_reject()
                if data is None:
                    return
                history = normalize_history(data.get("conversationHistory"))
                try:
                    reply = outer.chat.handle(data.get("message"), history)
                except InvalidChatRequest as exc:
                    self._send_error_json(HTTPStatus.BAD_REQUEST, str(exc))
                    return
                self._send_json(HTTPStatus.OK, reply.to_dict())

            def _handle_list_reminders(self) -> None:
                reminders = [reminder.to_dict() for reminder in outer.store.list_reminders()]
                self._send_json(HTTPStatus.OK, reminders)

            def _handle_create_reminder(self) -> None:
                data = self._read_json_or_reject()
                if data is None:
                    return
                try:
                    reminder = outer.store.create(
                        _as_text(data.get("title")),
                        _as_text(data.get("time")),
                        _as_text(data.get("date")),
                        _as_text(data.get("description")),
                    )
                except InvalidReminderError as exc:
                    self._send_error_json(HTTPStatus.BAD_REQUEST, str(exc))
                    return
                self._send_json(HTTPStatus.OK, reminder.to_dict())

            def _handle_update_reminder(self, reminder_id: str) -> None:
                data = self._read_json_or_reject()
                if data is None:
                    return
                completed = data.get("completed")
                if not isinstance(completed, bool):
                    self._send_error_json(HTTPStatus.BAD_REQUEST, "completed must be true or false")
                    return
                try:
                    reminder = outer.store.set_completed(reminder_id, completed)
                except ReminderNotFoundError:
                    self._send_error_json(HTTPStatus.NOT_FOUND, "Reminder not found")
                    return
                self._send_json(HTTPStatus.OK, reminder.to_dict())

            def _handle_delete_reminder(self, reminder_id: str) -> None:
                outer.store.delete(reminder_id)
                self._send_json(HTTPStatus.OK, {"message": "Reminder deleted successfully"})

            def _guarded(self, handler, failure_message: str) -> None:
                try:
                    handler()
                except Exception as exc:
                    outer.logger.error("api http: %s %s failed: %s", self.command, self.path, exc, exc_info=True)
                    self._send_error_json(HTTPStatus.INTERNAL_SERVER_ERROR, failure_message)

            def _path(self) -> str:
                path = self.path.split("?", 1)[0]
                if len(path) > 1:
                    path = path.rstrip("/")
                return path

            def _reminder_id(self) -> str | None:
                path = self._path()
                prefix = f"{REMINDERS_PATH}/"
                if not path.startswith(prefix):
                    return None
                reminder_id = unquote(path[len(prefix) :])
                if not reminder_id or "/" in reminder_id:
                    return None
                return reminder_id

            def _read_json(self) -> dict[str, Any]:
                content_length = int(self.headers.get("Content-Length", 0))
                if content_length <= 0:
                    return {}
                body = self.rfile.read(content_length)
                parsed = json.loads(body.decode("utf-8"))
                if not isinstance(parsed, dict):
                    raise ValueError("Expected a JSON object")
                return parsed

            def _read_json_or_reject(self) -> dict[str, Any] | None:
                try:
                    return self._read_json()
                except ValueError as exc:
                    outer.logger.info("api http: invalid request body for %s: %s", self.path, exc)
                    self._send_error_json(HTTPStatus.BAD_REQUEST, "Invalid JSON")
                    return None

            def _send_json(self, status: HTTPStatus, payload: Any) -> None:
                body = json.dumps(payload).encode("utf-8")
                self.send_response(status)
                self._set_common_headers()
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def _send_error_json(self, status: HTTPStatus, message: str) -> None:
                self._send_json(status, {"error": message})

        return ApiRequestHandler

    def _allowed_origin(self, origin: str | None) -> str | None:
        allowed = self.config.allowed_origins
        if not allowed or allowed == ("*",):
            return "*"
        if origin and origin in allowed:
            return origin
        return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
