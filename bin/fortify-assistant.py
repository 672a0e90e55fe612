#!/usr/bin/env python3
"""FORTify chat and reminder API server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from dataclasses import replace

from fortify.assistant.api_server import ApiHttpServer
from fortify.assistant.chat_service import ChatService
from fortify.assistant.config import AssistantConfig
from fortify.assistant.llm import build_completion_provider
from fortify.assistant.reminder_store import ReminderStore

LOGGER = logging.getLogger("fortify-assistant")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the FORTify chat and reminder API")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--port", type=int, default=None, help="Override the PORT environment variable")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = AssistantConfig.from_env()
    server_config = config.server
    if args.port is not None:
        server_config = replace(server_config, port=args.port)

    store = ReminderStore()
    provider = build_completion_provider(config.llm, LOGGER)
    chat = ChatService(store, provider)
    server = ApiHttpServer(store=store, chat=chat, config=server_config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    server.start()
    try:
        await stop_event.wait()
    finally:
        server.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
