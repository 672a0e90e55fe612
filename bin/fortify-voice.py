#!/usr/bin/env python3
"""Hands-free voice client for the FORTify assistant.

Type a command and press Enter:

    (empty)   toggle the microphone
    chat      switch to chat mode
    nav       switch to navigation mode
    say TEXT  speak TEXT through the configured voice
    quit      exit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from fortify.assistant.api_client import FortifyApiClient
from fortify.assistant.audio import AplaySink, ArecordStream
from fortify.assistant.config import AssistantConfig
from fortify.assistant.dialogue import MODE_CHAT, MODE_NAVIGATION, DialogueCoordinator
from fortify.assistant.reminder_store import Reminder
from fortify.assistant.speech import LoopScheduler, SpeechOptions
from fortify.assistant.wyoming import WyomingMicrophoneSession, WyomingSpeechSynthesizer
from fortify.datetime_utils import format_display_date, format_display_time

LOGGER = logging.getLogger("fortify-voice")


def _print(message: str) -> None:
    print(message, flush=True)


def _show_view(view: str) -> None:
    _print(f"[view] {view}")


def _show_reminder(reminder: Reminder) -> None:
    _print(
        f"[reminder] {reminder.title} - {format_display_date(reminder.date)} at {format_display_time(reminder.time)}"
    )


def _handle_command(coordinator: DialogueCoordinator, line: str, stop_event: asyncio.Event) -> None:
    if not line:
        stop_event.set()
        return
    command = line.strip()
    lowered = command.lower()
    if lowered in {"quit", "exit", "q"}:
        stop_event.set()
    elif lowered == "chat":
        coordinator.set_mode(MODE_CHAT)
        _print("[mode] chat")
    elif lowered in {"nav", "navigation"}:
        coordinator.set_mode(MODE_NAVIGATION)
        _print("[mode] navigation")
    elif lowered.startswith("say "):
        coordinator.speak(command[4:].strip())
    elif not command:
        if coordinator.toggle_listening():
            _print("[mic] listening")
        else:
            _print("[mic] off")
    else:
        _print(__doc__ or "")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Talk to the FORTify assistant")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--mode", choices=[MODE_NAVIGATION, MODE_CHAT], default=None)
    parser.add_argument("--listen", action="store_true", help="Open the microphone immediately")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = AssistantConfig.from_env()
    voice = config.voice
    scheduler = LoopScheduler()

    microphone = WyomingMicrophoneSession(
        scheduler,
        stream=ArecordStream(config.mic.command, config.mic.bytes_per_chunk, LOGGER),
        mic=config.mic,
        phrase=config.phrase,
        endpoint=config.stt_endpoint,
        language=voice.language.split("-", 1)[0],
        no_speech_timeout=voice.no_speech_timeout,
        logger=LOGGER,
    )
    synthesizer = WyomingSpeechSynthesizer(
        scheduler,
        endpoint=config.tts_endpoint,
        sink=AplaySink(logger=LOGGER),
        voice_name=voice.tts_voice,
        language=voice.language,
        settle_delay=voice.speech_settle_delay,
        logger=LOGGER,
    )
    api_client = FortifyApiClient(voice.api_url)
    coordinator = DialogueCoordinator(
        microphone=microphone,
        synthesizer=synthesizer,
        scheduler=scheduler,
        chat_client=api_client,
        mode=args.mode or voice.mode,
        restart_delay=voice.restart_delay,
        speech_options=SpeechOptions(rate=voice.rate, pitch=voice.pitch, volume=voice.volume),
        on_navigate=_show_view,
        on_notice=_print,
        on_reminder_created=_show_reminder,
        logger=LOGGER,
    )

    await synthesizer.choose_voice()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    if args.listen:
        coordinator.start_listening()
    stdin_fd = sys.stdin.fileno()
    loop.add_reader(stdin_fd, lambda: _handle_command(coordinator, sys.stdin.readline(), stop_event))
    try:
        await stop_event.wait()
    finally:
        loop.remove_reader(stdin_fd)
        await coordinator.aclose()
        await api_client.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
