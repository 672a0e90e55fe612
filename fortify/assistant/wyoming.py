"""Wyoming STT/TTS helpers and the speech backends built on them."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.info import Describe, Info
from wyoming.tts import Synthesize, SynthesizeVoice

from fortify.utils import await_with_timeout, chunk_bytes

from .audio import AplaySink, ArecordStream, record_phrase, scale_volume
from .config import MicConfig, PhraseConfig, WyomingEndpoint
from .speech import (
    MicrophoneSession,
    RecognitionError,
    Scheduler,
    SpeechOptions,
    SpeechSynthesizer,
    VoiceInfo,
    select_voice,
)

LoggerLike = logging.Logger | None


async def transcribe_audio(
    audio_bytes: bytes,
    *,
    endpoint: WyomingEndpoint,
    mic: MicConfig,
    language: str | None = None,
    model: str | None = None,
    timeout: float | None = None,
    logger: LoggerLike = None,
) -> str | None:
    """Send PCM audio to a Wyoming STT endpoint and return the transcript text."""

    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    try:
        await await_with_timeout(
            client.write_event(Transcribe(name=model or endpoint.model, language=language).event()),
            timeout,
        )
        await await_with_timeout(
            client.write_event(AudioStart(rate=mic.rate, width=mic.width, channels=mic.channels).event()),
            timeout,
        )
        for chunk in chunk_bytes(audio_bytes, mic.bytes_per_chunk):
            await await_with_timeout(
                client.write_event(
                    AudioChunk(rate=mic.rate, width=mic.width, channels=mic.channels, audio=chunk).event()
                ),
                timeout,
            )
        await await_with_timeout(client.write_event(AudioStop().event()), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                if logger:
                    logger.debug("Wyoming STT connection closed before transcript returned")
                return None
            if Transcript.is_type(event.type):
                return Transcript.from_event(event).text
    finally:
        await client.disconnect()


async def play_tts_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    sink: AplaySink,
    voice_name: str | None = None,
    volume: float = 1.0,
    timeout: float | None = None,
) -> None:
    """Synthesize speech via Wyoming TTS and stream it directly to the provided sink.

    Cancelling the caller kills the player instead of letting buffered audio drain.
    """
    started = False
    width = 2
    try:
        events = _tts_event_stream(text, endpoint=endpoint, voice_name=voice_name, timeout=timeout)
        async with contextlib.aclosing(events):
            async for event in events:
                if AudioStart.is_type(event.type):
                    audio_start = AudioStart.from_event(event)
                    width = audio_start.width
                    await sink.start(audio_start.rate, audio_start.width, audio_start.channels)
                    started = True
                elif AudioChunk.is_type(event.type):
                    chunk = AudioChunk.from_event(event)
                    await sink.write(scale_volume(chunk.audio, width, volume))
                elif AudioStop.is_type(event.type):
                    break
    except asyncio.CancelledError:
        if started:
            await sink.abort()
            started = False
        raise
    finally:
        if started:
            await sink.stop()


async def list_tts_voices(
    *,
    endpoint: WyomingEndpoint,
    language: str | None = None,
    timeout: float | None = None,
) -> list[VoiceInfo]:
    """Ask a Wyoming TTS server which voices it offers.

    When ``language`` is given, voices tagged with another language family are
    skipped; untagged voices are always kept.
    """

    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    try:
        await await_with_timeout(client.write_event(Describe().event()), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                return []
            if Info.is_type(event.type):
                info = Info.from_event(event)
                break
    finally:
        await client.disconnect()

    family = language.split("-", 1)[0].lower() if language else None
    voices: list[VoiceInfo] = []
    for program in info.tts or []:
        for voice in program.voices or []:
            languages = list(voice.languages or [])
            if family and languages and not any(lang.lower().startswith(family) for lang in languages):
                continue
            voices.append(VoiceInfo(name=voice.name, language=languages[0] if languages else None))
    return voices


async def _tts_event_stream(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    voice_name: str | None = None,
    timeout: float | None = None,
) -> AsyncIterator[object]:
    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    voice = SynthesizeVoice(name=voice_name) if voice_name else None
    await await_with_timeout(client.write_event(Synthesize(text=text, voice=voice).event()), timeout)
    try:
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                break
            yield event
            if AudioStop.is_type(event.type):
                break
    finally:
        await client.disconnect()


# ============================================================================
# Speech backends
# ============================================================================


def _classify_capture_failure(exc: BaseException) -> RecognitionError:
    if isinstance(exc, PermissionError) or "permission denied" in str(exc).lower():
        return RecognitionError.PERMISSION_DENIED
    return RecognitionError.OTHER


class WyomingMicrophoneSession(MicrophoneSession):
    """Record one phrase from ``arecord`` and transcribe it with Wyoming STT."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        stream: ArecordStream,
        mic: MicConfig,
        phrase: PhraseConfig,
        endpoint: WyomingEndpoint,
        language: str | None = None,
        timeout: float | None = 30.0,
        no_speech_timeout: float = 30.0,
        logger: LoggerLike = None,
    ) -> None:
        super().__init__(scheduler, no_speech_timeout=no_speech_timeout, logger=logger)
        self.stream = stream
        self.mic = mic
        self.phrase = phrase
        self.endpoint = endpoint
        self.language = language
        self.timeout = timeout
        self._task: asyncio.Task[None] | None = None

    def _begin_capture(self, capture_id: int) -> None:
        self._task = asyncio.get_running_loop().create_task(self._capture(capture_id))

    def _end_capture(self, capture_id: int) -> None:
        task = self._task
        self._task = None
        # Stopped from inside our own callback chain: let the task unwind on its own.
        if task is asyncio.current_task():
            return
        if task and not task.done():
            task.cancel()

    async def _capture(self, capture_id: int) -> None:
        try:
            await self.stream.start()
            self._emit_started(capture_id)
            recording = await record_phrase(self.stream, self.mic, self.phrase)
            await self.stream.stop()
            if not recording.voiced:
                self.logger.debug("No speech energy in captured phrase")
                self._emit_error(capture_id, RecognitionError.NO_SPEECH)
                return
            text = await transcribe_audio(
                recording.audio,
                endpoint=self.endpoint,
                mic=self.mic,
                language=self.language,
                timeout=self.timeout,
                logger=self.logger,
            )
            if text and text.strip():
                self.logger.info("Heard: %s", text.strip())
                self._emit_result(capture_id, text.strip())
            else:
                self._emit_error(capture_id, RecognitionError.NO_SPEECH)
        except asyncio.CancelledError:
            raise
        except (OSError, RuntimeError, TimeoutError) as exc:
            kind = _classify_capture_failure(exc)
            self.logger.warning("Speech capture failed (%s): %s", kind.value, exc)
            self._emit_error(capture_id, kind, str(exc))
        finally:
            await self.stream.stop()
            self._emit_ended(capture_id)


class WyomingSpeechSynthesizer(SpeechSynthesizer):
    """Speak through Wyoming TTS into a local audio player."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        endpoint: WyomingEndpoint,
        sink: AplaySink,
        voice_name: str | None = None,
        language: str | None = None,
        timeout: float | None = 30.0,
        settle_delay: float = 0.1,
        logger: LoggerLike = None,
    ) -> None:
        super().__init__(scheduler, settle_delay=settle_delay, logger=logger)
        self.endpoint = endpoint
        self.sink = sink
        self.voice_name = voice_name
        self.language = language
        self.timeout = timeout
        self._task: asyncio.Task[None] | None = None

    async def choose_voice(self) -> str | None:
        """Pick a voice from the TTS server unless one is already configured."""
        if self.voice_name:
            return self.voice_name
        try:
            voices = await list_tts_voices(endpoint=self.endpoint, language=self.language, timeout=self.timeout)
        except (OSError, TimeoutError) as exc:
            self.logger.warning("Unable to list TTS voices: %s", exc)
            return None
        chosen = select_voice(voices)
        if chosen:
            self.voice_name = chosen.name
            self.logger.info("Using TTS voice %s", chosen.name)
        return self.voice_name

    def _start_output(self, utterance_id: int, text: str, options: SpeechOptions) -> None:
        self._task = asyncio.get_running_loop().create_task(self._play(utterance_id, text, options))

    def _stop_output(self, utterance_id: int) -> None:
        task = self._task
        self._task = None
        if task is asyncio.current_task():
            return
        if task and not task.done():
            task.cancel()

    async def _play(self, utterance_id: int, text: str, options: SpeechOptions) -> None:
        # Wyoming synthesis has no rate/pitch controls; only volume is applied locally.
        try:
            await play_tts_stream(
                text,
                endpoint=self.endpoint,
                sink=self.sink,
                voice_name=self.voice_name,
                volume=options.volume,
                timeout=self.timeout,
            )
        except asyncio.CancelledError:
            raise
        except (OSError, RuntimeError, TimeoutError) as exc:
            self.logger.warning("Speech playback failed: %s", exc)
            self._emit_error(utterance_id, str(exc))
            return
        self._emit_ended(utterance_id)
