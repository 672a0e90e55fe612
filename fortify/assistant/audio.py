"""Local audio capture and playback for the voice client."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import shutil
import sys
from array import array
from asyncio.subprocess import Process
from dataclasses import dataclass

from .config import MicConfig, PhraseConfig


class ArecordStream:
    """Capture PCM audio by shelling out to ``arecord`` (ALSA)."""

    def __init__(
        self,
        command: list[str],
        bytes_per_chunk: int,
        logger: logging.Logger | None = None,
    ) -> None:
        self.command = command
        self.bytes_per_chunk = bytes_per_chunk
        self._proc: Process | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._proc is not None

    async def start(self) -> None:
        if self._proc:
            return
        self._logger.debug("Starting microphone capture: %s", " ".join(self.command))
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise RuntimeError(f"Microphone command not found: {self.command[0]}") from exc

    async def read_chunk(self) -> bytes:
        if not self._proc or not self._proc.stdout:
            raise RuntimeError("Microphone stream is not running")
        try:
            return await self._proc.stdout.readexactly(self.bytes_per_chunk)
        except asyncio.IncompleteReadError as exc:
            stderr = ""
            if self._proc.stderr:
                stderr = (await self._proc.stderr.read()).decode("utf-8", errors="ignore").strip()
            message = "Microphone stream ended unexpectedly"
            if stderr:
                message = f"{message} ({stderr})"
            raise RuntimeError(message) from exc

    async def stop(self) -> None:
        if not self._proc:
            return
        self._logger.debug("Stopping microphone capture")
        proc = self._proc
        self._proc = None
        if proc.stdout:
            proc.stdout.feed_eof()
        if proc.stderr:
            proc.stderr.feed_eof()
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)


class AplaySink:
    """Play PCM audio via ``pw-play``/``paplay``/``aplay``."""

    def __init__(self, binary: str | None = None, logger: logging.Logger | None = None) -> None:
        env_override = os.environ.get("FORTIFY_AUDIO_PLAYER")
        if binary is None and env_override:
            binary = env_override
        self.binary = binary or "auto"
        self._proc: Process | None = None
        self._logger = logger or logging.getLogger(__name__)

    async def start(self, rate: int, width: int, channels: int) -> None:
        await self.stop()
        player = _determine_player(self.binary, self._logger)
        try:
            cmd = _build_command_for_player(player, rate, width, channels)
        except ValueError as exc:
            self._logger.warning("Player %s cannot handle width=%s (%s); falling back to aplay", player, width, exc)
            player = "aplay"
            cmd = _build_aplay_command(rate, width, channels)
        self._logger.debug("Starting playback (%s): %s", player, " ".join(cmd))
        self._proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def write(self, chunk: bytes) -> None:
        if not self._proc or not self._proc.stdin:
            raise RuntimeError("Playback is not active")
        try:
            self._proc.stdin.write(chunk)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            stderr = await self._drain_stderr()
            await self.abort()
            detail = f" ({stderr})" if stderr else ""
            raise RuntimeError(f"Playback process exited unexpectedly{detail}") from exc

    async def stop(self) -> None:
        """Close stdin and let the player finish what it has buffered."""
        if not self._proc:
            return
        self._logger.debug("Stopping playback")
        proc = self._proc
        self._proc = None
        if proc.stdin:
            proc.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await proc.stdin.wait_closed()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=30)

    async def abort(self) -> None:
        """Kill the player immediately, dropping buffered audio."""
        if not self._proc:
            return
        self._logger.debug("Aborting playback")
        proc = self._proc
        self._proc = None
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)

    async def _drain_stderr(self) -> str:
        if not self._proc or not self._proc.stderr:
            return ""
        try:
            data = await asyncio.wait_for(self._proc.stderr.read(), timeout=0.05)
        except (TimeoutError, RuntimeError):
            return ""
        return data.decode("utf-8", errors="ignore").strip()


# ============================================================================
# Phrase capture
# ============================================================================


@dataclass(frozen=True)
class PhraseRecording:
    audio: bytes
    voiced: bool


def compute_rms(chunk: bytes, sample_width: int) -> int:
    """Compute RMS (Root Mean Square) for an audio chunk."""
    if not chunk or sample_width <= 0:
        return 0
    frames = len(chunk) // sample_width
    if frames <= 0:
        return 0
    trimmed = chunk[: frames * sample_width]
    typecode = {1: "b", 2: "h", 4: "i"}.get(sample_width)
    if typecode:
        samples = array(typecode)
        samples.frombytes(trimmed)
        if sample_width > 1 and sys.byteorder != "little":
            samples.byteswap()
        total = math.fsum(value * value for value in samples)
    else:
        total = 0.0
        for i in range(0, len(trimmed), sample_width):
            sample = int.from_bytes(trimmed[i : i + sample_width], "little", signed=True)
            total += sample * sample
    return int(math.sqrt(total / frames))


async def record_phrase(stream: ArecordStream, mic: MicConfig, phrase: PhraseConfig) -> PhraseRecording:
    """Record until trailing silence or the phrase length limit.

    ``voiced`` is False when no chunk rose above the RMS floor, which callers
    treat as "nothing was said".
    """
    chunk_ms = mic.chunk_ms
    min_chunks = int(max(1, (phrase.min_seconds * 1000) / chunk_ms))
    max_chunks = int(max(1, (phrase.max_seconds * 1000) / chunk_ms))
    silence_chunks = int(max(1, phrase.silence_ms / chunk_ms))
    buffer = bytearray()
    silence_run = 0
    chunks = 0
    voiced = False
    while chunks < max_chunks:
        chunk = await stream.read_chunk()
        buffer.extend(chunk)
        rms = compute_rms(chunk, mic.width)
        if rms >= phrase.rms_floor:
            voiced = True
            silence_run = 0
        elif chunks >= min_chunks:
            silence_run += 1
            if silence_run >= silence_chunks:
                break
        chunks += 1
    return PhraseRecording(audio=bytes(buffer), voiced=voiced)


# ============================================================================
# Player selection
# ============================================================================

PLAYER_CANDIDATES = ("pw-play", "paplay", "aplay")


def _alsa_format(width: int) -> str:
    return {
        1: "U8",
        2: "S16_LE",
        3: "S24_LE",
        4: "S32_LE",
    }.get(width, "S16_LE")


def _pw_format(width: int) -> str | None:
    return {
        1: "s8",
        2: "s16",
        4: "s32",
    }.get(width)


def _paplay_format(width: int) -> str:
    return {
        1: "s8",
        2: "s16le",
        3: "s24le",
        4: "s32le",
    }.get(width, "s16le")


def _supported_player(binary: str) -> bool:
    if os.path.isabs(binary):
        return os.access(binary, os.X_OK)
    return shutil.which(binary) is not None


def _build_pw_play_command(rate: int, width: int, channels: int) -> list[str]:
    fmt = _pw_format(width)
    if not fmt:
        raise ValueError(f"pw-play has no format for width={width}")
    return ["pw-play", "--raw", "--rate", str(rate), "--channels", str(channels), "--format", fmt, "-"]


def _build_paplay_command(rate: int, width: int, channels: int) -> list[str]:
    return ["paplay", "--raw", "--rate", str(rate), "--channels", str(channels), f"--format={_paplay_format(width)}", "-"]


def _build_aplay_command(rate: int, width: int, channels: int) -> list[str]:
    return ["aplay", "-q", "-t", "raw", "-f", _alsa_format(width), "-c", str(channels), "-r", str(rate), "-"]


def _build_command_for_player(player: str, rate: int, width: int, channels: int) -> list[str]:
    name = os.path.basename(player)
    if name == "pw-play":
        return _build_pw_play_command(rate, width, channels)
    if name == "paplay":
        return _build_paplay_command(rate, width, channels)
    return _build_aplay_command(rate, width, channels)


def _determine_player(preferred: str, logger: logging.Logger) -> str:
    if preferred != "auto":
        if _supported_player(preferred):
            return preferred
        logger.warning("Requested audio player '%s' not found; falling back to auto-detection", preferred)
    for candidate in PLAYER_CANDIDATES:
        if _supported_player(candidate):
            return candidate
    return "aplay"


def scale_volume(chunk: bytes, sample_width: int, volume: float) -> bytes:
    """Scale signed 16/32-bit PCM samples by ``volume`` (0.0-1.0)."""
    if volume >= 1.0 or not chunk:
        return chunk
    typecode = {2: "h", 4: "i"}.get(sample_width)
    if not typecode:
        return chunk
    frames = len(chunk) // sample_width
    samples = array(typecode)
    samples.frombytes(chunk[: frames * sample_width])
    if sys.byteorder != "little":
        samples.byteswap()
    factor = max(0.0, volume)
    for index, value in enumerate(samples):
        samples[index] = int(value * factor)
    if sys.byteorder != "little":
        samples.byteswap()
    return samples.tobytes() + chunk[frames * sample_width :]
