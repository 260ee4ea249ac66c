"""
Audio duration probing from format metadata.

Only formats whose length can be read without decoding are handled: WAV
(header) and raw PCM (byte count). Everything else returns None and the
caller falls back to estimation.
"""

import io
import logging
import wave
from typing import AsyncIterator, Optional, Tuple

logger = logging.getLogger("ttsbridge.audio")

DEFAULT_PCM_SAMPLE_RATE = 24000
DEFAULT_PCM_CHANNELS = 1
DEFAULT_PCM_SAMPLE_WIDTH = 2


def wav_duration_ms(data: bytes) -> Optional[float]:
    """Duration from a RIFF/WAVE header, or None if the data isn't a readable WAV."""
    if len(data) < 44 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        return None

    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            framerate = wf.getframerate()
            n_frames = wf.getnframes()
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
    except (wave.Error, EOFError) as e:
        logger.debug(f"Unreadable WAV header: {e}")
        return None

    if framerate <= 0:
        return None

    # Streaming writers leave the data size at 0 or 0xFFFFFFFF; trust the payload instead
    frame_size = max(1, channels * sample_width)
    if n_frames <= 0 or n_frames * frame_size > len(data):
        n_frames = (len(data) - 44) // frame_size

    return n_frames * 1000.0 / framerate


def wav_header_duration_ms(header: bytes) -> Optional[float]:
    """
    Duration declared by a WAV header alone (first chunk of a stream).

    Reads the fmt and data chunk sizes directly, so the payload need not be
    present. Returns None for streaming placeholders.
    """
    if len(header) < 12 or header[:4] != b"RIFF" or header[8:12] != b"WAVE":
        return None

    pos = 12
    byte_rate = None
    while pos + 8 <= len(header):
        chunk_id = header[pos:pos + 4]
        chunk_size = int.from_bytes(header[pos + 4:pos + 8], "little")
        if chunk_id == b"fmt " and pos + 16 <= len(header):
            byte_rate = int.from_bytes(header[pos + 16:pos + 20], "little")
        elif chunk_id == b"data":
            if not byte_rate or chunk_size in (0, 0xFFFFFFFF):
                return None
            return chunk_size * 1000.0 / byte_rate
        pos += 8 + chunk_size + (chunk_size & 1)
    return None


def pcm_duration_ms(
    size: int,
    sample_rate: int = DEFAULT_PCM_SAMPLE_RATE,
    channels: int = DEFAULT_PCM_CHANNELS,
    sample_width: int = DEFAULT_PCM_SAMPLE_WIDTH,
) -> float:
    """Duration of raw little-endian PCM from its byte count."""
    return size * 1000.0 / (sample_rate * channels * sample_width)


def probe_bytes(data: bytes, audio_format: str, sample_rate: Optional[int] = None) -> Optional[float]:
    """Duration of a complete audio buffer, if its format allows reading it."""
    audio_format = (audio_format or "").lower()
    if audio_format == "wav" or data[:4] == b"RIFF":
        return wav_duration_ms(data)
    if audio_format == "pcm":
        return pcm_duration_ms(len(data), sample_rate or DEFAULT_PCM_SAMPLE_RATE)
    return None


async def peek_stream(stream: AsyncIterator[bytes]) -> Tuple[bytes, AsyncIterator[bytes]]:
    """
    Read the first chunk of a stream without consuming it.

    Returns the chunk and a replacement stream that yields it again before
    the rest of the original stream.
    """
    iterator = stream.__aiter__()
    try:
        first = await iterator.__anext__()
    except StopAsyncIteration:
        first = b""

    async def replay() -> AsyncIterator[bytes]:
        if first:
            yield first
        async for chunk in iterator:
            yield chunk

    return first, replay()
