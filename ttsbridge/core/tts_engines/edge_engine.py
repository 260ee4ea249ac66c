"""
Edge TTS adapter (Microsoft cloud TTS).

Uses the edge-tts library for Microsoft's neural voices. Reports native word
boundaries.
Quality: High (8/10) - Neural TTS
Requires: Internet connection
"""

import io
from typing import Any, List, Optional

from ttsbridge.core.voice_utils import Voice, normalize_gender, normalize_language
from .base import AdapterStream, EngineAdapter, SynthesisOptions, iter_chunks, logger

try:
    import edge_tts
    EDGE_TTS_AVAILABLE = True
except ImportError:
    EDGE_TTS_AVAILABLE = False
    logger.warning("edge-tts not installed. Install with: pip install edge-tts")

# edge-tts reports offsets and durations in 100ns ticks
TICKS_PER_MS = 10_000

_NAMED_RATES = {"x-slow": -50, "slow": -25, "medium": 0, "default": 0, "fast": 25, "x-fast": 50}
_NAMED_PITCHES = {"x-low": -40, "low": -20, "medium": 0, "default": 0, "high": 20, "x-high": 40}


def _signed(value: int, unit: str) -> str:
    return f"+{value}{unit}" if value >= 0 else f"{value}{unit}"


def rate_to_edge(rate: Any) -> str:
    """
    Edge rate string ("+X%"/"-X%").

    Numbers are words per minute (150 = normal); strings may be a percentage
    or a prosody keyword.
    """
    if rate is None or rate == "":
        return "+0%"
    if isinstance(rate, (int, float)):
        # Rough conversion: 150 wpm = normal (0%)
        return _signed(int(((rate - 150) / 150) * 100), "%")
    rate = str(rate).strip().lower()
    if rate in _NAMED_RATES:
        return _signed(_NAMED_RATES[rate], "%")
    if rate.endswith("%"):
        return rate if rate[0] in "+-" else f"+{rate}"
    raise ValueError(f"Unsupported rate for edge-tts: {rate!r}")


def pitch_to_edge(pitch: Any) -> str:
    if pitch is None or pitch == "":
        return "+0Hz"
    if isinstance(pitch, (int, float)):
        return _signed(int(pitch), "Hz")
    pitch = str(pitch).strip().lower()
    if pitch in _NAMED_PITCHES:
        return _signed(_NAMED_PITCHES[pitch], "Hz")
    if pitch.endswith("hz"):
        value = pitch[:-2]
        return f"{value}Hz" if value[0] in "+-" else f"+{value}Hz"
    raise ValueError(f"Unsupported pitch for edge-tts: {pitch!r}")


def volume_to_edge(volume: Any) -> str:
    """Numbers are percent of normal volume (100 = unchanged)."""
    if volume is None or volume == "":
        return "+0%"
    if isinstance(volume, (int, float)):
        return _signed(int(volume) - 100, "%")
    volume = str(volume).strip()
    if volume.endswith("%"):
        return volume if volume[0] in "+-" else f"+{volume}"
    raise ValueError(f"Unsupported volume for edge-tts: {volume!r}")


class EdgeAdapter(EngineAdapter):
    """Edge TTS-based adapter."""

    engine_id = "edge"
    output_format = "mp3"
    DEFAULT_VOICE = "en-US-AriaNeural"

    def __init__(self, credentials=None, **options):
        super().__init__(credentials, **options)

        if not EDGE_TTS_AVAILABLE:
            raise ImportError("edge-tts is not available")

        self.voices_cache: Optional[List[Voice]] = None
        logger.info("EdgeAdapter initialized")

    def _communicate(self, text: str, options: SynthesisOptions, word_boundaries: bool):
        voice = options.voice_id or self.get_default_voice()
        kwargs = dict(
            rate=rate_to_edge(options.rate),
            pitch=pitch_to_edge(options.pitch),
            volume=volume_to_edge(options.volume),
        )
        if word_boundaries:
            kwargs["boundary"] = "WordBoundary"
        return edge_tts.Communicate(text, voice, **kwargs)

    async def synth_to_bytes(self, text: str, options: SynthesisOptions) -> bytes:
        audio, _ = await self._collect(text, options, word_boundaries=False)
        return audio

    async def synth_to_bytestream(self, text: str, options: SynthesisOptions) -> AdapterStream:
        if not options.use_word_boundary:
            return AdapterStream(self._audio_only(text, options))

        # Word boundaries interleave with audio; collect both so boundaries are known up front
        audio, boundaries = await self._collect(text, options, word_boundaries=True)
        return AdapterStream(iter_chunks(audio), native_boundaries=boundaries)

    async def _collect(self, text: str, options: SynthesisOptions, word_boundaries: bool):
        communicate = self._communicate(text, options, word_boundaries)
        audio_data = io.BytesIO()
        boundaries = []

        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio_data.write(chunk["data"])
            elif chunk["type"] == "WordBoundary":
                boundaries.append((
                    chunk["text"],
                    chunk["offset"] / TICKS_PER_MS,
                    chunk["duration"] / TICKS_PER_MS,
                ))

        logger.info(f"Edge TTS: generated {audio_data.tell()} bytes, {len(boundaries)} word boundaries")
        return audio_data.getvalue(), boundaries

    async def _audio_only(self, text: str, options: SynthesisOptions):
        communicate = self._communicate(text, options, word_boundaries=False)
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                yield chunk["data"]

    async def get_voices(self) -> List[Voice]:
        """List available Edge TTS voices (cached after the first call)."""
        if self.voices_cache is None:
            all_voices = await edge_tts.list_voices()
            self.voices_cache = [
                Voice(
                    id=voice["ShortName"],
                    name=voice.get("FriendlyName", voice["ShortName"]),
                    language_codes=[normalize_language(voice["Locale"])],
                    gender=normalize_gender(voice.get("Gender")),
                    provider=self.engine_id,
                )
                for voice in all_voices
            ]
            logger.info(f"Cached {len(self.voices_cache)} Edge TTS voices")

        return self.voices_cache

    def get_default_voice(self) -> Optional[str]:
        return self.options.get("default_voice") or self.DEFAULT_VOICE
