"""
Pyttsx3 adapter (local, espeak/SAPI/nsss).

Uses the pyttsx3 library for offline text-to-speech. The driver is blocking,
so synthesis runs in the default executor. No word timings are reported.
Quality: Low (espeak) to Medium (SAPI on Windows)
"""

import asyncio
import os
import tempfile
from typing import Any, List, Optional

from ttsbridge.core.voice_utils import LanguageCode, Voice, normalize_gender, normalize_language
from .base import AdapterStream, EngineAdapter, SynthesisOptions, iter_chunks, logger

try:
    import pyttsx3
    PYTTSX3_AVAILABLE = True
except ImportError:
    PYTTSX3_AVAILABLE = False
    logger.warning("pyttsx3 not installed. Install with: pip install pyttsx3")

DEFAULT_RATE = 150
_NAMED_RATES = {"x-slow": 80, "slow": 115, "medium": 150, "default": 150, "fast": 190, "x-fast": 230}


def rate_to_wpm(rate: Any) -> int:
    """pyttsx3 rate in words per minute from a number, keyword or percentage."""
    if rate is None or rate == "":
        return DEFAULT_RATE
    if isinstance(rate, (int, float)):
        return int(rate)
    rate = str(rate).strip().lower()
    if rate in _NAMED_RATES:
        return _NAMED_RATES[rate]
    if rate.endswith("%"):
        return int(DEFAULT_RATE * (1 + float(rate[:-1]) / 100))
    return int(float(rate))


def volume_to_level(volume: Any) -> float:
    """pyttsx3 volume (0.0-1.0) from a percentage of normal volume."""
    if volume is None or volume == "":
        return 1.0
    value = float(str(volume).rstrip("%"))
    return max(0.0, min(1.0, value / 100))


def _decode_language(raw: Any) -> str:
    # espeak reports languages as bytes with a priority prefix (b"\x05en-us")
    if isinstance(raw, bytes):
        raw = raw[1:].decode("utf-8", "ignore") if raw[:1] < b" " else raw.decode("utf-8", "ignore")
    return str(raw)


class Pyttsx3Adapter(EngineAdapter):
    """Pyttsx3-based adapter."""

    engine_id = "pyttsx3"
    output_format = "wav"

    def __init__(self, credentials=None, **options):
        super().__init__(credentials, **options)

        if not PYTTSX3_AVAILABLE:
            raise ImportError("pyttsx3 is not available")

        # Discover available voices
        self.available_voices = self._discover_voices()
        logger.info(f"Pyttsx3Adapter initialized with {len(self.available_voices)} voices")

    def _discover_voices(self) -> List[Voice]:
        """Discover all available pyttsx3 voices."""
        try:
            engine = pyttsx3.init()
            system_voices = engine.getProperty("voices")
        except Exception as e:
            logger.error(f"Failed to discover pyttsx3 voices: {e}", exc_info=True)
            return []

        discovered = []
        for voice in system_voices:
            languages = [
                normalize_language(_decode_language(lang))
                for lang in (getattr(voice, "languages", None) or [])
            ]
            discovered.append(Voice(
                id=voice.id,
                name=getattr(voice, "name", None) or voice.id,
                language_codes=languages or [LanguageCode("und", "und", "Unknown")],
                gender=normalize_gender(getattr(voice, "gender", None)),
                provider=self.engine_id,
            ))

        del engine
        return discovered

    async def synth_to_bytes(self, text: str, options: SynthesisOptions) -> bytes:
        """Render to a temporary WAV file in the executor and return its bytes."""
        loop = asyncio.get_running_loop()
        temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=".wav")
        temp_file.close()

        rate = rate_to_wpm(options.rate)
        volume = volume_to_level(options.volume)
        voice = options.voice_id or self.get_default_voice()

        def generate_tts():
            engine = pyttsx3.init()
            engine.setProperty("rate", rate)
            engine.setProperty("volume", volume)

            if voice:
                engine.setProperty("voice", voice)
                logger.info(f"Pyttsx3: Using voice {voice}")
            else:
                logger.info("Pyttsx3: Using system default voice")

            engine.save_to_file(text, temp_file.name)
            engine.runAndWait()
            # Don't call stop() - causes segfaults

        try:
            await loop.run_in_executor(None, generate_tts)
            with open(temp_file.name, "rb") as f:
                return f.read()
        finally:
            if os.path.exists(temp_file.name):
                os.unlink(temp_file.name)

    async def synth_to_bytestream(self, text: str, options: SynthesisOptions) -> AdapterStream:
        audio = await self.synth_to_bytes(text, options)
        return AdapterStream(iter_chunks(audio))

    async def get_voices(self) -> List[Voice]:
        return self.available_voices

    def get_default_voice(self) -> Optional[str]:
        return self.options.get("default_voice")
