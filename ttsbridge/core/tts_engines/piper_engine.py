"""
Piper adapter (local neural TTS).

Runs the Piper binary as a subprocess for offline text-to-speech.
Quality: High (8/10) - Neural TTS, local
Speed: Fast inference
Size: Small models (10-50MB)
"""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, List, Optional

from ttsbridge.core.voice_utils import Voice, normalize_language
from .base import AdapterStream, EngineAdapter, SynthesisOptions, iter_chunks, logger

# Piper is installed as a binary, not a Python package
PIPER_AVAILABLE = shutil.which("piper") is not None
if not PIPER_AVAILABLE:
    logger.warning("Piper TTS not found in PATH. Install from: https://github.com/rhasspy/piper")

DEFAULT_MODEL_DIR = "data/tts/piper/models"
_NAMED_LENGTH_SCALES = {"x-slow": 1.6, "slow": 1.3, "medium": 1.0, "default": 1.0, "fast": 0.8, "x-fast": 0.6}


def rate_to_length_scale(rate: Any) -> float:
    """
    Piper --length_scale (1.0 = normal, <1 = faster, >1 = slower).

    Numbers are words per minute: 150 wpm = 1.0, 200 wpm = 0.75, 100 wpm = 1.5.
    """
    if rate is None or rate == "":
        return 1.0
    if isinstance(rate, (int, float)):
        return 150 / rate
    rate = str(rate).strip().lower()
    if rate in _NAMED_LENGTH_SCALES:
        return _NAMED_LENGTH_SCALES[rate]
    if rate.endswith("%"):
        return 1 / (1 + float(rate[:-1]) / 100)
    return 150 / float(rate)


class PiperAdapter(EngineAdapter):
    """Piper TTS-based adapter."""

    engine_id = "piper"
    output_format = "wav"
    DEFAULT_VOICE = "en_US-lessac-medium"

    # Common high-quality voices (model names)
    COMMON_VOICES = {
        "en_US-lessac-medium": "English (US) - Lessac (Medium)",
        "en_US-amy-medium": "English (US) - Amy (Medium)",
        "en_GB-alba-medium": "English (GB) - Alba (Medium)",
        "en_GB-danny-low": "English (GB) - Danny (Low)",
    }

    def __init__(self, credentials=None, model_dir: Optional[str] = None, **options):
        super().__init__(credentials, **options)

        if not PIPER_AVAILABLE:
            raise ImportError("Piper TTS is not available in PATH")

        self.model_dir = Path(model_dir or DEFAULT_MODEL_DIR)
        logger.info(f"PiperAdapter initialized (models in {self.model_dir})")

    def _model_path(self, voice: str) -> Path:
        model_path = self.model_dir / f"{voice}.onnx"
        if not model_path.exists():
            raise FileNotFoundError(
                f"Piper model not found: {voice}. "
                f"Download from https://github.com/rhasspy/piper/releases/ "
                f"and place in {self.model_dir}"
            )
        return model_path

    async def synth_to_bytes(self, text: str, options: SynthesisOptions) -> bytes:
        voice = options.voice_id or self.get_default_voice()
        model_path = self._model_path(voice)

        temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=".wav")
        temp_file.close()

        cmd = [
            "piper",
            "--model", str(model_path),
            "--output_file", temp_file.name,
            "--length_scale", str(rate_to_length_scale(options.rate)),
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
            _, stderr = await process.communicate(input=text.encode())

            if process.returncode != 0:
                error_msg = stderr.decode(errors="replace") if stderr else "Unknown error"
                raise RuntimeError(f"Piper TTS failed: {error_msg}")

            with open(temp_file.name, "rb") as f:
                audio = f.read()
            logger.info(f"Piper TTS: Generated {len(audio)} bytes with voice {voice}")
            return audio
        finally:
            if os.path.exists(temp_file.name):
                os.unlink(temp_file.name)

    async def synth_to_bytestream(self, text: str, options: SynthesisOptions) -> AdapterStream:
        audio = await self.synth_to_bytes(text, options)
        return AdapterStream(iter_chunks(audio))

    async def get_voices(self) -> List[Voice]:
        """Downloaded models, or the common voices when none are present."""
        voice_names = {}
        if self.model_dir.exists():
            for model_file in sorted(self.model_dir.glob("*.onnx")):
                voice_names[model_file.stem] = self.COMMON_VOICES.get(model_file.stem, model_file.stem)

        if not voice_names:
            voice_names = {vid: f"{name} (not downloaded)" for vid, name in self.COMMON_VOICES.items()}

        voices = []
        for voice_id, voice_name in voice_names.items():
            # "en_US-lessac-medium" -> "en-US"
            lang = voice_id.split("-")[0] if "-" in voice_id else "und"
            voices.append(Voice(
                id=voice_id,
                name=voice_name,
                language_codes=[normalize_language(lang)],
                gender="Unknown",
                provider=self.engine_id,
            ))
        return voices

    async def check_credentials(self) -> bool:
        """Usable when at least one model has been downloaded."""
        return self.model_dir.exists() and any(self.model_dir.glob("*.onnx"))

    def get_default_voice(self) -> Optional[str]:
        return self.options.get("default_voice") or self.DEFAULT_VOICE
