"""
Base engine adapter interface.

Every speech engine is wrapped in an EngineAdapter. The orchestrator hands
adapters already-processed input (plain text or markup the engine accepts)
and never talks to vendor libraries directly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional
import logging

from ttsbridge.core.voice_utils import Voice

logger = logging.getLogger("ttsbridge.tts_engines")

DEFAULT_CHUNK_SIZE = 4096

# camelCase spellings accepted by SynthesisOptions.from_mapping()
_OPTION_ALIASES = {
    "voiceId": "voice_id",
    "voice": "voice_id",
    "useWordBoundary": "use_word_boundary",
    "useSpeechMarkdown": "use_speech_markdown",
}


@dataclass
class SynthesisOptions:
    """
    Recognized synthesis options.

    Anything else goes to `extra` and reaches the adapter untouched.
    """
    voice_id: Optional[str] = None
    format: Optional[str] = None
    rate: Optional[Any] = None
    pitch: Optional[Any] = None
    volume: Optional[Any] = None
    use_word_boundary: Optional[bool] = None
    use_speech_markdown: Optional[bool] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> "SynthesisOptions":
        if options is None:
            return cls()
        if isinstance(options, SynthesisOptions):
            return options

        known = {f.name for f in fields(cls)} - {"extra"}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            elif key == "extra" and isinstance(value, Mapping):
                extra.update(value)
            else:
                extra[key] = value
        return cls(extra=extra, **values)

    def merged(self, **changes) -> "SynthesisOptions":
        return replace(self, **changes)


@dataclass
class AdapterStream:
    """A lazy, single-consumption audio stream plus whatever the engine knows about it."""
    audio_stream: AsyncIterator[bytes]
    native_boundaries: Optional[List[Any]] = None
    duration_ms: Optional[float] = None
    sample_rate: Optional[int] = None


async def iter_chunks(data: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Serve a complete buffer as a stream."""
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]


class EngineAdapter(ABC):
    """Base class for engine adapters."""

    engine_id = "unknown"

    def __init__(self, credentials: Optional[Dict[str, Any]] = None, **options):
        """
        Initialize the adapter.

        Args:
            credentials: Engine-specific credentials (API keys, regions...)
            **options: Engine-specific settings
        """
        self.credentials = dict(credentials or {})
        self.options = options

    @abstractmethod
    async def get_voices(self) -> List[Voice]:
        """
        List the voices this engine offers.

        Returns:
            List of Voice objects
        """
        pass

    async def check_credentials(self) -> bool:
        """
        Whether the engine is usable with the configured credentials.

        Default: listing voices succeeds and returns at least one voice.
        Errors propagate; callers decide how to degrade.
        """
        voices = await self.get_voices()
        return len(voices) > 0

    @abstractmethod
    async def synth_to_bytes(self, text: str, options: SynthesisOptions) -> bytes:
        """
        Synthesize the complete audio.

        Args:
            text: Plain text or markup the engine accepts
            options: Synthesis options (voice, format, rate...)

        Returns:
            Encoded audio bytes
        """
        pass

    @abstractmethod
    async def synth_to_bytestream(self, text: str, options: SynthesisOptions) -> AdapterStream:
        """
        Synthesize as a lazy chunk stream.

        Returns:
            AdapterStream with native word boundaries when the engine reports them
        """
        pass

    def get_default_voice(self) -> Optional[str]:
        """Voice used when neither the options nor the orchestrator select one."""
        return None

    def cleanup(self):
        """Cleanup resources. Override if needed."""
        pass
