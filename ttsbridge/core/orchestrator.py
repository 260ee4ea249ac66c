"""
Synthesis orchestration.

The SynthesisOrchestrator is the public entry point. For every request it:

1. normalizes the input (Speech Markdown conversion, length checks),
2. resolves the capability profile for the engine and voice,
3. validates and transforms markup so the engine only sees what it supports,
4. delegates synthesis to the engine adapter,
5. builds the word-boundary timeline (native or estimated),
6. assembles a SynthesisResult, optionally handing it to a PlaybackSession.

Markup warnings never block synthesis. A markup document without a <speak>
root raises MarkupValidationError; adapter failures surface as
EngineAdapterError with the original exception chained.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Union
from xml.sax.saxutils import unescape

from ttsbridge.core.audio.duration import peek_stream, probe_bytes, wav_header_duration_ms
from ttsbridge.core.audio.playback import AudioSink, NullAudioSink, PlaybackEvent, PlaybackSession, PlaybackState
from ttsbridge.core.boundaries import (
    BoundaryMark,
    estimate_boundaries,
    estimate_duration_ms,
    normalize_native,
    total_duration_ms,
)
from ttsbridge.core.capabilities import CapabilityProfile, CapabilityRegistry, registry as default_registry
from ttsbridge.core.config_system import ConfigManager
from ttsbridge.core.errors import (
    BridgeError,
    CapabilityMismatchWarning,
    EngineAdapterError,
    ErrorCategory,
    MarkupValidationError,
    UserInputError,
    error_handler,
    safe_operation,
)
from ttsbridge.core.markup.compatibility import MarkupProcessor
from ttsbridge.core.markup.speech_markdown import is_speech_markdown, to_ssml
from ttsbridge.core.markup.utils import is_markup, looks_like_markup
from ttsbridge.core.tts_engines.base import EngineAdapter, SynthesisOptions
from ttsbridge.core.voice_utils import Voice, filter_by_language

logger = logging.getLogger("ttsbridge.orchestrator")

OptionsLike = Union[SynthesisOptions, Mapping[str, Any], None]
ListenerMap = Mapping[Union[PlaybackEvent, str], Union[Callable, Iterable[Callable]]]

_FORMAT_EXTENSIONS = {"mp3": ".mp3", "wav": ".wav", "pcm": ".pcm", "ogg": ".ogg"}
_QUOTE_ENTITIES = {"&quot;": '"', "&apos;": "'"}


def _decode_entities(text: str) -> str:
    """Plain text handed to an engine or the timing estimator carries no XML entities."""
    return unescape(text, _QUOTE_ENTITIES)


@dataclass
class SynthesisResult:
    """Audio (bytes or a single-use stream) plus its word timeline."""
    audio_bytes: Optional[bytes] = None
    audio_stream: Optional[AsyncIterator[bytes]] = None
    boundaries: List[BoundaryMark] = field(default_factory=list)
    duration_ms: Optional[float] = None
    warnings: List[CapabilityMismatchWarning] = field(default_factory=list)
    engine_id: str = ""
    voice_id: Optional[str] = None
    format: Optional[str] = None

    def __post_init__(self):
        if (self.audio_bytes is None) == (self.audio_stream is None):
            raise ValueError("SynthesisResult needs exactly one of audio_bytes or audio_stream")

    @property
    def is_stream(self) -> bool:
        return self.audio_stream is not None


@dataclass
class _PreparedInput:
    text: str  # what the adapter receives
    spoken_text: str  # plain text used for boundary estimation
    options: SynthesisOptions
    profile: CapabilityProfile
    warnings: List[CapabilityMismatchWarning]


class SynthesisOrchestrator:
    """Runs synthesis requests against one engine adapter."""

    def __init__(
        self,
        adapter: EngineAdapter,
        engine_id: Optional[str] = None,
        processor: Optional[MarkupProcessor] = None,
        settings: Optional[ConfigManager] = None,
        capabilities: Optional[CapabilityRegistry] = None,
    ):
        """
        Args:
            adapter: Engine adapter performing synthesis
            engine_id: Capability lookup key (defaults to the adapter's engine_id)
            processor: Markup processor (defaults to the configured strategy)
            settings: ConfigManager for the Synthesis/Playback sections
            capabilities: Capability registry (defaults to the built-in table)
        """
        self.adapter = adapter
        self.engine_id = (engine_id or getattr(adapter, "engine_id", None) or "unknown").lower()
        self.settings = settings or ConfigManager()
        self.capabilities = capabilities or default_registry
        self.processor = processor or MarkupProcessor(self._setting("markup_strategy"))

        self.voice_id: Optional[str] = None
        self.lang: Optional[str] = None
        self.properties: Dict[str, Any] = {"rate": None, "pitch": None, "volume": None}
        # Warnings of the most recently prepared request; concurrent requests overwrite
        # each other here, SynthesisResult.warnings is the per-request record
        self.last_warnings: List[CapabilityMismatchWarning] = []

    def _setting(self, key: str, section: str = "Synthesis") -> Any:
        return self.settings.get(section, key, self.engine_id)

    # ------------------------------------------------------------------
    # Voice and property state
    # ------------------------------------------------------------------

    def set_voice(self, voice_id: str, lang: Optional[str] = None):
        """Voice used by later calls whose options omit voice_id."""
        self.voice_id = voice_id
        if lang:
            self.lang = lang
        logger.debug(f"[{self.engine_id}] Voice set to {voice_id}")

    def get_property(self, name: str) -> Any:
        return self.properties.get(name)

    def set_property(self, name: str, value: Any):
        """Default rate/pitch/volume for requests that don't set them."""
        if name not in self.properties:
            raise KeyError(f"Unknown property: {name}")
        self.properties[name] = value

    async def get_voices(self) -> List[Voice]:
        return await self._call_adapter("get_voices", self.adapter.get_voices)

    async def get_voices_by_language(self, language_code: str) -> List[Voice]:
        return filter_by_language(await self.get_voices(), language_code)

    @safe_operation(fallback_value=False, category=ErrorCategory.ENGINE)
    async def check_credentials(self) -> bool:
        """True if the engine is usable; any failure counts as False."""
        return bool(await self.adapter.check_credentials())

    # ------------------------------------------------------------------
    # Input preparation
    # ------------------------------------------------------------------

    def _resolve_options(self, options: OptionsLike) -> SynthesisOptions:
        options = SynthesisOptions.from_mapping(options)
        voice_id = (
            options.voice_id
            or self.voice_id
            or self._setting("default_voice")
            or self.adapter.get_default_voice()
        )
        return options.merged(
            voice_id=voice_id,
            format=options.format or getattr(self.adapter, "output_format", None) or self._setting("default_format"),
            rate=options.rate if options.rate is not None else self.properties["rate"],
            pitch=options.pitch if options.pitch is not None else self.properties["pitch"],
            volume=options.volume if options.volume is not None else self.properties["volume"],
            use_word_boundary=(
                options.use_word_boundary if options.use_word_boundary is not None
                else self._setting("use_word_boundary")
            ),
        )

    def prepare(self, text: str, options: OptionsLike = None) -> _PreparedInput:
        """Normalize, validate and transform input for the adapter."""
        if not isinstance(text, str):
            raise UserInputError("Input must be text.", f"Expected str input, got {type(text).__name__}")

        max_length = self._setting("max_text_length")
        if max_length and len(text) > max_length:
            raise UserInputError(
                f"Input is too long ({len(text)} characters, limit {max_length}).",
                f"Rejected {len(text)}-character input for engine '{self.engine_id}'"
            )

        options = self._resolve_options(options)

        use_markdown = options.use_speech_markdown
        if use_markdown is None:
            use_markdown = self._setting("autodetect_speech_markdown") and is_speech_markdown(text)
        if use_markdown and not looks_like_markup(text):
            text = to_ssml(text)

        profile = self.capabilities.resolve(self.engine_id, options.voice_id)
        warnings: List[CapabilityMismatchWarning] = []

        if looks_like_markup(text):
            result = self.processor.validate(text, profile, self.engine_id)
            if not result.is_valid:
                raise MarkupValidationError(
                    "Markup input must be wrapped in <speak> tags.",
                    errors=result.errors,
                    log_message=f"Markup validation failed for engine '{self.engine_id}': {result.errors}"
                )
            warnings = result.warnings
            for warning in warnings:
                logger.warning(f"[{self.engine_id}] {warning}")

            processed = self.processor.transform(text, profile)
            spoken = _decode_entities(self.processor.strip(text))
            if profile.strips_everything:
                processed = _decode_entities(processed)
        else:
            processed = text
            spoken = text

        if not spoken.strip():
            raise UserInputError("Nothing to synthesize.", f"Empty input for engine '{self.engine_id}'")

        self.last_warnings = warnings
        return _PreparedInput(processed, spoken, options, profile, warnings)

    # ------------------------------------------------------------------
    # Adapter calls
    # ------------------------------------------------------------------

    async def _call_adapter(self, operation: str, func: Callable, *args):
        try:
            return await func(*args)
        except BridgeError:
            raise
        except Exception as e:
            error = EngineAdapterError(self.engine_id, operation, e)
            error_handler.log_error(error, context={"engine": self.engine_id, "operation": operation})
            raise error from e

    async def _guarded(self, stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        try:
            async for chunk in stream:
                yield chunk
        except BridgeError:
            raise
        except Exception as e:
            error = EngineAdapterError(self.engine_id, "audio stream", e)
            error_handler.log_error(error, context={"engine": self.engine_id, "operation": "audio stream"})
            raise error from e

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def _boundaries(
        self,
        prepared: _PreparedInput,
        native: Optional[list],
        duration_ms: Optional[float],
    ) -> List[BoundaryMark]:
        if not prepared.options.use_word_boundary:
            return []
        if native:
            return normalize_native(native, duration_ms)
        return estimate_boundaries(prepared.spoken_text, duration_ms)

    def _fallback_duration(self, prepared: _PreparedInput, native: Optional[list]) -> float:
        if native:
            reported = total_duration_ms(normalize_native(native))
            if reported > 0:
                return reported
        return estimate_duration_ms(prepared.spoken_text, self._setting("words_per_minute"))

    def _result(self, prepared: _PreparedInput, **kwargs) -> SynthesisResult:
        return SynthesisResult(
            warnings=list(prepared.warnings),
            engine_id=self.engine_id,
            voice_id=prepared.options.voice_id,
            format=prepared.options.format,
            **kwargs
        )

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def synth_to_bytes(self, text: str, options: OptionsLike = None) -> bytes:
        """Synthesize and return the raw audio bytes."""
        prepared = self.prepare(text, options)
        return await self._call_adapter("synth_to_bytes", self.adapter.synth_to_bytes, prepared.text, prepared.options)

    async def synthesize(self, text: str, options: OptionsLike = None) -> SynthesisResult:
        """Synthesize the complete audio together with its boundaries."""
        prepared = self.prepare(text, options)
        stream = await self._call_adapter(
            "synth_to_bytestream", self.adapter.synth_to_bytestream, prepared.text, prepared.options
        )

        chunks = [chunk async for chunk in self._guarded(stream.audio_stream)]
        audio = b"".join(chunks)

        duration = stream.duration_ms
        if duration is None:
            duration = probe_bytes(audio, prepared.options.format, stream.sample_rate)
        if duration is None:
            duration = self._fallback_duration(prepared, stream.native_boundaries)

        boundaries = self._boundaries(prepared, stream.native_boundaries, duration)
        logger.info(
            f"[{self.engine_id}] Synthesized {len(audio)} bytes, {duration:.0f}ms, {len(boundaries)} boundaries"
        )
        return self._result(prepared, audio_bytes=audio, boundaries=boundaries, duration_ms=duration)

    async def synth_to_bytestream(self, text: str, options: OptionsLike = None) -> SynthesisResult:
        """
        Synthesize as a lazy stream.

        Boundaries are computed before the stream is handed out. Only the
        first chunk is read early (to look for a WAV header) and it is
        yielded again by the returned stream.
        """
        prepared = self.prepare(text, options)
        stream = await self._call_adapter(
            "synth_to_bytestream", self.adapter.synth_to_bytestream, prepared.text, prepared.options
        )
        audio_stream = self._guarded(stream.audio_stream)

        duration = stream.duration_ms
        if duration is None:
            first, audio_stream = await peek_stream(audio_stream)
            duration = wav_header_duration_ms(first)
        if duration is None:
            duration = self._fallback_duration(prepared, stream.native_boundaries)

        boundaries = self._boundaries(prepared, stream.native_boundaries, duration)
        return self._result(prepared, audio_stream=audio_stream, boundaries=boundaries, duration_ms=duration)

    async def synth_to_file(self, text: str, path: Union[str, Path], options: OptionsLike = None) -> Path:
        """Write synthesized audio to `path`, adding the format's extension if missing."""
        prepared_options = self._resolve_options(options)
        audio = await self.synth_to_bytes(text, prepared_options)

        path = Path(path)
        extension = _FORMAT_EXTENSIONS.get((prepared_options.format or "").lower())
        if extension and path.suffix.lower() != extension:
            path = path.with_name(path.name + extension)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)
        logger.info(f"[{self.engine_id}] Wrote {len(audio)} bytes to {path}")
        return path

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    async def speak(
        self,
        text: str,
        options: OptionsLike = None,
        listeners: Optional[ListenerMap] = None,
        sink: Optional[AudioSink] = None,
        on_session: Optional[Callable[[PlaybackSession], None]] = None,
    ) -> PlaybackState:
        """Synthesize fully, then play with timed events until a terminal state."""
        result = await self.synthesize(text, options)
        return await self.play(result, listeners, sink, on_session)

    async def speak_streamed(
        self,
        text: str,
        options: OptionsLike = None,
        listeners: Optional[ListenerMap] = None,
        sink: Optional[AudioSink] = None,
        on_session: Optional[Callable[[PlaybackSession], None]] = None,
    ) -> PlaybackState:
        """Like speak(), but the sink receives the audio as a stream."""
        result = await self.synth_to_bytestream(text, options)
        return await self.play(result, listeners, sink, on_session)

    async def play(
        self,
        result: SynthesisResult,
        listeners: Optional[ListenerMap] = None,
        sink: Optional[AudioSink] = None,
        on_session: Optional[Callable[[PlaybackSession], None]] = None,
    ) -> PlaybackState:
        """
        Play a result in a new PlaybackSession and wait for it to finish.

        `listeners` maps events to one callback or a list of them.
        `on_session` receives the session before it starts so the caller can
        pause, resume or stop it.
        """
        session = PlaybackSession.from_result(
            result,
            sink=sink or NullAudioSink(),
            completion_grace_ms=self._setting("completion_grace_ms", "Playback"),
        )

        for event, callbacks in (listeners or {}).items():
            if callable(callbacks):
                callbacks = [callbacks]
            for callback in callbacks:
                session.on(event, callback)

        if on_session is not None:
            on_session(session)

        session.start()
        return await session.wait()
