"""
ttsbridge - one synthesis API over heterogeneous speech engines.

    from ttsbridge import SynthesisOrchestrator, create_adapter

    tts = SynthesisOrchestrator(create_adapter("edge"))
    result = await tts.synthesize("<speak>Hello <break time='300ms'/> world</speak>")
    for mark in result.boundaries:
        print(mark.text, mark.start_sec, mark.end_sec)
"""

from ttsbridge.core.audio.playback import AudioSink, NullAudioSink, PlaybackEvent, PlaybackSession, PlaybackState
from ttsbridge.core.boundaries import BoundaryMark, BoundarySource
from ttsbridge.core.capabilities import CapabilityProfile, SupportLevel, resolve
from ttsbridge.core.config_system import ConfigManager
from ttsbridge.core.errors import (
    BridgeError,
    CapabilityMismatchWarning,
    ConfigError,
    EngineAdapterError,
    MarkupValidationError,
    PlaybackStateError,
    UserInputError,
)
from ttsbridge.core.orchestrator import SynthesisOrchestrator, SynthesisResult
from ttsbridge.core.tts_engines import (
    AdapterStream,
    EngineAdapter,
    SynthesisOptions,
    available_adapters,
    create_adapter,
    register_adapter,
)
from ttsbridge.core.voice_utils import LanguageCode, Voice
from ttsbridge.version import __version__

__all__ = [
    "AdapterStream",
    "AudioSink",
    "BoundaryMark",
    "BoundarySource",
    "BridgeError",
    "CapabilityMismatchWarning",
    "CapabilityProfile",
    "ConfigError",
    "ConfigManager",
    "EngineAdapter",
    "EngineAdapterError",
    "LanguageCode",
    "MarkupValidationError",
    "NullAudioSink",
    "PlaybackEvent",
    "PlaybackSession",
    "PlaybackState",
    "PlaybackStateError",
    "SupportLevel",
    "SynthesisOptions",
    "SynthesisOrchestrator",
    "SynthesisResult",
    "UserInputError",
    "Voice",
    "available_adapters",
    "create_adapter",
    "register_adapter",
    "resolve",
    "__version__",
]
