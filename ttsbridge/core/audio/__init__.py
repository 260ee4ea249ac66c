"""
Audio helpers: duration probing and boundary-driven playback sessions.
"""

from .duration import peek_stream, pcm_duration_ms, probe_bytes, wav_duration_ms, wav_header_duration_ms
from .playback import AudioSink, NullAudioSink, PlaybackEvent, PlaybackSession, PlaybackState

__all__ = [
    "AudioSink",
    "NullAudioSink",
    "PlaybackEvent",
    "PlaybackSession",
    "PlaybackState",
    "peek_stream",
    "pcm_duration_ms",
    "probe_bytes",
    "wav_duration_ms",
    "wav_header_duration_ms",
]
