"""
Engine adapter abstraction.

Provides pluggable speech engines behind one interface.
Bundled: edge-tts (cloud), pyttsx3 (local), piper (neural local)
"""

from .base import AdapterStream, EngineAdapter, SynthesisOptions
from .factory import available_adapters, create_adapter, register_adapter, unregister_adapter

__all__ = [
    "AdapterStream",
    "EngineAdapter",
    "SynthesisOptions",
    "available_adapters",
    "create_adapter",
    "register_adapter",
    "unregister_adapter",
]
