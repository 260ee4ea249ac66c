"""
Engine adapter registry.

Adapters are looked up by engine id in a map of factories. The bundled
engines are imported lazily so their libraries are only needed when used.
"""

from typing import Callable, Dict, List

from .base import EngineAdapter, logger

AdapterFactory = Callable[..., EngineAdapter]


def _edge(**kwargs) -> EngineAdapter:
    from .edge_engine import EdgeAdapter
    return EdgeAdapter(**kwargs)


def _pyttsx3(**kwargs) -> EngineAdapter:
    from .pyttsx3_engine import Pyttsx3Adapter
    return Pyttsx3Adapter(**kwargs)


def _piper(**kwargs) -> EngineAdapter:
    from .piper_engine import PiperAdapter
    return PiperAdapter(**kwargs)


_registry: Dict[str, AdapterFactory] = {
    "edge": _edge,
    "pyttsx3": _pyttsx3,
    "piper": _piper,
}


def register_adapter(engine_id: str, factory: AdapterFactory, replace: bool = False):
    """
    Make an adapter available under `engine_id`.

    Args:
        engine_id: Engine identifier (case-insensitive)
        factory: Adapter class or callable returning an EngineAdapter
        replace: Allow overriding an existing registration

    Raises:
        ValueError: If the id is taken and replace is False
    """
    key = engine_id.lower()
    if key in _registry and not replace:
        raise ValueError(f"Engine adapter already registered: {engine_id}")
    _registry[key] = factory
    logger.debug(f"Registered engine adapter '{key}'")


def unregister_adapter(engine_id: str) -> bool:
    return _registry.pop(engine_id.lower(), None) is not None


def create_adapter(engine_id: str, **kwargs) -> EngineAdapter:
    """
    Create an engine adapter instance.

    Args:
        engine_id: Engine identifier ("edge", "pyttsx3", "piper" or registered)
        **kwargs: Passed to the adapter constructor

    Returns:
        EngineAdapter instance

    Raises:
        ValueError: If engine_id is unknown
        ImportError: If engine dependencies are missing
    """
    key = engine_id.lower()
    factory = _registry.get(key)
    if factory is None:
        raise ValueError(f"Unknown TTS engine: {engine_id}")

    adapter = factory(**kwargs)
    if getattr(adapter, "engine_id", "unknown") == "unknown":
        adapter.engine_id = key
    return adapter


def available_adapters() -> List[str]:
    return sorted(_registry)
