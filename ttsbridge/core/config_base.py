"""
Configuration Base Classes and Helpers

Sections of the bridge configuration are plain dataclasses whose fields are
declared with `config_field()`, so the ConfigManager can derive a validated
schema from them.

Example usage:
    @dataclass
    class SynthesisConfig(ConfigBase):
        words_per_minute: int = config_field(
            default=150,
            description="Speaking rate used when audio duration is unknown",
            category="Timing",
            engine_override=True,
            min_value=40,
            max_value=400
        )
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union


def config_field(
    default: Any,
    description: str,
    category: str = "General",
    engine_override: bool = False,
    min_value: Optional[Union[int, float]] = None,
    max_value: Optional[Union[int, float]] = None,
    choices: Optional[List[Any]] = None,
) -> Any:
    """
    Helper function to define a config field with metadata.

    Args:
        default: Default value for this field
        description: Human-readable description
        category: Grouping category (e.g., "Markup", "Timing")
        engine_override: Whether this setting can be overridden per engine id
        min_value: Minimum value (for numeric types)
        max_value: Maximum value (for numeric types)
        choices: List of valid choices (for enum-like fields)

    Returns:
        A dataclass field with metadata attached
    """

    metadata = {
        "description": description,
        "category": category,
        "engine_override": engine_override,
        "min_value": min_value,
        "max_value": max_value,
        "choices": choices,
    }

    return field(default=default, metadata=metadata)


@dataclass
class ConfigBase:
    """
    Base class for configuration sections.

    Subclasses only declare fields; values are always read through the
    ConfigManager so that file, environment and per-engine overrides apply.
    """


@dataclass
class SynthesisConfig(ConfigBase):
    """Synthesis configuration schema."""

    default_engine: str = config_field(
        default="edge",
        description="Engine id used when the caller does not pick one",
        category="Engine"
    )

    default_voice: str = config_field(
        default="",
        description="Voice id used when neither the request nor set_voice() provides one",
        category="Engine",
        engine_override=True
    )

    default_format: str = config_field(
        default="mp3",
        description="Audio format requested from the engine",
        category="Engine",
        engine_override=True,
        choices=["mp3", "wav", "pcm", "ogg"]
    )

    markup_strategy: str = config_field(
        default="tree",
        description="How markup is transformed: tag tree (default) or iterated regex",
        category="Markup",
        choices=["tree", "regex"]
    )

    autodetect_speech_markdown: bool = config_field(
        default=False,
        description="Convert Speech Markdown input even when the request does not ask for it",
        category="Markup",
        engine_override=True
    )

    use_word_boundary: bool = config_field(
        default=True,
        description="Produce word boundaries when the request does not say otherwise",
        category="Timing",
        engine_override=True
    )

    words_per_minute: int = config_field(
        default=150,
        description="Speaking rate used to guess duration when the audio does not report it",
        category="Timing",
        engine_override=True,
        min_value=40,
        max_value=400
    )

    max_text_length: int = config_field(
        default=0,
        description="Reject inputs longer than this many characters (0 = unlimited)",
        category="Engine",
        engine_override=True,
        min_value=0
    )


@dataclass
class PlaybackConfig(ConfigBase):
    """Playback configuration schema."""

    completion_grace_ms: int = config_field(
        default=0,
        description="Extra time after the audio duration before a sinkless session ends",
        category="Playback",
        min_value=0,
        max_value=10000
    )
