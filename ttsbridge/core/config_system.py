"""
Configuration System

Declarative, self-documenting configuration where each section is a dataclass
schema. Values resolve with the hierarchy:

    default -> JSON file -> environment variable -> per-engine override

Design decisions:
- Nested JSON format: {"Synthesis": {"key": value}}
- Environment variables are named SECTION_KEY (e.g. SYNTHESIS_WORDS_PER_MINUTE)
- Invalid values are logged and the default is kept
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from ttsbridge.core.config_base import PlaybackConfig, SynthesisConfig

logger = logging.getLogger("ttsbridge.config_system")

DEFAULT_SECTIONS = {
    "Synthesis": SynthesisConfig,
    "Playback": PlaybackConfig,
}


@dataclass
class ConfigField:
    """
    Metadata for a single configuration field.

    Attributes:
        name: Field name (e.g., "words_per_minute")
        type: Python type (bool, int, float, str, etc.)
        default: Default value
        description: Human-readable description
        category: Grouping category
        engine_override: Whether this setting can be overridden per engine id
        min_value: Minimum value (for numeric types)
        max_value: Maximum value (for numeric types)
        choices: List of valid choices (for enums)
        validator: Custom validation function (value -> (bool, error_msg))
    """
    name: str
    type: Type
    default: Any
    description: str
    category: str
    engine_override: bool = False
    min_value: Optional[Union[int, float]] = None
    max_value: Optional[Union[int, float]] = None
    choices: Optional[List[Any]] = None
    validator: Optional[Callable[[Any], Tuple[bool, str]]] = None

    def coerce(self, value: Any) -> Any:
        """Convert a value (possibly an environment string) to this field's type."""
        if isinstance(value, self.type):
            return value
        if self.type is bool and isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        if self.type is list and isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return self.type(value)

    def validate(self, value: Any) -> Tuple[bool, Optional[str]]:
        """
        Validate a value against this field's constraints.

        Returns:
            (is_valid, error_message)
        """
        try:
            value = self.coerce(value)
        except (ValueError, TypeError):
            return False, f"Expected {self.type.__name__}, got {type(value).__name__}"

        if self.min_value is not None and value < self.min_value:
            return False, f"Value {value} below minimum {self.min_value}"

        if self.max_value is not None and value > self.max_value:
            return False, f"Value {value} above maximum {self.max_value}"

        if self.choices is not None and value not in self.choices:
            return False, f"Value {value} not in valid choices: {self.choices}"

        if self.validator is not None:
            is_valid, error_msg = self.validator(value)
            if not is_valid:
                return False, error_msg

        return True, None


@dataclass
class ConfigSchema:
    """
    Configuration schema for one section.

    Attributes:
        section: Name of the section (e.g., "Synthesis")
        fields: Dictionary of field_name -> ConfigField
    """
    section: str
    fields: Dict[str, ConfigField] = field(default_factory=dict)

    @classmethod
    def from_dataclass(cls, section: str, config_class: Type) -> "ConfigSchema":
        """Extract schema from a config dataclass."""
        from dataclasses import fields as dataclass_fields

        schema = cls(section=section)
        type_map = {"bool": bool, "int": int, "float": float, "str": str, "list": list}

        for dc_field in dataclass_fields(config_class):
            metadata = dc_field.metadata if dc_field.metadata else {}
            field_type = dc_field.type
            if isinstance(field_type, str):
                field_type = type_map.get(field_type, str)

            schema.fields[dc_field.name] = ConfigField(
                name=dc_field.name,
                type=field_type,
                default=dc_field.default,
                description=metadata.get("description", ""),
                category=metadata.get("category", "General"),
                engine_override=metadata.get("engine_override", False),
                min_value=metadata.get("min_value"),
                max_value=metadata.get("max_value"),
                choices=metadata.get("choices"),
                validator=metadata.get("validator"),
            )

        return schema


class ConfigProxy:
    """
    Proxy object that provides property access to config values.

    cfg = manager.section("Synthesis", engine_id="polly"); cfg.words_per_minute
    """

    def __init__(self, manager: "ConfigManager", section: str, engine_id: Optional[str] = None):
        self._manager = manager
        self._section = section
        self._engine_id = engine_id

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)

        return self._manager.get(self._section, name, self._engine_id)

    def __setattr__(self, name: str, value: Any):
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            success, error = self._manager.set(self._section, name, value, self._engine_id)
            if not success:
                raise ValueError(f"Failed to set {name}: {error}")


class ConfigManager:
    """
    Central configuration manager.

    Manages section schemas, file overrides, engine overrides, and provides a
    unified API for config access.
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None, env: Optional[Dict[str, str]] = None):
        """
        Initialize the config manager.

        Args:
            config_file: Optional JSON file with {"Section": {"key": value}} overrides
            env: Environment mapping to read overrides from (defaults to os.environ)
        """
        self.config_file = Path(config_file) if config_file else None
        self.env = env if env is not None else os.environ
        self.schemas: Dict[str, ConfigSchema] = {}
        self.file_overrides: Dict[str, Dict[str, Any]] = {}
        self.engine_overrides: Dict[str, Dict[str, Dict[str, Any]]] = {}  # {engine_id: {section: {key: value}}}
        self._cache: Dict[Tuple[str, str, Optional[str]], Any] = {}

        for section, config_class in DEFAULT_SECTIONS.items():
            self.register_schema(section, ConfigSchema.from_dataclass(section, config_class))

        self._load_file_config()

    def register_schema(self, section: str, schema: ConfigSchema):
        """Register a section schema."""
        self.schemas[section] = schema
        self._cache = {k: v for k, v in self._cache.items() if k[0] != section}
        logger.debug(f"Registered config schema for {section} ({len(schema.fields)} fields)")

    def get(self, section: str, key: str, engine_id: Optional[str] = None) -> Any:
        """
        Get config value with hierarchy: default -> file -> env -> engine.

        Unknown sections or keys log an error and return None.
        """
        cache_key = (section, key, engine_id)
        if cache_key in self._cache:
            return self._cache[cache_key]

        if section not in self.schemas:
            logger.error(f"Invalid config section '{section}', using None")
            return None

        schema = self.schemas[section]
        if key not in schema.fields:
            logger.error(f"Invalid config '{key}' for section '{section}', using None")
            return None

        field_meta = schema.fields[key]
        value = field_meta.default

        file_value = self.file_overrides.get(section, {}).get(key)
        if file_value is not None:
            value = self._checked(field_meta, file_value, value, f"{self.config_file}")

        env_var_name = f"{section.upper()}_{key.upper()}"
        env_value = self.env.get(env_var_name)
        if env_value is not None:
            value = self._checked(field_meta, env_value, value, env_var_name)

        if engine_id is not None and field_meta.engine_override:
            engine_value = self.engine_overrides.get(engine_id, {}).get(section, {}).get(key)
            if engine_value is not None:
                value = engine_value

        self._cache[cache_key] = value
        return value

    def set(self, section: str, key: str, value: Any, engine_id: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        """
        Set config value with validation.

        Returns:
            (success, error_message)
        """
        if section not in self.schemas:
            return False, f"Unknown section: {section}"

        schema = self.schemas[section]
        if key not in schema.fields:
            return False, f"Unknown config key: {key}"

        field_meta = schema.fields[key]

        is_valid, error = field_meta.validate(value)
        if not is_valid:
            logger.error(f"Invalid config '{key}': {value} ({error}), keeping previous value")
            return False, error

        value = field_meta.coerce(value)

        if engine_id is None:
            self.file_overrides.setdefault(section, {})[key] = value
        else:
            if not field_meta.engine_override:
                return False, f"Setting '{key}' does not support engine overrides"
            self.engine_overrides.setdefault(engine_id, {}).setdefault(section, {})[key] = value

        self._cache = {k: v for k, v in self._cache.items() if k[:2] != (section, key)}
        return True, None

    def section(self, section: str, engine_id: Optional[str] = None) -> ConfigProxy:
        """Get a config proxy for property access."""
        return ConfigProxy(self, section, engine_id)

    def get_schema(self, section: str) -> Optional[ConfigSchema]:
        """Get the config schema for a section."""
        return self.schemas.get(section)

    def save(self):
        """Save file-level overrides to disk (nested JSON format)."""
        if self.config_file is None:
            raise ValueError("No config file configured")
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.file_overrides, f, indent=2, ensure_ascii=False)
        logger.info(f"Configuration saved to {self.config_file}")

    def reload(self):
        """Reload the config file and drop cached values."""
        self._load_file_config()
        self._cache.clear()
        logger.info("Reloaded configuration")

    def _checked(self, field_meta: ConfigField, candidate: Any, fallback: Any, origin: str) -> Any:
        is_valid, error = field_meta.validate(candidate)
        if not is_valid:
            logger.warning(f"Ignoring {origin} value for '{field_meta.name}': {candidate!r} ({error})")
            return fallback
        return field_meta.coerce(candidate)

    def _load_file_config(self):
        """Load overrides from the JSON config file."""
        if self.config_file is None or not self.config_file.exists():
            self.file_overrides = {}
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load config file {self.config_file}: {e}")
            self.file_overrides = {}
            return

        self.file_overrides = {k: v for k, v in config_data.items() if isinstance(v, dict)}
        logger.info(f"Loaded config file ({len(self.file_overrides)} sections)")
