# config.py
"""
Process-level configuration.

Only the settings needed before a ConfigManager exists live here: which
engine to create, where the JSON config file is, and how to log. Everything
that tunes synthesis itself (default voice, format, markup strategy, timing)
is declared in ttsbridge/core/config_base.py and managed by ConfigManager.

Values come from the environment; a .env file in the working directory is
loaded first.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from ttsbridge.core.errors import ConfigError

load_dotenv()


@dataclass
class BridgeConfig:
    """Bootstrap configuration."""

    engine: Optional[str] = None  # TTSBRIDGE_ENGINE, falls back to Synthesis.default_engine
    config_file: Optional[str] = None  # TTSBRIDGE_CONFIG
    log_level: str = "INFO"  # LOG_LEVEL
    log_file: Optional[str] = None  # TTSBRIDGE_LOG_FILE
    engine_options: Dict[str, str] = field(default_factory=dict)  # TTSBRIDGE_<ENGINE>_<OPTION>

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None):
        """Create config from environment variables.

        Raises:
            ConfigError: If LOG_LEVEL is not a logging level name
        """
        env = os.environ if env is None else env

        log_level = env.get("LOG_LEVEL", "INFO").upper()
        if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(
                f"Invalid log level: {log_level}",
                f"LOG_LEVEL must be a logging level name, got {log_level!r}"
            )

        engine = (env.get("TTSBRIDGE_ENGINE") or "").strip().lower() or None

        # Engine-specific options, e.g. TTSBRIDGE_PIPER_MODEL_DIR=/models
        engine_options = {}
        if engine:
            prefix = f"TTSBRIDGE_{engine.upper()}_"
            engine_options = {
                key[len(prefix):].lower(): value
                for key, value in env.items()
                if key.startswith(prefix)
            }

        return cls(
            engine=engine,
            config_file=env.get("TTSBRIDGE_CONFIG") or None,
            log_level=log_level,
            log_file=env.get("TTSBRIDGE_LOG_FILE") or None,
            engine_options=engine_options,
        )

    def setup_logging(self):
        """Configure the ttsbridge logger from LOG_LEVEL and TTSBRIDGE_LOG_FILE."""
        from ttsbridge.logging_setup import setup_logging

        return setup_logging(self.log_level, self.log_file)

    def create_orchestrator(self, settings=None):
        """
        Build the ConfigManager, engine adapter and orchestrator this config describes.

        Raises:
            ConfigError: If the configured engine is not registered
        """
        from ttsbridge.core.config_system import ConfigManager
        from ttsbridge.core.orchestrator import SynthesisOrchestrator
        from ttsbridge.core.tts_engines import available_adapters, create_adapter

        settings = settings or ConfigManager(self.config_file)
        engine = self.engine or settings.get("Synthesis", "default_engine")
        if engine.lower() not in available_adapters():
            raise ConfigError(
                f"Unknown speech engine: {engine}",
                f"Engine {engine!r} is not registered (known: {', '.join(available_adapters())})"
            )
        adapter = create_adapter(engine, **self.engine_options)
        return SynthesisOrchestrator(adapter, engine_id=engine, settings=settings)

    def display(self):
        """Display current configuration (safe for logging)."""
        return f"""
Bridge Configuration (Bootstrap):
==================
Engine: {self.engine or "(from Synthesis.default_engine)"}
Config File: {self.config_file or "(none)"}
Log Level: {self.log_level}
Log File: {self.log_file or "(console only)"}
Engine Options: {", ".join(sorted(self.engine_options)) or "(none)"}
"""
