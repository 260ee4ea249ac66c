"""
ttsbridge version information.

Semantic versioning: MAJOR.MINOR.PATCH
- MAJOR: Incompatible API changes
- MINOR: Backwards-compatible functionality additions
- PATCH: Backwards-compatible bug fixes
"""

__version__ = "0.3.0"
__version_info__ = (0, 3, 0)

# Version history
VERSION_HISTORY = {
    "0.3.0": "Tag-tree markup strategy as default (regex kept as fallback), streamed synthesis peeks WAV headers for duration",
    "0.2.0": "Playback sessions with pause/resume/stop, audio sinks, Speech Markdown autodetection",
    "0.1.0": "Initial release: capability registry, markup compatibility, word boundary estimation, edge/pyttsx3/piper adapters",
}


def get_version() -> str:
    """Get the current ttsbridge version string."""
    return __version__


def get_version_info() -> tuple:
    """Get the current ttsbridge version as a tuple of integers."""
    return __version_info__
