"""
Speech markup handling: compatibility processing, helpers, builder and
Speech Markdown conversion.
"""

from .builder import SSMLBuilder
from .compatibility import (
    MarkupProcessor,
    RegexStrategy,
    TreeStrategy,
    ValidationResult,
    strip_markup,
    transform,
    validate,
)
from .speech_markdown import is_speech_markdown, to_ssml
from .utils import create_prosody_tag, is_markup, wrap_with_speak

__all__ = [
    "MarkupProcessor",
    "RegexStrategy",
    "SSMLBuilder",
    "TreeStrategy",
    "ValidationResult",
    "create_prosody_tag",
    "is_markup",
    "is_speech_markdown",
    "strip_markup",
    "to_ssml",
    "transform",
    "validate",
    "wrap_with_speak",
]
