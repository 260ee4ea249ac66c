"""
SSML builder for composing <speak> documents step by step.
"""

from typing import Optional

from ttsbridge.core.markup.utils import create_prosody_tag, wrap_with_speak


class SSMLBuilder:
    """Accumulates a single <speak> document."""

    def __init__(self):
        self.ssml = ""

    def add(self, text: str) -> str:
        """Replace the document with `text`, wrapping it in <speak> if needed."""
        self.ssml = wrap_with_speak(text)
        return self.ssml

    def add_break(self, time: str = "500ms") -> "SSMLBuilder":
        """Append a pause before the closing </speak>."""
        self._append(f'<break time="{time}"/>')
        return self

    def add_prosody(
        self,
        text: str,
        rate: Optional[str] = None,
        pitch: Optional[str] = None,
        volume=None,
    ) -> "SSMLBuilder":
        """
        Append text wrapped in a prosody element.

        `volume` is a percentage ("80" or 80 both give volume="80%").
        """
        if volume is not None:
            volume = str(volume).rstrip("%")
        self._append(create_prosody_tag(text, rate=rate, pitch=pitch, volume=volume))
        return self

    def add_text(self, text: str) -> "SSMLBuilder":
        self._append(text)
        return self

    def wrap_with_speak(self, text: str) -> str:
        return wrap_with_speak(text)

    def clear(self):
        self.ssml = ""

    def _append(self, fragment: str):
        if not self.ssml:
            self.ssml = f"<speak>{fragment}</speak>"
            return
        index = self.ssml.lower().rfind("</speak")
        self.ssml = self.ssml[:index] + fragment + self.ssml[index:]

    def __str__(self) -> str:
        return self.ssml
