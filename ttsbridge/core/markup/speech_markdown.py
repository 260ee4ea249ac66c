"""
Speech Markdown support.

Detects Speech Markdown and converts the commonly used subset to <speak>
markup:

    [500ms]  [2s]  [break:"500ms"]  [break:"strong"]   pauses
    ++word++  +word+  ~word~  -word-                   emphasis levels
    (text)[rate:"slow";pitch:"high"]                   prosody and friends

Anything outside the subset is left as literal text.
"""

import re
from xml.sax.saxutils import escape

from ttsbridge.core.markup.utils import is_markup

_BREAK_TIME_RE = re.compile(r"\[(\d+(?:\.\d+)?)(ms|s)\]")
_BREAK_MODIFIER_RE = re.compile(r'\[break:"([^"\]]+)"\]')
_STRONG_RE = re.compile(r"\+\+(\S(?:.*?\S)?)\+\+")
_MODERATE_RE = re.compile(r"(?<![\w+])\+(\S(?:[^+\n]*?\S)?)\+(?![\w+])")
_NONE_RE = re.compile(r"(?<![\w~])~(\S(?:[^~\n]*?\S)?)~(?![\w~])")
_REDUCED_RE = re.compile(r"(?<![\w-])-(\w(?:[^-\n]*?\w)?)-(?![\w-])")
_MODIFIER_SRC = r'[a-z]+:(?:"[^"\]\n]*"|[^;\]\n"]*)'
_MODIFIED_SPAN_RE = re.compile(
    r"\(([^()\n]+)\)\[(" + _MODIFIER_SRC + r"(?:\s*;\s*" + _MODIFIER_SRC + r")*)\]"
)
_MODIFIER_RE = re.compile(r'([a-z]+):(?:"([^"]*)"|([^;"]*))')

_DETECTION_PATTERNS = (
    _BREAK_TIME_RE,
    _BREAK_MODIFIER_RE,
    _STRONG_RE,
    _MODERATE_RE,
    _NONE_RE,
    _REDUCED_RE,
    _MODIFIED_SPAN_RE,
)

_BREAK_STRENGTHS = {"none", "x-weak", "weak", "medium", "strong", "x-strong"}
_PROSODY_MODIFIERS = ("rate", "pitch", "volume")


def is_speech_markdown(text: str) -> bool:
    """True if the text uses Speech Markdown syntax (and is not already markup)."""
    if not text or is_markup(text):
        return False
    return any(pattern.search(text) for pattern in _DETECTION_PATTERNS)


def _break_from_modifier(match: re.Match) -> str:
    value = match.group(1).strip()
    if value in _BREAK_STRENGTHS:
        return f'<break strength="{value}"/>'
    return f'<break time="{value}"/>'


def _modified_span(match: re.Match) -> str:
    text, raw_modifiers = match.group(1), match.group(2)
    modifiers = {
        key: (quoted if quoted else bare).strip()
        for key, quoted, bare in _MODIFIER_RE.findall(raw_modifiers)
    }

    prosody = [f'{name}="{modifiers[name]}"' for name in _PROSODY_MODIFIERS if name in modifiers]
    if prosody:
        text = f"<prosody {' '.join(prosody)}>{text}</prosody>"
    if "emphasis" in modifiers:
        level = modifiers["emphasis"] or "moderate"
        text = f'<emphasis level="{level}">{text}</emphasis>'
    if "lang" in modifiers:
        text = f'<lang xml:lang="{modifiers["lang"]}">{text}</lang>'
    if "voice" in modifiers:
        text = f'<voice name="{modifiers["voice"]}">{text}</voice>'
    if "sub" in modifiers:
        text = f'<sub alias="{modifiers["sub"]}">{text}</sub>'
    return text


def to_ssml(markdown: str) -> str:
    """Convert Speech Markdown to a <speak> document. Literal text is XML-escaped."""
    if is_markup(markdown):
        return markdown

    out = _BREAK_MODIFIER_RE.sub(_break_from_modifier, escape(markdown))
    out = _BREAK_TIME_RE.sub(lambda m: f'<break time="{m.group(1)}{m.group(2)}"/>', out)
    out = _MODIFIED_SPAN_RE.sub(_modified_span, out)
    out = _STRONG_RE.sub(r'<emphasis level="strong">\1</emphasis>', out)
    out = _MODERATE_RE.sub(r'<emphasis level="moderate">\1</emphasis>', out)
    out = _NONE_RE.sub(r'<emphasis level="none">\1</emphasis>', out)
    out = _REDUCED_RE.sub(r'<emphasis level="reduced">\1</emphasis>', out)
    return f"<speak>{out}</speak>"
