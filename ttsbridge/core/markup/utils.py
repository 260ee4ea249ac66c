"""Small helpers shared by the markup modules."""

import re
from typing import Optional

SPEAK_NAMESPACE = "http://www.w3.org/2001/10/synthesis"
SPEAK_VERSION = "1.0"

# Self-closing tags that stand for a pause and must keep words apart
PAUSE_TAGS = frozenset({"break"})
# Block tags whose end separates words
BLOCK_TAGS = frozenset({"p", "s"})

_ROOT_RE = re.compile(
    r"^\s*(?:<\?xml[^>]*\?>\s*)?<speak(?=[\s/>])[^>]*>.*</speak\s*>\s*$",
    re.IGNORECASE | re.DOTALL,
)
_WHITESPACE_RE = re.compile(r"\s+")
_MARKUP_START_RE = re.compile(r"\s*<[A-Za-z?!/]")


def is_markup(text: Optional[str]) -> bool:
    """True if the text is wrapped in a <speak> root element."""
    return bool(text) and _ROOT_RE.match(text) is not None


def looks_like_markup(text: Optional[str]) -> bool:
    """True if the text opens with tag syntax, rooted or not."""
    return bool(text) and _MARKUP_START_RE.match(text) is not None


def tag_pattern(tag: str) -> str:
    """Regex source matching the opening of `tag` (not tags that merely share its prefix)."""
    return rf"<{re.escape(tag)}(?=[\s/>])"


def contains_tag(doc: str, tag: str) -> bool:
    return re.search(tag_pattern(tag), doc, re.IGNORECASE) is not None


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def wrap_with_speak(text: str) -> str:
    """Wrap text in <speak> tags unless it already has a root."""
    if is_markup(text):
        return text
    return f"<speak>{text}</speak>"


def create_prosody_tag(text: str, rate=None, pitch=None, volume=None) -> str:
    """Wrap text in a prosody tag for whichever of rate/pitch/volume are set."""
    attrs = []
    if rate:
        attrs.append(f'rate="{rate}"')
    if pitch:
        attrs.append(f'pitch="{pitch}"')
    if volume is not None:
        attrs.append(f'volume="{volume}%"')

    if not attrs:
        return text
    return f"<prosody {' '.join(attrs)}>{text}</prosody>"
