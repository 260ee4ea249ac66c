"""
Markup compatibility processing.

Validates a <speak> document against a capability profile and rewrites it so
the target engine only receives markup it understands:

- engines without markup support (or with the "all" wildcard) get plain text,
- limited engines lose exactly the tags they cannot handle,
- full engines keep the document, plus any root declarations they require.

Two interchangeable strategies do the rewriting. The default parses the
document into a small tag tree and rewrites it in one traversal. The regex
strategy is kept as a fallback for short, well-formed input. Both are driven
to a fixed point, so transform() is idempotent.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from ttsbridge.core.capabilities import ALL_TAGS, CapabilityProfile
from ttsbridge.core.errors import CapabilityMismatchWarning
from ttsbridge.core.markup import parser
from ttsbridge.core.markup.parser import Element, Raw, Text
from ttsbridge.core.markup.utils import (
    BLOCK_TAGS,
    PAUSE_TAGS,
    SPEAK_NAMESPACE,
    SPEAK_VERSION,
    collapse_whitespace,
    contains_tag,
    is_markup,
    tag_pattern,
)

logger = logging.getLogger("ttsbridge.markup")

_ROOT_OPEN_RE = re.compile(
    r"""<speak(?=[\s/>])(?:(?:[^>"']|"[^"]*"|'[^']*')*|[^>]*)>""", re.IGNORECASE
)
_LEFTOVER_TAG_RE = re.compile(r"<[^<>]*>")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[CapabilityMismatchWarning] = field(default_factory=list)


def root_attributes(doc: str) -> dict:
    """Attributes of the first <speak> opening tag ({} if there is none)."""
    match = _ROOT_OPEN_RE.search(doc)
    if match is None:
        return {}
    return parser.parse_attributes(match.group(0)[len("<speak"):-1])


def _add_root_attributes(open_tag: str, attributes: dict, namespace: bool, version: bool) -> str:
    if namespace and "xmlns" not in attributes:
        if open_tag.endswith("/>"):
            open_tag = f'{open_tag[:-2].rstrip()} xmlns="{SPEAK_NAMESPACE}"/>'
        else:
            open_tag = f'{open_tag[:-1].rstrip()} xmlns="{SPEAK_NAMESPACE}">'
    if version and "version" not in attributes:
        open_tag = f'{open_tag[:6]} version="{SPEAK_VERSION}"{open_tag[6:]}'
    return open_tag


def _finish_plain_text(text: str) -> str:
    text = _LEFTOVER_TAG_RE.sub("", text)
    return collapse_whitespace(text.replace("<", " "))


class TreeStrategy:
    """Rewrites markup through the tag tree in parser.py."""

    name = "tree"

    def strip_all(self, doc: str) -> str:
        return _finish_plain_text(self._plain_text(parser.parse(doc)))

    def _plain_text(self, nodes: List[parser.Node]) -> str:
        out = []
        for node in nodes:
            if isinstance(node, Text):
                out.append(node.value)
            elif isinstance(node, Element):
                if node.name in PAUSE_TAGS:
                    out.append(" ")
                elif not node.self_closing:
                    out.append(self._plain_text(node.children))
                    if node.name in BLOCK_TAGS:
                        out.append(" ")
            # Comments, declarations and stray closing tags carry no speech
        return "".join(out)

    def remove_tags(self, doc: str, tags: Iterable[str]) -> str:
        tags = {t.lower() for t in tags}
        nodes = self._drop_stray_closes(parser.parse(doc), tags)

        def visit(element: Element) -> Optional[str]:
            if element.name not in tags:
                return None
            if element.self_closing:
                return " " if element.name in PAUSE_TAGS else ""
            return parser.render(element.children, visit)

        return parser.render(nodes, visit)

    def _drop_stray_closes(self, nodes: List[parser.Node], tags: set) -> List[parser.Node]:
        kept = []
        for node in nodes:
            if isinstance(node, Raw) and node.kind == "stray_close" and node.name in tags:
                continue
            if isinstance(node, Element):
                node.children = self._drop_stray_closes(node.children, tags)
            kept.append(node)
        return kept

    def inject_root_attributes(self, doc: str, namespace: bool, version: bool) -> str:
        nodes = parser.parse(doc)
        root = parser.find_root(nodes)
        if root is None:
            return doc
        root.open_raw = _add_root_attributes(root.open_raw, root.attributes, namespace, version)
        return parser.serialize(nodes)


class RegexStrategy:
    """
    Iterated regex substitution.

    Only reliable for well-formed input. Documents with a quoted '>' inside a
    tag are handed to the tree strategy. Same-name nesting is handled by
    repeating the substitutions until the document stops changing.
    """

    name = "regex"

    PAIRED_TAGS = ("emphasis", "prosody", "voice", "say-as", "phoneme", "sub", "p", "s", "lang", "audio")

    _PROLOG_RE = re.compile(r"<\?xml[^>]*\?>|<!--.*?-->", re.DOTALL)
    _SPEAK_RE = re.compile(r"<speak(?=[\s/>])[^>]*>|</speak\s*>", re.IGNORECASE)
    _BREAK_RE = re.compile(tag_pattern("break") + r"[^>]*>", re.IGNORECASE)
    _MARK_RE = re.compile(tag_pattern("mark") + r"[^>]*/?>", re.IGNORECASE)
    _QUOTED_GT_RE = re.compile(r"""<[A-Za-z][^<>]*?=\s*(?:"[^"<]*>[^"]*"|'[^'<]*>[^']*')""")

    def __init__(self, max_passes: int = 32):
        self.max_passes = max_passes
        self._tree = TreeStrategy()

    def _needs_tree(self, doc: str) -> bool:
        if self._QUOTED_GT_RE.search(doc):
            logger.debug("Quoted '>' in a tag, using the tree strategy")
            return True
        return False

    @staticmethod
    def _paired(tag: str) -> re.Pattern:
        return re.compile(
            tag_pattern(tag) + r"[^>]*>(.*?)</" + re.escape(tag) + r"\s*>",
            re.IGNORECASE | re.DOTALL,
        )

    def strip_all(self, doc: str) -> str:
        if self._needs_tree(doc):
            return self._tree.strip_all(doc)

        result = self._PROLOG_RE.sub("", doc)
        result = self._SPEAK_RE.sub("", result)
        result = self._BREAK_RE.sub(" ", result)

        previous = None
        passes = 0
        while result != previous and passes < self.max_passes:
            previous = result
            passes += 1
            for tag in self.PAIRED_TAGS:
                suffix = " " if tag in BLOCK_TAGS else ""
                result = self._paired(tag).sub(lambda m: m.group(1) + suffix, result)
            result = self._MARK_RE.sub("", result)
            result = _LEFTOVER_TAG_RE.sub("", result)

        return _finish_plain_text(result)

    def remove_tags(self, doc: str, tags: Iterable[str]) -> str:
        if self._needs_tree(doc):
            return self._tree.remove_tags(doc, tags)

        result = doc
        for tag in tags:
            replacement = " " if tag.lower() in PAUSE_TAGS else ""
            self_closing = re.compile(tag_pattern(tag) + r"[^>]*/>", re.IGNORECASE)
            result = self_closing.sub(replacement, result)

            paired = self._paired(tag)
            previous = None
            passes = 0
            while result != previous and passes < self.max_passes:
                previous = result
                passes += 1
                result = paired.sub(r"\1", result)
        return result

    def inject_root_attributes(self, doc: str, namespace: bool, version: bool) -> str:
        if self._needs_tree(doc):
            return self._tree.inject_root_attributes(doc, namespace, version)

        match = _ROOT_OPEN_RE.search(doc)
        if match is None:
            return doc
        open_tag = match.group(0)
        attributes = parser.parse_attributes(open_tag[len("<speak"):-1])
        updated = _add_root_attributes(open_tag, attributes, namespace, version)
        return doc[:match.start()] + updated + doc[match.end():]


STRATEGIES = {
    TreeStrategy.name: TreeStrategy,
    RegexStrategy.name: RegexStrategy,
}


class MarkupProcessor:
    """Validates and transforms markup for a resolved capability profile."""

    def __init__(self, strategy: str = "tree", max_passes: int = 32):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown markup strategy: {strategy!r} (expected one of {sorted(STRATEGIES)})")
        if strategy == RegexStrategy.name:
            self.strategy = RegexStrategy(max_passes)
        else:
            self.strategy = TreeStrategy()
        self.max_passes = max_passes

    def validate(self, doc: str, profile: CapabilityProfile, engine_id: Optional[str] = None) -> ValidationResult:
        """
        Check a document against a profile.

        Only a missing <speak> root is an error. Everything the engine cannot
        honour is reported as a warning because transform() degrades it.
        """
        label = engine_id or "target"
        errors: List[str] = []
        warnings: List[CapabilityMismatchWarning] = []

        if not is_markup(doc):
            errors.append("Markup must be wrapped in <speak> tags")

        if not profile.supports_markup:
            warnings.append(CapabilityMismatchWarning(
                f"Engine '{label}' does not support markup. Tags will be stripped.",
                engine_id, ALL_TAGS,
            ))
            return ValidationResult(not errors, errors, warnings)

        if ALL_TAGS in profile.unsupported_tags:
            warnings.append(CapabilityMismatchWarning(
                f"Engine '{label}' does not support any markup tags with this voice. All tags will be stripped.",
                engine_id, ALL_TAGS,
            ))
        else:
            for tag in sorted(profile.unsupported_tags):
                if contains_tag(doc, tag):
                    warnings.append(CapabilityMismatchWarning(
                        f"Tag '<{tag}>' is not supported by engine '{label}' and will be removed.",
                        engine_id, tag,
                    ))

        attributes = root_attributes(doc)
        if profile.requires_namespace and "xmlns" not in attributes:
            warnings.append(CapabilityMismatchWarning(
                f"Engine '{label}' requires an xmlns attribute on <speak>; it will be added.",
                engine_id, "speak",
            ))
        if profile.requires_version and "version" not in attributes:
            warnings.append(CapabilityMismatchWarning(
                f"Engine '{label}' requires a version attribute on <speak>; it will be added.",
                engine_id, "speak",
            ))

        return ValidationResult(not errors, errors, warnings)

    def transform(self, doc: str, profile: CapabilityProfile) -> str:
        """Rewrite a document so the profile's engine can accept it."""
        if profile.strips_everything:
            return self._fixed_point(self.strategy.strip_all, doc)

        result = doc
        if profile.unsupported_tags:
            tags = sorted(profile.unsupported_tags)
            result = self._fixed_point(lambda d: self.strategy.remove_tags(d, tags), result)

        if profile.requires_namespace or profile.requires_version:
            result = self.strategy.inject_root_attributes(
                result, profile.requires_namespace, profile.requires_version
            )
        return result

    def strip(self, doc: str) -> str:
        """Reduce any markup to plain text."""
        return self._fixed_point(self.strategy.strip_all, doc)

    def _fixed_point(self, step: Callable[[str], str], doc: str) -> str:
        current = doc
        for _ in range(self.max_passes):
            updated = step(current)
            if updated == current:
                return updated
            current = updated
        logger.warning(f"Markup rewrite did not settle after {self.max_passes} passes ({self.strategy.name})")
        return current


default_processor = MarkupProcessor()


def validate(doc: str, profile: CapabilityProfile, engine_id: Optional[str] = None) -> ValidationResult:
    return default_processor.validate(doc, profile, engine_id)


def transform(doc: str, profile: CapabilityProfile) -> str:
    return default_processor.transform(doc, profile)


def strip_markup(doc: str) -> str:
    """Plain text of a markup document (tags removed, whitespace collapsed)."""
    return default_processor.strip(doc)
