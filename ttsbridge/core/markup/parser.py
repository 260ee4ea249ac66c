"""
Minimal, tolerant tag tree for speech markup.

This is not an XML parser. It splits a document into text, tags, comments and
declarations, and nests tags by name. Unclosed tags stay open to the end of
their parent, stray closing tags are kept as raw nodes, and serialization
reproduces the input byte for byte.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Union

_NAME = r"[A-Za-z_][\w:.\-]*"

_TOKEN_RE = re.compile(
    r"(?P<comment><!--.*?-->)"
    r"|(?P<decl><[?!][^>]*>)"
    r"|(?P<close></\s*(?P<close_name>" + _NAME + r")\s*>)"
    r"|(?P<open><(?P<open_name>" + _NAME + r")(?P<attrs>(?:[\s/](?:[^<>\"']|\"[^\"]*\"|'[^']*')*)?)>)",
    re.DOTALL,
)

_ATTR_RE = re.compile(r"([\w:.\-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'>/]+))")


@dataclass
class Text:
    value: str

    def serialize(self) -> str:
        return self.value


@dataclass
class Raw:
    """Comment, declaration, or a closing tag with no matching opener."""
    value: str
    kind: str
    name: Optional[str] = None

    def serialize(self) -> str:
        return self.value


@dataclass
class Element:
    tag: str
    open_raw: str
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["Node"] = field(default_factory=list)
    self_closing: bool = False
    close_raw: Optional[str] = None

    @property
    def name(self) -> str:
        return self.tag.lower()

    def serialize(self) -> str:
        return self.open_raw + serialize(self.children) + (self.close_raw or "")


Node = Union[Text, Raw, Element]


def parse_attributes(attrs: str) -> Dict[str, str]:
    result = {}
    for match in _ATTR_RE.finditer(attrs or ""):
        name, dq, sq, bare = match.groups()
        result[name.lower()] = next(v for v in (dq, sq, bare) if v is not None)
    return result


def parse(doc: str) -> List[Node]:
    """Parse a markup document into a list of top-level nodes."""
    root = Element(tag="", open_raw="")
    stack: List[Element] = [root]
    position = 0

    for match in _TOKEN_RE.finditer(doc):
        if match.start() > position:
            stack[-1].children.append(Text(doc[position:match.start()]))
        position = match.end()
        token = match.group(0)

        if match.group("comment"):
            stack[-1].children.append(Raw(token, "comment"))
        elif match.group("decl"):
            stack[-1].children.append(Raw(token, "declaration"))
        elif match.group("close"):
            name = match.group("close_name").lower()
            depth = _find_open(stack, name)
            if depth is None:
                stack[-1].children.append(Raw(token, "stray_close", name))
            else:
                # Anything opened above the match is left unclosed
                del stack[depth + 1:]
                stack.pop().close_raw = token
        else:
            attrs = match.group("attrs") or ""
            self_closing = attrs.rstrip().endswith("/")
            element = Element(
                tag=match.group("open_name"),
                open_raw=token,
                attributes=parse_attributes(attrs.rstrip().rstrip("/")),
                self_closing=self_closing,
            )
            stack[-1].children.append(element)
            if not self_closing:
                stack.append(element)

    if position < len(doc):
        stack[-1].children.append(Text(doc[position:]))

    return root.children


def _find_open(stack: List[Element], name: str) -> Optional[int]:
    for depth in range(len(stack) - 1, 0, -1):
        if stack[depth].name == name:
            return depth
    return None


def serialize(nodes: List[Node]) -> str:
    return "".join(node.serialize() for node in nodes)


def iter_elements(nodes: List[Node]) -> Iterator[Element]:
    """Depth-first iteration over every element."""
    for node in nodes:
        if isinstance(node, Element):
            yield node
            yield from iter_elements(node.children)


def find_root(nodes: List[Node], name: str = "speak") -> Optional[Element]:
    """First top-level element with the given name."""
    for node in nodes:
        if isinstance(node, Element) and node.name == name:
            return node
    return None


def render(nodes: List[Node], visit: Callable[[Element], Optional[str]]) -> str:
    """
    Serialize nodes, letting `visit` rewrite elements.

    `visit` returns a replacement string for the element or None to keep its
    tags. Children of kept elements are rendered recursively.
    """
    out = []
    for node in nodes:
        if isinstance(node, Element):
            replacement = visit(node)
            if replacement is not None:
                out.append(replacement)
            else:
                out.append(node.open_raw + render(node.children, visit) + (node.close_raw or ""))
        else:
            out.append(node.serialize())
    return "".join(out)
