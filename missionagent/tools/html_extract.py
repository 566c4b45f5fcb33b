"""
Readable-content extraction from wiki pages.

A small tree is built with ``html.parser`` and queried with the handful of
selectors wiki pages need (``#id``, ``.class``, tag name).
"""

import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Dict, Iterator, List, Optional, Union

# Tried in order; the first one present in the page is the content area
CONTENT_SELECTORS = [
    "#main-content",
    ".wiki-content",
    ".page-content",
    "main",
    ".content",
    "article",
]

SKIP_TAGS = {"script", "style", "nav", "header", "footer"}

VOID_TAGS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}

SUMMARY_WORDS = 200
MAX_TAGS = 10
MAX_TAG_LENGTH = 50

_WS_RE = re.compile(r"\s+")


@dataclass
class _Node:
    tag: str
    attrs: Dict[str, str] = field(default_factory=dict)
    children: List[Union["_Node", str]] = field(default_factory=list)

    def iter(self) -> Iterator["_Node"]:
        yield self
        for child in self.children:
            if isinstance(child, _Node):
                yield from child.iter()

    def matches(self, selector: str) -> bool:
        if selector.startswith("#"):
            return self.attrs.get("id") == selector[1:]
        if selector.startswith("."):
            return selector[1:] in (self.attrs.get("class") or "").split()
        return self.tag == selector

    def text(self, skip: frozenset = frozenset()) -> str:
        parts: List[str] = []
        self._collect(parts, skip)
        return collapse_whitespace(" ".join(parts))

    def _collect(self, parts: List[str], skip: frozenset) -> None:
        for child in self.children:
            if isinstance(child, str):
                parts.append(child)
            elif child.tag not in skip:
                child._collect(parts, skip)


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = _Node("document")
        self._stack: List[_Node] = [self.root]

    def handle_starttag(self, tag: str, attrs) -> None:  # type: ignore[override]
        node = _Node(tag, {k: (v or "") for k, v in attrs})
        self._stack[-1].children.append(node)
        if tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_startendtag(self, tag: str, attrs) -> None:  # type: ignore[override]
        self._stack[-1].children.append(_Node(tag, {k: (v or "") for k, v in attrs}))

    def handle_endtag(self, tag: str) -> None:
        # Unbalanced markup: close up to the nearest matching open tag, if any
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].tag == tag:
                del self._stack[index:]
                return

    def handle_data(self, data: str) -> None:
        self._stack[-1].children.append(data)


@dataclass
class PageContent:
    title: str
    text: str
    summary: str
    tags: List[str]

    @property
    def word_count(self) -> int:
        return len(self.text.split())


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def summarize(text: str, max_words: int = SUMMARY_WORDS) -> str:
    """First ``max_words`` words, with an ellipsis when truncated."""
    words = text.split()
    summary = " ".join(words[:max_words])
    return summary + "..." if len(words) > max_words else summary


def _find_first(root: _Node, selector: str) -> Optional[_Node]:
    for node in root.iter():
        if node.matches(selector):
            return node
    return None


def _in_skipped(root: _Node) -> Iterator[_Node]:
    """Nodes of the tree that are not inside a skipped tag."""
    for child in root.children:
        if isinstance(child, _Node) and child.tag not in SKIP_TAGS:
            yield child
            yield from _in_skipped(child)


def extract_page_content(html: str) -> PageContent:
    """
    Extract title, main text, summary and tags from a page.

    Args:
        html: Raw page markup

    Returns:
        PageContent (text may be empty when the page has no readable content)
    """
    builder = _TreeBuilder()
    builder.feed(html or "")
    builder.close()
    root = builder.root
    skip = frozenset(SKIP_TAGS)

    title_node = _find_first(root, "title")
    title = title_node.text() if title_node else ""
    if not title:
        h1 = _find_first(root, "h1")
        title = h1.text() if h1 else ""
    title = title or "Untitled"

    text = ""
    for selector in CONTENT_SELECTORS:
        node = _find_first(root, selector)
        if node is not None:
            text = node.text(skip)
            break

    if not text:
        body = _find_first(root, "body") or root
        text = body.text(skip | {"head"})

    headings: List[str] = []
    keywords: List[str] = []
    for node in _in_skipped(root):
        if node.tag in ("h1", "h2", "h3"):
            heading = node.text(skip)
            if heading and len(heading) < MAX_TAG_LENGTH:
                headings.append(heading.lower())
        elif node.tag == "meta" and node.attrs.get("name", "").lower() == "keywords":
            keywords.extend(
                k.strip().lower() for k in node.attrs.get("content", "").split(",") if k.strip()
            )

    return PageContent(
        title=title,
        text=text,
        summary=summarize(text),
        tags=list(dict.fromkeys(headings + keywords))[:MAX_TAGS],
    )
