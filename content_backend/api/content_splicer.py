"""Structured insertion and removal of embed blocks in post HTML.

The post body is parsed into a node tree. Embed blocks are recognised by
their marker comment, wrapper class, or ``application/ld+json`` script, and
insertions happen relative to real heading/paragraph nodes. A block is its
marker comment, optional style and root element, plus only the whitespace
between them; whitespace around a block belongs to the post. Stripping an
inserted block therefore restores the original markup, and rebuilding a post
from its stripped body gives the same result every time.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from . import embeds

PARSER = "html.parser"

MARKER_KINDS: Dict[str, str] = {
    embeds.SCHEMA_MARKER: "schema",
    embeds.SHORT_VIDEO_MARKER: "short_video",
    embeds.PODCAST_MARKER: "podcast",
    embeds.MAPS_MARKER: "maps",
    embeds.LONGFORM_MARKER: "longform_video",
    embeds.FEATURED_IMAGE_MARKER: "featured_image",
}
CLASS_KINDS: Dict[str, str] = {
    "yt-shorts-embed": "short_video",
    "podcast-embed": "podcast",
    "google-maps-embed": "maps",
    "video-container": "longform_video",
    "featured-image": "featured_image",
}
EMBED_KINDS = tuple(sorted(set(MARKER_KINDS.values())))

_NUMBERED_SCHEMA_MARKER = re.compile(r"^JSON-LD Schema \d+$")


@dataclass(frozen=True)
class InsertStrategy:
    kind: str
    occurrence: int = 1
    heading_tag: str = "h2"
    embed_kind: Optional[str] = None


def after_heading(occurrence: int, heading_tag: str = "h2") -> InsertStrategy:
    return InsertStrategy("after_heading", occurrence=max(occurrence, 1), heading_tag=heading_tag)


def before_first_heading(heading_tag: str = "h2") -> InsertStrategy:
    return InsertStrategy("before_first_heading", heading_tag=heading_tag)


def after_first_paragraph() -> InsertStrategy:
    return InsertStrategy("after_first_paragraph")


def before_embed(embed_kind: str) -> InsertStrategy:
    return InsertStrategy("before_embed", embed_kind=embed_kind)


APPEND = InsertStrategy("append")
PREPEND = InsertStrategy("prepend")


def _is_text(node: object) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, Comment)


def embed_kind_of(node: object) -> Optional[str]:
    if isinstance(node, Comment):
        text = str(node).strip()
        if _NUMBERED_SCHEMA_MARKER.match(text):
            return "schema"
        return MARKER_KINDS.get(text)
    if not isinstance(node, Tag):
        return None
    if node.name == "script" and (node.get("type") or "").strip().lower() == "application/ld+json":
        return "schema"
    if node.name == "style" and ".yt-shorts-embed" in node.get_text():
        return "short_video"
    for css_class in node.get("class") or []:
        kind = CLASS_KINDS.get(css_class)
        if kind:
            return kind
    return None


def _is_block_root(node: object) -> bool:
    """True for the element that carries an embed's content (not its marker or style)."""
    if not isinstance(node, Tag):
        return False
    kind = embed_kind_of(node)
    return kind is not None and node.name != "style"


class ContentDocument:
    def __init__(self, html: Optional[str]):
        self._soup = BeautifulSoup(html or "", PARSER)

    def serialize(self) -> str:
        return str(self._soup)

    def _inside_embed(self, node: Tag) -> bool:
        parent = node.parent
        while parent is not None and parent is not self._soup:
            if embed_kind_of(parent):
                return True
            parent = parent.parent
        return False

    def _content_tags(self, name: str) -> List[Tag]:
        return [tag for tag in self._soup.find_all(name) if not self._inside_embed(tag)]

    def _top_embed_nodes(self) -> List[object]:
        nodes: List[object] = []
        for node in self._soup.descendants:
            if embed_kind_of(node) is None:
                continue
            if isinstance(node, Tag) and self._inside_embed(node):
                continue
            if isinstance(node, Comment) and node.parent is not None and node.parent is not self._soup:
                if self._inside_embed(node.parent) or embed_kind_of(node.parent):
                    continue
            nodes.append(node)
        return nodes

    def embed_kinds(self) -> List[str]:
        """Kinds of the embed blocks currently in the document, in order."""
        return [embed_kind_of(node) for node in self._top_embed_nodes() if _is_block_root(node)]

    def _block_nodes(self, root: Tag) -> List[object]:
        """``root`` plus the marker comment, style and blank text inserted ahead of it."""
        kind = embed_kind_of(root)
        nodes: List[object] = [root]
        previous = root.previous_sibling
        while previous is not None:
            if _is_text(previous):
                before = previous.previous_sibling
                if str(previous).strip() or _is_block_root(before) or embed_kind_of(before) != kind:
                    break
            elif _is_block_root(previous) or embed_kind_of(previous) != kind:
                break
            nodes.insert(0, previous)
            previous = previous.previous_sibling
        return nodes

    def strip_embeds(self) -> int:
        removed = 0
        for node in self._top_embed_nodes():
            if node.parent is None:
                continue
            if _is_block_root(node):
                for part in self._block_nodes(node):
                    part.extract()
                removed += 1
        # Markers left without a block after them.
        for node in self._top_embed_nodes():
            if not _is_block_root(node):
                node.extract()
        return removed

    def _snippet_nodes(self, snippet: str) -> List[object]:
        return list(BeautifulSoup(snippet.strip(), PARSER).contents)

    def _prepend(self, nodes: List[object]) -> None:
        for node in reversed(nodes):
            self._soup.insert(0, node)

    def _append(self, nodes: List[object]) -> None:
        for node in nodes:
            self._soup.append(node)

    def insert(self, snippet: str, strategy: InsertStrategy) -> str:
        """Insert ``snippet`` and return the position actually used."""
        if not snippet or not snippet.strip():
            return "skipped"
        nodes = self._snippet_nodes(snippet)

        if strategy.kind == "append":
            self._append(nodes)
            return "append"
        if strategy.kind == "prepend":
            self._prepend(nodes)
            return "prepend"

        if strategy.kind == "before_embed":
            roots = [
                node for node in self._top_embed_nodes()
                if _is_block_root(node) and embed_kind_of(node) == strategy.embed_kind
            ]
            if roots:
                self._block_nodes(roots[0])[0].insert_before(*nodes)
                return f"before_embed:{strategy.embed_kind}"
            self._append(nodes)
            return "append"

        if strategy.kind == "before_first_heading":
            headings = self._content_tags(strategy.heading_tag)
            if headings:
                headings[0].insert_before(*nodes)
                return "before_first_heading"
            self._prepend(nodes)
            return "prepend"

        if strategy.kind == "after_heading":
            headings = self._content_tags(strategy.heading_tag)
            if len(headings) >= strategy.occurrence:
                headings[strategy.occurrence - 1].insert_after(*nodes)
                return f"after_heading:{strategy.occurrence}"
            if headings:
                headings[-1].insert_after(*nodes)
                return "after_last_heading"

        if strategy.kind in {"after_heading", "after_first_paragraph"}:
            paragraphs = self._content_tags("p")
            if paragraphs:
                paragraphs[0].insert_after(*nodes)
                return "after_first_paragraph"
            self._prepend(nodes)
            return "prepend"

        raise ValueError(f"Unknown insert strategy: {strategy.kind}")


def insert_at(content: Optional[str], snippet: str, strategy: InsertStrategy) -> str:
    document = ContentDocument(content)
    document.insert(snippet, strategy)
    return document.serialize()


def strip_embeds(content: Optional[str]) -> str:
    document = ContentDocument(content)
    document.strip_embeds()
    return document.serialize()


def count_embeds(content: Optional[str], kind: Optional[str] = None) -> int:
    kinds = ContentDocument(content).embed_kinds()
    if kind is None:
        return len(kinds)
    return sum(1 for item in kinds if item == kind)
