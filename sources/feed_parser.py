"""RSS 2.0 / Atom feed parsing into `FeedEntry` records."""

from __future__ import annotations

import html as html_lib
from html.entities import name2codepoint
import re
from dataclasses import dataclass
from typing import List, Optional

from lxml import etree

from utils.exceptions import SourceFetchError


_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", flags=re.IGNORECASE | re.DOTALL)
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", flags=re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")

_XML_ENTITIES = {"amp", "lt", "gt", "quot", "apos"}
_BARE_AMP_RE = re.compile(r"&(?!#[0-9]+;|#[xX][0-9a-fA-F]+;|[A-Za-z][A-Za-z0-9]*;)")
_NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
@dataclass
class FeedEntry:
    title: str
    link: str
    summary: str
    published_at: str


def strip_tags(value: str) -> str:
    """Drop markup (script/style bodies included), decode entities, collapse whitespace."""
    text = str(value or "")
    text = _SCRIPT_RE.sub(" ", text)
    text = _STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, max_len: int = 180) -> str:
    """Collapse whitespace and cut to `max_len` characters, ending with an ellipsis."""
    clean = re.sub(r"\s+", " ", str(text or "")).strip()
    if len(clean) <= max_len:
        return clean
    return f"{clean[: max_len - 1]}…"


def _local(tag) -> str:
    # comments and processing instructions carry a callable tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1].lower()


def _child(node: etree._Element, name: str) -> Optional[etree._Element]:
    for child in node:
        if _local(child.tag) == name:
            return child
    return None


def _text(node: etree._Element, *names: str) -> str:
    for name in names:
        child = _child(node, name)
        if child is None:
            continue
        text = strip_tags("".join(child.itertext()))
        if text:
            return text
    return ""


def _atom_link(node: etree._Element) -> str:
    fallback = ""
    for child in node:
        if _local(child.tag) != "link":
            continue
        href = str(child.get("href") or "").strip()
        if not href:
            href = strip_tags("".join(child.itertext()))
        if not href:
            continue
        rel = str(child.get("rel") or "alternate").strip().lower()
        if rel == "alternate":
            return href
        fallback = fallback or href
    return fallback


def _rss_entry(node: etree._Element) -> FeedEntry:
    return FeedEntry(
        title=_text(node, "title"),
        link=_text(node, "link", "guid"),
        summary=_text(node, "description", "encoded"),
        published_at=_text(node, "pubdate", "date"),
    )


def _atom_entry(node: etree._Element) -> FeedEntry:
    return FeedEntry(
        title=_text(node, "title"),
        link=_atom_link(node),
        summary=_text(node, "summary", "content"),
        published_at=_text(node, "published", "updated", "date"),
    )


def _escape_entities(text: str) -> str:
    """Rewrite HTML-only named entities as numeric refs and escape stray `&`."""

    def _named(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in _XML_ENTITIES:
            return match.group(0)
        codepoint = name2codepoint.get(name)
        return f"&#{codepoint};" if codepoint is not None else f"&amp;{name};"

    text = _BARE_AMP_RE.sub("&amp;", text)
    return _NAMED_ENTITY_RE.sub(_named, text)


def parse_feed(xml_text: str) -> List[FeedEntry]:
    """Parse a feed document, auto-detecting the Atom `<entry>` dialect.

    Parsing recovers from broken markup so one bad item does not cost the
    rest of the feed. Entries with neither a title nor a link are dropped.
    Raises `SourceFetchError` only when nothing resembling XML is left.
    """
    text = str(xml_text or "").lstrip("\ufeff").strip()
    if not text:
        return []

    parser = etree.XMLParser(
        recover=True,
        encoding="utf-8",
        resolve_entities=False,
        no_network=True,
    )
    try:
        root = etree.fromstring(_escape_entities(text).encode("utf-8"), parser)
    except etree.XMLSyntaxError as exc:
        raise SourceFetchError(f"feed parse error: {exc}") from exc
    if root is None:
        raise SourceFetchError("feed parse error: no document element")

    is_atom = _local(root.tag) == "feed"
    wanted = "entry" if is_atom else "item"
    nodes = list(root.iter(etree.Element))
    blocks = [node for node in nodes if _local(node.tag) == wanted]
    if not blocks and not is_atom:
        # RSS 1.0 / mixed feeds occasionally carry Atom entries under another root
        blocks = [node for node in nodes if _local(node.tag) == "entry"]
        is_atom = bool(blocks)

    entries = [_atom_entry(node) if is_atom else _rss_entry(node) for node in blocks]
    return [entry for entry in entries if entry.title or entry.link]
