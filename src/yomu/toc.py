from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET

from bs4 import Tag  # type: ignore

from .markup import element_text, find_named, get_attr, iter_named, parse_xml, soup_from_html
from .models import UNTITLED, NavigationKind, TocEntry

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


def parse_toc(document: str, base_path: str, kind: NavigationKind) -> list[TocEntry]:
    """
    Parse a navigation document into a flat, ordered table of contents.

    ``kind`` comes from the package document: ``"ncx"`` for a legacy
    navigation-control file, ``"nav"`` for an XHTML navigation document.
    Hrefs are prefixed with ``base_path``, the package document's directory.
    """
    if kind == "ncx":
        return parse_ncx_toc(document, base_path)
    return parse_nav_toc(document, base_path)


def _play_order(value: str | None) -> int:
    # Leading integer prefix ("3a" -> 3), 0 when there is none.
    match = _LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else 0


def parse_ncx_toc(document: str, base_path: str) -> list[TocEntry]:
    try:
        root = parse_xml(document)
    except ET.ParseError as exc:
        logger.warning("Unable to parse NCX navigation document: %s", exc)
        return []
    entries: list[TocEntry] = []
    # Nested navPoints are flattened in document order.
    for nav_point in iter_named(root, "navPoint"):
        label = UNTITLED
        nav_label = find_named(nav_point, "navLabel")
        if nav_label is not None:
            text_elem = find_named(nav_label, "text")
            if text_elem is not None:
                label = element_text(text_elem).strip() or UNTITLED
        content = find_named(nav_point, "content")
        src = (get_attr(content, "src") if content is not None else None) or ""
        entries.append(
            TocEntry(
                label=label,
                href=base_path + src,
                order=_play_order(get_attr(nav_point, "playOrder")),
            )
        )
    return entries


def _is_toc_nav(nav: Tag) -> bool:
    nav_type = (nav.get("epub:type") or "").lower().split()
    role = (nav.get("role") or "").lower()
    return "toc" in nav_type or role == "doc-toc"


def parse_nav_toc(document: str, base_path: str) -> list[TocEntry]:
    soup = soup_from_html(document)
    navs = soup.find_all("nav")
    toc_navs = [nav for nav in navs if _is_toc_nav(nav)]
    anchors: list[Tag] = []
    for nav in toc_navs or navs:
        anchors.extend(nav.find_all("a"))
    entries: list[TocEntry] = []
    for anchor in anchors:
        href = anchor.get("href")
        if not href:
            continue
        label = anchor.get_text().strip() or UNTITLED
        entries.append(TocEntry(label=label, href=base_path + href, order=len(entries) + 1))
    return entries


__all__ = ["parse_toc", "parse_ncx_toc", "parse_nav_toc"]
