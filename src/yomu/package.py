from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import replace
from types import MappingProxyType

from .archive import READ_ERRORS, Archive
from .errors import DanglingReference, MalformedPackage, MissingNavigation, YomuError
from .markup import element_text, find_named, get_attr, iter_named, parse_xml
from .models import UNKNOWN_TITLE, Book, ManifestEntry, NavigationSource, SpineEntry
from .paths import directory_of
from .toc import parse_toc

logger = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"


def _read_xml(archive: Archive, path: str, what: str) -> ET.Element:
    try:
        text = archive.read_text(path)
    except READ_ERRORS as exc:
        raise MalformedPackage(f"{what} is unreadable ({path}): {exc}") from exc
    if text is None:
        raise MalformedPackage(f"{what} not found in {archive.name}: {path}")
    try:
        return parse_xml(text)
    except ET.ParseError as exc:
        raise MalformedPackage(f"{what} is not well-formed ({path}): {exc}") from exc


def find_package_path(archive: Archive) -> str:
    # META-INF/container.xml -> rootfiles/rootfile@full-path
    container = _read_xml(archive, CONTAINER_PATH, "Container document")
    for rootfile in iter_named(container, "rootfile"):
        full_path = get_attr(rootfile, "full-path")
        if full_path:
            return full_path
    raise MalformedPackage(f"{CONTAINER_PATH} does not declare a package document")


def _parse_manifest(root: ET.Element, base_path: str, issues: list[YomuError]) -> dict[str, ManifestEntry]:
    manifest: dict[str, ManifestEntry] = {}
    for manifest_elem in iter_named(root, "manifest"):
        for item in iter_named(manifest_elem, "item"):
            item_id = get_attr(item, "id")
            href = get_attr(item, "href")
            if not item_id or not href:
                issue = DanglingReference(f"Manifest item without id or href skipped (id={item_id!r}, href={href!r})")
                logger.warning("%s", issue)
                issues.append(issue)
                continue
            manifest[item_id] = ManifestEntry(
                id=item_id,
                href=base_path + href,
                media_type=get_attr(item, "media-type"),
                properties=tuple((get_attr(item, "properties") or "").split()),
            )
    return manifest


def _parse_spine(
    spine_elem: ET.Element | None,
    manifest: dict[str, ManifestEntry],
    issues: list[YomuError],
) -> tuple[SpineEntry, ...]:
    if spine_elem is None:
        return ()
    entries: list[SpineEntry] = []
    for itemref in iter_named(spine_elem, "itemref"):
        idref = get_attr(itemref, "idref")
        item = manifest.get(idref) if idref else None
        if item is None:
            issue = DanglingReference(f"Spine itemref {idref!r} is not in the manifest")
            logger.warning("%s", issue)
            issues.append(issue)
            continue
        entries.append(SpineEntry(id=item.id, href=item.href))
    return tuple(entries)


def _navigation_source(
    spine_elem: ET.Element | None,
    manifest: dict[str, ManifestEntry],
    issues: list[YomuError],
) -> NavigationSource | None:
    toc_id = get_attr(spine_elem, "toc") if spine_elem is not None else None
    if toc_id:
        item = manifest.get(toc_id)
        if item is not None:
            return NavigationSource(kind="ncx", href=item.href)
        issue = DanglingReference(f"Spine toc reference {toc_id!r} is not in the manifest")
        logger.warning("%s", issue)
        issues.append(issue)
    for item in manifest.values():
        if "nav" in item.properties:
            return NavigationSource(kind="nav", href=item.href)
    return None


def parse_package(archive: Archive) -> Book:
    """
    Read the container pointer and package document of ``archive``.

    The returned book carries the title, manifest, spine and navigation
    source; its table of contents is empty (see ``load_book``).
    """
    package_path = find_package_path(archive)
    base_path = directory_of(package_path)
    root = _read_xml(archive, package_path, "Package document")

    title_elem = find_named(root, "title")
    title = element_text(title_elem).strip() if title_elem is not None else ""

    issues: list[YomuError] = []
    manifest = _parse_manifest(root, base_path, issues)
    spine_elem = find_named(root, "spine")
    spine = _parse_spine(spine_elem, manifest, issues)
    navigation = _navigation_source(spine_elem, manifest, issues)
    return Book(
        title=title or UNKNOWN_TITLE,
        manifest=MappingProxyType(manifest),
        spine=spine,
        base_path=base_path,
        navigation=navigation,
        warnings=tuple(issues),
    )


def load_book(archive: Archive) -> Book:
    """Parse the package document and its table of contents."""
    book = parse_package(archive)
    navigation = book.navigation
    if navigation is None:
        issue = MissingNavigation(f"{archive.name} declares no navigation document")
        logger.warning("%s", issue)
        return replace(book, warnings=book.warnings + (issue,))
    try:
        document = archive.read_text(navigation.href)
    except READ_ERRORS as exc:
        logger.warning("Unable to read navigation document %s: %s", navigation.href, exc)
        document = None
    if document is None:
        issue = MissingNavigation(f"Navigation document {navigation.href} is missing or unreadable")
        logger.warning("%s", issue)
        return replace(book, warnings=book.warnings + (issue,))
    toc = parse_toc(document, book.base_path, navigation.kind)
    logger.debug("Loaded %s: %d spine entries, %d toc entries", book.title, book.total_units, len(toc))
    return replace(book, toc=tuple(toc))


__all__ = ["CONTAINER_PATH", "find_package_path", "parse_package", "load_book"]
