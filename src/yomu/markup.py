from __future__ import annotations

import warnings
import xml.etree.ElementTree as ET
from typing import Iterator

from bs4 import BeautifulSoup, FeatureNotFound, XMLParsedAsHTMLWarning  # type: ignore

HTML_PARSERS = ("lxml", "html.parser")


def parse_xml(text: str) -> ET.Element:
    """Parse ``text`` into an element tree; raises ``ET.ParseError`` on bad input."""
    return ET.fromstring(text.lstrip("\ufeff").lstrip())


def local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.split("}", 1)[-1] if "}" in tag else tag


def get_attr(elem: ET.Element, name: str) -> str | None:
    value = elem.attrib.get(name)
    if value is not None:
        return value
    for attr, attr_value in elem.attrib.items():
        if local_name(attr) == name:
            return attr_value
    return None


def iter_named(elem: ET.Element, name: str) -> Iterator[ET.Element]:
    """Yield every descendant (or ``elem`` itself) whose local tag is ``name``, in document order."""
    for node in elem.iter():
        if local_name(node.tag) == name:
            yield node


def find_named(elem: ET.Element, name: str) -> ET.Element | None:
    return next(iter_named(elem, name), None)


def element_text(elem: ET.Element) -> str:
    return "".join(elem.itertext())


def soup_from_html(markup: str | bytes) -> BeautifulSoup:
    for parser in HTML_PARSERS:
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
                return BeautifulSoup(markup, parser)
        except FeatureNotFound:
            continue
    return BeautifulSoup(markup, "html.parser")


__all__ = [
    "parse_xml",
    "local_name",
    "get_attr",
    "iter_named",
    "find_named",
    "element_text",
    "soup_from_html",
]
