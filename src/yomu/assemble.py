from __future__ import annotations

import base64
import logging

from bs4 import BeautifulSoup, Tag  # type: ignore

from .archive import READ_ERRORS, Archive
from .errors import ResourceInlineFailure
from .markup import soup_from_html
from .paths import (
    directory_of,
    is_data_uri,
    is_external_url,
    path_candidates,
    resolve_path,
    strip_query_and_fragment,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MIME = "image/jpeg"
IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".svg": "image/svg+xml",
}

LIGHT_PALETTE = {"background": "#ffffff", "text": "#2c3e50"}
DARK_PALETTE = {"background": "#16213e", "text": "#eaeaea"}

BASELINE_CSS = """
body {
  font-family: 'PingFang SC', 'Hiragino Mincho ProN', 'Noto Serif CJK JP', 'Noto Sans CJK SC', 'Microsoft YaHei', serif;
  line-height: 1.9;
  word-wrap: break-word;
  padding: 0;
  margin: 0;
  background-color: %(background)s;
  color: %(text)s;
}
p {
  margin: 0 0 1.2em 0;
  text-indent: 2em;
  text-align: justify;
}
h1, h2, h3, h4, h5, h6 {
  margin: 1.5em 0 0.8em 0;
  line-height: 1.3;
  font-weight: 600;
}
img {
  max-width: 100%%;
  height: auto;
  display: block;
  margin: 1.5em auto;
  border-radius: 4px;
}
div {
  margin: 0.5em 0;
}
"""


def image_mime_type(path: str) -> str:
    lowered = path.lower()
    for ext, mime in IMAGE_MIME_TYPES.items():
        if lowered.endswith(ext):
            return mime
    return DEFAULT_IMAGE_MIME


def baseline_css(dark: bool = False) -> str:
    return BASELINE_CSS % (DARK_PALETTE if dark else LIGHT_PALETTE)


def _warn(ref: str, content_href: str, reason: str) -> None:
    logger.warning("%s", ResourceInlineFailure(f"{ref} in {content_href}: {reason}"))


def _read_resource(archive: Archive, path: str, *, binary: bool) -> bytes | str | None:
    for candidate in path_candidates(path):
        if not archive.exists(candidate):
            continue
        data = archive.read_binary(candidate) if binary else archive.read_text(candidate)
        if data is not None:
            return data
    return None


def _inline_images(soup: BeautifulSoup, content_base: str, content_href: str, archive: Archive) -> None:
    for img in soup.find_all("img", src=True):
        src = img["src"]
        if not src or is_external_url(src) or is_data_uri(src):
            continue
        path = resolve_path(content_base, strip_query_and_fragment(src))
        try:
            data = _read_resource(archive, path, binary=True)
        except READ_ERRORS as exc:
            _warn(src, content_href, f"unreadable ({exc})")
            continue
        if data is None:
            _warn(src, content_href, f"{path} not found")
            continue
        payload = base64.b64encode(data).decode("ascii")
        img["src"] = f"data:{image_mime_type(path)};base64,{payload}"


def _rel_values(link: Tag) -> list[str]:
    rel = link.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def _inline_stylesheets(soup: BeautifulSoup, content_base: str, content_href: str, archive: Archive) -> None:
    for link in soup.find_all("link", href=True):
        if "stylesheet" not in _rel_values(link):
            continue
        href = link["href"]
        if not href or is_external_url(href):
            continue
        path = resolve_path(content_base, strip_query_and_fragment(href))
        try:
            css = _read_resource(archive, path, binary=False)
        except READ_ERRORS as exc:
            _warn(href, content_href, f"unreadable ({exc})")
            continue
        if css is None:
            _warn(href, content_href, f"{path} not found")
            continue
        style = soup.new_tag("style")
        style.string = css
        link.replace_with(style)


def _prepend_baseline_style(soup: BeautifulSoup, dark: bool) -> None:
    style = soup.new_tag("style")
    style.string = baseline_css(dark)
    head = soup.find("head")
    if head is None:
        html = soup.find("html")
        if html is None:
            soup.insert(0, style)
            return
        head = soup.new_tag("head")
        html.insert(0, head)
    head.insert(0, style)


def assemble(raw_content: str | bytes, content_href: str, archive: Archive, *, dark: bool = False) -> str:
    """
    Turn a content document into self-contained markup.

    Relative ``img`` sources become base64 data URIs and stylesheet links
    become inline ``style`` blocks, both resolved against the directory of
    ``content_href``. Resources that cannot be read keep their original
    reference. A baseline style for the light or dark palette goes first in
    ``head`` so the book's own styles still win.
    """
    content_base = directory_of(content_href)
    soup = soup_from_html(raw_content)
    _inline_images(soup, content_base, content_href, archive)
    _inline_stylesheets(soup, content_base, content_href, archive)
    _prepend_baseline_style(soup, dark)
    return str(soup)


__all__ = [
    "DEFAULT_IMAGE_MIME",
    "IMAGE_MIME_TYPES",
    "image_mime_type",
    "baseline_css",
    "assemble",
]
