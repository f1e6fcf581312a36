from __future__ import annotations

import struct
import zipfile
from pathlib import Path
from typing import Callable, Iterable, Mapping

import pytest

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDRfake"

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{full_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

OPF_XML = """<?xml version="1.0" encoding="UTF-8"?>
<package version="3.0" unique-identifier="BookId" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>T</dc:title>
    <dc:creator>Sample Author</dc:creator>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="c1" href="text/chap1.xhtml" media-type="application/xhtml+xml"/>
    <item id="c2" href="text/chap2.xhtml" media-type="application/xhtml+xml"/>
    <item id="css" href="styles/book.css" media-type="text/css"/>
    <item id="cover" href="images/cover.png" media-type="image/png"/>
  </manifest>
  <spine>
    <itemref idref="c1"/>
    <itemref idref="c2"/>
  </spine>
</package>
"""

NAV_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
  <head><title>Contents</title></head>
  <body>
    <nav epub:type="toc" id="toc">
      <ol>
        <li><a href="text/chap1.xhtml">Chapter One</a></li>
        <li><a href="text/chap2.xhtml#s1">  Chapter Two  </a></li>
      </ol>
    </nav>
    <nav epub:type="landmarks">
      <ol><li><a href="text/chap1.xhtml">Begin</a></li></ol>
    </nav>
  </body>
</html>
"""

CHAP1_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>Chapter One</title>
    <link rel="stylesheet" type="text/css" href="../styles/book.css"/>
  </head>
  <body>
    <h1>Chapter One</h1>
    <p><img src="../images/cover.png" alt="cover"/></p>
    <p>This is the first chapter.</p>
  </body>
</html>
"""

CHAP2_XHTML = """<?xml version="1.0" encoding="utf-8"?>
<html xmlns="http://www.w3.org/1999/xhtml">
  <head><title>Chapter Two</title></head>
  <body>
    <h1 id="s1">Chapter Two</h1>
    <p>This is the second chapter.</p>
  </body>
</html>
"""

BOOK_CSS = "h1 > span { color: teal; }\n"


@pytest.fixture
def sample_entries() -> dict[str, str | bytes]:
    """Entries of a small EPUB 3 book titled "T" with two chapters under OEBPS/."""
    return {
        "mimetype": "application/epub+zip",
        "META-INF/container.xml": CONTAINER_XML.format(full_path="OEBPS/content.opf"),
        "OEBPS/content.opf": OPF_XML,
        "OEBPS/nav.xhtml": NAV_XHTML,
        "OEBPS/text/chap1.xhtml": CHAP1_XHTML,
        "OEBPS/text/chap2.xhtml": CHAP2_XHTML,
        "OEBPS/styles/book.css": BOOK_CSS,
        "OEBPS/images/cover.png": PNG_BYTES,
    }


def _scramble_entries(epub_path: Path, names: Iterable[str]) -> None:
    """Invert the compressed payload of each named entry; headers stay intact."""
    with zipfile.ZipFile(epub_path) as zf:
        infos = [zf.getinfo(name) for name in names]
    raw = bytearray(epub_path.read_bytes())
    for info in infos:
        # Local file header: 30 fixed bytes, then file name and extra field.
        name_len, extra_len = struct.unpack("<HH", raw[info.header_offset + 26 : info.header_offset + 30])
        start = info.header_offset + 30 + name_len + extra_len
        for pos in range(start, start + info.compress_size):
            raw[pos] ^= 0xFF
    epub_path.write_bytes(bytes(raw))


@pytest.fixture
def write_epub(tmp_path: Path) -> Callable[..., Path]:
    def _write(
        entries: Mapping[str, str | bytes],
        name: str = "sample.epub",
        directory: Path | None = None,
        corrupt: Iterable[str] = (),
    ) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        epub_path = target_dir / name
        with zipfile.ZipFile(epub_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for entry_name, data in entries.items():
                zf.writestr(entry_name, data)
        corrupt = list(corrupt)
        if corrupt:
            _scramble_entries(epub_path, corrupt)
        return epub_path

    return _write
