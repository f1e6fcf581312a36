from __future__ import annotations

import zipfile
import zlib
from pathlib import Path
from typing import IO, Mapping, Protocol

_TEXT_ENCODINGS = ("utf-8", "utf-16", "cp932", "shift_jis", "euc_jp")

# Errors a corrupt or unsupported zip entry can raise while being read.
READ_ERRORS = (OSError, EOFError, RuntimeError, zipfile.BadZipFile, zlib.error)


class Archive(Protocol):
    """Read-only key/bytes view of a packaged book."""

    name: str

    def exists(self, path: str) -> bool: ...

    def read_text(self, path: str) -> str | None: ...

    def read_binary(self, path: str) -> bytes | None: ...


def decode_text(raw: bytes) -> str:
    if raw.startswith(b"\xef\xbb\xbf"):
        raw = raw[3:]
    for enc in _TEXT_ENCODINGS:
        try:
            return raw.decode(enc)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="ignore")


class ZipArchive:
    """Archive backed by a zip file on disk or an open binary stream."""

    def __init__(self, source: str | Path | IO[bytes], *, name: str | None = None) -> None:
        if isinstance(source, (str, Path)):
            path = Path(source)
            self.name = name or path.name
        else:
            self.name = name or str(getattr(source, "name", "") or "book.epub")
        self._zf = zipfile.ZipFile(source, "r")
        self._names = set(self._zf.namelist())

    def __enter__(self) -> "ZipArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    def exists(self, path: str) -> bool:
        return path in self._names

    def read_binary(self, path: str) -> bytes | None:
        if path not in self._names:
            return None
        with self._zf.open(path, "r") as handle:
            return handle.read()

    def read_text(self, path: str) -> str | None:
        raw = self.read_binary(path)
        if raw is None:
            return None
        return decode_text(raw)


class MappingArchive:
    """In-memory archive, mostly useful for tests and pre-extracted books."""

    def __init__(self, entries: Mapping[str, bytes | str], *, name: str = "memory.epub") -> None:
        self.name = name
        self._entries: dict[str, bytes] = {}
        for key, value in entries.items():
            self._entries[key] = value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def exists(self, path: str) -> bool:
        return path in self._entries

    def read_binary(self, path: str) -> bytes | None:
        return self._entries.get(path)

    def read_text(self, path: str) -> str | None:
        raw = self._entries.get(path)
        if raw is None:
            return None
        return decode_text(raw)


__all__ = ["READ_ERRORS", "Archive", "ZipArchive", "MappingArchive", "decode_text"]
