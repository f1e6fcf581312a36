from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Mapping

from .errors import YomuError

NavigationKind = Literal["ncx", "nav"]
UNKNOWN_TITLE = "Unknown Title"
UNTITLED = "untitled"


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    id: str
    href: str
    media_type: str | None = None
    properties: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SpineEntry:
    id: str
    href: str


@dataclass(frozen=True, slots=True)
class TocEntry:
    label: str
    href: str
    order: int


@dataclass(frozen=True, slots=True)
class NavigationSource:
    """Which navigation document to read, and in which format."""

    kind: NavigationKind
    href: str


@dataclass(frozen=True)
class Book:
    title: str
    manifest: Mapping[str, ManifestEntry]
    spine: tuple[SpineEntry, ...]
    base_path: str
    toc: tuple[TocEntry, ...] = ()
    navigation: NavigationSource | None = None
    warnings: tuple[YomuError, ...] = ()

    @property
    def total_units(self) -> int:
        return len(self.spine)


@dataclass(frozen=True, slots=True)
class ReaderPosition:
    current_index: int
    total_units: int


@dataclass(frozen=True, slots=True)
class RenderableUnit:
    index: int
    href: str
    html: str
    dark: bool = False
    fragment: str | None = None


@dataclass(frozen=True)
class ProgressRecord:
    book_name: str
    book_title: str
    current_chapter: int
    total_chapters: int
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_payload(self) -> dict[str, object]:
        return {
            "bookName": self.book_name,
            "bookTitle": self.book_title,
            "currentChapter": self.current_chapter,
            "totalChapters": self.total_chapters,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_payload(cls, payload: object) -> "ProgressRecord | None":
        if not isinstance(payload, Mapping):
            return None
        book_name = payload.get("bookName")
        current = payload.get("currentChapter")
        total = payload.get("totalChapters")
        if not isinstance(book_name, str) or not book_name:
            return None
        if not isinstance(current, int) or isinstance(current, bool) or current < 0:
            return None
        book_title = payload.get("bookTitle")
        timestamp = payload.get("timestamp")
        return cls(
            book_name=book_name,
            book_title=book_title if isinstance(book_title, str) else "",
            current_chapter=current,
            total_chapters=total if isinstance(total, int) and not isinstance(total, bool) else 0,
            timestamp=timestamp if isinstance(timestamp, str) else "",
        )


__all__ = [
    "NavigationKind",
    "UNKNOWN_TITLE",
    "UNTITLED",
    "ManifestEntry",
    "SpineEntry",
    "TocEntry",
    "NavigationSource",
    "Book",
    "ReaderPosition",
    "RenderableUnit",
    "ProgressRecord",
]
