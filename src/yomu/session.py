from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from .archive import READ_ERRORS, Archive
from .assemble import assemble
from .errors import ChapterLoadFailure, IndexOutOfRange, NoBookLoaded
from .models import Book, ProgressRecord, ReaderPosition, RenderableUnit, TocEntry
from .package import load_book
from .paths import file_name, split_fragment

logger = logging.getLogger(__name__)


class ReaderSession:
    """
    Reading state over one loaded book.

    The book itself is immutable; the session owns the current index and the
    appearance mode. ``go_to`` is the only method that moves the position.
    Calls are not serialized here, so hosts that serve concurrent requests
    must hold their own lock around a session.
    """

    def __init__(self, *, dark_mode: bool = False) -> None:
        self.dark_mode = dark_mode
        self._book: Book | None = None
        self._archive: Archive | None = None
        self._current_index = 0

    @property
    def book(self) -> Book | None:
        return self._book

    @property
    def archive(self) -> Archive | None:
        return self._archive

    @property
    def loaded(self) -> bool:
        return self._book is not None

    def _require_book(self) -> Book:
        if self._book is None:
            raise NoBookLoaded()
        return self._book

    def load(self, archive: Archive, restore_index: int | None = None) -> Book:
        """
        Parse ``archive`` and make it the current book.

        ``restore_index`` is honoured only when it lies inside the new spine.
        On ``MalformedPackage`` the session keeps whatever it had before.
        """
        book = load_book(archive)
        start = 0
        if restore_index is not None:
            if 0 <= restore_index < book.total_units:
                start = restore_index
            else:
                logger.warning(
                    "Ignoring restore index %s for %s (%d chapters)",
                    restore_index,
                    archive.name,
                    book.total_units,
                )
        self._book = book
        self._archive = archive
        self._current_index = start
        logger.info("Opened %s (%s), %d chapters", archive.name, book.title, book.total_units)
        return book

    def current(self) -> ReaderPosition:
        total = self._book.total_units if self._book is not None else 0
        return ReaderPosition(current_index=self._current_index, total_units=total)

    def render(self, index: int, *, dark: bool | None = None) -> RenderableUnit:
        """Assemble unit ``index`` without moving the position (``dark`` overrides the session mode)."""
        book = self._require_book()
        archive = self._archive
        if archive is None:
            raise NoBookLoaded()
        if not 0 <= index < book.total_units:
            raise IndexOutOfRange(index, book.total_units)
        entry = book.spine[index]
        try:
            raw = archive.read_text(entry.href)
        except READ_ERRORS as exc:
            raise ChapterLoadFailure(entry.href, str(exc)) from exc
        if raw is None:
            raise ChapterLoadFailure(entry.href, "entry not found in archive")
        if dark is None:
            dark = self.dark_mode
        html = assemble(raw, entry.href, archive, dark=dark)
        return RenderableUnit(index=index, href=entry.href, html=html, dark=dark)

    def go_to(self, index: int) -> RenderableUnit:
        unit = self.render(index)
        self._current_index = index
        return unit

    def find_spine_index(self, target_path: str) -> int | None:
        book = self._require_book()
        target_name = file_name(target_path)
        for index, entry in enumerate(book.spine):
            if file_name(entry.href) == target_name or entry.href == target_path:
                return index
        return None

    def navigate_to(self, target_href: str) -> RenderableUnit | None:
        """Go to the spine entry named by ``target_href``; its fragment is passed through."""
        path, fragment = split_fragment(target_href)
        index = self.find_spine_index(path)
        if index is None:
            logger.warning("No chapter matches %s", target_href)
            return None
        unit = self.go_to(index)
        return replace(unit, fragment=fragment) if fragment else unit

    def next(self) -> RenderableUnit:
        return self.go_to(self._current_index + 1)

    def previous(self) -> RenderableUnit:
        return self.go_to(self._current_index - 1)

    def set_dark_mode(self, enabled: bool) -> RenderableUnit | None:
        """
        Switch palettes; re-renders the current unit when a book is open.

        The mode only changes once that unit rendered, so a
        ``ChapterLoadFailure`` leaves the session as it was.
        """
        if self._book is None or not self._book.total_units:
            self.dark_mode = enabled
            return None
        unit = self.render(self._current_index, dark=enabled)
        self.dark_mode = enabled
        return unit

    def toggle_dark_mode(self) -> RenderableUnit | None:
        return self.set_dark_mode(not self.dark_mode)

    def active_toc_entries(self) -> list[TocEntry]:
        book = self._require_book()
        if not book.total_units:
            return []
        chapter_file = file_name(book.spine[self._current_index].href)
        return [entry for entry in book.toc if chapter_file in entry.href]

    def progress_record(self, book_name: str, *, now: datetime | None = None) -> ProgressRecord:
        book = self._require_book()
        timestamp = (now or datetime.now(timezone.utc)).isoformat()
        return ProgressRecord(
            book_name=book_name,
            book_title=book.title,
            current_chapter=self._current_index,
            total_chapters=book.total_units,
            timestamp=timestamp,
        )


__all__ = ["ReaderSession"]
