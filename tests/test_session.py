from __future__ import annotations

from datetime import datetime, timezone

import pytest

from yomu.archive import MappingArchive, ZipArchive
from yomu.errors import ChapterLoadFailure, IndexOutOfRange, MalformedPackage, NoBookLoaded
from yomu.models import ReaderPosition
from yomu.session import ReaderSession


def _loaded_session(entries, **kwargs) -> ReaderSession:
    session = ReaderSession(**kwargs)
    session.load(MappingArchive(entries))
    return session


def test_open_and_jump_to_toc_target(sample_entries) -> None:
    session = ReaderSession()
    book = session.load(MappingArchive(sample_entries))

    assert book.title == "T"
    assert session.current() == ReaderPosition(current_index=0, total_units=2)

    unit = session.navigate_to("chap2.xhtml#s1")

    assert unit is not None
    assert unit.index == 1
    assert unit.fragment == "s1"
    assert unit.href == "OEBPS/text/chap2.xhtml"
    assert "Chapter Two" in unit.html
    assert session.current().current_index == 1


def test_navigate_to_toc_entry_href(sample_entries) -> None:
    session = _loaded_session(sample_entries)
    book = session.book
    assert book is not None

    unit = session.navigate_to(book.toc[1].href)

    assert unit is not None
    assert (unit.index, unit.fragment) == (1, "s1")


def test_navigate_to_unknown_target_keeps_position(sample_entries) -> None:
    session = _loaded_session(sample_entries)
    session.go_to(1)

    assert session.navigate_to("appendix.xhtml") is None
    assert session.current().current_index == 1


def test_go_to_renders_self_contained_unit(sample_entries) -> None:
    session = _loaded_session(sample_entries)

    unit = session.go_to(0)

    assert unit.index == 0
    assert unit.fragment is None
    assert "data:image/png;base64," in unit.html
    assert "color: teal" in unit.html
    assert "<link" not in unit.html


def test_go_to_is_idempotent(sample_entries) -> None:
    session = _loaded_session(sample_entries)

    first = session.go_to(1)
    second = session.go_to(1)

    assert first == second
    assert session.current().current_index == 1


@pytest.mark.parametrize("index", [-1, 2, 99])
def test_out_of_range_index_keeps_position(sample_entries, index: int) -> None:
    session = _loaded_session(sample_entries)
    session.go_to(1)

    with pytest.raises(IndexOutOfRange) as excinfo:
        session.go_to(index)

    assert excinfo.value.total == 2
    assert session.current().current_index == 1


def test_next_and_previous_stop_at_the_ends(sample_entries) -> None:
    session = _loaded_session(sample_entries)

    with pytest.raises(IndexOutOfRange):
        session.previous()
    assert session.next().index == 1
    with pytest.raises(IndexOutOfRange):
        session.next()
    assert session.previous().index == 0


def test_missing_chapter_entry_raises_chapter_load_failure(sample_entries) -> None:
    del sample_entries["OEBPS/text/chap2.xhtml"]
    session = _loaded_session(sample_entries)

    with pytest.raises(ChapterLoadFailure) as excinfo:
        session.go_to(1)

    assert excinfo.value.href == "OEBPS/text/chap2.xhtml"
    assert session.current().current_index == 0


def test_navigation_without_book() -> None:
    session = ReaderSession()

    assert not session.loaded
    assert session.current() == ReaderPosition(current_index=0, total_units=0)
    with pytest.raises(NoBookLoaded):
        session.go_to(0)
    with pytest.raises(NoBookLoaded):
        session.navigate_to("chap1.xhtml")
    assert session.set_dark_mode(True) is None


def test_restore_index_inside_spine(sample_entries) -> None:
    session = ReaderSession()

    session.load(MappingArchive(sample_entries), restore_index=1)

    assert session.current().current_index == 1


def test_restore_index_outside_spine_starts_at_first_unit(sample_entries) -> None:
    session = ReaderSession()

    session.load(MappingArchive(sample_entries), restore_index=5)

    assert session.current().current_index == 0


def test_failed_load_keeps_previous_book(sample_entries) -> None:
    session = _loaded_session(sample_entries)
    session.go_to(1)

    with pytest.raises(MalformedPackage):
        session.load(MappingArchive({"mimetype": "application/epub+zip"}))

    assert session.book is not None
    assert session.book.title == "T"
    assert session.current().current_index == 1


def test_empty_spine_rejects_every_index(sample_entries) -> None:
    opf = sample_entries["OEBPS/content.opf"]
    sample_entries["OEBPS/content.opf"] = opf.replace('<itemref idref="c1"/>', "").replace('<itemref idref="c2"/>', "")
    session = _loaded_session(sample_entries)

    assert session.current() == ReaderPosition(current_index=0, total_units=0)
    with pytest.raises(IndexOutOfRange):
        session.go_to(0)
    assert session.active_toc_entries() == []


def test_dark_mode_rerenders_current_unit(sample_entries) -> None:
    session = _loaded_session(sample_entries)
    session.go_to(1)

    unit = session.toggle_dark_mode()

    assert unit is not None
    assert unit.dark is True
    assert unit.index == 1
    assert "#16213e" in unit.html
    assert session.set_dark_mode(False).dark is False


def test_active_toc_entries_follow_current_chapter(sample_entries) -> None:
    session = _loaded_session(sample_entries)

    assert [entry.label for entry in session.active_toc_entries()] == ["Chapter One"]
    session.go_to(1)
    assert [entry.label for entry in session.active_toc_entries()] == ["Chapter Two"]


def test_progress_record(sample_entries) -> None:
    session = _loaded_session(sample_entries)
    session.go_to(1)
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    record = session.progress_record("sample.epub", now=now)

    assert record.as_payload() == {
        "bookName": "sample.epub",
        "bookTitle": "T",
        "currentChapter": 1,
        "totalChapters": 2,
        "timestamp": "2024-05-01T12:00:00+00:00",
    }


def test_session_over_zip_archive(sample_entries, write_epub) -> None:
    epub_path = write_epub(sample_entries)

    with ZipArchive(epub_path) as archive:
        session = ReaderSession()
        book = session.load(archive)
        unit = session.go_to(0)

    assert archive.name == "sample.epub"
    assert book.total_units == 2
    assert "data:image/png;base64," in unit.html


def test_corrupt_chapter_entry_raises_chapter_load_failure(sample_entries, write_epub) -> None:
    epub_path = write_epub(sample_entries, corrupt=["OEBPS/text/chap2.xhtml"])

    with ZipArchive(epub_path) as archive:
        session = ReaderSession()
        session.load(archive)
        with pytest.raises(ChapterLoadFailure) as excinfo:
            session.go_to(1)

    assert excinfo.value.href == "OEBPS/text/chap2.xhtml"
    assert session.current().current_index == 0


def test_failed_theme_switch_keeps_previous_mode(sample_entries) -> None:
    del sample_entries["OEBPS/text/chap1.xhtml"]
    session = _loaded_session(sample_entries)

    with pytest.raises(ChapterLoadFailure):
        session.set_dark_mode(True)
    assert session.dark_mode is False

    with pytest.raises(ChapterLoadFailure):
        session.toggle_dark_mode()
    assert session.dark_mode is False
    assert session.current().current_index == 0


def test_archive_exists(sample_entries, write_epub) -> None:
    memory = MappingArchive(sample_entries)
    assert memory.exists("OEBPS/content.opf")
    assert not memory.exists("content.opf")

    with ZipArchive(write_epub(sample_entries)) as archive:
        assert archive.exists("META-INF/container.xml")
        assert not archive.exists("OEBPS/text/chap3.xhtml")
