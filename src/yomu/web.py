from __future__ import annotations

import logging
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse

from .archive import ZipArchive
from .errors import (
    ChapterLoadFailure,
    IndexOutOfRange,
    MalformedPackage,
    NoBookLoaded,
    YomuError,
)
from .models import Book, RenderableUnit
from .progress import StateStore, restore_index_for
from .session import ReaderSession

logger = logging.getLogger(__name__)

EPUB_SUFFIX = ".epub"


@dataclass
class ReaderConfig:
    root: Path
    dark_mode: bool = False
    state_path: Path | None = None


INDEX_HTML = """<!DOCTYPE html>
<html lang="en" data-theme="light">
<head>
  <meta charset="utf-8">
  <title>yomu</title>
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    :root {
      font-family: -apple-system, BlinkMacSystemFont, "Hiragino Sans", "Segoe UI", sans-serif;
      --bg: #f5f6fa;
      --panel: #ffffff;
      --outline: #dfe3ee;
      --text: #2c3e50;
      --muted: #7f8aa3;
      --accent: #2563eb;
      --accent-soft: rgba(37,99,235,0.12);
    }
    [data-theme="dark"] {
      color-scheme: dark;
      --bg: #0f1629;
      --panel: #16213e;
      --outline: #26304f;
      --text: #eaeaea;
      --muted: #a3a8c5;
      --accent: #38bdf8;
      --accent-soft: rgba(56,189,248,0.15);
    }
    * { box-sizing: border-box; }
    body {
      margin: 0;
      background: var(--bg);
      color: var(--text);
      height: 100vh;
      display: flex;
      flex-direction: column;
    }
    header {
      display: flex;
      align-items: center;
      gap: 0.6rem;
      padding: 0.6rem 1rem;
      border-bottom: 1px solid var(--outline);
      background: var(--panel);
    }
    header h1 {
      flex: 1;
      margin: 0;
      font-size: 1.05rem;
      white-space: nowrap;
      overflow: hidden;
      text-overflow: ellipsis;
    }
    button {
      background: var(--panel);
      color: var(--text);
      border: 1px solid var(--outline);
      border-radius: 10px;
      padding: 0.35rem 0.8rem;
      cursor: pointer;
    }
    button:disabled { opacity: 0.4; cursor: default; }
    .layout { flex: 1; display: flex; min-height: 0; }
    aside {
      width: 300px;
      overflow-y: auto;
      border-right: 1px solid var(--outline);
      background: var(--panel);
      padding: 0.8rem;
    }
    aside.hidden { display: none; }
    aside h2 { font-size: 0.85rem; color: var(--muted); margin: 0.8rem 0 0.4rem; }
    aside ul { list-style: none; margin: 0; padding: 0; }
    aside a {
      display: block;
      padding: 0.35rem 0.5rem;
      border-radius: 8px;
      color: inherit;
      text-decoration: none;
    }
    aside a:hover, aside a.active { background: var(--accent-soft); color: var(--accent); }
    main { flex: 1; display: flex; flex-direction: column; min-width: 0; }
    iframe { flex: 1; border: 0; width: 100%; background: var(--panel); }
    .status { padding: 1rem; color: var(--muted); }
    footer {
      display: flex;
      justify-content: center;
      align-items: center;
      gap: 1rem;
      padding: 0.5rem;
      border-top: 1px solid var(--outline);
      background: var(--panel);
    }
    .dialog {
      position: fixed;
      inset: 0;
      background: rgba(0,0,0,0.45);
      display: flex;
      align-items: center;
      justify-content: center;
    }
    .dialog.hidden { display: none; }
    .dialog-content {
      background: var(--panel);
      border-radius: 14px;
      padding: 1.2rem 1.5rem;
      max-width: 360px;
    }
    .dialog-buttons { display: flex; gap: 0.6rem; justify-content: flex-end; }
  </style>
</head>
<body>
  <header>
    <button id="toggle-toc" title="Contents">&#9776;</button>
    <h1 id="book-title">yomu</h1>
    <button id="theme-toggle" title="Toggle theme (t)">&#127769;</button>
  </header>
  <div class="layout">
    <aside id="toc-panel">
      <h2>Library</h2>
      <ul id="library-list"></ul>
      <h2>Contents</h2>
      <ul id="toc-list"></ul>
    </aside>
    <main>
      <div id="status" class="status">Choose a book from the library.</div>
      <iframe id="content" title="Chapter" sandbox="allow-same-origin"></iframe>
    </main>
  </div>
  <footer>
    <button id="prev-page">&larr; Previous</button>
    <span id="page-info"></span>
    <button id="next-page">Next &rarr;</button>
  </footer>
  <div id="restore-dialog" class="dialog hidden">
    <div class="dialog-content">
      <h3>Resume reading?</h3>
      <p id="restore-text"></p>
      <div class="dialog-buttons">
        <button id="restore-no">Start over</button>
        <button id="restore-yes">Continue</button>
      </div>
    </div>
  </div>
  <script>
    const els = {
      title: document.getElementById('book-title'),
      toc: document.getElementById('toc-list'),
      tocPanel: document.getElementById('toc-panel'),
      library: document.getElementById('library-list'),
      content: document.getElementById('content'),
      status: document.getElementById('status'),
      prev: document.getElementById('prev-page'),
      next: document.getElementById('next-page'),
      pageInfo: document.getElementById('page-info'),
      theme: document.getElementById('theme-toggle'),
      dialog: document.getElementById('restore-dialog'),
      restoreText: document.getElementById('restore-text'),
    };
    const state = { book: null, chapter: null, dark: false, busy: false };

    async function api(path, options = {}) {
      const res = await fetch(path, {
        headers: { 'Content-Type': 'application/json' },
        ...options,
      });
      const payload = await res.json().catch(() => ({}));
      if (!res.ok) {
        throw new Error(payload.detail || res.statusText);
      }
      return payload;
    }

    function setStatus(message) {
      els.status.textContent = message || '';
      els.status.style.display = message ? 'block' : 'none';
    }

    function applyTheme(dark) {
      state.dark = dark;
      document.documentElement.dataset.theme = dark ? 'dark' : 'light';
      els.theme.innerHTML = dark ? '&#9728;&#65039;' : '&#127769;';
    }

    function renderToc(book) {
      els.toc.innerHTML = '';
      book.toc.forEach((entry, index) => {
        const li = document.createElement('li');
        const a = document.createElement('a');
        a.href = '#';
        a.textContent = entry.label;
        a.dataset.index = String(index);
        a.addEventListener('click', (event) => {
          event.preventDefault();
          navigate(entry.href);
        });
        li.appendChild(a);
        els.toc.appendChild(li);
      });
    }

    function highlightToc(active) {
      const indices = new Set(active || []);
      els.toc.querySelectorAll('a').forEach((link) => {
        link.classList.toggle('active', indices.has(Number(link.dataset.index)));
      });
    }

    function scrollToFragment(fragment) {
      if (!fragment) return;
      const doc = els.content.contentDocument;
      if (!doc) return;
      const target = doc.getElementById(fragment) || doc.querySelector(`[name="${CSS.escape(fragment)}"]`);
      if (target) target.scrollIntoView({ behavior: 'smooth' });
    }

    function showChapter(chapter) {
      if (!chapter) return;
      state.chapter = chapter;
      setStatus('');
      els.content.onload = () => scrollToFragment(chapter.fragment);
      els.content.srcdoc = chapter.html;
      els.prev.disabled = chapter.index <= 0;
      els.next.disabled = chapter.index >= chapter.total - 1;
      els.pageInfo.textContent = `Chapter ${chapter.index + 1} of ${chapter.total}`;
      highlightToc(chapter.active_toc);
    }

    async function guarded(task) {
      if (state.busy) return;
      state.busy = true;
      try {
        await task();
      } catch (err) {
        setStatus(err.message);
      } finally {
        state.busy = false;
      }
    }

    function openBook(name, restore) {
      return guarded(async () => {
        setStatus('Loading book…');
        const payload = await api('/api/open', {
          method: 'POST',
          body: JSON.stringify({ name, restore }),
        });
        state.book = payload.book;
        els.title.textContent = payload.book.title || payload.book.name;
        renderToc(payload.book);
        if (payload.chapter) {
          showChapter(payload.chapter);
        } else {
          setStatus(payload.error || 'Unable to load this chapter.');
        }
      });
    }

    function goTo(index) {
      if (!state.book || index < 0 || index >= state.book.total) return;
      return guarded(async () => {
        showChapter(await api(`/api/chapter?index=${index}`));
      });
    }

    function navigate(href) {
      return guarded(async () => {
        showChapter(await api(`/api/navigate?href=${encodeURIComponent(href)}`));
      });
    }

    function toggleTheme() {
      return guarded(async () => {
        const payload = await api('/api/theme', {
          method: 'POST',
          body: JSON.stringify({ dark: !state.dark }),
        });
        applyTheme(payload.dark);
        if (payload.chapter) showChapter(payload.chapter);
      });
    }

    function offerRestore(progress, books) {
      if (!progress || !books.some((book) => book.name === progress.bookName)) {
        if (books.length === 1) openBook(books[0].name, false);
        return;
      }
      const label = progress.bookTitle || progress.bookName;
      const when = progress.timestamp ? new Date(progress.timestamp).toLocaleString() : '';
      els.restoreText.textContent =
        `${label}: chapter ${progress.currentChapter + 1} of ${progress.totalChapters}. ${when}`;
      els.dialog.classList.remove('hidden');
      document.getElementById('restore-yes').onclick = () => {
        els.dialog.classList.add('hidden');
        openBook(progress.bookName, true);
      };
      document.getElementById('restore-no').onclick = async () => {
        els.dialog.classList.add('hidden');
        await api('/api/progress', { method: 'DELETE' });
        if (books.length === 1) openBook(books[0].name, false);
      };
    }

    async function init() {
      const [library, progress] = await Promise.all([api('/api/books'), api('/api/progress')]);
      applyTheme(library.dark);
      els.library.innerHTML = '';
      library.books.forEach((book) => {
        const li = document.createElement('li');
        const a = document.createElement('a');
        a.href = '#';
        a.textContent = book.name;
        a.addEventListener('click', (event) => {
          event.preventDefault();
          openBook(book.name, true);
        });
        li.appendChild(a);
        els.library.appendChild(li);
      });
      offerRestore(progress.progress, library.books);
    }

    els.prev.addEventListener('click', () => state.chapter && goTo(state.chapter.index - 1));
    els.next.addEventListener('click', () => state.chapter && goTo(state.chapter.index + 1));
    els.theme.addEventListener('click', toggleTheme);
    document.getElementById('toggle-toc').addEventListener('click', () => {
      els.tocPanel.classList.toggle('hidden');
    });
    document.addEventListener('keydown', (event) => {
      if (event.key === 'ArrowLeft' && state.chapter) {
        goTo(state.chapter.index - 1);
      } else if (event.key === 'ArrowRight' && state.chapter) {
        goTo(state.chapter.index + 1);
      } else if (event.key === 'Escape') {
        els.tocPanel.classList.add('hidden');
      } else if (event.key === 't' || event.key === 'T') {
        toggleTheme();
      }
    });
    init().catch((err) => setStatus(err.message));
  </script>
</body>
</html>
"""


def list_epubs(root: Path) -> list[Path]:
    if root.is_file():
        return [root]
    return sorted(
        (p for p in root.iterdir() if p.is_file() and p.suffix.lower() == EPUB_SUFFIX),
        key=lambda p: p.name.casefold(),
    )


def _book_payload(name: str, book: Book, current_index: int) -> dict[str, object]:
    return {
        "name": name,
        "title": book.title,
        "total": book.total_units,
        "current": current_index,
        "toc": [{"label": e.label, "href": e.href, "order": e.order} for e in book.toc],
        "warnings": [str(issue) for issue in book.warnings],
    }


class _ReaderState:
    """The web reader's single session, plus the archive it reads from."""

    def __init__(self, dark_mode: bool) -> None:
        self.session = ReaderSession(dark_mode=dark_mode)
        self.archive: ZipArchive | None = None
        self.book_name: str | None = None
        self.lock = threading.Lock()

    def close(self) -> None:
        if self.archive is not None:
            self.archive.close()
            self.archive = None


def _http_error(exc: YomuError) -> HTTPException:
    if isinstance(exc, NoBookLoaded):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, IndexOutOfRange):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, MalformedPackage):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ChapterLoadFailure):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def create_app(config: ReaderConfig) -> FastAPI:
    root = config.root.expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Books path not found: {root}")

    store = StateStore(config.state_path)
    dark_mode = config.dark_mode or store.load_theme() == "dark"
    reader = _ReaderState(dark_mode)

    app = FastAPI(title="yomu")
    app.add_event_handler("shutdown", reader.close)

    def _books() -> dict[str, Path]:
        return {path.name: path for path in list_epubs(root)}

    def _chapter_payload(unit: RenderableUnit) -> dict[str, object]:
        session = reader.session
        book = session.book
        if book is None:
            raise _http_error(NoBookLoaded())
        active = set(session.active_toc_entries())
        return {
            "index": unit.index,
            "total": book.total_units,
            "href": unit.href,
            "html": unit.html,
            "fragment": unit.fragment,
            "dark": unit.dark,
            "active_toc": [i for i, entry in enumerate(book.toc) if entry in active],
        }

    def _remember(unit: RenderableUnit) -> dict[str, object]:
        if reader.book_name is not None:
            store.save_progress(reader.session.progress_record(reader.book_name))
        return _chapter_payload(unit)

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse(INDEX_HTML)

    @app.get("/api/books")
    def api_books() -> JSONResponse:
        books = [{"name": name} for name in _books()]
        return JSONResponse(
            {"books": books, "current": reader.book_name, "dark": reader.session.dark_mode}
        )

    @app.post("/api/open")
    def api_open(payload: dict[str, object] = Body(...)) -> JSONResponse:
        name = payload.get("name")
        if not isinstance(name, str) or not name:
            raise HTTPException(status_code=400, detail="Book name is required")
        path = _books().get(name)
        if path is None:
            raise HTTPException(status_code=404, detail=f"Book not found: {name}")
        restore = payload.get("restore", True) is not False
        restore_index = restore_index_for(store.load_progress(), name) if restore else None
        with reader.lock:
            try:
                archive = ZipArchive(path)
            except (OSError, zipfile.BadZipFile) as exc:
                raise HTTPException(status_code=422, detail=f"Unable to open {name}: {exc}") from exc
            try:
                book = reader.session.load(archive, restore_index=restore_index)
            except YomuError as exc:
                archive.close()
                raise _http_error(exc) from exc
            reader.close()
            reader.archive = archive
            reader.book_name = name
            current = reader.session.current().current_index
            chapter: dict[str, object] | None = None
            error: str | None = None
            if book.total_units:
                try:
                    chapter = _remember(reader.session.go_to(current))
                except YomuError as exc:
                    error = str(exc)
            else:
                error = "This book has no readable chapters."
            return JSONResponse({"book": _book_payload(name, book, current), "chapter": chapter, "error": error})

    @app.get("/api/book")
    def api_book() -> JSONResponse:
        with reader.lock:
            book = reader.session.book
            if book is None or reader.book_name is None:
                raise _http_error(NoBookLoaded())
            current = reader.session.current().current_index
            return JSONResponse(_book_payload(reader.book_name, book, current))

    @app.get("/api/chapter")
    def api_chapter(index: int = Query(..., description="Zero-based spine index")) -> JSONResponse:
        with reader.lock:
            try:
                unit = reader.session.go_to(index)
            except YomuError as exc:
                raise _http_error(exc) from exc
            return JSONResponse(_remember(unit))

    @app.get("/api/navigate")
    def api_navigate(href: str = Query(..., description="TOC href, optionally with #fragment")) -> JSONResponse:
        with reader.lock:
            try:
                unit = reader.session.navigate_to(href)
            except YomuError as exc:
                raise _http_error(exc) from exc
            if unit is None:
                raise HTTPException(status_code=404, detail=f"No chapter matches {href}")
            return JSONResponse(_remember(unit))

    @app.post("/api/theme")
    def api_theme(payload: dict[str, object] = Body(...)) -> JSONResponse:
        dark = bool(payload.get("dark"))
        with reader.lock:
            try:
                unit = reader.session.set_dark_mode(dark)
            except YomuError as exc:
                raise _http_error(exc) from exc
            store.save_theme("dark" if dark else "light")
            chapter = _chapter_payload(unit) if unit is not None else None
            return JSONResponse({"dark": dark, "chapter": chapter})

    @app.get("/api/progress")
    def api_progress() -> JSONResponse:
        record = store.load_progress()
        return JSONResponse({"progress": record.as_payload() if record else None})

    @app.delete("/api/progress")
    def api_clear_progress() -> JSONResponse:
        store.clear_progress()
        return JSONResponse({"cleared": True})

    return app


__all__ = ["ReaderConfig", "INDEX_HTML", "list_epubs", "create_app"]
