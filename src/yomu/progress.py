from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import ProgressRecord

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path("~/.yomu/state.json")
STATE_VERSION = 1
THEMES = ("light", "dark")


def restore_index_for(
    record: ProgressRecord | None,
    book_name: str,
    total_units: int | None = None,
) -> int | None:
    """
    Chapter to reopen ``book_name`` at, when ``record`` was saved for it.

    Names must match exactly. With ``total_units`` the index must also fit
    the book; ``ReaderSession.load`` applies the same bound on its own.
    """
    if record is None or record.book_name != book_name:
        return None
    if total_units is not None and record.current_chapter >= total_units:
        return None
    return record.current_chapter


class StateStore:
    """
    JSON file holding the last reading position and the preferred theme.

    Unreadable or malformed files read as an empty state; the next save
    overwrites them.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = (path or DEFAULT_STATE_PATH).expanduser()

    def _empty_state(self) -> dict[str, object]:
        return {"version": STATE_VERSION, "progress": None, "theme": None}

    def _load_state(self) -> dict[str, object]:
        if not self.path.exists():
            return self._empty_state()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return self._empty_state()
        if not isinstance(raw, dict):
            return self._empty_state()
        record = ProgressRecord.from_payload(raw.get("progress"))
        theme = raw.get("theme")
        return {
            "version": STATE_VERSION,
            "progress": record.as_payload() if record else None,
            "theme": theme if theme in THEMES else None,
        }

    def _save_state(self, state: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def load_progress(self) -> ProgressRecord | None:
        return ProgressRecord.from_payload(self._load_state().get("progress"))

    def save_progress(self, record: ProgressRecord) -> None:
        state = self._load_state()
        state["progress"] = record.as_payload()
        self._save_state(state)

    def clear_progress(self) -> None:
        state = self._load_state()
        if state.get("progress") is None:
            return
        state["progress"] = None
        self._save_state(state)

    def load_theme(self) -> str | None:
        theme = self._load_state().get("theme")
        return theme if isinstance(theme, str) else None

    def save_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        state = self._load_state()
        state["theme"] = theme
        self._save_state(state)


__all__ = ["DEFAULT_STATE_PATH", "THEMES", "StateStore", "restore_index_for"]
