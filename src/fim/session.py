"""Session-scoped state shared by concurrently dispatched operations.

One lock guards every field. Callers hold it only while reading or mutating
state, never across file I/O.

There is no cross-process or cross-instance file locking: two operations
saving to the same path at once race at the filesystem level.
"""

from __future__ import annotations

import threading
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fim.models import AutosaveInfo

MAX_RECENT_FILES = 10


class Session:
    """Recent files, current/last-saved paths, dirty flag, last autosave."""

    def __init__(self, recent_limit: int = MAX_RECENT_FILES) -> None:
        self._lock = threading.Lock()
        self._recent: deque[str] = deque(maxlen=max(1, recent_limit))
        self._last_save_path: str | None = None
        self._current_path: str | None = None
        self._dirty = False
        self._last_autosave: AutosaveInfo | None = None

    # ------------------------------------------------------------------
    # Recent files
    # ------------------------------------------------------------------

    def add_recent(self, path: Path | str) -> None:
        """Move path to the front, dropping duplicates and the oldest overflow."""
        entry = str(path)
        with self._lock:
            if entry in self._recent:
                self._recent.remove(entry)
            self._recent.appendleft(entry)

    def recent_files(self) -> list[str]:
        with self._lock:
            return list(self._recent)

    def clear_recent(self) -> None:
        with self._lock:
            self._recent.clear()

    # ------------------------------------------------------------------
    # Paths and flags
    # ------------------------------------------------------------------

    def record_save(self, path: Path | str) -> None:
        """Remember an explicit save: last save path, current path, recents, clean."""
        entry = str(path)
        with self._lock:
            self._last_save_path = entry
            self._current_path = entry
            self._dirty = False
            if entry in self._recent:
                self._recent.remove(entry)
            self._recent.appendleft(entry)

    @property
    def last_save_path(self) -> str | None:
        with self._lock:
            return self._last_save_path

    @property
    def current_path(self) -> str | None:
        with self._lock:
            return self._current_path

    def set_current_path(self, path: Path | str | None) -> None:
        with self._lock:
            self._current_path = str(path) if path is not None else None

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def set_dirty(self, dirty: bool) -> None:
        with self._lock:
            self._dirty = bool(dirty)

    # ------------------------------------------------------------------
    # Autosave
    # ------------------------------------------------------------------

    @property
    def last_autosave(self) -> AutosaveInfo | None:
        with self._lock:
            return self._last_autosave

    def set_last_autosave(self, info: AutosaveInfo | None) -> None:
        with self._lock:
            self._last_autosave = info
