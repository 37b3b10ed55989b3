"""Crash-recovery sidecars for open documents.

For an original document ``/docs/plan.fim`` the sidecar pair is:

    /docs/plan.fim-recovery             container-format copy of the document
    /docs/plan.fim-recovery.meta.json   {"original_path", "recovery_path", "timestamp"}

checkpoint() writes the payload first and the metadata last, each through a
temp file and rename. A crash in between leaves a payload without metadata,
which discovery still reports (using the file mtime), never metadata that
points at a half-written payload.

Best-effort policy: clearing sidecars after a save and scanning directories
during discovery never raise. Failures are logged and skipped.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fim.container import CONTAINER_EXTENSION, MAX_PAYLOAD_BYTES, read_container, write_container
from fim.errors import IoError, NotFoundError
from fim.models import AutosaveInfo
from fim.schema import validate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from fim.models import BoardDocument

logger = logging.getLogger("fim.recovery")

RECOVERY_SUFFIX = ".fim-recovery"
METADATA_SUFFIX = ".meta.json"


class RecoveryState(str, Enum):
    CLEAN = "clean"
    CHECKPOINTED = "checkpointed"
    STALE_RECOVERY_PRESENT = "stale-recovery-present"


def recovery_path_for(original_path: Path | str) -> Path:
    """Replace the document's extension with RECOVERY_SUFFIX."""
    return Path(original_path).with_suffix(RECOVERY_SUFFIX)


def metadata_path_for(recovery_path: Path | str) -> Path:
    recovery_path = Path(recovery_path)
    return recovery_path.with_name(recovery_path.name + METADATA_SUFFIX)


def default_search_dirs() -> list[Path]:
    """Temp dir, cwd, home and ~/Documents, in that order."""
    dirs = [Path(tempfile.gettempdir())]
    with contextlib.suppress(OSError):
        dirs.append(Path.cwd())
    with contextlib.suppress(RuntimeError):
        home = Path.home()
        dirs += [home, home / "Documents"]
    return dirs


def _unique_dirs(dirs: Iterable[Path]) -> Iterator[Path]:
    seen: set[Path] = set()
    for d in dirs:
        try:
            key = d.resolve()
        except OSError:
            continue
        if key not in seen:
            seen.add(key)
            yield d


class RecoveryManager:
    """Writes, discovers and reloads recovery sidecars."""

    def __init__(
        self,
        search_dirs: Iterable[Path | str] | None = None,
        *,
        max_payload_bytes: int = MAX_PAYLOAD_BYTES,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._search_dirs = [Path(d) for d in search_dirs] if search_dirs else None
        self._max_payload_bytes = max_payload_bytes
        self._now = now or (lambda: datetime.now(UTC))

    @property
    def search_dirs(self) -> list[Path]:
        return list(self._search_dirs) if self._search_dirs else default_search_dirs()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def checkpoint(self, doc: BoardDocument, original_path: Path | str) -> AutosaveInfo:
        """Write doc to the recovery path, then its metadata sidecar."""
        original = Path(original_path)
        recovery = recovery_path_for(original)
        validate(doc)

        write_container(doc, recovery)

        info = AutosaveInfo(original_path=original, recovery_path=recovery, timestamp=self._now())
        self._write_metadata(info)
        logger.info("checkpoint %s -> %s", original, recovery)
        return info

    def _write_metadata(self, info: AutosaveInfo) -> None:
        path = metadata_path_for(info.recovery_path)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(info.to_dict(), f, indent=2)
            os.replace(tmp, path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            msg = f"Failed to write recovery metadata '{path}': {exc}"
            raise IoError(msg) from exc

    def clear_recovery(self, original_path: Path | str) -> None:
        """Delete the sidecar pair for original_path. Best effort, never raises."""
        recovery = recovery_path_for(original_path)
        for path in (recovery, metadata_path_for(recovery)):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("could not remove recovery file %s: %s", path, exc)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read_metadata(self, recovery_path: Path | str) -> AutosaveInfo | None:
        """Parse the metadata sidecar, or None if it is missing or unreadable."""
        path = metadata_path_for(recovery_path)
        try:
            raw: Any = json.loads(path.read_text(encoding="utf-8"))
            return AutosaveInfo.from_dict(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.debug("ignoring unreadable recovery metadata %s: %s", path, exc)
            return None

    def discover_recovery_files(self) -> list[AutosaveInfo]:
        """Scan the search dirs for recovery payloads, newest first.

        Metadata is used when it parses; otherwise the original name is
        derived from the file name and the mtime stands in for the timestamp.
        Unreadable dirs and entries are skipped.
        """
        found: dict[Path, AutosaveInfo] = {}
        for directory in _unique_dirs(self.search_dirs):
            try:
                entries = list(directory.iterdir())
            except OSError as exc:
                logger.debug("skipping unreadable dir %s: %s", directory, exc)
                continue
            for entry in entries:
                if not entry.name.endswith(RECOVERY_SUFFIX):
                    continue
                info = self._describe(entry)
                if info is not None:
                    found.setdefault(info.recovery_path, info)

        return sorted(found.values(), key=lambda i: i.timestamp, reverse=True)

    def _describe(self, entry: Path) -> AutosaveInfo | None:
        try:
            st = entry.stat()
            if not entry.is_file():
                return None
        except OSError as exc:
            logger.debug("skipping unreadable recovery file %s: %s", entry, exc)
            return None

        meta = self.read_metadata(entry)
        if meta is not None:
            return AutosaveInfo(original_path=meta.original_path, recovery_path=entry, timestamp=meta.timestamp)

        stem = entry.name[: -len(RECOVERY_SUFFIX)]
        return AutosaveInfo(
            original_path=entry.with_name(stem + CONTAINER_EXTENSION),
            recovery_path=entry,
            timestamp=datetime.fromtimestamp(st.st_mtime, tz=UTC),
        )

    def recover(self, recovery_path: Path | str) -> BoardDocument:
        """Load a recovery payload. Where to save it again is the caller's call."""
        path = Path(recovery_path)
        if not path.exists():
            msg = f"Recovery file not found: {path}"
            raise NotFoundError(msg)
        doc = read_container(path, max_bytes=self._max_payload_bytes)
        validate(doc)
        logger.info("recovered %s (%d notes)", path, len(doc.notes))
        return doc

    def state(self, original_path: Path | str, last_autosave: AutosaveInfo | None = None) -> RecoveryState:
        """Where original_path stands given this session's latest autosave."""
        recovery = recovery_path_for(original_path)
        if not recovery.exists():
            return RecoveryState.CLEAN
        if last_autosave is not None and Path(last_autosave.recovery_path) == recovery:
            return RecoveryState.CHECKPOINTED
        return RecoveryState.STALE_RECOVERY_PRESENT
