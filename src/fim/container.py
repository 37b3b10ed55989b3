"""Read and write board documents.

Two on-disk formats, selected by extension:

    board.fim      ZIP archive (deflate)
        board.json     UTF-8 JSON document payload
        media/         reserved for embedded assets (empty for now)
    board.json     the same JSON payload, no archive wrapper

All writes go to a sibling temp file which is then renamed over the target,
so a failed save never truncates an existing document.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import zipfile
import zlib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fim.errors import (
    FormatError,
    IoError,
    ResourceLimitError,
    SerializationError,
    UnsupportedFormatError,
)
from fim.models import BoardDocument
from fim.schema import validate

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("fim.container")

PAYLOAD_ENTRY = "board.json"
MEDIA_DIR_ENTRY = "media/"
MAX_PAYLOAD_BYTES = 100_000_000

CONTAINER_EXTENSION = ".fim"
JSON_EXTENSION = ".json"
SUPPORTED_EXTENSIONS = (CONTAINER_EXTENSION, JSON_EXTENSION)


# ---------------------------------------------------------------------------
# JSON layer
# ---------------------------------------------------------------------------


def encode_document(doc: BoardDocument) -> str:
    """Serialize to pretty-printed JSON."""
    try:
        return json.dumps(doc.to_dict(), indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        msg = f"Failed to serialize document: {exc}"
        raise SerializationError(msg) from exc


def decode_document(data: str | bytes, source: Path | str = "<memory>") -> BoardDocument:
    """Parse JSON text into a BoardDocument. Does not validate the schema version."""
    try:
        raw: Any = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
        msg = f"Invalid JSON format in {source}: {exc}"
        raise SerializationError(msg) from exc
    if not isinstance(raw, dict):
        msg = f"Invalid JSON format in {source}: top-level value must be an object"
        raise SerializationError(msg)
    try:
        return BoardDocument.from_dict(raw)
    except KeyError as exc:
        msg = f"Invalid document in {source}: missing field {exc}"
        raise SerializationError(msg) from exc
    except (TypeError, ValueError, AttributeError) as exc:
        msg = f"Invalid document in {source}: {exc}"
        raise SerializationError(msg) from exc


# ---------------------------------------------------------------------------
# Atomic write helper
# ---------------------------------------------------------------------------


def _atomic_write(path: Path, writer: Callable[[Path], None]) -> None:
    """Run writer against a temp sibling of path, then rename it into place."""
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        writer(tmp)
        os.replace(tmp, path)
    except (OSError, ValueError) as exc:
        with contextlib.suppress(OSError, ValueError):
            tmp.unlink()
        msg = f"Failed to write file '{path}': {exc}"
        raise IoError(msg) from exc
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


# ---------------------------------------------------------------------------
# Archive container
# ---------------------------------------------------------------------------


def write_container(doc: BoardDocument, path: Path | str) -> None:
    """Write doc as a .fim archive: board.json plus an empty media/ entry."""
    path = Path(path)
    payload = encode_document(doc).encode("utf-8")

    def _write(target: Path) -> None:
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(PAYLOAD_ENTRY, payload)
            zf.mkdir(MEDIA_DIR_ENTRY)

    _atomic_write(path, _write)
    logger.debug("wrote container %s (%d bytes payload)", path, len(payload))


def read_container(path: Path | str, max_bytes: int = MAX_PAYLOAD_BYTES) -> BoardDocument:
    """Load a .fim archive. Reads at most max_bytes of board.json."""
    path = Path(path)
    try:
        zf = zipfile.ZipFile(path)
    except FileNotFoundError as exc:
        msg = f"Failed to open file '{path}': {exc}"
        raise IoError(msg) from exc
    except zipfile.BadZipFile as exc:
        msg = f"Failed to read zip file '{path}': {exc}"
        raise FormatError(msg) from exc
    except (OSError, ValueError) as exc:
        msg = f"Failed to open file '{path}': {exc}"
        raise IoError(msg) from exc

    with zf:
        try:
            info = zf.getinfo(PAYLOAD_ENTRY)
        except KeyError as exc:
            msg = f"Failed to find {PAYLOAD_ENTRY} in zip file '{path}'"
            raise FormatError(msg) from exc
        if info.file_size > max_bytes:
            msg = f"{PAYLOAD_ENTRY} in '{path}' is {info.file_size} bytes, limit is {max_bytes}"
            raise ResourceLimitError(msg)
        try:
            with zf.open(info) as f:
                # Declared sizes can lie; never read more than the cap + 1.
                data = f.read(max_bytes + 1)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, EOFError, RuntimeError) as exc:
            # RuntimeError: encrypted entry.
            msg = f"Failed to read {PAYLOAD_ENTRY} content in '{path}': {exc}"
            raise FormatError(msg) from exc
        except OSError as exc:
            msg = f"Failed to read {PAYLOAD_ENTRY} content in '{path}': {exc}"
            raise IoError(msg) from exc

    if len(data) > max_bytes:
        msg = f"{PAYLOAD_ENTRY} in '{path}' exceeds the {max_bytes} byte limit"
        raise ResourceLimitError(msg)
    return decode_document(data, source=path)


# ---------------------------------------------------------------------------
# Flat JSON
# ---------------------------------------------------------------------------


def write_json(doc: BoardDocument, path: Path | str) -> None:
    """Write doc as a plain .json file."""
    path = Path(path)
    text = encode_document(doc)
    _atomic_write(path, lambda target: target.write_text(text, encoding="utf-8"))
    logger.debug("wrote json %s", path)


def read_json(path: Path | str) -> BoardDocument:
    path = Path(path)
    try:
        data = path.read_bytes()
    except (OSError, ValueError) as exc:
        msg = f"Failed to read file '{path}': {exc}"
        raise IoError(msg) from exc
    return decode_document(data, source=path)


# ---------------------------------------------------------------------------
# Extension dispatch
# ---------------------------------------------------------------------------


def _extension(path: Path) -> str:
    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        shown = path.suffix.lstrip(".")
        msg = f"Unsupported file format: '{shown}'. Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}"
        raise UnsupportedFormatError(msg)
    return ext


def load_document(path: Path | str, max_bytes: int = MAX_PAYLOAD_BYTES) -> BoardDocument:
    """Load by extension and run the schema gate."""
    path = Path(path)
    if _extension(path) == CONTAINER_EXTENSION:
        doc = read_container(path, max_bytes=max_bytes)
    else:
        doc = read_json(path)
    validate(doc)
    logger.info("loaded %s (%d notes)", path, len(doc.notes))
    return doc


def save_document(doc: BoardDocument, path: Path | str) -> Path:
    """Run the schema gate and save by extension. Returns the written path."""
    path = Path(path)
    ext = _extension(path)
    validate(doc)
    if ext == CONTAINER_EXTENSION:
        write_container(doc, path)
    else:
        write_json(doc, path)
    logger.info("saved %s", path)
    return path
