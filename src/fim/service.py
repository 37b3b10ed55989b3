"""Operation surface consumed by the editor UI.

Commands (arguments → result):
    open_dialog()                                   → document
    open_path(path)                                 → document
    save_dialog(doc, default_name?)                 → saved path
    save_path(doc, path)                            → saved path
    export_text(doc, format, ordering, path?, include_faded?)
                                                    → rendered text, or written path
    autosave(doc, original_path)                    → autosave info
    recent_files()                                  → [path, ...]
    clear_recent_files()                            → null
    set_dirty(dirty)                                → null
    set_current_path(path)                          → null
    autosave_status()                               → autosave info | null
    recovery_candidates()                           → [autosave info, ...]
    recover(recovery_path)                          → document
    clear_recovery(original_path)                   → null

BoardService.call() returns {"ok": true, "result": ...} or
{"ok": false, "error": "<message>"}; there are no numeric error codes.
run_server() exposes call() as line-delimited JSON-RPC 2.0 over stdio.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from fim.config import FimConfig, load_config
from fim.container import load_document, save_document
from fim.errors import ArgumentValidationError, BoardError, CancelledError
from fim.export import ExportFormat, render, write_export
from fim.linearize import Ordering
from fim.models import BoardDocument
from fim.recovery import RecoveryManager
from fim.schema import validate
from fim.session import Session

if TYPE_CHECKING:
    from collections.abc import Callable

    from fim.models import AutosaveInfo

logger = logging.getLogger("fim.service")

_VERSION = "0.1.0"
DEFAULT_SAVE_NAME = "untitled.fim"


class FilePicker(Protocol):
    """Native file dialog. Returns None when the user cancels."""

    def pick_open(self) -> Path | None: ...

    def pick_save(self, default_name: str) -> Path | None: ...


class BoardService:
    def __init__(
        self,
        config: FimConfig | None = None,
        *,
        session: Session | None = None,
        picker: FilePicker | None = None,
        recovery: RecoveryManager | None = None,
    ) -> None:
        self._cfg = config or load_config()
        self.session = session or Session(self._cfg.recent_files_limit)
        self._picker = picker
        self.recovery = recovery or RecoveryManager(
            self._cfg.recovery.search_dirs or None,
            max_payload_bytes=self._cfg.container.max_payload_bytes,
        )

    # ------------------------------------------------------------------
    # Open / save
    # ------------------------------------------------------------------

    def _require_picker(self) -> FilePicker:
        if self._picker is None:
            msg = "No file dialog available"
            raise BoardError(msg)
        return self._picker

    def open_path(self, path: Path | str) -> BoardDocument:
        doc = load_document(path, max_bytes=self._cfg.container.max_payload_bytes)
        self.session.add_recent(path)
        return doc

    def open_dialog(self) -> BoardDocument:
        path = self._require_picker().pick_open()
        if path is None:
            msg = "Operation cancelled by user"
            raise CancelledError(msg)
        return self.open_path(path)

    def save_path(self, doc: BoardDocument, path: Path | str) -> str:
        """Save explicitly, then drop that path's recovery sidecars."""
        saved = save_document(doc, path)
        self.session.record_save(saved)
        self.recovery.clear_recovery(saved)
        return str(saved)

    def save_dialog(self, doc: BoardDocument, default_name: str = DEFAULT_SAVE_NAME) -> str:
        validate(doc)
        path = self._require_picker().pick_save(default_name)
        if path is None:
            msg = "Save operation cancelled by user"
            raise CancelledError(msg)
        return self.save_path(doc, path)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_text(
        self,
        doc: BoardDocument,
        fmt: ExportFormat | str | None = None,
        ordering: Ordering | str | None = None,
        path: Path | str | None = None,
        *,
        include_faded: bool | None = None,
    ) -> str:
        """Render doc; write it to path when given and return the path."""
        exp = self._cfg.export
        text = render(
            doc,
            ExportFormat.parse(fmt) if fmt is not None else exp.format,
            Ordering.parse(ordering) if ordering is not None else exp.ordering,
            include_faded=exp.include_faded if include_faded is None else include_faded,
            row_height=exp.row_height,
        )
        if path is None:
            return text
        return str(write_export(path, text))

    # ------------------------------------------------------------------
    # Autosave / recovery
    # ------------------------------------------------------------------

    def autosave(self, doc: BoardDocument, original_path: Path | str) -> AutosaveInfo:
        info = self.recovery.checkpoint(doc, original_path)
        self.session.set_last_autosave(info)
        return info

    def autosave_status(self) -> AutosaveInfo | None:
        return self.session.last_autosave

    def recovery_candidates(self) -> list[AutosaveInfo]:
        return self.recovery.discover_recovery_files()

    def recover(self, recovery_path: Path | str) -> BoardDocument:
        return self.recovery.recover(recovery_path)

    def clear_recovery(self, original_path: Path | str) -> None:
        self.recovery.clear_recovery(original_path)

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def recent_files(self) -> list[str]:
        return self.session.recent_files()

    def clear_recent_files(self) -> None:
        self.session.clear_recent()

    def set_dirty(self, dirty: bool) -> None:
        self.session.set_dirty(dirty)

    def set_current_path(self, path: Path | str | None) -> None:
        self.session.set_current_path(path)

    # ------------------------------------------------------------------
    # RPC boundary
    # ------------------------------------------------------------------

    def _dispatch(self) -> dict[str, Callable[[dict[str, Any]], Any]]:
        def doc_arg(args: dict[str, Any]) -> BoardDocument:
            raw = _require(args, "doc")
            if not isinstance(raw, dict):
                msg = "Argument 'doc' must be a document object"
                raise ArgumentValidationError(msg)
            try:
                return BoardDocument.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                msg = f"Invalid document argument: {exc!r}"
                raise ArgumentValidationError(msg) from exc

        def info(i: AutosaveInfo | None) -> dict[str, Any] | None:
            return i.to_dict() if i is not None else None

        return {
            "open_dialog": lambda a: self.open_dialog().to_dict(),
            "open_path": lambda a: self.open_path(_require(a, "path", str)).to_dict(),
            "save_dialog": lambda a: self.save_dialog(doc_arg(a), _optional(a, "default_name", str) or DEFAULT_SAVE_NAME),
            "save_path": lambda a: self.save_path(doc_arg(a), _require(a, "path", str)),
            "export_text": lambda a: self.export_text(
                doc_arg(a),
                _optional(a, "format", str),
                _optional(a, "ordering", str),
                _optional(a, "path", str),
                include_faded=_optional(a, "include_faded", bool),
            ),
            "autosave": lambda a: info(self.autosave(doc_arg(a), _require(a, "original_path", str))),
            "recent_files": lambda a: self.recent_files(),
            "clear_recent_files": lambda a: self.clear_recent_files(),
            "set_dirty": lambda a: self.set_dirty(_require(a, "dirty", bool)),
            "set_current_path": lambda a: self.set_current_path(_optional(a, "path", str)),
            "autosave_status": lambda a: info(self.autosave_status()),
            "recovery_candidates": lambda a: [info(i) for i in self.recovery_candidates()],
            "recover": lambda a: self.recover(_require(a, "recovery_path", str)).to_dict(),
            "clear_recovery": lambda a: self.clear_recovery(_require(a, "original_path", str)),
        }

    def commands(self) -> list[str]:
        return sorted(self._dispatch())

    def call(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run one command; errors come back as a message, never raised."""
        dispatch = self._dispatch()
        if not isinstance(name, str) or name not in dispatch:
            return {"ok": False, "error": f"Unknown command: {name}"}
        if arguments is not None and not isinstance(arguments, dict):
            return {"ok": False, "error": "Arguments must be an object"}
        try:
            result = dispatch[name](arguments or {})
        except BoardError as exc:
            logger.info("%s failed: %s", name, exc)
            return {"ok": False, "error": str(exc)}
        return {"ok": True, "result": result}


def _require(args: dict[str, Any], key: str, kind: type | None = None) -> Any:
    if key not in args or args[key] is None:
        msg = f"Missing required argument '{key}'"
        raise ArgumentValidationError(msg)
    return _checked(key, args[key], kind)


def _optional(args: dict[str, Any], key: str, kind: type) -> Any:
    value = args.get(key)
    return None if value is None else _checked(key, value, kind)


def _checked(key: str, value: Any, kind: type | None) -> Any:
    if kind is not None and not isinstance(value, kind):
        msg = f"Argument '{key}' must be of type {kind.__name__}, got {type(value).__name__}"
        raise ArgumentValidationError(msg)
    return value


# ---------------------------------------------------------------------------
# stdio JSON-RPC
# ---------------------------------------------------------------------------


def handle_message(service: BoardService, msg: dict[str, Any]) -> dict[str, Any] | None:
    """Answer one JSON-RPC request; notifications get no response."""
    method = msg.get("method", "")
    msg_id = msg.get("id")

    if method == "initialize":
        result: Any = {"serverInfo": {"name": "fim", "version": _VERSION}}
    elif method == "commands/list":
        result = {"commands": service.commands()}
    elif method == "commands/call":
        params = msg.get("params", {})
        if not isinstance(params, dict):
            if msg_id is None:
                return None
            return {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32602, "message": "Invalid params: expected an object"},
            }
        result = service.call(params.get("name", ""), params.get("arguments", {}))
    elif msg_id is None:
        return None
    else:
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": {"code": -32601, "message": f"Method not found: {method}"},
        }

    if msg_id is None:
        return None
    return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def respond(service: BoardService, msg: dict[str, Any]) -> dict[str, Any] | None:
    """handle_message, with any unexpected failure reported as an internal error."""
    try:
        return handle_message(service, msg)
    except Exception as exc:
        logger.exception("request %r failed", msg.get("method"))
        if msg.get("id") is None:
            return None
        return {
            "jsonrpc": "2.0",
            "id": msg.get("id"),
            "error": {"code": -32603, "message": f"Internal error: {exc}"},
        }


async def _run_server(config_root: Path | None = None) -> None:
    service = BoardService(load_config(config_root))
    reader = asyncio.StreamReader()
    loop = asyncio.get_event_loop()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    writer_transport, _ = await loop.connect_write_pipe(asyncio.BaseProtocol, sys.stdout.buffer)

    def write_json(obj: Any) -> None:
        line = json.dumps(obj) + "\n"
        writer_transport.write(line.encode())

    while True:
        try:
            line = await reader.readline()
        except (asyncio.IncompleteReadError, EOFError):
            break
        if not line:
            break
        try:
            msg = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
            continue
        if not isinstance(msg, dict):
            continue
        # File I/O blocks; keep it off the event loop.
        response = await asyncio.to_thread(respond, service, msg)
        if response is not None:
            write_json(response)


def run_server(config_root: Path | None = None) -> None:
    """Entry point for `fim serve`."""
    asyncio.run(_run_server(config_root))
