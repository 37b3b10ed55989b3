"""Board document persistence, crash recovery and text export.

Layout of a saved board:
    plan.fim                          ZIP archive
        board.json                    the document (schemaVersion, notes, connections, ...)
        media/                        reserved for embedded assets
    plan.json                         same document, no archive

Recovery sidecars next to the original:
    plan.fim-recovery                 container-format checkpoint
    plan.fim-recovery.meta.json       {"original_path", "recovery_path", "timestamp"}
"""

from fim.container import load_document, read_container, save_document, write_container
from fim.export import ExportFormat, render
from fim.linearize import Ordering, linearize
from fim.models import AutosaveInfo, BoardDocument, Connection, Note, Rect, Stack
from fim.recovery import RecoveryManager, recovery_path_for
from fim.schema import validate

__all__ = [
    "AutosaveInfo",
    "BoardDocument",
    "Connection",
    "ExportFormat",
    "Note",
    "Ordering",
    "Rect",
    "RecoveryManager",
    "Stack",
    "linearize",
    "load_document",
    "read_container",
    "recovery_path_for",
    "render",
    "save_document",
    "validate",
    "write_container",
]
