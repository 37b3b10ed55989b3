"""Render a linearized board as plain text, RTF or OPML.

Each renderer numbers notes by their 1-based position in the linearized
order and uses those numbers to describe connections and stacks.
References to notes outside that order (dangling ids, or faded notes that
were filtered out) are dropped from the output, never raised.
"""

from __future__ import annotations

import html as _html
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import format_datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from fim.errors import ArgumentValidationError, IoError
from fim.linearize import ROW_HEIGHT, Ordering, linearize, outgoing_edges, root_ids

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fim.models import BoardDocument, Connection, Note

logger = logging.getLogger("fim.export")

DEFAULT_TITLE = "Freeform Idea Map Export"


class ExportFormat(str, Enum):
    TXT = "txt"
    RTF = "rtf"
    OPML = "opml"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @classmethod
    def parse(cls, value: str | ExportFormat) -> ExportFormat:
        if isinstance(value, ExportFormat):
            return value
        try:
            return cls(str(value).strip().lower().lstrip("."))
        except ValueError:
            choices = ", ".join(f.value for f in cls)
            msg = f"Unknown export format '{value}'. Expected one of: {choices}"
            raise ArgumentValidationError(msg) from None


@dataclass
class _Layout:
    """Linearized notes plus the lookups every renderer needs."""

    doc: BoardDocument
    ordering: Ordering
    notes: list[Note]
    index: dict[str, int] = field(init=False)

    def __post_init__(self) -> None:
        self.index = {note.id: i for i, note in enumerate(self.notes, 1)}

    def resolved_connections(self) -> list[tuple[Connection, int, int]]:
        out = []
        for conn in self.doc.connections:
            src = self.index.get(conn.src_note_id)
            dst = self.index.get(conn.dst_note_id)
            if src is None or dst is None:
                continue
            out.append((conn, src, dst))
        return out

    def stack_members(self) -> list[list[int]]:
        return [
            [self.index[nid] for nid in stack.note_ids if nid in self.index]
            for stack in self.doc.stacks
        ]

    def text_of(self, position: int) -> str:
        return self.notes[position - 1].text


def _layout(
    doc: BoardDocument,
    ordering: Ordering | str,
    include_faded: bool,
    row_height: float,
) -> _Layout:
    ordering = Ordering.parse(ordering)
    notes = linearize(doc, ordering, row_height=row_height)
    if not include_faded:
        notes = [n for n in notes if not n.is_faded]
    return _Layout(doc=doc, ordering=ordering, notes=notes)


def _connection_details(conn: Connection) -> list[tuple[str, str]]:
    details = []
    if conn.label:
        details.append(("Label", conn.label))
    if conn.style is not None:
        if conn.style.kind:
            details.append(("Style", conn.style.kind))
        if conn.style.arrows:
            details.append(("Arrows", conn.style.arrows))
    return details


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def _render_text(layout: _Layout, title: str, now: datetime) -> str:
    lines = [title, "=" * 30, "", "NOTES:", ""]
    for i, note in enumerate(layout.notes, 1):
        lines.append(f"{i}. {note.text}")
        if note.is_faded:
            lines.append("   (faded)")
        lines.append("")

    connections = layout.resolved_connections()
    if connections:
        lines += ["CONNECTIONS:", ""]
        for n, (conn, src, dst) in enumerate(connections, 1):
            lines.append(
                f'{n}. [{src}] → [{dst}]: "{layout.text_of(src)}" → "{layout.text_of(dst)}"'
            )
            for name, value in _connection_details(conn):
                lines.append(f"   {name}: {value}")
        lines.append("")

    stacks = [members for members in layout.stack_members() if members]
    if stacks:
        lines += ["STACKS:", ""]
        for n, members in enumerate(stacks, 1):
            lines.append(f"{n}. " + ", ".join(f"[{m}]" for m in members))
        lines.append("")

    lines += [
        f"Generated: {now.isoformat(timespec='seconds')}",
        f"Ordering: {layout.ordering.value}",
        f"{len(layout.notes)} notes, {len(connections)} connections, {len(stacks)} stacks",
    ]
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# RTF
# ---------------------------------------------------------------------------

_RTF_HEADER = r"{\rtf1\ansi\ansicpg1252\deff0{\fonttbl{\f0\fswiss Helvetica;}}{\colortbl;\red128\green128\blue128;}"


def rtf_escape(text: str) -> str:
    r"""Escape text for embedding in an RTF body.

    ``\ { }`` are backslash-escaped, newlines become paragraph breaks, tabs
    become tab stops and anything outside ASCII becomes a ``\uN?`` escape
    (UTF-16 code units, signed as RTF expects).
    """
    out: list[str] = []
    for ch in text:
        if ch in "\\{}":
            out.append("\\" + ch)
        elif ch == "\n":
            out.append("\\par ")
        elif ch == "\r":
            continue
        elif ch == "\t":
            out.append("\\tab ")
        elif ord(ch) < 128:
            out.append(ch)
        else:
            encoded = ch.encode("utf-16-le")
            for j in range(0, len(encoded), 2):
                unit = int.from_bytes(encoded[j:j + 2], "little", signed=True)
                out.append(f"\\u{unit}?")
    return "".join(out)


def _render_rtf(layout: _Layout, title: str, now: datetime) -> str:
    body = [
        _RTF_HEADER,
        r"\f0\fs24",
        rf"\pard\qc\b\fs32 {rtf_escape(title)}\b0\fs24\par",
        r"\pard\ql\par",
        r"\b NOTES\b0\par",
    ]
    for i, note in enumerate(layout.notes, 1):
        line = f"{i}. {rtf_escape(note.text)}"
        if note.is_faded:
            line += r" {\cf1 (faded)}"
        body.append(line + r"\par")

    connections = layout.resolved_connections()
    if connections:
        body += [r"\par", r"\b CONNECTIONS\b0\par"]
        for n, (conn, src, dst) in enumerate(connections, 1):
            body.append(
                f"{n}. [{src}] \\u8594? [{dst}]: "
                f"\"{rtf_escape(layout.text_of(src))}\" \\u8594? \"{rtf_escape(layout.text_of(dst))}\"\\par"
            )
            for name, value in _connection_details(conn):
                body.append(f"\\tab {name}: {rtf_escape(value)}\\par")

    stacks = [members for members in layout.stack_members() if members]
    if stacks:
        body += [r"\par", r"\b STACKS\b0\par"]
        for n, members in enumerate(stacks, 1):
            body.append(f"{n}. " + ", ".join(f"[{m}]" for m in members) + r"\par")

    body += [
        r"\par",
        rf"{{\cf1 Generated: {now.isoformat(timespec='seconds')}\par",
        rf"Ordering: {layout.ordering.value}\par",
        rf"{len(layout.notes)} notes, {len(connections)} connections, {len(stacks)} stacks\par}}",
        "}",
    ]
    return "\n".join(body) + "\n"


# ---------------------------------------------------------------------------
# OPML
# ---------------------------------------------------------------------------


@dataclass
class _OutlineNode:
    note: Note
    children: list[_OutlineNode] = field(default_factory=list)


def _outline_forest(layout: _Layout) -> list[_OutlineNode]:
    """Roots with their reachable subtrees, then unreached notes flat."""
    notes = layout.notes
    out_edges = outgoing_edges(notes, layout.doc.connections)
    roots = root_ids(notes, layout.doc.connections)
    visited: set[str] = set()
    forest: list[_OutlineNode] = []

    for note in notes:
        if note.id not in roots or note.id in visited:
            continue
        top = _OutlineNode(note)
        forest.append(top)
        visited.add(note.id)
        # Stack of (node, remaining children) mirrors a recursive pre-order walk.
        work: list[tuple[_OutlineNode, Iterator[Note]]] = [(top, iter(out_edges[note.id]))]
        while work:
            parent, children = work[-1]
            child = next((c for c in children if c.id not in visited), None)
            if child is None:
                work.pop()
                continue
            visited.add(child.id)
            node = _OutlineNode(child)
            parent.children.append(node)
            work.append((node, iter(out_edges[child.id])))

    forest.extend(_OutlineNode(n) for n in notes if n.id not in visited)
    return forest


def _outline_attrs(note: Note) -> str:
    attrs = f'text="{_html.escape(note.text, quote=True)}"'
    if note.is_faded:
        attrs += ' _faded="true"'
    return attrs


def _render_opml(layout: _Layout, title: str, now: datetime) -> str:
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<opml version="2.0">',
        "  <head>",
        f"    <title>{_html.escape(title, quote=True)}</title>",
        f"    <dateCreated>{format_datetime(now)}</dateCreated>",
        "  </head>",
        "  <body>",
    ]
    # Explicit stack of (node, depth, closing) so depth is not bounded by recursion.
    work: list[tuple[_OutlineNode, int, bool]] = [
        (node, 2, False) for node in reversed(_outline_forest(layout))
    ]
    while work:
        node, depth, closing = work.pop()
        pad = "  " * depth
        if closing:
            lines.append(f"{pad}</outline>")
            continue
        if not node.children:
            lines.append(f"{pad}<outline {_outline_attrs(node.note)}/>")
            continue
        lines.append(f"{pad}<outline {_outline_attrs(node.note)}>")
        work.append((node, depth, True))
        work.extend((child, depth + 1, False) for child in reversed(node.children))
    lines += ["  </body>", "</opml>"]
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

_RENDERERS = {
    ExportFormat.TXT: _render_text,
    ExportFormat.RTF: _render_rtf,
    ExportFormat.OPML: _render_opml,
}


def render(
    doc: BoardDocument,
    fmt: ExportFormat | str = ExportFormat.TXT,
    ordering: Ordering | str = Ordering.SPATIAL,
    *,
    include_faded: bool = True,
    now: datetime | None = None,
    title: str = DEFAULT_TITLE,
    row_height: float = ROW_HEIGHT,
) -> str:
    """Render doc in the given format and ordering.

    Raises ArgumentValidationError for an unknown format or ordering; never
    raises for dangling references inside the document.
    """
    fmt = ExportFormat.parse(fmt)
    layout = _layout(doc, ordering, include_faded, row_height)
    return _RENDERERS[fmt](layout, title, now or datetime.now(UTC))


def render_text(
    doc: BoardDocument,
    ordering: Ordering | str = Ordering.SPATIAL,
    *,
    include_faded: bool = True,
    now: datetime | None = None,
    title: str = DEFAULT_TITLE,
    row_height: float = ROW_HEIGHT,
) -> str:
    return render(
        doc, ExportFormat.TXT, ordering,
        include_faded=include_faded, now=now, title=title, row_height=row_height,
    )


def render_rtf(
    doc: BoardDocument,
    ordering: Ordering | str = Ordering.SPATIAL,
    *,
    include_faded: bool = True,
    now: datetime | None = None,
    title: str = DEFAULT_TITLE,
    row_height: float = ROW_HEIGHT,
) -> str:
    return render(
        doc, ExportFormat.RTF, ordering,
        include_faded=include_faded, now=now, title=title, row_height=row_height,
    )


def render_opml(
    doc: BoardDocument,
    ordering: Ordering | str = Ordering.SPATIAL,
    *,
    include_faded: bool = True,
    now: datetime | None = None,
    title: str = DEFAULT_TITLE,
    row_height: float = ROW_HEIGHT,
) -> str:
    return render(
        doc, ExportFormat.OPML, ordering,
        include_faded=include_faded, now=now, title=title, row_height=row_height,
    )


def write_export(path: Path | str, data: str | bytes) -> Path:
    """Write rendered output (text, or raw bytes from an image/PDF renderer)."""
    path = Path(path)
    try:
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            path.write_text(data, encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to write export '{path}': {exc}"
        raise IoError(msg) from exc
    logger.info("exported %s", path)
    return path
