"""Turn the note graph into a deterministic reading order.

Orderings:
    spatial       rows of ROW_HEIGHT units, left to right within a row
    connections   depth-first from root notes along outgoing connections
    hierarchical  stacks first (stack order, then member order), then
                  connection order over whatever is left

Every note appears exactly once. Traversal uses an explicit work stack and
a visited set, so cycles, self-loops and very deep chains are safe.
"""

from __future__ import annotations

import functools
import math
from enum import Enum
from typing import TYPE_CHECKING

from fim.errors import ArgumentValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from fim.models import BoardDocument, Connection, Note

ROW_HEIGHT = 100.0


class Ordering(str, Enum):
    SPATIAL = "spatial"
    CONNECTIONS = "connections"
    HIERARCHICAL = "hierarchical"

    @classmethod
    def parse(cls, value: str | Ordering) -> Ordering:
        if isinstance(value, Ordering):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(o.value for o in cls)
            msg = f"Unknown ordering '{value}'. Expected one of: {choices}"
            raise ArgumentValidationError(msg) from None


# ---------------------------------------------------------------------------
# Edge ordering (shared with the OPML renderer)
# ---------------------------------------------------------------------------


def _compare_edges(a: tuple[Connection, Note], b: tuple[Connection, Note]) -> int:
    """Labels win when both edges carry one; otherwise compare destination text."""
    (ca, na), (cb, nb) = a, b
    if ca.label and cb.label:
        ka, kb = ca.label, cb.label
    else:
        ka, kb = na.text, nb.text
    return (ka > kb) - (ka < kb)


def outgoing_edges(
    notes: Iterable[Note],
    connections: Iterable[Connection],
) -> dict[str, list[Note]]:
    """Map note id -> destination notes in traversal order.

    Only edges whose endpoints both resolve within ``notes`` are kept.
    The sort is stable, so ties keep document order.
    """
    by_id: dict[str, Note] = {}
    for note in notes:
        by_id.setdefault(note.id, note)

    edges: dict[str, list[tuple[Connection, Note]]] = {nid: [] for nid in by_id}
    for conn in connections:
        dst = by_id.get(conn.dst_note_id)
        if conn.src_note_id in by_id and dst is not None:
            edges[conn.src_note_id].append((conn, dst))

    key = functools.cmp_to_key(_compare_edges)
    return {nid: [dst for _, dst in sorted(out, key=key)] for nid, out in edges.items()}


def root_ids(notes: Iterable[Note], connections: Iterable[Connection]) -> set[str]:
    """Ids of notes with no incoming connection. Self-loops do not count."""
    ids = {n.id for n in notes}
    targeted = {
        c.dst_note_id
        for c in connections
        if c.src_note_id in ids and c.dst_note_id in ids and c.src_note_id != c.dst_note_id
    }
    return ids - targeted


# ---------------------------------------------------------------------------
# Orderings
# ---------------------------------------------------------------------------


def _spatial(notes: list[Note], row_height: float) -> list[Note]:
    def key(item: tuple[int, Note]) -> tuple[int, float, int]:
        i, note = item
        return (math.floor(note.frame.y / row_height), note.frame.x, i)

    return [note for _, note in sorted(enumerate(notes), key=key)]


def _connection_order(
    notes: list[Note],
    connections: list[Connection],
    visited: set[str],
) -> list[Note]:
    """Depth-first walk from roots; unreached notes follow in document order.

    ``visited`` is shared with the caller and updated in place.
    """
    pending = [n for n in notes if n.id not in visited]
    out_edges = outgoing_edges(pending, connections)
    roots = root_ids(pending, connections)

    result: list[Note] = []
    for root in pending:
        if root.id not in roots or root.id in visited:
            continue
        work: list[Note] = [root]
        while work:
            note = work.pop()
            if note.id in visited:
                continue
            visited.add(note.id)
            result.append(note)
            # Reversed so the first child is popped first.
            work.extend(reversed(out_edges.get(note.id, [])))

    for note in pending:
        if note.id not in visited:
            visited.add(note.id)
            result.append(note)
    return result


def _hierarchical(doc: BoardDocument) -> list[Note]:
    by_id = doc.note_by_id()
    visited: set[str] = set()
    result: list[Note] = []
    for stack in doc.stacks:
        for nid in stack.note_ids:
            note = by_id.get(nid)
            if note is None or nid in visited:
                continue
            visited.add(nid)
            result.append(note)
    result.extend(_connection_order(_unique(doc.notes), doc.connections, visited))
    return result


def _unique(notes: list[Note]) -> list[Note]:
    """Drop notes whose id repeats an earlier note."""
    seen: set[str] = set()
    out: list[Note] = []
    for note in notes:
        if note.id not in seen:
            seen.add(note.id)
            out.append(note)
    return out


def linearize(
    doc: BoardDocument,
    ordering: Ordering | str = Ordering.SPATIAL,
    *,
    row_height: float = ROW_HEIGHT,
) -> list[Note]:
    """Return the document's notes in reading order for ``ordering``."""
    ordering = Ordering.parse(ordering)
    if ordering is Ordering.SPATIAL:
        return _spatial(_unique(doc.notes), row_height)
    if ordering is Ordering.CONNECTIONS:
        return _connection_order(_unique(doc.notes), doc.connections, set())
    return _hierarchical(doc)
