"""Data models for board documents.

Wire format keys are camelCase (``schemaVersion``, ``srcNoteId``); attributes
are snake_case. ``to_dict`` omits unset optionals so that
``BoardDocument.from_dict(doc.to_dict()) == doc``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

CURRENT_SCHEMA_VERSION = 1


def _put(d: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        d[key] = value


def _list_of(cls: Any, raw: Any) -> list[Any]:
    return [cls.from_dict(x) for x in raw or []]


def _opt(cls: Any, raw: Any) -> Any:
    return cls.from_dict(raw) if raw is not None else None


def _str(d: dict[str, Any], key: str) -> str:
    value = d[key]
    if not isinstance(value, str):
        msg = f"field '{key}' must be a string, got {type(value).__name__}"
        raise TypeError(msg)
    return value


def _opt_str(d: dict[str, Any], key: str) -> str | None:
    if d.get(key) is None:
        return None
    return _str(d, key)


def _num(d: dict[str, Any], key: str) -> float:
    value = d[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"field '{key}' must be a number, got {type(value).__name__}"
        raise TypeError(msg)
    return value


@dataclass
class Point:
    x: float
    y: float

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Point:
        return cls(x=_num(d, "x"), y=_num(d, "y"))

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}


@dataclass
class Rect:
    """Frame in document units; ``w``/``h`` are width and height."""

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Rect:
        return cls(x=_num(d, "x"), y=_num(d, "y"), w=_num(d, "w"), h=_num(d, "h"))

    def to_dict(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass
class TextStyle:
    font: str
    size: float
    weight: int | None = None
    italic: bool | None = None
    underline: bool | None = None
    strike: bool | None = None
    color: str | None = None
    align: str | None = None           # left | center | right

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TextStyle:
        return cls(
            font=d["font"],
            size=d["size"],
            weight=d.get("weight"),
            italic=d.get("italic"),
            underline=d.get("underline"),
            strike=d.get("strike"),
            color=d.get("color"),
            align=d.get("align"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"font": self.font, "size": self.size}
        for key in ("weight", "italic", "underline", "strike", "color", "align"):
            _put(d, key, getattr(self, key))
        return d


@dataclass
class BorderStyle:
    color: str | None = None
    width: float | None = None
    style: str | None = None           # solid | dotted

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BorderStyle:
        return cls(color=d.get("color"), width=d.get("width"), style=d.get("style"))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        _put(d, "color", self.color)
        _put(d, "width", self.width)
        _put(d, "style", self.style)
        return d


@dataclass
class NoteStyle:
    id: str
    text_style: TextStyle
    fill: str | None = None
    border: BorderStyle | None = None
    corner_radius: float | None = None
    shadow: bool | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NoteStyle:
        return cls(
            id=d["id"],
            text_style=TextStyle.from_dict(d["textStyle"]),
            fill=d.get("fill"),
            border=_opt(BorderStyle, d.get("border")),
            corner_radius=d.get("cornerRadius"),
            shadow=d.get("shadow"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "textStyle": self.text_style.to_dict()}
        _put(d, "fill", self.fill)
        if self.border is not None:
            d["border"] = self.border.to_dict()
        _put(d, "cornerRadius", self.corner_radius)
        _put(d, "shadow", self.shadow)
        return d


@dataclass
class BackgroundStyle:
    color: str | None = None
    texture_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BackgroundStyle:
        return cls(color=d.get("color"), texture_id=d.get("textureId"))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        _put(d, "color", self.color)
        _put(d, "textureId", self.texture_id)
        return d


@dataclass
class GridStyle:
    visible: bool
    snap: bool
    size: float

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GridStyle:
        return cls(visible=d["visible"], snap=d["snap"], size=d["size"])

    def to_dict(self) -> dict[str, Any]:
        return {"visible": self.visible, "snap": self.snap, "size": self.size}


@dataclass
class DocumentStyle:
    background: BackgroundStyle | None = None
    default_note_style_id: str | None = None
    default_shape_style_id: str | None = None
    grid: GridStyle | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DocumentStyle:
        return cls(
            background=_opt(BackgroundStyle, d.get("background")),
            default_note_style_id=d.get("defaultNoteStyleId"),
            default_shape_style_id=d.get("defaultShapeStyleId"),
            grid=_opt(GridStyle, d.get("grid")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.background is not None:
            d["background"] = self.background.to_dict()
        _put(d, "defaultNoteStyleId", self.default_note_style_id)
        _put(d, "defaultShapeStyleId", self.default_shape_style_id)
        if self.grid is not None:
            d["grid"] = self.grid.to_dict()
        return d


@dataclass
class EmbeddedImage:
    id: str
    mime: str
    width: float
    height: float
    data_base64: str | None = None
    path: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> EmbeddedImage:
        return cls(
            id=d["id"],
            mime=d["mime"],
            width=d["width"],
            height=d["height"],
            data_base64=d.get("dataBase64"),
            path=d.get("path"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "mime": self.mime,
            "width": self.width,
            "height": self.height,
        }
        _put(d, "dataBase64", self.data_base64)
        _put(d, "path", self.path)
        return d


@dataclass
class ConnectionStyle:
    kind: str | None = None            # dotted | solid
    arrows: str | None = None          # none | src | dst | both
    color: str | None = None
    width: float | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ConnectionStyle:
        return cls(
            kind=_opt_str(d, "kind"),
            arrows=_opt_str(d, "arrows"),
            color=d.get("color"),
            width=d.get("width"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for key in ("kind", "arrows", "color", "width"):
            _put(d, key, getattr(self, key))
        return d


@dataclass
class Connection:
    """Directed edge between two notes. Endpoints may dangle."""

    id: str
    src_note_id: str
    dst_note_id: str
    style: ConnectionStyle | None = None
    label: str | None = None
    bend_points: list[Point] | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Connection:
        bends = d.get("bendPoints")
        return cls(
            id=_str(d, "id"),
            src_note_id=_str(d, "srcNoteId"),
            dst_note_id=_str(d, "dstNoteId"),
            style=_opt(ConnectionStyle, d.get("style")),
            label=_opt_str(d, "label"),
            bend_points=_list_of(Point, bends) if bends is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "srcNoteId": self.src_note_id,
            "dstNoteId": self.dst_note_id,
        }
        if self.style is not None:
            d["style"] = self.style.to_dict()
        _put(d, "label", self.label)
        if self.bend_points is not None:
            d["bendPoints"] = [p.to_dict() for p in self.bend_points]
        return d


@dataclass
class BackgroundShape:
    id: str
    frame: Rect
    radius: float | None = None
    magnetic: bool | None = None
    style_id: str | None = None
    label: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BackgroundShape:
        return cls(
            id=d["id"],
            frame=Rect.from_dict(d["frame"]),
            radius=d.get("radius"),
            magnetic=d.get("magnetic"),
            style_id=d.get("styleId"),
            label=d.get("label"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "frame": self.frame.to_dict()}
        _put(d, "radius", self.radius)
        _put(d, "magnetic", self.magnetic)
        _put(d, "styleId", self.style_id)
        _put(d, "label", self.label)
        return d


@dataclass
class Stack:
    """Manually ordered cluster of notes."""

    id: str
    note_ids: list[str] = field(default_factory=list)
    orientation: str | None = None     # vertical
    spacing: float | None = None
    indent_levels: dict[str, int] | None = None
    aligned_width: float | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Stack:
        indents = d.get("indentLevels")
        note_ids = list(d.get("noteIds", []))
        if not all(isinstance(i, str) for i in note_ids):
            msg = "field 'noteIds' must hold strings"
            raise TypeError(msg)
        return cls(
            id=_str(d, "id"),
            note_ids=note_ids,
            orientation=d.get("orientation"),
            spacing=d.get("spacing"),
            indent_levels=dict(indents) if indents is not None else None,
            aligned_width=d.get("alignedWidth"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "noteIds": list(self.note_ids)}
        _put(d, "orientation", self.orientation)
        _put(d, "spacing", self.spacing)
        if self.indent_levels is not None:
            d["indentLevels"] = dict(self.indent_levels)
        _put(d, "alignedWidth", self.aligned_width)
        return d


@dataclass
class Note:
    id: str
    text: str
    frame: Rect
    rich_attrs: dict[str, Any] | None = None
    style_id: str | None = None
    faded: bool | None = None
    stack_id: str | None = None
    links: list[str] | None = None
    images: list[str] | None = None
    connections: list[str] | None = None

    @property
    def is_faded(self) -> bool:
        return bool(self.faded)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Note:
        return cls(
            id=_str(d, "id"),
            text=_str(d, "text"),
            frame=Rect.from_dict(d["frame"]),
            rich_attrs=d.get("richAttrs"),
            style_id=d.get("styleId"),
            faded=d.get("faded"),
            stack_id=d.get("stackId"),
            links=d.get("links"),
            images=d.get("images"),
            connections=d.get("connections"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"id": self.id, "text": self.text}
        _put(d, "richAttrs", self.rich_attrs)
        d["frame"] = self.frame.to_dict()
        _put(d, "styleId", self.style_id)
        _put(d, "faded", self.faded)
        _put(d, "stackId", self.stack_id)
        _put(d, "links", self.links)
        _put(d, "images", self.images)
        _put(d, "connections", self.connections)
        return d


@dataclass
class BoardDocument:
    """Root aggregate: notes, connections, shapes, stacks and styles."""

    schema_version: int = CURRENT_SCHEMA_VERSION
    notes: list[Note] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    shapes: list[BackgroundShape] = field(default_factory=list)
    stacks: list[Stack] = field(default_factory=list)
    note_styles: list[NoteStyle] = field(default_factory=list)
    document_style: DocumentStyle | None = None
    images: list[EmbeddedImage] | None = None

    def note_by_id(self) -> dict[str, Note]:
        """Map of note id to note. Later duplicates do not shadow earlier ones."""
        index: dict[str, Note] = {}
        for note in self.notes:
            index.setdefault(note.id, note)
        return index

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BoardDocument:
        images = d.get("images")
        version = d.get("schemaVersion", 0)
        if isinstance(version, bool) or not isinstance(version, int):
            msg = f"field 'schemaVersion' must be an integer, got {version!r}"
            raise TypeError(msg)
        return cls(
            schema_version=version,
            notes=_list_of(Note, d.get("notes")),
            connections=_list_of(Connection, d.get("connections")),
            shapes=_list_of(BackgroundShape, d.get("shapes")),
            stacks=_list_of(Stack, d.get("stacks")),
            note_styles=_list_of(NoteStyle, d.get("noteStyles")),
            document_style=_opt(DocumentStyle, d.get("documentStyle")),
            images=_list_of(EmbeddedImage, images) if images is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "schemaVersion": self.schema_version,
            "notes": [n.to_dict() for n in self.notes],
            "connections": [c.to_dict() for c in self.connections],
            "shapes": [s.to_dict() for s in self.shapes],
            "stacks": [s.to_dict() for s in self.stacks],
            "noteStyles": [s.to_dict() for s in self.note_styles],
        }
        if self.document_style is not None:
            d["documentStyle"] = self.document_style.to_dict()
        if self.images is not None:
            d["images"] = [i.to_dict() for i in self.images]
        return d


@dataclass
class AutosaveInfo:
    """One recovery checkpoint: where it came from, where it lives, when."""

    original_path: Path
    recovery_path: Path
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AutosaveInfo:
        ts = datetime.fromisoformat(d["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return cls(
            original_path=Path(d["original_path"]),
            recovery_path=Path(d["recovery_path"]),
            timestamp=ts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_path": str(self.original_path),
            "recovery_path": str(self.recovery_path),
            "timestamp": self.timestamp.isoformat(),
        }
