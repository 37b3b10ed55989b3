import sys
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from fim.models import (  # noqa: E402
    BackgroundShape,
    BackgroundStyle,
    BoardDocument,
    BorderStyle,
    Connection,
    ConnectionStyle,
    DocumentStyle,
    EmbeddedImage,
    GridStyle,
    Note,
    NoteStyle,
    Point,
    Rect,
    Stack,
    TextStyle,
)


def make_note(note_id, text=None, x=0.0, y=0.0, **kwargs):
    return Note(id=note_id, text=text if text is not None else note_id, frame=Rect(x, y, 120, 60), **kwargs)


def make_conn(conn_id, src, dst, label=None, **kwargs):
    return Connection(id=conn_id, src_note_id=src, dst_note_id=dst, label=label, **kwargs)


@pytest.fixture
def full_doc():
    """A document exercising every optional field."""
    return BoardDocument(
        schema_version=1,
        notes=[
            Note(
                id="n1",
                text="First",
                frame=Rect(10, 20, 120, 60),
                rich_attrs={"bold": [0, 5]},
                style_id="s1",
                faded=False,
                stack_id="st1",
                links=["https://example.com"],
                images=["img1"],
                connections=["c1"],
            ),
            make_note("n2", "Second", x=200, y=20, faded=True, stack_id="st1"),
        ],
        connections=[
            Connection(
                id="c1",
                src_note_id="n1",
                dst_note_id="n2",
                style=ConnectionStyle(kind="dotted", arrows="dst", color="#fff", width=2),
                label="leads to",
                bend_points=[Point(50, 50), Point(100, 40.5)],
            ),
        ],
        shapes=[BackgroundShape(id="sh1", frame=Rect(0, 0, 500, 300), radius=8, magnetic=True, style_id="s1", label="Area")],
        stacks=[Stack(id="st1", note_ids=["n1", "n2"], orientation="vertical", spacing=8, indent_levels={"n2": 1}, aligned_width=120)],
        note_styles=[
            NoteStyle(
                id="s1",
                text_style=TextStyle(font="Helvetica", size=14, weight=700, italic=True, color="#000", align="left"),
                fill="#ffeeaa",
                border=BorderStyle(color="#333", width=1, style="solid"),
                corner_radius=4,
                shadow=True,
            ),
        ],
        document_style=DocumentStyle(
            background=BackgroundStyle(color="#202124", texture_id="tex"),
            default_note_style_id="s1",
            grid=GridStyle(visible=True, snap=False, size=20),
        ),
        images=[EmbeddedImage(id="img1", mime="image/png", width=32, height=32, data_base64="iVBORw0KGgo=")],
    )


@pytest.fixture
def labelled_doc():
    """A→B labelled "z", A→C labelled "a"."""
    return BoardDocument(
        notes=[make_note("A", x=0, y=0), make_note("B", x=0, y=300), make_note("C", x=0, y=600)],
        connections=[make_conn("c1", "A", "B", label="z"), make_conn("c2", "A", "C", label="a")],
    )
