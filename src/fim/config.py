"""FimConfig: optional project-local settings for board persistence and export.

fim.toml is looked up from the working directory upward; without one every
setting takes its default.

fim.toml example:

    [fim]
    recent_files_limit = 10

    [container]
    max_payload_mb = 100

    [recovery]
    # directories scanned for recovery files; empty = temp, cwd, home, ~/Documents
    search_dirs = []

    [export]
    format = "txt"            # txt | rtf | opml
    ordering = "spatial"      # spatial | connections | hierarchical
    include_faded = true
    row_height = 100
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fim.container import MAX_PAYLOAD_BYTES
from fim.errors import ArgumentValidationError
from fim.export import ExportFormat
from fim.linearize import ROW_HEIGHT, Ordering
from fim.session import MAX_RECENT_FILES

_CONFIG_FILENAME = "fim.toml"
_MB = 1_000_000


@dataclass
class ContainerConfig:
    max_payload_bytes: int = MAX_PAYLOAD_BYTES


@dataclass
class RecoveryConfig:
    search_dirs: list[Path] = field(default_factory=list)   # empty = platform defaults


@dataclass
class ExportConfig:
    format: ExportFormat = ExportFormat.TXT
    ordering: Ordering = Ordering.SPATIAL
    include_faded: bool = True
    row_height: float = ROW_HEIGHT


@dataclass
class FimConfig:
    """Resolved configuration."""

    root: Path                      # directory that contains fim.toml (or the start dir)
    recent_files_limit: int = MAX_RECENT_FILES
    container: ContainerConfig = field(default_factory=ContainerConfig)
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)
    export: ExportConfig = field(default_factory=ExportConfig)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME


def load_config(root: Path | str | None = None) -> FimConfig:
    """Load fim.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid {_CONFIG_FILENAME} at {config_path}: {exc}"
            raise ArgumentValidationError(msg) from exc

    fim_section = raw.get("fim", {})
    ctr_section = raw.get("container", {})
    rec_section = raw.get("recovery", {})
    exp_section = raw.get("export", {})

    search_dirs = [
        (root_path / Path(d).expanduser()).resolve()
        for d in rec_section.get("search_dirs", [])
    ]

    return FimConfig(
        root=root_path,
        recent_files_limit=int(fim_section.get("recent_files_limit", MAX_RECENT_FILES)),
        container=ContainerConfig(
            max_payload_bytes=int(float(ctr_section.get("max_payload_mb", MAX_PAYLOAD_BYTES / _MB)) * _MB),
        ),
        recovery=RecoveryConfig(search_dirs=search_dirs),
        export=ExportConfig(
            format=ExportFormat.parse(exp_section.get("format", ExportFormat.TXT.value)),
            ordering=Ordering.parse(exp_section.get("ordering", Ordering.SPATIAL.value)),
            include_faded=bool(exp_section.get("include_faded", True)),
            row_height=float(exp_section.get("row_height", ROW_HEIGHT)),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for fim.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path) -> Path:
    """Write a default fim.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"fim.toml already exists at {config_path}"
        raise FileExistsError(msg)

    content = """\
[fim]
# recent_files_limit = 10

# [container]
# max_payload_mb = 100      # board.json larger than this is refused on load

# [recovery]
# search_dirs = []          # empty = temp dir, cwd, home, ~/Documents

# [export]
# format = "txt"            # txt | rtf | opml
# ordering = "spatial"      # spatial | connections | hierarchical
# include_faded = true
# row_height = 100
"""
    config_path.write_text(content)
    return config_path
