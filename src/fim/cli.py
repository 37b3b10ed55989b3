"""fim CLI: inspect, convert, export and recover board documents.

Commands:
    fim init                      write a default fim.toml
    fim info PATH                 summary of a .fim / .json board
    fim convert SRC DST           re-save SRC in the format DST's extension selects
    fim export PATH               render to txt / rtf / opml
    fim checkpoint PATH           write PATH's recovery sidecar
    fim recover list              recovery files found in the usual places
    fim recover open FILE -o OUT  restore a recovery file to OUT
    fim recover clear PATH        delete PATH's recovery sidecar
    fim serve                     stdio JSON-RPC server for the editor UI
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from fim.config import FimConfig, init_config, load_config
from fim.container import load_document, save_document
from fim.errors import BoardError
from fim.export import ExportFormat
from fim.linearize import Ordering
from fim.recovery import RecoveryManager
from fim.service import BoardService, run_server

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> FimConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _service() -> BoardService:
    return BoardService(_load_cfg())


def _recovery(cfg: FimConfig) -> RecoveryManager:
    return RecoveryManager(
        cfg.recovery.search_dirs or None,
        max_payload_bytes=cfg.container.max_payload_bytes,
    )


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="fim-board")
@click.option("-v", "--verbose", is_flag=True, help="Log to stderr")
def cli(verbose: bool) -> None:
    """fim: board document persistence, recovery and export."""
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")


# ---------------------------------------------------------------------------
# fim init
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(root: str) -> None:
    """Write a default fim.toml."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("fim.toml already exists, skipping init")


# ---------------------------------------------------------------------------
# fim info / convert
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def info(path: Path) -> None:
    """Show a summary of a board document."""
    from rich.console import Console
    from rich.table import Table

    try:
        doc = _service().open_path(path)
    except BoardError as exc:
        raise click.ClickException(str(exc)) from exc

    table = Table(title=str(path), show_header=True, header_style="bold")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("Schema version", str(doc.schema_version))
    table.add_row("Notes", str(len(doc.notes)))
    table.add_row("  faded", str(sum(1 for n in doc.notes if n.is_faded)))
    table.add_row("Connections", str(len(doc.connections)))
    table.add_row("Stacks", str(len(doc.stacks)))
    table.add_row("Shapes", str(len(doc.shapes)))
    table.add_row("Note styles", str(len(doc.note_styles)))
    table.add_row("Images", str(len(doc.images or [])))
    Console().print(table)


@cli.command()
@click.argument("src", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("dst", type=click.Path(dir_okay=False, path_type=Path))
def convert(src: Path, dst: Path) -> None:
    """Load SRC and save it to DST (.fim or .json)."""
    cfg = _load_cfg()
    try:
        doc = load_document(src, max_bytes=cfg.container.max_payload_bytes)
        save_document(doc, dst)
    except BoardError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Wrote {dst}")


# ---------------------------------------------------------------------------
# fim export
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("-f", "--format", "fmt", type=click.Choice([f.value for f in ExportFormat]),
              default=None, help="Output format (default from fim.toml, else txt)")
@click.option("-O", "--ordering", type=click.Choice([o.value for o in Ordering]),
              default=None, help="Note ordering (default from fim.toml, else spatial)")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write here instead of stdout")
@click.option("--hide-faded", is_flag=True, help="Leave faded notes out")
def export(path: Path, fmt: str | None, ordering: str | None, output: Path | None, hide_faded: bool) -> None:
    """Render a board as text, RTF or OPML."""
    svc = _service()
    try:
        doc = svc.open_path(path)
        result = svc.export_text(
            doc, fmt, ordering, output,
            include_faded=False if hide_faded else None,
        )
    except BoardError as exc:
        raise click.ClickException(str(exc)) from exc
    if output is None:
        click.echo(result, nl=False)
    else:
        click.echo(f"Wrote {result}")


# ---------------------------------------------------------------------------
# fim checkpoint / recover
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def checkpoint(path: Path) -> None:
    """Write PATH's recovery sidecar from its current contents."""
    svc = _service()
    try:
        saved = svc.autosave(svc.open_path(path), path)
    except BoardError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Checkpoint {saved.recovery_path} at {saved.timestamp.isoformat(timespec='seconds')}")


@cli.group()
def recover() -> None:
    """Find and restore recovery files."""


@recover.command("list")
def recover_list() -> None:
    """List recovery files, newest first."""
    from rich.console import Console
    from rich.table import Table

    candidates = _recovery(_load_cfg()).discover_recovery_files()
    if not candidates:
        click.echo("No recovery files found.")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Saved")
    table.add_column("Original")
    table.add_column("Recovery file")
    for c in candidates:
        table.add_row(c.timestamp.isoformat(timespec="seconds"), str(c.original_path), str(c.recovery_path))
    Console().print(table)


@recover.command("open")
@click.argument("recovery_file", type=click.Path(dir_okay=False, path_type=Path))
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), required=True,
              help="Where to save the recovered board (.fim or .json)")
def recover_open(recovery_file: Path, output: Path) -> None:
    """Restore RECOVERY_FILE to OUTPUT."""
    svc = _service()
    try:
        doc = svc.recover(recovery_file)
        saved = svc.save_path(doc, output)
    except BoardError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Recovered {len(doc.notes)} notes to {saved}")


@recover.command("clear")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def recover_clear(path: Path) -> None:
    """Delete the recovery sidecar of PATH."""
    _recovery(_load_cfg()).clear_recovery(path)
    click.echo(f"Cleared recovery files for {path}")


# ---------------------------------------------------------------------------
# fim serve
# ---------------------------------------------------------------------------


@cli.command()
def serve() -> None:
    """Run the stdio JSON-RPC server used by the editor UI."""
    run_server()
