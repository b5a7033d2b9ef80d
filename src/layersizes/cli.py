"""Command line interface for layersizes."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.columns import Columns
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from layersizes.analysis.layers import analyze_oci_layout, manifest_digest, read_image_config
from layersizes.charts.compare import compare
from layersizes.charts.flatten import flatten
from layersizes.charts.lookup import ChartNode, find_corresponding, hierarchy
from layersizes.config import AppConfig
from layersizes.history.client import HistoryClient
from layersizes.history.storage import SQLiteHistoryStore
from layersizes.models import ComparisonNode, DirectoryNode
from layersizes.utils.units import format_bytes
from layersizes.web.app import app as web_app


console = Console()
app = typer.Typer(help="layersizes - disk usage of container image layers")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _load_tree(path: Path, layer: Optional[str]) -> DirectoryNode:
    """Read a single tree or pick one layer out of a ``{digest: tree}`` file."""
    with path.open("r", encoding="utf-8") as handle:
        data: Dict[str, Any] = json.load(handle)

    if "dirname" in data or "files" in data or "directories" in data:
        return DirectoryNode.from_dict(data)

    if layer is None:
        if len(data) != 1:
            raise typer.BadParameter(
                f"{path} contains {len(data)} layers, select one with --layer"
            )
        layer = next(iter(data))
    if layer not in data:
        raise typer.BadParameter(f"Layer {layer} not found in {path}")
    return DirectoryNode.from_dict(data[layer])


def _render(node: ComparisonNode) -> Tree:
    def label(item: ComparisonNode) -> str:
        size = f" ({format_bytes(item.value)})" if not item.children and item.value else ""
        return f"[{item.color.value}]{escape(item.name)}[/{item.color.value}]{size}"

    root = Tree(label(node))
    pending = [(node, root)]
    while pending:
        current, branch = pending.pop()
        for child in current.children:
            pending.append((child, branch.add(label(child))))
    return root


def _select(root: ChartNode, path: str) -> Optional[ChartNode]:
    current: Optional[ChartNode] = root
    for segment in [part for part in path.split("/") if part]:
        if current is None:
            return None
        current = next((child for child in current.children() if child.name() == segment), None)
    return current


@app.command()
def analyze(
    layout: Path = typer.Argument(..., help="OCI image layout directory.", resolve_path=True),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the layer trees as JSON"),
    verify: bool = typer.Option(False, "--verify", help="Verify layer blob digests"),
    image: Optional[str] = typer.Option(None, "--image", help="Save the result under this image name"),
    tag: str = typer.Option("", "--tag", help="Tag of the analysed image"),
    digest: Optional[str] = typer.Option(None, "--digest", help="Image digest, defaults to the manifest digest"),
    storage_url: str = typer.Option(AppConfig().storage_url, help="History store URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Compute the directory sizes of every layer of an image."""
    _setup_logging(verbose)
    try:
        layers = analyze_oci_layout(layout, verify=verify)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if not layers:
        console.print("[yellow]The image has no layers.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Layer")
    table.add_column("Entries", justify="right")
    table.add_column("Size", justify="right")
    for layer_digest, tree in layers.items():
        table.add_row(layer_digest[:16], str(len(flatten(tree))), format_bytes(tree.total_size))
    console.print(table)

    if output is not None:
        output.write_text(
            json.dumps({key: tree.to_dict() for key, tree in layers.items()}, indent=2),
            encoding="utf-8",
        )
        console.print(f"Wrote layer sizes to [bold]{output}[/bold]")

    if image is not None:
        config = AppConfig(storage_url=storage_url)
        inspect_info = read_image_config(layout)
        client = HistoryClient(config.storage_url, timeout=config.request_timeout)
        history = client.save_history(
            image,
            digest or manifest_digest(layout),
            tag,
            layers,
            inspect_info,
        )
        console.print(f"Saved history of [bold]{image}[/bold] (id {history.id})")


@app.command()
def top(
    tree_file: Path = typer.Argument(..., help="JSON file with a tree or a layer reply", exists=True),
    layer: Optional[str] = typer.Option(None, help="Layer digest to inspect"),
    top_k: int = typer.Option(10, help="Number of entries to display"),
    depth: int = typer.Option(-1, help="Maximum depth, 0 or less for unlimited"),
) -> None:
    """Show the largest files and directories of a layer."""
    chart = flatten(_load_tree(tree_file, layer), depth)
    entries = chart.largest(top_k)
    if not entries:
        console.print("[yellow]The layer is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Size", justify="right")
    table.add_column("Path")
    for entry_id, size in entries:
        table.add_row(format_bytes(size), entry_id)
    console.print(table)


@app.command(name="compare")
def compare_command(
    left_file: Path = typer.Argument(..., help="JSON file of the left side", exists=True),
    right_file: Path = typer.Argument(..., help="JSON file of the right side", exists=True),
    left_layer: Optional[str] = typer.Option(None, help="Layer digest in the left file"),
    right_layer: Optional[str] = typer.Option(None, help="Layer digest in the right file"),
    select: Optional[str] = typer.Option(None, help="Path in the left tree to look up on the right"),
) -> None:
    """Compare the disk usage of two layers."""
    left_view, right_view = compare(
        _load_tree(left_file, left_layer), _load_tree(right_file, right_layer)
    )
    if left_view is None or right_view is None:
        raise typer.BadParameter("Both sides need a directory tree to compare")
    console.print(Columns([_render(left_view), _render(right_view)], equal=True, expand=True))

    if select is not None:
        selected = _select(hierarchy(left_view), select)
        if selected is None:
            raise typer.BadParameter(f"{select} does not exist in the left tree")
        match = find_corresponding(selected, hierarchy(right_view))
        if match is None:
            console.print(f"[yellow]{select} has no counterpart on the right side.[/yellow]")
        else:
            console.print(
                f"{select}: left {selected.data.color.value}, right {match.color.value}"
            )


@app.command()
def history(
    name: str = typer.Argument(..., help="Image name"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List the stored entries of an image."""
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    store = SQLiteHistoryStore(resolved_db)
    try:
        histories = store.read(name)
    finally:
        store.close()

    if not histories:
        console.print(f"[yellow]No history found for {name}.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Digest")
    table.add_column("Tags")
    table.add_column("Layers", justify="right")
    table.add_column("Size", justify="right")
    for image_history in histories:
        for image_digest, entry in image_history.history.items():
            total = sum(tree.total_size for tree in entry.contents.values())
            table.add_row(image_digest, ", ".join(entry.tags), str(len(entry.contents)), format_bytes(total))
    console.print(table)


@app.command()
def forget(
    name: str = typer.Argument(..., help="Image name"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove the stored history of an image."""
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to remove.[/yellow]")
        return

    store = SQLiteHistoryStore(resolved_db)
    try:
        store.delete_by_name(name)
    except (ValueError, LookupError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()
    console.print(f"Removed the history of {name}.")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the web interface."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print(
            f"[yellow]Database not found at {resolved_db}, it will be created on first save.[/yellow]"
        )
    _ensure_db_parent(resolved_db)

    console.print(f"Starting web interface on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover
    app()
