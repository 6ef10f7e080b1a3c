"""
CLI for the minimizer.

Commands:
    minimizer run [REPO] - Minify the published branch and check it out
    minimizer cache - Inspect a cache file
    minimizer config - Show current configuration
    minimizer version - Print version
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from minimizer import __version__
from minimizer.cache import TransformCache
from minimizer.config import Settings, clear_settings_cache, get_settings
from minimizer.exceptions import MinimizerError
from minimizer.logging import setup_logging
from minimizer.types import Sizes

app = typer.Typer(
    name="minimizer",
    help="Minimizer - minify and precompress the HTML of a published git branch",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Invalid configuration:[/red] {e}")
        return None


def _sizes_table(sizes: Sizes, title: str) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Form", style="cyan")
    table.add_column("Bytes", justify="right", style="green")
    table.add_column("% of original", justify="right")

    table.add_row("original", str(sizes.original_len), "100.0%")
    table.add_row("minified", str(sizes.minified_len), f"{sizes.minified_pct:.1f}%")
    table.add_row("gzip", str(sizes.gz_len), f"{sizes.gz_pct:.1f}%")
    table.add_row("brotli", str(sizes.br_len), f"{sizes.br_pct:.1f}%")
    return table


@app.command()
def run(
    repo: Annotated[
        Optional[Path],
        typer.Argument(help="Path to the git repository (default: MINIMIZER_REPO_PATH)"),
    ] = None,
    branch: Annotated[
        Optional[str],
        typer.Option("--branch", "-b", help="Branch to transform"),
    ] = None,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Checkout destination (replaced!)"),
    ] = None,
    cache_file: Annotated[
        Optional[Path],
        typer.Option("--cache-file", help="Cache file path, suffixed with the options fingerprint"),
    ] = None,
    jobs: Annotated[
        Optional[int],
        typer.Option("--jobs", "-j", min=1, max=64, help="Worker threads"),
    ] = None,
    no_checkout: Annotated[
        bool,
        typer.Option("--no-checkout", help="Build the tree but do not check it out"),
    ] = False,
) -> None:
    """Minify and precompress every HTML document of a branch.

    Writes the transformed tree into the repository's object database,
    updates the cache and, unless --no-checkout is given, replaces the
    output directory with the new tree.
    """
    settings = _get_settings_safe()
    if settings is None:
        raise typer.Exit(1)

    updates: dict[str, object] = {}
    if repo is not None:
        updates["REPO_PATH"] = repo
    if jobs is not None:
        updates["JOBS"] = jobs
    if cache_file is not None:
        updates["CACHE_FILE"] = cache_file
    if updates:
        settings = settings.model_copy(update=updates)

    setup_logging(settings.LOG_LEVEL)

    effective_output = None if no_checkout else (output_dir or settings.OUTPUT_DIR)

    console.print()
    console.print(
        Panel(
            f"[bold]Repository:[/bold] {settings.REPO_PATH}\n"
            f"[bold]Branch:[/bold] {branch or settings.BRANCH}\n"
            f"[bold]Cache:[/bold] {settings.cache_path}\n"
            f"[bold]Output:[/bold] {effective_output or '[dim]none[/dim]'}\n"
            f"[bold]Jobs:[/bold] {settings.JOBS}",
            title="[bold cyan]Minimizer[/bold cyan]",
            border_style="cyan",
        )
    )

    from minimizer.pipeline import MinimizePipeline

    try:
        pipeline = MinimizePipeline(settings)
        result = pipeline.run(
            branch=branch,
            output_dir=effective_output,
        )
    except MinimizerError as e:
        error_console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print()
    console.print(_sizes_table(result.sizes, f"{result.documents} documents"))
    console.print(
        f"\n[bold]Output tree:[/bold] {result.output_tree}\n"
        f"[dim]Cache: {result.cache_entries} entries, {result.cache_misses} computed, "
        f"{result.cache_hits} reused | Duration: {result.duration_seconds:.1f}s[/dim]"
    )
    if result.checkout_dir is not None:
        console.print(f"[bold]Checked out to:[/bold] {result.checkout_dir}")
    console.print()


@app.command()
def cache(
    cache_file: Annotated[
        Optional[Path],
        typer.Option("--cache-file", help="Cache file path"),
    ] = None,
) -> None:
    """Show the number of cached documents and their aggregate sizes."""
    settings = _get_settings_safe()
    if settings is None:
        raise typer.Exit(1)

    if cache_file is not None:
        settings = settings.model_copy(update={"CACHE_FILE": cache_file})
    path = settings.cache_path
    if not path.exists():
        console.print(f"[yellow]No cache file at {path}[/yellow]")
        return

    try:
        with open(path, encoding="utf-8") as f:
            loaded = TransformCache.parse(f)
    except (OSError, UnicodeDecodeError, MinimizerError) as e:
        error_console.print(f"[red]Unusable cache file:[/red] {e}")
        raise typer.Exit(1)

    console.print()
    console.print(f"[bold]Cache:[/bold] {path}")
    console.print(f"[bold]Entries:[/bold] {len(loaded)}")
    console.print(_sizes_table(loaded.total_sizes(), "Cached documents"))
    console.print()


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Minimizer Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("Set MINIMIZER_* environment variables or a .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"minimizer version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
