"""Typer CLI for livepreview — preview Markdown, LaTeX and directories in a browser."""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from livepreview import __version__

app = typer.Typer(
    help="Preview Markdown, LaTeX and directories in the browser with live reload.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


# ── Helpers ────────────────────────────────────────────────────────


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"livepreview {__version__}")
        raise typer.Exit()


# ── Commands ───────────────────────────────────────────────────────


@app.command()
def serve(
    path: str = typer.Argument("README.md", help="File or directory to preview"),
    port: int = typer.Option(8601, "--port", "-p", help="Port to serve on"),
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    raw: bool = typer.Option(False, "--raw", help="Serve file bytes instead of rendering"),
    format: Optional[str] = typer.Option(
        None, "--format", help="Force the Content-Type of served files (e.g. text/plain)"
    ),
    no_open: bool = typer.Option(False, "--no-open", help="Don't open browser automatically"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    """Start the preview server."""
    from livepreview.config import build_config
    from livepreview.server import run

    _setup_logging(verbose)
    config = build_config(path, port=port, host=host, raw=raw, content_type=format)

    typer.echo(f"Previewing {config.original_path}")
    typer.echo(f"  Root: {config.base_path}")
    if not config.serve_file_on_root and not config.is_directory_init:
        typer.secho(
            f"  {path} not found, serving the current directory",
            fg=typer.colors.YELLOW,
            err=True,
        )
    if raw:
        typer.echo("  Raw mode: enabled")
    if format:
        typer.echo(f"  Content-Type: {format}")
    typer.echo(f"  URL: http://localhost:{port}")
    typer.echo("  Stop: Ctrl+C")

    try:
        run(config, open_in_browser=not no_open)
    except OSError as e:
        typer.secho(f"Error: cannot start server on port {port}: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def main() -> None:
    app()
