"""Main CLI entry point for Composekit.

This module provides the main Typer application with sub-commands for
running compose tasks and polling triggers.

Usage:
    composekit compose up web-stack --file docker-compose.yaml --detach --wait
    composekit compose ps web-stack
    composekit trigger poll --project web-stack --condition "{{ containers | length > 0 }}"
    composekit trigger watch
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from composekit import __version__
from composekit.cli import compose as compose_cli
from composekit.cli import trigger as trigger_cli
from composekit.config import ComposekitConfig, load_config
from composekit.logging import setup_logging

app = typer.Typer(
    name="composekit",
    help="Composekit: Docker Compose tasks and status-polling triggers",
    no_args_is_help=True,
)

app.add_typer(compose_cli.app, name="compose", help="Run Docker Compose tasks")
app.add_typer(trigger_cli.app, name="trigger", help="Run status-polling triggers")

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Composekit configuration
    """

    def __init__(self, config: ComposekitConfig):
        self.config = config


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: ComposekitConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.command()
def version() -> None:
    """Print the Composekit version."""
    console.print(f"composekit {__version__}")


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    setup_logging(logging_config)

    initialize_context(config)


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
