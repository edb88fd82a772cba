"""
sitesmith — CLI entrypoint.

Usage:
    sitesmith --help
    sitesmith build
    sitesmith -C ~/my-blog preview -p 8000
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from sitesmith import __version__
from sitesmith.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="sitesmith")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only report errors.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--chdir",
    "-C",
    type=click.Path(file_okay=False),
    default=None,
    help="Change the working directory.",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config file (default: config.yml or config.json in the working directory).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    chdir: str | None,
    config_path: str | None,
) -> None:
    """sitesmith — build and preview static sites."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["work_dir"] = Path(chdir or Path.cwd()).resolve()
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug or verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("SITESMITH_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("SITESMITH_LOG_FILE"),
        log_file_level=os.environ.get("SITESMITH_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


@cli.command()
def version() -> None:
    """Print the sitesmith version."""
    click.echo(__version__)


# ── Register command modules ────────────────────────────────────────

from sitesmith.ui.cli.build import build
from sitesmith.ui.cli.preview import preview
from sitesmith.ui.cli.tree import tree

cli.add_command(build)
cli.add_command(preview)
cli.add_command(tree)


if __name__ == "__main__":
    cli()
