"""
CLI command: build the site into the output directory.

Thin wrapper over ``Environment.build``.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

import click

from sitesmith.ui.cli.common import common_options, handle_errors, load_env

logger = logging.getLogger(__name__)


def prepare_output_dir(output_dir: Path, clean: bool) -> None:
    """Create *output_dir*; with *clean*, empty it first."""
    if output_dir.exists():
        if clean:
            logger.debug("cleaning - removing %s", output_dir)
            shutil.rmtree(output_dir)
            output_dir.mkdir(parents=True)
        return
    logger.debug("creating output directory %s", output_dir)
    output_dir.mkdir(parents=True)


@click.command()
@click.option("--output", "-o", default=None, help="Directory to write build output to (default: ./build).")
@click.option(
    "--clean", "-X", is_flag=True,
    help="Clean before building (recursively deletes everything at the output path).",
)
@common_options
@click.pass_context
@handle_errors
def build(ctx: click.Context, output: str | None, clean: bool, **options: object) -> None:
    """Build the site.

    All options can also be set in the config file; command-line
    values win.

    \b
    Examples:
        sitesmith build
        sitesmith -C ~/my-blog build -o /var/www/public -L extra_data.json
        sitesmith -c another_config.yml build --clean
    """
    start = time.monotonic()
    logger.info("building site")

    env = load_env(ctx, output=output, **options)
    output_dir = env.resolve_path(env.config.output)
    prepare_output_dir(output_dir, clean)
    count = asyncio.run(env.build(output_dir))

    delta = (time.monotonic() - start) * 1000
    logger.info("done in %.0f ms (%d files)", delta, count)
    if not ctx.obj.get("quiet"):
        click.secho(f"✅ Built {count} files into {output_dir}", fg="green")
