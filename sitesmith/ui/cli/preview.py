"""
CLI command: run the live preview server until interrupted.
"""

from __future__ import annotations

import asyncio
import logging

import click

from sitesmith.core.engine.environment import Environment
from sitesmith.ui.cli.common import common_options, handle_errors, load_env

logger = logging.getLogger(__name__)


async def serve(env: Environment) -> None:
    """Start the preview server and keep it running until cancelled."""
    server = await env.preview()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


@click.command()
@click.option("--port", "-p", type=int, default=None, help="Port to run the server on (default: 8080).")
@click.option("--hostname", "-H", default=None, help="Host to bind onto (default: all interfaces).")
@common_options
@click.pass_context
@handle_errors
def preview(ctx: click.Context, port: int | None, hostname: str | None, **options: object) -> None:
    """Start the preview server.

    Pages are rendered on request from an in-memory copy of the site,
    which is rebuilt whenever contents, templates, views or the config
    file change.
    """
    logger.info("starting preview server")
    env = load_env(ctx, port=port, hostname=hostname, **options)
    try:
        asyncio.run(serve(env))
    except KeyboardInterrupt:
        logger.info("preview server stopped")
