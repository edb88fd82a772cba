"""
CLI command: print the content tree as the renderer would see it.
"""

from __future__ import annotations

import asyncio

import click

from sitesmith.core.engine.content import ContentTree, inspect_tree
from sitesmith.core.engine.environment import Environment
from sitesmith.ui.cli.common import common_options, handle_errors, load_env


def _paint(text: str, color: str | None = None, bold: bool = False) -> str:
    return click.style(text, fg=color, bold=bold)


async def load_tree(env: Environment) -> ContentTree:
    """Load plugins and views, then build the tree with generator output merged."""
    await env.load_plugins()
    await env.load_views()
    return await env.get_contents()


@click.command()
@common_options
@click.pass_context
@handle_errors
def tree(ctx: click.Context, **options: object) -> None:
    """Show the content tree with the plugin handling each file."""
    env = load_env(ctx, **options)
    contents = asyncio.run(load_tree(env))
    click.echo(inspect_tree(contents, style=_paint))
