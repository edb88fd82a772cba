"""
Renderer — write every leaf of a content tree to the output directory.

Each node's view returns one of:

  - ``bytes``                 written directly
  - a binary file-like object copied with ``shutil.copyfileobj``, then closed
  - ``None``                  no output (the node only feeds navigation etc.)

Anything else is a RenderError.  Nodes are rendered through the bounded
pool (``config.render_limit``, falling back to ``config.file_limit``) and
the first failure stops the batch.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any

from sitesmith.core.engine.content import (
    ContentNode,
    ContentTree,
    RenderContext,
    flatten,
    inspect_tree,
)
from sitesmith.core.engine.pool import for_each_limit
from sitesmith.core.errors import RenderError

logger = logging.getLogger(__name__)


def _describe(node: ContentNode) -> str:
    try:
        return node.filename
    except Exception:
        return repr(node)


def is_stream(result: Any) -> bool:
    return hasattr(result, "read") and callable(result.read)


async def render_view(
    env: Any,
    node: ContentNode,
    contents: ContentTree,
    templates: dict[str, Any],
    locals_: dict[str, Any],
) -> Any:
    """Render a single *node*; errors are wrapped in RenderError."""
    ctx_locals: dict[str, Any] = {"env": env, "contents": contents}
    ctx_locals.update(locals_ or {})
    context = RenderContext(env=env, contents=contents, templates=templates, locals=ctx_locals)
    try:
        return await node.render(context)
    except RenderError:
        raise
    except Exception as e:
        raise RenderError(_describe(node), str(e) or type(e).__name__) from e


def _write_buffer(destination: Path, data: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(bytes(data))


def _write_stream(destination: Path, stream: Any) -> None:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        with open(destination, "wb") as out:
            shutil.copyfileobj(stream, out)
    finally:
        close = getattr(stream, "close", None)
        if callable(close):
            close()


async def render(
    env: Any,
    output_dir: Path,
    contents: ContentTree,
    templates: dict[str, Any],
    locals_: dict[str, Any],
) -> int:
    """Render *contents* into *output_dir*; returns the number of files written.

    Raises:
        RenderError: The first failure encountered.
    """
    logger.info("rendering tree:\n%s\n", inspect_tree(contents, 1))
    logger.debug("render output directory: %s", output_dir)

    async def _render_one(node: ContentNode) -> bool:
        result = await render_view(env, node, contents, templates, locals_)
        if result is None:
            logger.debug("skipping %s", node.url)
            return False

        destination = output_dir / node.filename
        if isinstance(result, (bytes, bytearray, memoryview)):
            logger.debug("writing content %s to %s", node.url, destination)
            await asyncio.to_thread(_write_buffer, destination, result)
        elif is_stream(result):
            logger.debug("writing content %s to %s", node.url, destination)
            await asyncio.to_thread(_write_stream, destination, result)
        else:
            raise RenderError(
                node.filename,
                f"View for content '{node.filename}' returned invalid response "
                f"({type(result).__name__}). Expected bytes or a binary stream.",
            )
        return True

    written = await for_each_limit(flatten(contents), env.config.effective_render_limit, _render_one)
    return sum(1 for w in written if w)
