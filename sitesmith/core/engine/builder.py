"""
Content tree builder — scan a source directory into a ContentTree.

For every directory level:

  1. list entries, sorted by name
  2. drop entries matching any ``config.ignore`` glob (logged, not an error)
  3. resolve each file against the registry (last matching binding wins,
     StaticFile otherwise) and instantiate it via ``from_file``;
     recurse into directories
  4. insert children in sorted order once every entry has finished

Step 3 runs through ``for_each_limit`` with ``config.file_limit`` entries
in flight per level; a subdirectory occupies one slot of its parent
level while it is being built.  Any failure aborts the whole build with
a ContentError naming the relative path.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

from sitesmith.core.engine.content import ContentNode, ContentTree, FilePath, StaticFile
from sitesmith.core.engine.globs import match_any
from sitesmith.core.engine.pool import for_each_limit, maybe_await
from sitesmith.core.engine.registry import ContentBinding
from sitesmith.core.errors import ContentError

logger = logging.getLogger(__name__)

STATIC_BINDING = ContentBinding(group="files", pattern="**", plugin=StaticFile)


async def load_content(env: Any, filepath: FilePath) -> ContentNode:
    """Instantiate the content plugin responsible for *filepath*."""
    logger.debug("loading %s", filepath.relative)
    binding = env.registry.resolve_content(filepath.relative) or STATIC_BINDING

    try:
        node = await maybe_await(binding.plugin.from_file(filepath))
    except ContentError:
        raise
    except Exception as e:
        raise ContentError(filepath.relative, str(e) or type(e).__name__) from e

    if not isinstance(node, ContentNode):
        raise ContentError(
            filepath.relative,
            f"{binding.plugin.__name__}.from_file returned {type(node).__name__}, "
            "expected a ContentNode",
        )

    node.env = env
    node.binding = binding
    node.source_path = filepath.full
    return node


async def build_tree(env: Any, directory: Path | None = None) -> ContentTree:
    """Recursively scan *directory* (default: the contents path) into a tree."""
    root = Path(directory) if directory is not None else env.contents_path
    return await _build_level(env, root, env.registry.content_groups())


async def _build_level(env: Any, directory: Path, groups: list[str]) -> ContentTree:
    reldir = env.relative_contents_path(directory)
    tree = ContentTree(reldir, groups)
    logger.debug("creating content tree from %s", directory)

    try:
        names = sorted(await asyncio.to_thread(os.listdir, directory))
    except OSError as e:
        raise ContentError(reldir or ".", str(e)) from e

    entries: list[FilePath] = []
    for name in names:
        relative = f"{reldir}/{name}" if reldir else name
        pattern = match_any(relative, env.config.ignore)
        if pattern is not None:
            logger.info("ignoring %s (matches: %s)", relative, pattern)
            continue
        entries.append(FilePath(full=env.contents_path / relative, relative=relative))

    async def _create(filepath: FilePath) -> ContentNode | ContentTree:
        try:
            is_dir = await asyncio.to_thread(filepath.full.is_dir)
            is_file = not is_dir and await asyncio.to_thread(filepath.full.is_file)
        except OSError as e:
            raise ContentError(filepath.relative, str(e)) from e
        if is_dir:
            return await _build_level(env, filepath.full, groups)
        if is_file:
            return await load_content(env, filepath)
        raise ContentError(filepath.relative, f"Invalid file {filepath.full}.")

    children = await for_each_limit(entries, env.config.file_limit, _create)

    for filepath, child in zip(entries, children):
        key = filepath.full.name
        if isinstance(child, ContentTree):
            tree.add_tree(key, child)
        else:
            tree.add_node(key, child)
    return tree
