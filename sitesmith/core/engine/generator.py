"""
Generator pipeline — weave synthetic content into the real tree.

A generator is a function ``fn(contents)`` (sync or async) returning a
nested mapping whose leaves are ContentNodes and whose inner mappings
stand for directories.  Keys may also be slash-separated paths
(``"tag-a/index.html"``), which are expanded into nested directories.

Merge precedence is fixed:

  1. every generator output becomes its own scratch tree, in
     registration order
  2. scratch trees are merged into an empty tree in registration order,
     so a later generator overrides an earlier one on the same key
  3. the filesystem tree is merged last and always wins
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sitesmith.core.engine.content import ContentNode, ContentTree, merge_trees
from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.engine.registry import GeneratorBinding
from sitesmith.core.errors import GeneratorContractError

logger = logging.getLogger(__name__)


async def run_generator(env: Any, contents: ContentTree, binding: GeneratorBinding) -> ContentTree:
    """Run one generator against *contents* and wrap its output in a tree."""
    groups = env.registry.content_groups()
    generated = await maybe_await(binding.fn(contents))
    if generated is None:
        generated = {}
    if not isinstance(generated, Mapping):
        raise GeneratorContractError(
            binding.name,
            f"Generator '{binding.name}' returned {type(generated).__name__}, expected a mapping",
        )

    tree = ContentTree("", groups)

    def _subtree(root: ContentTree, key: str) -> ContentTree:
        existing = root.get(key)
        if isinstance(existing, ContentTree):
            return existing
        sub = ContentTree(f"{root.filename}/{key}" if root.filename else key, groups)
        root.add_tree(key, sub)
        return sub

    def _resolve(root: ContentTree, items: Mapping[str, Any]) -> None:
        for raw_key, item in items.items():
            key = str(raw_key)
            *dirs, name = [part for part in key.split("/") if part] or [key]
            target = root
            for part in dirs:
                target = _subtree(target, part)

            if isinstance(item, ContentNode):
                item.env = env
                item.binding = binding
                item.source_path = "generator"
                target.add_node(name, item)
            elif isinstance(item, Mapping):
                _resolve(_subtree(target, name), item)
            else:
                raise GeneratorContractError(key)

    _resolve(tree, generated)
    return tree


async def generate_contents(env: Any, contents: ContentTree, reparent: bool = True) -> ContentTree:
    """Run every registered generator and merge with *contents*.

    Returns *contents* itself when no generators are registered.  With
    *reparent* false the nodes of *contents* keep their parent links, for
    callers that hold on to *contents* after the merged tree is gone.
    """
    generators = list(env.registry.generators)
    if not generators:
        return contents

    generated = []
    for binding in generators:
        logger.debug("running generator %s", binding.name)
        generated.append(await run_generator(env, contents, binding))

    tree = ContentTree("", env.registry.content_groups())
    for gentree in generated:
        merge_trees(tree, gentree)
    merge_trees(tree, contents, reparent)
    return tree
