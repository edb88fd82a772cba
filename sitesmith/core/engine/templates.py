"""
Template loading — build the Template Map ``{relative path: template}``.

Every file under the templates directory is matched against the
registry's template bindings (last registered wins).  Files matching no
binding are skipped, so partials and assets can live next to templates.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

from sitesmith.core.engine.content import FilePath
from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.errors import RenderError

logger = logging.getLogger(__name__)


class TemplatePlugin:
    """Base class for template plugins.

    Subclasses implement ``from_file(filepath)`` (classmethod) and
    ``render(data) -> bytes``; either may be async.
    """

    @classmethod
    def from_file(cls, filepath: FilePath) -> TemplatePlugin:
        raise NotImplementedError(f"{cls.__name__}.from_file")

    def render(self, data: dict[str, Any]) -> bytes:
        raise NotImplementedError(f"{type(self).__name__}.render")


def list_files(directory: Path) -> list[str]:
    """Return every file below *directory* as sorted POSIX relative paths."""
    result: list[str] = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames.sort()
        rel = Path(dirpath).relative_to(directory)
        for name in sorted(filenames):
            result.append((rel / name).as_posix() if rel != Path(".") else name)
    return result


async def load_templates(env: Any) -> dict[str, Any]:
    """Load all templates of *env* into a map keyed by relative path."""
    templates: dict[str, Any] = {}
    root = env.templates_path
    if not root.is_dir():
        logger.warning("templates directory %s does not exist", root)
        return templates

    for relative in await asyncio.to_thread(list_files, root):
        binding = env.registry.resolve_template(relative)
        if binding is None:
            continue
        filepath = FilePath(full=root / relative, relative=relative)
        try:
            templates[relative] = await maybe_await(binding.plugin.from_file(filepath))
        except Exception as e:
            raise RenderError(f"template {relative}", str(e)) from e

    logger.debug("loaded %d templates", len(templates))
    return templates
