"""
Capability registry — which plugin handles which file.

The registry is the single point of plugin management for one
environment.  It holds:

  - content bindings   (group, glob pattern, content plugin class)
  - template bindings  (glob pattern, template plugin class)
  - generator bindings (group, generator function)
  - views              (name → callable)
  - named plugin classes, so plugins can build on each other
  - the modules imported with "unload on reset"

Resolution is a linear reverse scan: the most recently registered
binding whose pattern matches wins.  ``reset()`` clears everything and
evicts tracked modules from ``sys.modules`` so a re-import picks up
edits; the preview server calls it on every hard restart.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable

from sitesmith.core.engine.globs import glob_match

logger = logging.getLogger(__name__)


# ── Bindings ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContentBinding:
    """Files matching *pattern* are loaded by *plugin* into *group*."""

    group: str
    pattern: str
    plugin: type


@dataclass(frozen=True)
class TemplateBinding:
    """Template files matching *pattern* are loaded by *plugin*."""

    pattern: str
    plugin: type


@dataclass(frozen=True)
class GeneratorBinding:
    """Generator *fn* contributes synthetic content under *group*."""

    group: str
    fn: Callable[..., Any]

    @property
    def name(self) -> str:
        return getattr(self.fn, "__name__", repr(self.fn))


def _none_view(node: Any, context: Any) -> None:
    """View that never produces output."""
    return None


# ── Registry ────────────────────────────────────────────────────────


class CapabilityRegistry:
    """Ordered plugin bindings for one environment."""

    def __init__(self) -> None:
        self.content: list[ContentBinding] = []
        self.templates: list[TemplateBinding] = []
        self.generators: list[GeneratorBinding] = []
        self.views: dict[str, Callable[..., Any]] = {}
        self.plugins: dict[str, type] = {}
        self._loaded_modules: list[str] = []
        self.reset()

    def reset(self) -> None:
        """Clear all bindings and evict modules loaded with unload-on-reset."""
        self.content = []
        self.templates = []
        self.generators = []
        self.views = {"none": _none_view}
        self.plugins = {}
        while self._loaded_modules:
            name = self._loaded_modules.pop()
            logger.debug("unloading: %s", name)
            sys.modules.pop(name, None)

    # ── Registration ────────────────────────────────────────────────

    def register_content(self, group: str, pattern: str, plugin: type) -> ContentBinding:
        logger.debug(
            "registering content plugin %s that handles: %s", plugin.__name__, pattern,
        )
        binding = ContentBinding(group=group, pattern=pattern, plugin=plugin)
        self.plugins[plugin.__name__] = plugin
        self.content.append(binding)
        return binding

    def register_template(self, pattern: str, plugin: type) -> TemplateBinding:
        logger.debug(
            "registering template plugin %s that handles: %s", plugin.__name__, pattern,
        )
        binding = TemplateBinding(pattern=pattern, plugin=plugin)
        self.plugins[plugin.__name__] = plugin
        self.templates.append(binding)
        return binding

    def register_generator(self, group: str, fn: Callable[..., Any]) -> GeneratorBinding:
        binding = GeneratorBinding(group=group, fn=fn)
        logger.debug("registering generator %s in group: %s", binding.name, group)
        self.generators.append(binding)
        return binding

    def register_view(self, name: str, view: Callable[..., Any]) -> None:
        if name in self.views:
            logger.debug("Overwriting existing view: %s", name)
        self.views[name] = view

    def unregister_view(self, name: str) -> None:
        if self.views.pop(name, None) is not None:
            logger.debug("removed view: %s", name)

    def track_module(self, name: str) -> None:
        """Remember *name* so ``reset()`` evicts it from ``sys.modules``."""
        if name not in self._loaded_modules:
            self._loaded_modules.append(name)

    def untrack_module(self, name: str) -> None:
        if name in self._loaded_modules:
            self._loaded_modules.remove(name)

    @property
    def loaded_modules(self) -> list[str]:
        return list(self._loaded_modules)

    # ── Resolution ──────────────────────────────────────────────────

    def resolve_content(self, relative: str) -> ContentBinding | None:
        """Last registered content binding matching *relative*, or None."""
        for binding in reversed(self.content):
            if glob_match(relative, binding.pattern):
                return binding
        return None

    def resolve_template(self, relative: str) -> TemplateBinding | None:
        """Last registered template binding matching *relative*, or None."""
        for binding in reversed(self.templates):
            if glob_match(relative, binding.pattern):
                return binding
        return None

    def content_groups(self) -> list[str]:
        """All group names from content bindings, then generator bindings."""
        groups: list[str] = []
        for binding in (*self.content, *self.generators):
            if binding.group not in groups:
                groups.append(binding.group)
        return groups
