"""
Environment — one site: config, paths, locals, plugins, and the build.

The environment ties the engine together:

    env = Environment.create("config.yml")
    await env.build()                 # load → generate → render
    server = await env.preview()      # live preview (see preview_server)

Plugins are Python modules exposing ``setup(env)`` (sync or async).  They
register content plugins, template plugins, generators and views on the
environment.  The bundled ``page``, ``jinja`` and ``markdown`` plugins are
always loaded first, then ``config.plugins`` in order.

``reset()`` clears every registration, evicts modules imported with
unload-on-reset (views) and recomputes locals.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

from sitesmith.core.config.loader import load_config
from sitesmith.core.engine.builder import build_tree
from sitesmith.core.engine.content import ContentTree
from sitesmith.core.engine.generator import generate_contents
from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.engine.registry import CapabilityRegistry
from sitesmith.core.engine.renderer import render
from sitesmith.core.engine.templates import load_templates
from sitesmith.core.engine.utils import read_data_file
from sitesmith.core.errors import ConfigError, PluginError
from sitesmith.core.models.config import SiteConfig

logger = logging.getLogger(__name__)

_EXT_PREFIX = "sitesmith_ext__"


@dataclass
class LoadResult:
    """Everything needed to render a site."""

    contents: ContentTree
    templates: dict[str, Any]
    locals: dict[str, Any]


class Environment:
    """A sitesmith site environment."""

    default_plugins: tuple[str, ...] = (
        "sitesmith.plugins.page",
        "sitesmith.plugins.jinja",
        "sitesmith.plugins.markdown",
    )

    def __init__(self, config: SiteConfig, work_dir: Path | str) -> None:
        self.work_dir = Path(work_dir).resolve()
        self.registry = CapabilityRegistry()
        self.locals: dict[str, Any] = {}
        self.mode: str | None = None
        self.set_config(config)
        self.reset()

    @classmethod
    def create(
        cls,
        config: SiteConfig | dict[str, Any] | str | Path | None = None,
        work_dir: Path | str | None = None,
    ) -> Environment:
        """Set up an environment; *config* may be a path, a mapping or a SiteConfig.

        With a config path and no *work_dir*, the config file's directory
        becomes the working directory.
        """
        if isinstance(config, (str, Path)):
            path = Path(config).resolve()
            if work_dir is None:
                work_dir = path.parent
            config = load_config(path)
        elif config is None:
            config = SiteConfig()
        elif not isinstance(config, SiteConfig):
            try:
                config = SiteConfig.model_validate(config)
            except Exception as e:
                raise ConfigError(f"Invalid site configuration: {e}") from e
        return cls(config, work_dir if work_dir is not None else Path.cwd())

    # ── Configuration & paths ───────────────────────────────────────

    def set_config(self, config: SiteConfig) -> None:
        self.config = config
        self.contents_path = self.resolve_path(config.contents)
        self.templates_path = self.resolve_path(config.templates)

    def reset(self) -> None:
        """Clear registrations, evict cached modules, recompute locals."""
        self.registry.reset()
        self.setup_locals()

    def setup_locals(self) -> None:
        """Resolve locals and load any required modules into them."""
        if isinstance(self.config.locals, str):
            filename = self.resolve_path(self.config.locals)
            logger.debug("loading locals from: %s", filename)
            try:
                data = read_data_file(filename)
            except (OSError, ValueError) as e:
                raise ConfigError(f"Cannot load locals from {filename}: {e}") from e
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ConfigError(f"Locals file {filename} must contain a mapping")
            self.locals = data
        else:
            self.locals = dict(self.config.locals)

        for alias, module_id in self.config.require.items():
            logger.debug("loading module '%s' available in locals as '%s'", module_id, alias)
            if alias in self.locals:
                logger.warning(
                    "module '%s' overwrites previous local with the same key ('%s')",
                    module_id, alias,
                )
            try:
                self.locals[alias] = self.load_module(module_id)
            except Exception as e:
                logger.warning("unable to load '%s': %s", module_id, e)

    def resolve_path(self, pathname: str | Path | None) -> Path:
        """Resolve *pathname* in the working directory."""
        return (self.work_dir / (pathname or "")).resolve()

    def resolve_contents_path(self, pathname: str | Path | None) -> Path:
        return (self.contents_path / (pathname or "")).resolve()

    def relative_path(self, pathname: str | Path) -> str:
        return _relative(Path(pathname), self.work_dir)

    def relative_contents_path(self, pathname: str | Path) -> str:
        """POSIX path of *pathname* relative to the contents directory ("" for the root)."""
        return _relative(Path(pathname), self.contents_path)

    # ── Registration (plugin API) ───────────────────────────────────

    def register_content_plugin(self, group: str, pattern: str, plugin: type) -> None:
        """Files in the contents directory matching *pattern* are loaded with
        ``plugin.from_file`` and grouped as *group* (``tree.groups[group]``)."""
        self.registry.register_content(group, pattern, plugin)

    def register_template_plugin(self, pattern: str, plugin: type) -> None:
        """Template files matching *pattern* are loaded with ``plugin.from_file``."""
        self.registry.register_template(pattern, plugin)

    def register_generator(self, group: str, fn: Callable[..., Any]) -> None:
        """*fn(contents)* returns nested ContentNodes merged into the tree."""
        self.registry.register_generator(group, fn)

    def register_view(self, name: str, view: Callable[..., Any]) -> None:
        self.registry.register_view(name, view)

    def unregister_view(self, name: str) -> None:
        self.registry.unregister_view(name)

    @property
    def plugins(self) -> dict[str, type]:
        return self.registry.plugins

    @property
    def views(self) -> dict[str, Callable[..., Any]]:
        return self.registry.views

    def get_content_groups(self) -> list[str]:
        return self.registry.content_groups()

    # ── Module loading ──────────────────────────────────────────────

    def module_name_for(self, path: Path) -> str:
        """Stable ``sys.modules`` key for a module loaded from *path*."""
        return _EXT_PREFIX + re.sub(r"\W", "_", path.resolve().as_posix())

    def _file_for(self, module_id: str) -> Path | None:
        if module_id.startswith((".", "/")) or module_id.endswith(".py"):
            return self.resolve_path(module_id)
        local = self.work_dir / module_id.replace(".", "/")
        for candidate in (local.with_suffix(".py"), local / "__init__.py"):
            if candidate.is_file():
                return candidate
        return None

    def load_module(self, module_id: str, unload_on_reset: bool = False) -> ModuleType:
        """Import *module_id*, a dotted name or a path relative to the work dir."""
        logger.debug("loading module: %s", module_id)
        path = self._file_for(module_id)
        if path is None:
            module = importlib.import_module(module_id)
            name = module.__name__
        else:
            name = self.module_name_for(path)
            module = sys.modules.get(name)
            if module is None:
                spec = importlib.util.spec_from_file_location(name, path)
                if spec is None or spec.loader is None:
                    raise ImportError(f"Cannot load module from {path}")
                module = importlib.util.module_from_spec(spec)
                sys.modules[name] = module
                try:
                    spec.loader.exec_module(module)
                except BaseException:
                    sys.modules.pop(name, None)
                    raise
            logger.debug("resolved: %s", path)
        if unload_on_reset:
            self.registry.track_module(name)
        return module

    def evict_module(self, path: Path) -> None:
        """Drop the cached module loaded from *path* so the next load re-imports it."""
        name = self.module_name_for(path)
        if sys.modules.pop(name, None) is not None:
            logger.debug("evicted: %s", name)
        self.registry.untrack_module(name)

    async def load_plugin_module(self, module_or_id: ModuleType | str, unload_on_reset: bool = False) -> None:
        """Load a plugin module and run its ``setup(env)``."""
        plugin_id = module_or_id if isinstance(module_or_id, str) else module_or_id.__name__
        try:
            module = (
                self.load_module(module_or_id, unload_on_reset=unload_on_reset)
                if isinstance(module_or_id, str)
                else module_or_id
            )
            setup = getattr(module, "setup", None)
            if not callable(setup):
                raise AttributeError("plugin module has no setup(env) function")
            await maybe_await(setup(self))
        except PluginError:
            raise
        except Exception as e:
            raise PluginError(plugin_id, str(e) or type(e).__name__) from e

    async def load_plugins(self) -> None:
        """Load the bundled plugins, then any listed in ``config.plugins``."""
        for plugin in self.default_plugins:
            logger.debug("loading default plugin: %s", plugin)
            await self.load_plugin_module(plugin)
        for plugin in self.config.plugins:
            logger.debug("loading plugin: %s", plugin)
            await self.load_plugin_module(plugin)

    def load_view_module(self, path: Path) -> None:
        """Import the view module at *path* and register its ``view`` under the file stem."""
        logger.debug("loading view: %s", path)
        try:
            module = self.load_module(str(path), unload_on_reset=True)
        except Exception as e:
            raise PluginError(str(path), f"Error loading view: {e}") from e
        view = getattr(module, "view", None)
        if not callable(view):
            raise PluginError(str(path), "view module does not define a callable 'view'")
        self.register_view(path.stem, view)

    @property
    def views_path(self) -> Path | None:
        return self.resolve_path(self.config.views) if self.config.views else None

    async def load_views(self) -> None:
        """Register every ``*.py`` module in ``config.views`` as a view."""
        directory = self.views_path
        if directory is None:
            return
        try:
            names = sorted(await asyncio.to_thread(lambda: [p.name for p in directory.iterdir()]))
        except OSError as e:
            raise ConfigError(f"Cannot read views directory {directory}: {e}") from e
        for name in names:
            if name.endswith(".py") and not name.startswith("_"):
                self.load_view_module(directory / name)

    # ── Loading & building ──────────────────────────────────────────

    async def build_contents(self) -> ContentTree:
        """Build the filesystem tree only (no generators)."""
        return await build_tree(self, self.contents_path)

    async def get_contents(self) -> ContentTree:
        """Build the content tree and merge in all generator output."""
        contents = await self.build_contents()
        return await generate_contents(self, contents)

    async def get_templates(self) -> dict[str, Any]:
        return await load_templates(self)

    def get_locals(self) -> dict[str, Any]:
        return self.locals

    async def load(self) -> LoadResult:
        """Load plugins, views, contents, templates and locals."""
        await self.load_plugins()
        await self.load_views()
        contents, templates = await asyncio.gather(self.get_contents(), self.get_templates())
        return LoadResult(contents=contents, templates=templates, locals=self.get_locals())

    async def build(self, output_dir: Path | str | None = None) -> int:
        """Build the site into *output_dir* (default: ``config.output``).

        Returns the number of files written.
        """
        self.mode = "build"
        destination = Path(output_dir) if output_dir is not None else self.resolve_path(self.config.output)
        result = await self.load()
        return await render(self, destination, result.contents, result.templates, result.locals)

    async def preview(self, **kwargs: Any) -> Any:
        """Start the preview server and return it.

        The returned server becomes stale if a config change triggers a
        hard restart; see PreviewServer.
        """
        from sitesmith.core.services.preview_server import PreviewServer

        self.mode = "preview"
        server = PreviewServer(self, **kwargs)
        await server.start()
        return server


def _relative(path: Path, base: Path) -> str:
    try:
        rel = path.resolve().relative_to(base.resolve())
    except ValueError:
        return path.as_posix()
    text = rel.as_posix()
    return "" if text == "." else text
