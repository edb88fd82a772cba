"""
Preview server — keeps a live mirror of the site and serves it.

State machine::

    starting ──▶ ready ⇄ reloading ──▶ stopped

The server owns the in-memory content tree, template map and locals.
Watchers report filesystem changes; each change class (contents,
templates, views, locals, config) has a guard flag.  While a guard is
set, further changes of that class are dropped: the reload in flight
will pick them up.  Requests wait on a readiness barrier (50 ms
polling) until no guard is set.

Every piece of state is touched only on the event loop that called
``start()``.  The HTTP listener runs in its own thread and forwards
each request with ``asyncio.run_coroutine_threadsafe(server.handle(path))``.

A failed rebuild keeps the last good tree and templates.  After a
config-triggered restart the plugins, views and watchers are new; any
plugin class or view captured before the restart is stale.  The config
watcher is the exception: it outlives restarts, and a config that fails
to start is rolled back to the previous one.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import posixpath
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from sitesmith.core.config.loader import load_config
from sitesmith.core.engine.content import ContentNode, ContentTree, flatten
from sitesmith.core.engine.generator import generate_contents
from sitesmith.core.engine.globs import match_any
from sitesmith.core.engine.pool import maybe_await
from sitesmith.core.engine.renderer import is_stream, render_view
from sitesmith.core.errors import ConfigError, RenderError
from sitesmith.core.services.event_bus import EventBus
from sitesmith.core.services.watcher import POLL_INTERVAL_S, PathWatcher

logger = logging.getLogger(__name__)

GUARDS = ("contents", "templates", "views", "locals", "config")
BARRIER_POLL_S = 0.05


# ── Request helpers ─────────────────────────────────────────────────


def normalize_url(url: str) -> str:
    """Map a request path to the output path it refers to.

    ``/`` → ``/index.html``, ``/about`` → ``/about/index.html``.
    *url* must already be percent-decoded; the HTTP layer does that once.
    """
    if url.endswith("/"):
        url += "index.html"
    last = url.rsplit("/", 1)[-1]
    if last and "." not in last:
        url += "/index.html"
    return url


def url_equal(a: str, b: str) -> bool:
    return normalize_url(a) == normalize_url(b)


def build_lookup_map(contents: ContentTree) -> dict[str, ContentNode]:
    """Map normalized url → node for every node in *contents*."""
    return {normalize_url(node.url): node for node in flatten(contents)}


def lookup_charset(mime_type: str | None) -> str | None:
    if not mime_type:
        return None
    if mime_type.startswith("text/") or mime_type in ("application/javascript", "application/json"):
        return "utf-8"
    return None


def content_type_for(filename: str, uri: str) -> str:
    """Content type from *filename*, falling back to the request *uri*."""
    mime_type = mimetypes.guess_type(posixpath.basename(filename))[0]
    if mime_type is None:
        mime_type = mimetypes.guess_type(posixpath.basename(uri))[0]
    if mime_type is None:
        return "application/octet-stream"
    charset = lookup_charset(mime_type)
    return f"{mime_type}; charset={charset}" if charset else mime_type


@dataclass
class PreviewResponse:
    """Outcome of one preview request."""

    status: int
    body: Any = b""
    content_type: str = "text/plain; charset=utf-8"
    plugin: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def read(self) -> bytes:
        """Return the body as bytes, draining and closing a stream body."""
        if is_stream(self.body):
            try:
                return self.body.read()
            finally:
                self.body.close()
        return bytes(self.body)


def _not_found() -> PreviewResponse:
    return PreviewResponse(404, b"404 Not Found\n")


def _server_error(error: BaseException) -> PreviewResponse:
    return PreviewResponse(500, (str(error) or type(error).__name__).encode("utf-8"))


def default_listener_factory(server: PreviewServer) -> Any:
    from sitesmith.ui.web.server import WerkzeugListener

    return WerkzeugListener(server)


# ── Server ──────────────────────────────────────────────────────────


class PreviewServer:
    """Live preview of one environment.

    Parameters
    ----------
    env : Environment
        The site to serve.
    listener_factory : callable
        ``factory(server)`` returning an object with ``start()`` and
        ``stop()`` (sync or async).  Defaults to the werkzeug listener.
    bus : EventBus
        Where ``change`` events are published.
    poll_interval : float
        Watcher poll interval in seconds.
    """

    def __init__(
        self,
        env: Any,
        *,
        listener_factory: Callable[[PreviewServer], Any] | None = None,
        bus: EventBus | None = None,
        poll_interval: float = POLL_INTERVAL_S,
    ) -> None:
        self.env = env
        self.listener_factory = listener_factory or default_listener_factory
        self.bus = bus or EventBus()
        self.poll_interval = poll_interval
        self.state = "stopped"
        self.guards: dict[str, bool] = dict.fromkeys(GUARDS, False)
        self.contents: ContentTree | None = None
        self.templates: dict[str, Any] | None = None
        self.locals: dict[str, Any] | None = None
        self.lookup: dict[str, ContentNode] = {}
        self.listener: Any = None
        self.watchers: list[PathWatcher] = []
        self.config_watcher: PathWatcher | None = None
        self.loop: asyncio.AbstractEventLoop | None = None

    @property
    def address(self) -> str:
        config = self.env.config
        return f"http://{config.hostname or 'localhost'}:{config.port}{config.base_url}"

    @property
    def is_ready(self) -> bool:
        return not any(self.guards.values())

    # ── Lifecycle ───────────────────────────────────────────────────

    async def start(self) -> None:
        """Load everything, bind the listener and start watching."""
        self.state = "starting"
        self.loop = asyncio.get_running_loop()
        logger.debug("starting preview server")
        try:
            await self.env.load_plugins()
            await self.reload_views()
            await self.reload_contents()
            await self.reload_templates()
            await self.reload_locals()
            self.listener = self.listener_factory(self)
            await maybe_await(self.listener.start())
            await self._start_watchers()
            await self._watch_config()
        except BaseException:
            await self._shutdown()
            self.state = "stopped"
            raise
        self.state = "ready"
        logger.info("server running on: %s", self.address)

    async def stop(self) -> None:
        """Stop the listener and all watchers and reset the environment."""
        await self._shutdown()
        await self._unwatch_config()
        self.state = "stopped"
        self.env.reset()

    async def restart(self) -> None:
        """Stop and start again; the config watcher survives a failed start."""
        logger.info("restarting server")
        await self._shutdown()
        self.state = "stopped"
        self.env.reset()
        await self.start()

    async def _shutdown(self) -> None:
        watchers, self.watchers = self.watchers, []
        for watcher in watchers:
            await watcher.stop()
        listener, self.listener = self.listener, None
        if listener is not None:
            await maybe_await(listener.stop())

    async def _start_watchers(self) -> None:
        env = self.env
        targets: list[tuple[Path, Callable[[Path], Any], str]] = [
            (env.contents_path, self.on_content_change, "contents"),
            (env.templates_path, self.on_template_change, "templates"),
        ]
        if env.views_path is not None:
            targets.append((env.views_path, self.on_views_change, "views"))

        for root, handler, name in targets:
            watcher = PathWatcher(root, handler, interval=self.poll_interval, name=name)
            await watcher.start()
            self.watchers.append(watcher)

    async def _watch_config(self) -> None:
        """Start, keep or drop the config watcher to match the current config.

        The config watcher lives outside the restart cycle so that fixing
        a config that failed to start is still noticed.
        """
        config = self.env.config
        wanted = Path(config.filename) if config.restart_on_conf_change and config.filename else None
        current = self.config_watcher
        if current is not None and current.root == wanted:
            return
        await self._unwatch_config()
        if wanted is None:
            return
        logger.debug("watching config file %s for changes", wanted)
        watcher = PathWatcher(wanted, self.on_config_change, interval=self.poll_interval, name="config")
        await watcher.start()
        self.config_watcher = watcher

    async def _unwatch_config(self) -> None:
        watcher, self.config_watcher = self.config_watcher, None
        if watcher is not None:
            await watcher.stop()

    # ── Guarded reloads ─────────────────────────────────────────────

    def _acquire(self, guard: str) -> bool:
        if self.guards[guard]:
            logger.debug("%s reload already running, change ignored", guard)
            return False
        self.guards[guard] = True
        if self.state == "ready":
            self.state = "reloading"
        return True

    def _release(self, guard: str) -> None:
        self.guards[guard] = False
        if self.state == "reloading" and self.is_ready:
            self.state = "ready"

    async def reload_contents(self) -> bool:
        """Rebuild the live tree; on failure keep the previous one."""
        if not self._acquire("contents"):
            return False
        try:
            contents = await self.env.build_contents()
        except Exception as e:
            logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return False
        else:
            self.contents = contents
            self.lookup = build_lookup_map(contents)
            return True
        finally:
            self._release("contents")

    async def reload_templates(self) -> bool:
        if not self._acquire("templates"):
            return False
        try:
            templates = await self.env.get_templates()
        except Exception as e:
            logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return False
        else:
            self.templates = templates
            return True
        finally:
            self._release("templates")

    async def reload_views(self) -> bool:
        if not self._acquire("views"):
            return False
        try:
            await self.env.load_views()
        except Exception as e:
            logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            return False
        else:
            return True
        finally:
            self._release("views")

    async def reload_locals(self) -> bool:
        if not self._acquire("locals"):
            return False
        try:
            self.locals = self.env.get_locals()
            return True
        finally:
            self._release("locals")

    # ── Change handlers ─────────────────────────────────────────────

    async def on_content_change(self, path: Path) -> None:
        relative = self.env.relative_contents_path(path)
        pattern = match_any(relative, self.env.config.ignore)
        if pattern is not None:
            self.bus.publish("change", key="contents", data={"filename": relative, "ignored": True})
            return
        if self.guards["contents"]:
            return
        if await self.reload_contents():
            self.bus.publish(
                "change", key="contents", data={"filename": self.output_filename(path), "ignored": False},
            )

    def output_filename(self, source: Path) -> str | None:
        """Output filename of the live node built from *source*."""
        if self.contents is None:
            return None
        for node in flatten(self.contents):
            if node.source_path == source:
                return node.filename
        return None

    async def on_template_change(self, path: Path) -> None:
        if self.guards["templates"]:
            return
        if await self.reload_templates():
            self.bus.publish("change", key="templates", data={"filename": None, "ignored": False})

    async def on_views_change(self, path: Path) -> None:
        if self.guards["views"]:
            return
        self.env.evict_module(path)
        if path.suffix == ".py" and not path.exists():
            self.env.unregister_view(path.stem)
        if await self.reload_views():
            self.bus.publish("change", key="views", data={"filename": None, "ignored": False})

    async def on_config_change(self, path: Path) -> None:
        """Re-read the config file and hard-restart with it."""
        if self.guards["config"]:
            return
        try:
            config = await asyncio.to_thread(load_config, path)
        except ConfigError as e:
            logger.error("Error reloading config: %s", e)
            return
        overrides = self.env.config.cli_overrides
        if overrides:
            config = config.apply_overrides(overrides)

        if not self._acquire("config"):
            return
        previous = self.env.config
        try:
            self.env.set_config(config)
            await self.restart()
        except Exception as e:
            logger.error("Error restarting with new config: %s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            await self._restore_config(previous)
            return
        finally:
            self._release("config")
        logger.debug("config file change detected, server reloaded")
        self.bus.publish("change", key="config", data={"filename": None, "ignored": False})

    async def _restore_config(self, previous: Any) -> None:
        """Restart with *previous* after the new config failed to start.

        If that fails too the server stays stopped, but the config
        watcher keeps running and the next config change retries.
        """
        self.env.set_config(previous)
        try:
            await self.restart()
        except Exception as e:
            logger.error(
                "Error restarting with previous config: %s", e, exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return
        logger.info("kept previous config, fix the config file to apply changes")

    # ── Requests ────────────────────────────────────────────────────

    async def wait_ready(self) -> None:
        """Readiness barrier: return once no reload is running."""
        while not self.is_ready:
            await asyncio.sleep(BARRIER_POLL_S)

    async def handle(self, path: str) -> PreviewResponse:
        """Serve one request path; never raises."""
        start = time.monotonic()
        uri = normalize_url(path)
        try:
            response = await self._respond(uri)
        except Exception as e:
            response = _server_error(e)
            logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))

        delta = (time.monotonic() - start) * 1000
        logger.info(
            "%d %s%s %.0fms",
            response.status, path, f" {response.plugin}" if response.plugin else "", delta,
        )
        return response

    async def _respond(self, uri: str) -> PreviewResponse:
        if self.contents is None and not self.guards["contents"]:
            if not await self.reload_contents():
                raise RenderError(None, "content tree could not be built, see log")
        if self.templates is None and not self.guards["templates"]:
            if not await self.reload_templates():
                raise RenderError(None, "templates could not be loaded, see log")
        await self.wait_ready()
        if self.contents is None:
            raise RenderError(None, "content tree could not be built, see log")

        tree = await generate_contents(self.env, self.contents, reparent=False)
        lookup = self.lookup if tree is self.contents else build_lookup_map(tree)

        node = lookup.get(uri)
        if node is None:
            return _not_found()

        plugin = type(node).__name__
        try:
            result = await render_view(self.env, node, tree, self.templates or {}, self.locals or {})
        except Exception as e:
            logger.error("%s", e, exc_info=logger.isEnabledFor(logging.DEBUG))
            response = _server_error(e)
            response.plugin = plugin
            return response

        if result is None:
            return PreviewResponse(404, b"404 Not Found\n", plugin=plugin)
        if not isinstance(result, (bytes, bytearray, memoryview)) and not is_stream(result):
            return PreviewResponse(
                500,
                f"View for content '{node.filename}' returned invalid response. "
                "Expected bytes or a binary stream.".encode("utf-8"),
                plugin=plugin,
            )
        return PreviewResponse(
            200, result, content_type=content_type_for(node.filename, uri), plugin=plugin,
        )
