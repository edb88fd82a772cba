"""
Preview HTTP server — Flask app factory and the werkzeug listener.

The Flask app is a thin shell around a PreviewServer: every request
is forwarded to the server's event loop and the PreviewResponse is
turned back into a Flask response.  The listener runs werkzeug's
threaded WSGI server in a daemon thread so the event loop stays free
for rebuilds and watchers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from flask import Flask
from werkzeug.serving import BaseWSGIServer, make_server

logger = logging.getLogger(__name__)


def create_app(preview_server: Any) -> Flask:
    """Create the Flask application serving *preview_server*.

    Args:
        preview_server: A started (or starting) PreviewServer.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__, static_folder=None)
    app.config["PREVIEW_SERVER"] = preview_server

    from sitesmith.ui.web.routes_events import events_bp
    from sitesmith.ui.web.routes_preview import preview_bp

    app.register_blueprint(events_bp, url_prefix="/__sitesmith")
    app.register_blueprint(preview_bp)

    logger.debug("Preview app created (root=%s)", preview_server.env.work_dir)
    return app


class WerkzeugListener:
    """Serve the preview app from a background thread."""

    def __init__(self, preview_server: Any, app: Flask | None = None) -> None:
        self.preview_server = preview_server
        self.app = app or create_app(preview_server)
        self._httpd: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int | None:
        return self._httpd.server_port if self._httpd is not None else None

    def start(self) -> None:
        """Bind the socket and start serving.  Bind errors propagate."""
        config = self.preview_server.env.config
        host = config.hostname or "0.0.0.0"
        self._httpd = make_server(host, config.port, self.app, threaded=True)
        self._thread = threading.Thread(
            target=self._httpd.serve_forever,
            daemon=True,
            name="sitesmith-http",
        )
        self._thread.start()
        logger.debug("Listening on %s:%d", host, self._httpd.server_port)

    async def stop(self) -> None:
        httpd, self._httpd = self._httpd, None
        if httpd is None:
            return
        await asyncio.to_thread(httpd.shutdown)
        httpd.server_close()
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, 5.0)
            self._thread = None
        logger.debug("Listener stopped")
