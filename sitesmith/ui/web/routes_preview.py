"""
Preview route — serves the rendered site.

Blueprint: preview_bp
Routes:
    /<path>   — any path; rendered by the PreviewServer
"""

from __future__ import annotations

import asyncio

from flask import Blueprint, Response, current_app, request
from werkzeug.wsgi import wrap_file

from sitesmith.core.engine.renderer import is_stream

preview_bp = Blueprint("preview", __name__)


@preview_bp.route("/", defaults={"path": ""}, methods=["GET", "HEAD"])
@preview_bp.route("/<path:path>", methods=["GET", "HEAD"])
def serve(path: str):  # type: ignore[no-untyped-def]
    """Forward the request to the preview server's event loop."""
    server = current_app.config["PREVIEW_SERVER"]
    if server.loop is None:
        return Response("preview server is not running\n", status=503, mimetype="text/plain")

    future = asyncio.run_coroutine_threadsafe(server.handle(request.path), server.loop)
    result = future.result()

    if is_stream(result.body):
        body = wrap_file(request.environ, result.body)
        return Response(
            body,
            status=result.status,
            content_type=result.content_type,
            headers=result.headers,
            direct_passthrough=True,
        )
    return Response(
        bytes(result.body),
        status=result.status,
        content_type=result.content_type,
        headers=result.headers,
    )
