"""
SSE change stream for live-reload clients.

Provides ``GET /__sitesmith/events`` — a Server-Sent Events stream of
the preview server's ``change`` events.

Wire format (per SSE spec)::

    event: change
    id: 47
    data: {"v":1,"ts":1739648400.123,"seq":47,"type":"change","key":"contents","data":{...}}

Clients connect with ``EventSource('/__sitesmith/events')``; on
reconnect the browser sends ``Last-Event-Id`` and missed events are
replayed from the bus buffer.
"""

from __future__ import annotations

import json

from flask import Blueprint, Response, current_app, request

events_bp = Blueprint("events", __name__)


@events_bp.route("/events")
def event_stream():  # type: ignore[no-untyped-def]
    """SSE endpoint.

    Query params:
        since (int): Resume after this sequence number.  Overridden by
            ``Last-Event-Id`` when present.
    """
    bus = current_app.config["PREVIEW_SERVER"].bus
    since = request.args.get("since", 0, type=int)

    last_event_id = request.headers.get("Last-Event-Id")
    if last_event_id is not None:
        try:
            since = max(since, int(last_event_id))
        except (ValueError, TypeError):
            pass

    def generate():  # type: ignore[no-untyped-def]
        for event in bus.subscribe(since=since):
            yield (
                f"event: {event['type']}\n"
                f"id: {event['seq']}\n"
                f"data: {json.dumps(event, default=str)}\n\n"
            )

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
        },
    )
