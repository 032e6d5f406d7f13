"""Server-Sent Events encoding for outward stream events.

Wire format, one frame per event:

    event: <name>
    data: <single-line JSON>
    <blank line>
"""

from __future__ import annotations

import json

from relayagent.models.wire import StreamEvent

CONTENT_TYPE = "text/event-stream"
EXTRA_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def format_sse(event: str, data: dict) -> bytes:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n".encode()


def encode_event(event: StreamEvent) -> bytes:
    return format_sse(event.event, event.data)
