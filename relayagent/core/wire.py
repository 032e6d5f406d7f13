"""
Wire protocol decoder.

Turns one line of agent output into a WireEvent, and a WireEvent into the
named outward event the UI consumes. Decoding never fails: malformed or
unrecognized lines come back as PLAIN_TEXT so legacy output still reaches
the user.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from relayagent.core.errors import ProtocolDecodeError
from relayagent.models.wire import StreamEvent, WireEvent, WireEventKind

logger = logging.getLogger(__name__)

DISCRIMINATOR_KEYS = ("type", "msg_type")
UNKNOWN_ERROR = "Unknown error"

# Normalized discriminator -> kind. "TurnBegin", "turn_begin" and
# "turn-begin" all normalize to "turnbegin".
_KINDS: dict[str, WireEventKind] = {
    "turnbegin": WireEventKind.TURN_BEGIN,
    "textpart": WireEventKind.TEXT_PART,
    "thinkpart": WireEventKind.THINK_PART,
    "toolcall": WireEventKind.TOOL_CALL,
    "toolresult": WireEventKind.TOOL_RESULT,
    "stepbegin": WireEventKind.STEP_BEGIN,
    "stepend": WireEventKind.STEP_END,
    "turnend": WireEventKind.TURN_END,
    "error": WireEventKind.ERROR,
}

_SEPARATORS = re.compile(r"[_\-\s]")


def normalize_kind(value: str) -> WireEventKind | None:
    """Map a discriminator spelling onto a known kind, or None."""
    return _KINDS.get(_SEPARATORS.sub("", value).lower())


def _parse_record(line: str) -> WireEvent:
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolDecodeError(f"not JSON: {e}") from e

    if not isinstance(record, dict):
        raise ProtocolDecodeError("record is not a JSON object")

    discriminator: Any = None
    for key in DISCRIMINATOR_KEYS:
        if isinstance(record.get(key), str):
            discriminator = record[key]
            break
    if discriminator is None:
        raise ProtocolDecodeError("record has no type field")

    kind = normalize_kind(discriminator)
    if kind is None:
        raise ProtocolDecodeError(f"unrecognized type '{discriminator}'")

    payload = {k: v for k, v in record.items() if k not in DISCRIMINATOR_KEYS}

    text: str | None = None
    if kind == WireEventKind.TEXT_PART:
        content = payload.get("content")
        text = content if isinstance(content, str) else None
    elif kind == WireEventKind.ERROR:
        message = payload.get("message")
        text = message if isinstance(message, str) else UNKNOWN_ERROR

    return WireEvent(kind=kind, payload=payload, text=text, raw=line)


def decode_line(line: str) -> WireEvent | None:
    """
    Decode one wire line.

    Returns None for blank lines; every other line yields exactly one event.
    """
    if not line.strip():
        return None
    try:
        return _parse_record(line)
    except ProtocolDecodeError as e:
        logger.debug("Wire line treated as plain text (%s)", e)
        return WireEvent.plain(line)


def to_stream_event(event: WireEvent, session_id: str) -> StreamEvent | None:
    """Translate a decoded wire event into the outward event, if it has one."""
    kind = event.kind
    base: dict[str, Any] = {"session_id": session_id}

    if kind == WireEventKind.TEXT_PART:
        if event.text is None:
            return None
        return StreamEvent(event="chunk", data={**base, "content": event.text})

    if kind == WireEventKind.PLAIN_TEXT:
        return StreamEvent(event="chunk", data={**base, "content": event.raw})

    if kind == WireEventKind.TOOL_CALL:
        return StreamEvent(event="tool_call", data={**base, "data": event.payload})

    if kind == WireEventKind.TOOL_RESULT:
        return StreamEvent(event="tool_result", data={**base, "data": event.payload})

    if kind == WireEventKind.STEP_BEGIN:
        return StreamEvent(event="step_begin", data=base)

    if event.ends_step:
        return StreamEvent(event="step_end", data=base)

    if kind == WireEventKind.ERROR:
        return StreamEvent(event="error", data={**base, "message": event.text or UNKNOWN_ERROR})

    # TURN_BEGIN and THINK_PART have no outward event.
    return None


def terminal_event(name: str, session_id: str) -> StreamEvent:
    """Build a `done` or `cancelled` event."""
    return StreamEvent(event=name, data={"session_id": session_id})
