"""
Transcript reconstruction.

Folds an ordered sequence of wire events into role-tagged messages. Used
live (fed one event at a time while a stream runs) and offline (replaying a
CLI-sourced wire.jsonl log).
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Iterable

from relayagent.core.wire import decode_line
from relayagent.models.session import Message, _now_ts
from relayagent.models.wire import WireEvent, WireEventKind

logger = logging.getLogger(__name__)


class ReconstructorState(Enum):
    IDLE = "idle"
    ACCUMULATING = "assistant_accumulating"


class TranscriptReconstructor:
    """
    State machine turning wire events into messages.

    Idle until the first TURN_BEGIN; from then on text parts accumulate into
    an assistant buffer that is flushed on step/turn end, on the next turn,
    or when finish() is called.

    Tool calls and results are observed but do not produce messages.
    """

    def __init__(self, default_timestamp: int | None = None, accumulating: bool = False):
        self._timestamp = default_timestamp
        # Live turns start accumulating: the user message is already saved.
        self.state = ReconstructorState.ACCUMULATING if accumulating else ReconstructorState.IDLE
        self.messages: list[Message] = []
        self._buffer: list[str] = []

    def _stamp(self) -> int:
        return self._timestamp if self._timestamp is not None else _now_ts()

    def _flush(self) -> None:
        content = "".join(self._buffer)
        self._buffer = []
        if content:
            self.messages.append(Message(role="assistant", content=content, timestamp=self._stamp()))

    def feed(self, event: WireEvent) -> None:
        kind = event.kind

        if kind == WireEventKind.TURN_BEGIN:
            self._flush()
            self.messages.append(
                Message(role="user", content=event.user_input, timestamp=self._stamp())
            )
            self.state = ReconstructorState.ACCUMULATING
        elif kind == WireEventKind.TEXT_PART:
            if self.state == ReconstructorState.ACCUMULATING and event.text:
                self._buffer.append(event.text)
        elif event.ends_step:
            self._flush()

    def finish(self) -> list[Message]:
        """Flush any pending assistant text and return every message so far."""
        self._flush()
        return list(self.messages)

    def assistant_messages(self) -> list[Message]:
        return [m for m in self.messages if m.role == "assistant"]


def reconstruct(events: Iterable[WireEvent], default_timestamp: int | None = None) -> list[Message]:
    """Replay events through a fresh reconstructor."""
    reconstructor = TranscriptReconstructor(default_timestamp=default_timestamp)
    for event in events:
        reconstructor.feed(event)
    return reconstructor.finish()


def load_wire_messages(path: Path) -> list[Message]:
    """
    Reconstruct the messages recorded in a wire.jsonl transcript.

    Every message is stamped with the file's modification time so that
    re-reading an unchanged log yields the same messages.

    Raises:
        OSError: If the file cannot be read
    """
    timestamp = int(path.stat().st_mtime)
    events: list[WireEvent] = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            event = decode_line(line.rstrip("\r\n"))
            if event is not None:
                events.append(event)
    logger.debug("Replayed %d wire events from %s", len(events), path)
    return reconstruct(events, default_timestamp=timestamp)
