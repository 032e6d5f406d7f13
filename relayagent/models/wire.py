"""
Wire protocol event model.

One JSON object per line is emitted by the agent process while a turn runs.
Each line decodes into exactly one WireEvent; anything that is not a
recognized record becomes a PLAIN_TEXT event carrying the raw line.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class WireEventKind(Enum):
    """Closed set of wire record types, plus the plain-text fallback."""

    TURN_BEGIN = "turn_begin"
    TEXT_PART = "text_part"
    THINK_PART = "think_part"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    STEP_BEGIN = "step_begin"
    STEP_END = "step_end"
    TURN_END = "turn_end"
    ERROR = "error"
    PLAIN_TEXT = "plain_text"


class WireEvent(BaseModel):
    """A single decoded wire line."""

    kind: WireEventKind
    payload: dict[str, Any] = Field(default_factory=dict)
    text: str | None = None  # content for TEXT_PART, message for ERROR, raw line for PLAIN_TEXT
    raw: str = ""

    @property
    def ends_step(self) -> bool:
        return self.kind in (WireEventKind.STEP_END, WireEventKind.TURN_END)

    @property
    def user_input(self) -> str:
        """The user prompt carried by a TURN_BEGIN record ("" when absent)."""
        value = self.payload.get("user_input")
        return value if isinstance(value, str) else ""

    @classmethod
    def plain(cls, line: str) -> "WireEvent":
        return cls(kind=WireEventKind.PLAIN_TEXT, text=line, raw=line)


class StreamEvent(BaseModel):
    """A named outward event for the UI channel."""

    event: str  # chunk, tool_call, tool_result, step_begin, step_end, error, done, cancelled
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.event in ("done", "cancelled")
