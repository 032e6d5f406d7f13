"""
Session models for persistent conversation history.
"""

import time
from typing import Literal

from pydantic import BaseModel, Field


def _now_ts() -> int:
    """Current time as whole seconds since the epoch."""
    return int(time.time())


class ToolCall(BaseModel):
    """A tool invocation attached to an assistant message."""

    id: str
    name: str
    arguments: str


class Message(BaseModel):
    """A single message in the conversation."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=_now_ts)
    tool_calls: list[ToolCall] | None = None


class SessionMeta(BaseModel):
    """Metadata record for a GUI-sourced session (one `<id>.json` file)."""

    id: str
    title: str
    work_dir: str
    created_at: int = Field(default_factory=_now_ts)
    updated_at: int = Field(default_factory=_now_ts)


class Session(BaseModel):
    """A conversation session with history."""

    meta: SessionMeta
    messages: list[Message] = Field(default_factory=list)


class SessionSummary(BaseModel):
    """Listing entry shared by both session backends."""

    id: str
    title: str
    updated_at: float
    work_dir: str
    source: Literal["gui", "cli"]


def truncate_with_ellipsis(text: str, max_chars: int = 50) -> str:
    """Cut text to max_chars, marking the cut with '...'."""
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]
    return text[: max_chars - 3] + "..."
