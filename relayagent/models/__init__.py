"""Data models for relayagent."""

from relayagent.models.session import Message, Session, SessionMeta, SessionSummary, ToolCall
from relayagent.models.settings import BridgeSettings, SettingsError, load_settings
from relayagent.models.tool_output import ToolOutput
from relayagent.models.wire import StreamEvent, WireEvent, WireEventKind

__all__ = [
    "BridgeSettings",
    "load_settings",
    "Message",
    "Session",
    "SessionMeta",
    "SessionSummary",
    "SettingsError",
    "StreamEvent",
    "ToolCall",
    "ToolOutput",
    "WireEvent",
    "WireEventKind",
]
