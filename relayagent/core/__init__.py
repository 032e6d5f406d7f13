"""Core module for relayagent."""

from relayagent.core.approvals import ApprovalGate
from relayagent.core.chat import ChatService
from relayagent.core.errors import (
    ApprovalNotFound,
    InvalidSessionId,
    ProtocolDecodeError,
    RelayError,
    ResolutionError,
    SandboxViolation,
    ShellTimeout,
    SizeLimitExceeded,
    StorageError,
)
from relayagent.core.sandbox import WorkspaceSandbox
from relayagent.core.session_manager import CliTranscriptStore, GuiSessionStore, SessionCatalog
from relayagent.core.stream import StreamController, StreamRegistry, find_cli
from relayagent.core.transcript import TranscriptReconstructor, reconstruct
from relayagent.core.wire import decode_line

__all__ = [
    "ApprovalGate",
    "ApprovalNotFound",
    "ChatService",
    "InvalidSessionId",
    "CliTranscriptStore",
    "GuiSessionStore",
    "ProtocolDecodeError",
    "RelayError",
    "ResolutionError",
    "SandboxViolation",
    "SessionCatalog",
    "ShellTimeout",
    "SizeLimitExceeded",
    "StorageError",
    "StreamController",
    "StreamRegistry",
    "TranscriptReconstructor",
    "WorkspaceSandbox",
    "decode_line",
    "find_cli",
    "reconstruct",
]
