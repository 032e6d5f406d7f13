"""relayagent: bridge between a chat UI and a wire-mode agent CLI."""

__version__ = "0.1.0"
