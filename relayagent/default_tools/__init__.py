"""
Sandboxed tools the agent can call: file read/write/edit, shell, web
search and fetch.
"""

from relayagent.default_tools.executor import TOOLS, ToolExecutor, tool_definitions

__all__ = ["TOOLS", "ToolExecutor", "tool_definitions"]
