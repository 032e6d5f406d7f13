"""
Result model for sandboxed tool execution.

Every tool returns a ToolOutput instead of raising: a success flag, a
human-readable summary for the model, and the (truncation-bounded) body.
"""

from typing import Any

from pydantic import BaseModel, Field


class ToolOutput(BaseModel):
    """Structured result from any tool execution."""

    ok: bool = Field(..., description="Whether the tool execution succeeded")
    summary: str = Field("", description="Human-readable outcome")
    output: str = Field("", description="Raw output body")

    def to_llm_content(self) -> str:
        """Serialize for passing back to the agent as tool result content."""
        if self.output:
            return f"{self.summary}\n\n{self.output}" if self.summary else self.output
        return self.summary

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()

    @classmethod
    def success(cls, summary: str, output: str = "") -> "ToolOutput":
        """Create a success result."""
        return cls(ok=True, summary=summary, output=output)

    @classmethod
    def fail(cls, summary: str, output: str = "") -> "ToolOutput":
        """Create a failure result."""
        return cls(ok=False, summary=summary, output=output)
