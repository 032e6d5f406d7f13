"""Pydantic models for the API layer."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """POST /api/chat request body."""

    session_id: str = Field(alias="sessionId", description="Session to create or resume")
    message: str = Field(min_length=1)
    work_dir: str | None = Field(default=None, alias="workDir")
    model: str | None = None
    thinking: bool | None = None

    model_config = {"populate_by_name": True}


class CancelRequest(BaseModel):
    """POST /api/chat/cancel body. No session id cancels every active stream."""

    session_id: str | None = Field(default=None, alias="sessionId")

    model_config = {"populate_by_name": True}


class SaveMessageRequest(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ToolExecuteRequest(BaseModel):
    """POST /api/tools/execute body."""

    work_dir: str = Field(alias="workDir")
    name: str
    arguments: dict[str, Any] | str | None = None
    tool_call_id: str = Field(default="", alias="toolCallId")
    session_id: str | None = Field(default=None, alias="sessionId")
    auto_approve: bool | None = Field(default=None, alias="autoApprove")

    model_config = {"populate_by_name": True}


class ApprovalDecision(BaseModel):
    approved: bool


class ToolInfo(BaseModel):
    """Tool summary for list responses."""

    name: str
    description: str
    requires_approval: bool


class CliStatus(BaseModel):
    available: bool
    version: str | None = None
    error: str | None = None
