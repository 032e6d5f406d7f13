"""Tool listing and execution endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from relayagent.default_tools import TOOLS, ToolExecutor, tool_definitions
from relayagent.server.dependencies import AppState, get_state
from relayagent.server.models import ToolExecuteRequest, ToolInfo

router = APIRouter(tags=["tools"])


@router.get("/tools")
async def list_tools() -> list[ToolInfo]:
    """List the tools the agent may call."""
    return [
        ToolInfo(name=spec.name, description=spec.description, requires_approval=spec.gated)
        for spec in TOOLS.values()
    ]


@router.get("/tools/definitions")
async def get_tool_definitions() -> list[dict[str, Any]]:
    """OpenAI function-calling schemas for every tool."""
    return tool_definitions()


@router.post("/tools/execute")
async def execute_tool(body: ToolExecuteRequest, state: AppState = Depends(get_state)) -> dict:
    """
    Run one tool call in the given working directory.

    Mutating tools wait for a decision on /api/approvals unless
    auto-approve is on for this call or in the settings.
    """
    settings = state.settings
    executor = ToolExecutor(
        body.work_dir,
        approvals=state.approvals,
        auto_approve=settings.auto_approve if body.auto_approve is None else body.auto_approve,
        owner=body.session_id,
        config_path=settings.config_path,
        shell_timeout=settings.shell_timeout,
    )
    result = await executor.execute(body.name, body.arguments, body.tool_call_id)
    return result.to_dict()
