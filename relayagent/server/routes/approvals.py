"""Pending tool approvals: list them and answer them."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from relayagent.server.dependencies import AppState, get_state
from relayagent.server.models import ApprovalDecision

router = APIRouter(tags=["approvals"])


@router.get("/approvals")
async def list_approvals(owner: str | None = None, state: AppState = Depends(get_state)) -> list[dict[str, Any]]:
    """Requests still waiting for a decision, oldest first."""
    return state.approvals.list_pending(owner)


@router.post("/approvals/{request_id}")
async def respond(request_id: str, body: ApprovalDecision, state: AppState = Depends(get_state)) -> dict:
    """Approve or deny a request. Unknown or already-answered ids give 404."""
    state.approvals.respond(request_id, body.approved)
    return {"ok": True}
