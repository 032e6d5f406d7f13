"""Session listing, history and deletion endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from relayagent.core.errors import StorageError
from relayagent.models.session import Message, SessionSummary
from relayagent.server.dependencies import AppState, get_state
from relayagent.server.models import SaveMessageRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


@router.get("/sessions")
def list_sessions(work_dir: str | None = None, state: AppState = Depends(get_state)) -> list[SessionSummary]:
    """Merged GUI and CLI sessions, most recently updated first."""
    return state.catalog.list_sessions(work_dir)


@router.get("/sessions/{session_id}/messages")
def get_session_messages(
    session_id: str, work_dir: str = "", state: AppState = Depends(get_state)
) -> list[Message]:
    """Messages for a session (empty if unknown)."""
    return state.catalog.messages(work_dir, session_id)


@router.post("/sessions/{session_id}/messages")
def save_message(
    session_id: str, body: SaveMessageRequest, state: AppState = Depends(get_state)
) -> dict:
    """Append a message. Best effort: a storage failure is logged, not returned."""
    try:
        state.catalog.gui.add_message(session_id, Message(role=body.role, content=body.content))
    except StorageError as e:
        logger.warning("Could not save message for session %s: %s", session_id, e)
        return {"ok": False}
    return {"ok": True}


@router.delete("/sessions/{session_id}")
def delete_session(session_id: str, work_dir: str = "", state: AppState = Depends(get_state)) -> dict:
    """Delete a session from both stores."""
    state.catalog.delete(work_dir, session_id)
    return {"ok": True}
