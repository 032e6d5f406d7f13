"""POST /api/chat - stream one agent turn as Server-Sent Events."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from relayagent.core.errors import StorageError
from relayagent.models.wire import StreamEvent
from relayagent.server.dependencies import AppState, get_state
from relayagent.server.models import CancelRequest, ChatRequest
from relayagent.server.protocol import CONTENT_TYPE, EXTRA_HEADERS, encode_event, format_sse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

DEFAULT_WORK_DIR = "."


async def _encode(events: AsyncIterator[StreamEvent], session_id: str) -> AsyncIterator[bytes]:
    try:
        async with aclosing(events):
            async for event in events:
                yield encode_event(event)
    except StorageError as e:
        logger.error("Chat for session %s failed before start: %s", session_id, e)
        yield format_sse("error", {"session_id": session_id, "message": str(e)})


@router.post("/chat")
async def chat(body: ChatRequest, state: AppState = Depends(get_state)):
    """
    Run one turn.

    Emits `chunk`, `tool_call`, `tool_result`, `step_begin`, `step_end` and
    `error` frames, and finishes with `done` or `cancelled`.
    """
    service = state.chat_service(model=body.model, thinking=body.thinking)
    work_dir = body.work_dir if body.work_dir and body.work_dir.strip() else DEFAULT_WORK_DIR
    events = service.run_turn(body.session_id, body.message, work_dir)
    return StreamingResponse(
        _encode(events, body.session_id),
        media_type=CONTENT_TYPE,
        headers=EXTRA_HEADERS,
    )


@router.post("/chat/cancel")
async def cancel_chat(body: CancelRequest, state: AppState = Depends(get_state)) -> dict:
    """Cancel the streams of one session, or all of them."""
    return {"cancelled": state.registry.cancel(body.session_id)}
