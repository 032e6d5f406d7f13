"""
Turn orchestration.

Wraps one StreamController run with the session bookkeeping around it:
the session record and user message are written before the agent starts,
and the reconstructed assistant messages are persisted after it stops.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

from relayagent.core.approvals import ApprovalGate
from relayagent.core.errors import StorageError
from relayagent.core.session_manager import SessionCatalog
from relayagent.core.stream import StreamController, StreamRegistry
from relayagent.core.transcript import TranscriptReconstructor
from relayagent.models.session import Message, truncate_with_ellipsis
from relayagent.models.wire import StreamEvent

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


class ChatService:
    """Runs chat turns and keeps the GUI session store in step with them."""

    def __init__(
        self,
        catalog: SessionCatalog,
        registry: StreamRegistry,
        controller: StreamController,
        approvals: ApprovalGate | None = None,
    ):
        self.catalog = catalog
        self.registry = registry
        self.controller = controller
        self.approvals = approvals

    def _record_user_message(self, session_id: str, prompt: str, work_dir: str) -> None:
        gui = self.catalog.gui
        gui.get_or_create(session_id, truncate_with_ellipsis(prompt, TITLE_MAX_CHARS), work_dir)
        gui.add_message(session_id, Message(role="user", content=prompt))

    def _persist_reply(self, session_id: str, reconstructor: TranscriptReconstructor) -> None:
        gui = self.catalog.gui
        try:
            reconstructor.finish()
            for message in reconstructor.assistant_messages():
                gui.add_message(session_id, message)
            gui.touch(session_id)
        except StorageError as e:
            logger.warning("Could not persist reply for session %s: %s", session_id, e)

    def _release_approvals(self, session_id: str) -> None:
        # Approvals are owned by session id; another live turn of the same
        # session still owns them.
        if self.approvals is None:
            return
        if any(h.session_id == session_id for h in self.registry.active()):
            logger.debug("Session %s still streaming, keeping its approvals", session_id)
            return
        self.approvals.cancel_for(session_id)

    async def run_turn(
        self, session_id: str, prompt: str, work_dir: str
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream one turn for session_id.

        Raises:
            StorageError: If the session record or user message cannot be
                written (nothing has been spawned at that point)
        """
        self._record_user_message(session_id, prompt, work_dir)

        handle = self.registry.register(session_id)
        reconstructor = TranscriptReconstructor(accumulating=True)
        events = self.controller.stream(handle, prompt, work_dir, observer=reconstructor.feed)
        try:
            async with aclosing(events):
                async for event in events:
                    yield event
        finally:
            self.registry.remove(handle.id)
            self._release_approvals(session_id)
            self._persist_reply(session_id, reconstructor)
