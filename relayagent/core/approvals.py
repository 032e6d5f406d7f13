"""
Approval gate for mutating tool calls.

A gated tool call registers a pending request and awaits its future; the UI
boundary resolves it with respond(). Decisions may arrive from any thread,
so resolution is marshalled onto the loop that owns the future.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from relayagent.core.errors import ApprovalNotFound

logger = logging.getLogger(__name__)


@dataclass
class PendingApproval:
    """One request waiting for a user decision."""

    request_id: str
    tool: str
    summary: str
    loop: asyncio.AbstractEventLoop
    future: asyncio.Future[bool]
    owner: str | None = None
    arguments: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.monotonic)

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "tool": self.tool,
            "summary": self.summary,
            "owner": self.owner,
            "arguments": self.arguments,
            "age_ms": int((time.monotonic() - self.created_at) * 1000),
        }


def _settle(pending: PendingApproval, approved: bool) -> None:
    if not pending.future.done():
        pending.future.set_result(approved)


class ApprovalGate:
    """
    Maps request ids to single-use resolution slots.

    Pending entries are owned by a stream (or any caller-chosen key);
    cancel_for() denies everything an owner still has outstanding so
    entries never outlive the stream that created them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[str, PendingApproval] = {}

    def register(
        self,
        tool: str,
        summary: str = "",
        owner: str | None = None,
        arguments: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> PendingApproval:
        """
        Create a pending request on the running loop.

        Reusing the id of a request that is still pending denies the older
        request before the new one takes its slot.
        """
        loop = asyncio.get_running_loop()
        pending = PendingApproval(
            request_id=request_id or uuid.uuid4().hex,
            tool=tool,
            summary=summary,
            loop=loop,
            future=loop.create_future(),
            owner=owner,
            arguments=arguments or {},
        )
        with self._lock:
            previous = self._pending.get(pending.request_id)
            self._pending[pending.request_id] = pending
        if previous is not None:
            logger.warning("Approval %s re-registered; denying the earlier request", pending.request_id)
            self._deny(previous)
        logger.debug("Approval %s registered for %s", pending.request_id, tool)
        return pending

    async def request(
        self,
        tool: str,
        summary: str = "",
        owner: str | None = None,
        arguments: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> bool:
        """Register a request and wait for the decision. True means approved."""
        pending = self.register(
            tool, summary=summary, owner=owner, arguments=arguments, request_id=request_id
        )
        try:
            return await pending.future
        finally:
            self._discard(pending)

    def _discard(self, pending: PendingApproval) -> None:
        with self._lock:
            if self._pending.get(pending.request_id) is pending:
                del self._pending[pending.request_id]

    def respond(self, request_id: str, approved: bool) -> None:
        """
        Resolve and remove a pending request.

        Raises:
            ApprovalNotFound: If nothing is pending under request_id
        """
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            raise ApprovalNotFound(f"No pending approval with id {request_id}")

        try:
            pending.loop.call_soon_threadsafe(_settle, pending, approved)
        except RuntimeError as e:
            # Owning loop is closed; nobody is waiting any more.
            raise ApprovalNotFound(f"Approval {request_id} is no longer awaited") from e

    def cancel_for(self, owner: str) -> int:
        """Deny and drop every request held by owner. Returns how many."""
        with self._lock:
            dropped = [p for p in self._pending.values() if p.owner == owner]
            for pending in dropped:
                del self._pending[pending.request_id]

        for pending in dropped:
            self._deny(pending)
        if dropped:
            logger.info("Denied %d pending approval(s) for %s", len(dropped), owner)
        return len(dropped)

    @staticmethod
    def _deny(pending: PendingApproval) -> None:
        try:
            pending.loop.call_soon_threadsafe(_settle, pending, False)
        except RuntimeError:
            logger.debug("Loop closed before approval %s was denied", pending.request_id)

    def list_pending(self, owner: str | None = None) -> list[dict[str, Any]]:
        with self._lock:
            items = [p for p in self._pending.values() if owner is None or p.owner == owner]
        return [p.to_dict() for p in sorted(items, key=lambda p: p.created_at)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
