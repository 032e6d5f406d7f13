"""Shared application state and the FastAPI dependency that hands it out."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from relayagent.core.approvals import ApprovalGate
from relayagent.core.chat import ChatService
from relayagent.core.session_manager import SessionCatalog
from relayagent.core.stream import StreamController, StreamRegistry
from relayagent.models.settings import BridgeSettings


@dataclass
class AppState:
    """
    Everything request handlers share, created once per app.

    Each registry carries its own lock; there is no app-wide lock, so
    concurrent streams never serialize on each other.
    """

    settings: BridgeSettings
    catalog: SessionCatalog
    registry: StreamRegistry
    approvals: ApprovalGate

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> "AppState":
        return cls(
            settings=settings,
            catalog=SessionCatalog.from_settings(settings),
            registry=StreamRegistry(),
            approvals=ApprovalGate(),
        )

    def controller(self, model: str | None = None, thinking: bool | None = None) -> StreamController:
        return StreamController(
            cli_path=self.settings.cli_path,
            model=model or self.settings.model,
            thinking=self.settings.thinking if thinking is None else thinking,
        )

    def chat_service(self, model: str | None = None, thinking: bool | None = None) -> ChatService:
        return ChatService(
            self.catalog, self.registry, self.controller(model, thinking), approvals=self.approvals
        )


def get_state(request: Request) -> AppState:
    return request.app.state.relay
