"""Health check and agent availability endpoints."""

from fastapi import APIRouter, Depends

from relayagent.core.errors import RelayError
from relayagent.core.stream import get_cli_version
from relayagent.server.dependencies import AppState, get_state
from relayagent.server.models import CliStatus

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok", "service": "relayagent"}


@router.get("/api/cli/status")
def cli_status(state: AppState = Depends(get_state)) -> CliStatus:
    """Whether the agent executable resolves and answers --version."""
    try:
        version = get_cli_version(state.settings.cli_path)
    except RelayError as e:
        return CliStatus(available=False, error=str(e))
    return CliStatus(available=True, version=version)
