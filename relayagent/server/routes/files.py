"""Workspace file search for @-mentions."""

from __future__ import annotations

from fastapi import APIRouter

from relayagent.default_tools.files import list_files

router = APIRouter(tags=["files"])


@router.get("/files")
def search_files(work_dir: str, query: str | None = None) -> list[str]:
    """Up to 50 relative paths under work_dir matching query."""
    return list_files(work_dir, query)
