"""
Tool dispatch for agent-requested actions.

Maps tool names to their implementations, validates arguments against
each tool's pydantic input model, and holds mutating tools behind the
approval gate unless auto-approve is on.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx
from pydantic import BaseModel, ValidationError

from relayagent.core.approvals import ApprovalGate
from relayagent.default_tools.files import (
    ReadFileInput,
    StrReplaceFileInput,
    WriteFileInput,
    read_file,
    str_replace_file,
    write_file,
)
from relayagent.default_tools.shell import ShellInput, run_shell
from relayagent.default_tools.web import FetchURLInput, SearchWebInput, fetch_url, search_web
from relayagent.models.tool_output import ToolOutput

logger = logging.getLogger(__name__)

REJECTED = "Tool call was rejected by the user."


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    gated: bool = False

    def definition(self) -> dict[str, Any]:
        """OpenAI function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(),
            },
        }


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec("ReadFile", "Read the contents of a text file from disk.", ReadFileInput),
        ToolSpec("Shell", "Run a shell command in the working directory.", ShellInput, gated=True),
        ToolSpec(
            "WriteFile", "Write content to a file (overwrite or append).", WriteFileInput, gated=True
        ),
        ToolSpec("StrReplaceFile", "Replace specific strings in a file.", StrReplaceFileInput, gated=True),
        ToolSpec("SearchWeb", "Search the web using the configured search service.", SearchWebInput),
        ToolSpec("FetchURL", "Fetch the contents of a URL.", FetchURLInput),
    )
}


def tool_definitions() -> list[dict[str, Any]]:
    return [spec.definition() for spec in TOOLS.values()]


def _describe(name: str, params: BaseModel) -> str:
    """One-line summary shown to the user when asking for approval."""
    if isinstance(params, ShellInput):
        return f"Run: {params.command}"
    if isinstance(params, WriteFileInput):
        return f"{params.mode.capitalize()} {params.path}"
    if isinstance(params, StrReplaceFileInput):
        return f"Edit {params.path} ({len(params.edits)} edit(s))"
    return name


class ToolExecutor:
    """
    Executes tool calls inside one working directory.

    Args:
        work_dir: Sandbox root for file and shell tools
        approvals: Gate consulted for WriteFile, StrReplaceFile and Shell
        auto_approve: Skip the gate entirely
        owner: Approval owner key (the session id of the requesting stream)
        config_path: Agent config holding the search/fetch service tables
        shell_timeout: Default Shell timeout when the call gives none
        auth_headers: Extra headers forwarded to external services
        client: httpx client for web tools (tests pass a mocked one)
    """

    def __init__(
        self,
        work_dir: str,
        approvals: ApprovalGate | None = None,
        auto_approve: bool = False,
        owner: str | None = None,
        config_path: Path | None = None,
        shell_timeout: int = 60,
        auth_headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.work_dir = work_dir
        self.approvals = approvals
        self.auto_approve = auto_approve
        self.owner = owner
        self.config_path = config_path
        self.shell_timeout = shell_timeout
        self.auth_headers = auth_headers
        self.client = client

        self._handlers: dict[str, Callable[[Any, str], Awaitable[ToolOutput]]] = {
            "ReadFile": self._read_file,
            "Shell": self._shell,
            "WriteFile": self._write_file,
            "StrReplaceFile": self._str_replace_file,
            "SearchWeb": self._search_web,
            "FetchURL": self._fetch_url,
        }

    async def _read_file(self, params: ReadFileInput, tool_call_id: str) -> ToolOutput:
        return read_file(self.work_dir, params)

    async def _write_file(self, params: WriteFileInput, tool_call_id: str) -> ToolOutput:
        return write_file(self.work_dir, params)

    async def _str_replace_file(self, params: StrReplaceFileInput, tool_call_id: str) -> ToolOutput:
        return str_replace_file(self.work_dir, params)

    async def _shell(self, params: ShellInput, tool_call_id: str) -> ToolOutput:
        return await run_shell(self.work_dir, params)

    async def _search_web(self, params: SearchWebInput, tool_call_id: str) -> ToolOutput:
        return await search_web(
            params, self.config_path, tool_call_id, self.auth_headers, client=self.client
        )

    async def _fetch_url(self, params: FetchURLInput, tool_call_id: str) -> ToolOutput:
        return await fetch_url(
            params, self.config_path, tool_call_id, self.auth_headers, client=self.client
        )

    def _parse(self, spec: ToolSpec, arguments: dict[str, Any] | str | None) -> BaseModel:
        if isinstance(arguments, str):
            arguments = json.loads(arguments) if arguments.strip() else {}
        args = dict(arguments or {})
        if spec.name == "Shell":
            args.setdefault("timeout", self.shell_timeout)
        return spec.input_model.model_validate(args)

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any] | str | None,
        tool_call_id: str = "",
    ) -> ToolOutput:
        """Validate, gate, and run one tool call. Never raises for tool failures."""
        spec = TOOLS.get(name)
        if spec is None:
            return ToolOutput.fail(f"Unknown tool: {name}")

        try:
            params = self._parse(spec, arguments)
        except (json.JSONDecodeError, ValidationError) as e:
            return ToolOutput.fail(f"Invalid arguments for {name}: {e}")

        if spec.gated and not self.auto_approve and self.approvals is not None:
            approved = await self.approvals.request(
                name,
                summary=_describe(name, params),
                owner=self.owner,
                arguments=params.model_dump(),
                request_id=tool_call_id or None,
            )
            if not approved:
                logger.info("%s call %s rejected", name, tool_call_id or "(no id)")
                return ToolOutput.fail(REJECTED)

        return await self._handlers[name](params, tool_call_id)
