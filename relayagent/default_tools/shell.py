"""
Shell command tool.

Commands run through the user's login shell ($SHELL -lc, or cmd /C on
Windows) in the working directory, with the user's full environment.
The child gets its own process group so a timeout kills everything it
started.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from pydantic import BaseModel, Field

from relayagent.core.errors import ShellTimeout
from relayagent.core.truncation import append_truncation, truncate_output
from relayagent.models.tool_output import ToolOutput

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
DEFAULT_SHELL = "/bin/bash"


class ShellInput(BaseModel):
    """Input for run_shell."""

    command: str = Field(description="Shell command to execute")
    timeout: int = Field(default=DEFAULT_TIMEOUT, ge=1, description="Timeout in seconds")


def shell_command(command: str) -> list[str]:
    """argv that runs command through the platform shell."""
    if sys.platform == "win32":
        return ["cmd", "/C", command]
    return [os.environ.get("SHELL") or DEFAULT_SHELL, "-lc", command]


def _combine(stdout: bytes, stderr: bytes) -> str:
    out = stdout.decode("utf-8", errors="replace")
    err = stderr.decode("utf-8", errors="replace")
    if out and err and not out.endswith("\n"):
        out += "\n"
    return out + err


async def _kill_group(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        if sys.platform == "win32":
            process.kill()
        else:
            os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def _communicate(process: asyncio.subprocess.Process, timeout: float) -> tuple[bytes, bytes]:
    """Collect output, killing the process group on timeout or cancellation."""
    try:
        return await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.info("Shell command timed out after %ss, killing pid %s", timeout, process.pid)
        await _kill_group(process)
        raise ShellTimeout(f"Command timed out after {timeout} seconds.") from None
    except asyncio.CancelledError:
        await _kill_group(process)
        raise


async def run_shell(work_dir: str, input: ShellInput) -> ToolOutput:
    """
    Run a command and report its combined stdout/stderr.

    Output passes through truncation whatever the exit status; a timeout
    discards partial output.

    Examples:
        >>> await run_shell("/repo", ShellInput(command="git status"))
        >>> await run_shell("/repo", ShellInput(command="make test", timeout=300))
    """
    if not input.command.strip():
        return ToolOutput.fail("Command cannot be empty")

    try:
        process = await asyncio.create_subprocess_exec(
            *shell_command(input.command),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=work_dir,
            start_new_session=sys.platform != "win32",
        )
    except OSError as e:
        return ToolOutput.fail(f"Failed to execute command: {e}")

    try:
        stdout, stderr = await _communicate(process, input.timeout)
    except ShellTimeout as e:
        return ToolOutput.fail(str(e))

    output, truncated = truncate_output(_combine(stdout, stderr))
    if process.returncode == 0:
        return ToolOutput.success(append_truncation("Command executed successfully.", truncated), output)
    return ToolOutput.fail(
        append_truncation(f"Command failed with exit code {process.returncode}.", truncated), output
    )
