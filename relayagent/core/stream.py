"""
Process stream controller.

One agent process per turn. A dedicated thread reads the child's stdout
line by line and hands each line to the event loop through a bounded
asyncio.Queue; the async side decodes lines into outward events and races
every read against the turn's cancellation future.

Turn lifecycle: spawned -> streaming -> completed | cancelled | failed.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import os
import shlex
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable

from relayagent.core.errors import RelayError, ResolutionError
from relayagent.core.wire import decode_line, terminal_event, to_stream_event
from relayagent.models.wire import StreamEvent, WireEvent

logger = logging.getLogger(__name__)

ENV_COMMAND = "KIMI_GUI_COMMAND"
CLI_NAMES = ("kimi", "kimi-cli")
INTERPRETER_NAMES = ("python3", "python")
CLI_MODULE = "kimi_cli"
MIN_RESUME_ID_LENGTH = 8
QUEUE_SIZE = 100
VERSION_TIMEOUT = 15

_EOF = object()

WireObserver = Callable[[WireEvent], None]


# =========================================================================
# Executable resolution
# =========================================================================


def find_cli(cli_path: str | None = None) -> str:
    """
    Locate the agent executable.

    Precedence: explicit path, then $KIMI_GUI_COMMAND (first word), then
    `kimi` / `kimi-cli` on PATH, then a Python interpreter.

    Raises:
        ResolutionError: If nothing usable is found
    """
    if cli_path:
        if Path(cli_path).exists():
            return cli_path
        raise ResolutionError(f"Configured CLI path not found: {cli_path}")

    env_command = os.environ.get(ENV_COMMAND)
    if env_command:
        try:
            parts = shlex.split(env_command)
        except ValueError:
            logger.warning("Ignoring unparseable %s: %r", ENV_COMMAND, env_command)
            parts = []
        if parts:
            return parts[0]

    for name in CLI_NAMES:
        found = shutil.which(name)
        if found:
            return found

    for name in INTERPRETER_NAMES:
        found = shutil.which(name)
        if found:
            return found

    raise ResolutionError("Kimi CLI not found. Please install kimi-cli or configure its path.")


def _is_interpreter(executable: str) -> bool:
    return Path(executable).name.lower().removesuffix(".exe") in INTERPRETER_NAMES


def base_command(executable: str) -> list[str]:
    """Interpreters run the agent as a module; anything else runs as-is."""
    if _is_interpreter(executable):
        return [executable, "-m", CLI_MODULE]
    return [executable]


def build_command(
    executable: str,
    prompt: str,
    work_dir: str,
    model: str | None = None,
    thinking: bool = False,
    session_id: str | None = None,
) -> list[str]:
    """Build the argv for one wire-mode turn."""
    cmd = base_command(executable)
    cmd += ["--wire", "--prompt", prompt, "--work-dir", work_dir]
    if model:
        cmd += ["--model", model]
    if thinking:
        cmd.append("--thinking")
    # Short ids are placeholders, not resumable sessions.
    if session_id and len(session_id) > MIN_RESUME_ID_LENGTH:
        cmd += ["--session", session_id]
    return cmd


def _run_version(cli_path: str | None) -> subprocess.CompletedProcess:
    executable = find_cli(cli_path)
    return subprocess.run(
        base_command(executable) + ["--version"],
        capture_output=True,
        text=True,
        timeout=VERSION_TIMEOUT,
    )


def check_cli_available(cli_path: str | None = None) -> bool:
    """True if the agent resolves and `--version` exits cleanly. Never raises."""
    try:
        return _run_version(cli_path).returncode == 0
    except (RelayError, OSError, subprocess.SubprocessError):
        return False


def get_cli_version(cli_path: str | None = None) -> str:
    """
    Version string reported by the agent.

    Raises:
        ResolutionError: If the agent cannot be found
        RelayError: If it cannot be run or reports an error
    """
    try:
        result = _run_version(cli_path)
    except (OSError, subprocess.SubprocessError) as e:
        raise RelayError(f"Failed to run CLI: {e}") from e
    if result.returncode != 0:
        raise RelayError(f"CLI error: {result.stderr.strip()}")
    return result.stdout.strip()


# =========================================================================
# Active stream registry
# =========================================================================


@dataclass
class StreamHandle:
    """One active turn: a numeric id and a single-use cancellation signal."""

    id: int
    session_id: str
    loop: asyncio.AbstractEventLoop
    cancel_signal: asyncio.Future = field(repr=False)

    def cancel(self) -> None:
        """Fire the cancellation signal. Safe from any thread; repeat calls are no-ops."""

        def _fire() -> None:
            if not self.cancel_signal.done():
                self.cancel_signal.set_result(None)

        try:
            self.loop.call_soon_threadsafe(_fire)
        except RuntimeError:
            logger.debug("Stream %d loop already closed", self.id)


class StreamRegistry:
    """Active streams by id, guarded by one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 1
        self._handles: dict[int, StreamHandle] = {}

    def register(self, session_id: str) -> StreamHandle:
        loop = asyncio.get_running_loop()
        with self._lock:
            handle = StreamHandle(
                id=self._next_id,
                session_id=session_id,
                loop=loop,
                cancel_signal=loop.create_future(),
            )
            self._next_id += 1
            self._handles[handle.id] = handle
        return handle

    def remove(self, handle_id: int) -> None:
        with self._lock:
            self._handles.pop(handle_id, None)

    def active(self) -> list[StreamHandle]:
        with self._lock:
            return list(self._handles.values())

    def cancel(self, session_id: str | None = None) -> int:
        """
        Cancel the streams for session_id, or every stream when it is None.

        Returns:
            Number of streams signalled
        """
        with self._lock:
            targets = [
                h for h in self._handles.values() if session_id is None or h.session_id == session_id
            ]
        for handle in targets:
            handle.cancel()
        return len(targets)

    def cancel_all(self) -> int:
        return self.cancel(None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


# =========================================================================
# Controller
# =========================================================================


def _pump_stdout(
    stdout,
    queue: asyncio.Queue,
    loop: asyncio.AbstractEventLoop,
    stop: threading.Event,
) -> None:
    """Reader thread: forward stdout lines into the queue until EOF or stop."""
    try:
        for raw in stdout:
            if stop.is_set():
                break
            line = raw.rstrip("\r\n")
            asyncio.run_coroutine_threadsafe(queue.put(line), loop).result()
        if not stop.is_set():
            asyncio.run_coroutine_threadsafe(queue.put(_EOF), loop).result()
    except (OSError, ValueError, RuntimeError, concurrent.futures.CancelledError) as e:
        # Pipe closed under us or the loop went away during cancellation.
        logger.debug("stdout reader stopped: %s", e)


def _drain_stderr(stderr, session_id: str) -> None:
    try:
        for raw in stderr:
            line = raw.rstrip()
            if line:
                logger.debug("[agent %s] %s", session_id[:8], line)
    except (OSError, ValueError):
        pass


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    try:
        proc.kill()
    except OSError as e:
        logger.debug("kill failed for pid %s: %s", proc.pid, e)


class StreamController:
    """
    Runs turns against the agent executable.

    Usage:
        handle = registry.register(session_id)
        async for event in controller.stream(handle, prompt, work_dir):
            ...
    """

    def __init__(
        self,
        cli_path: str | None = None,
        model: str | None = None,
        thinking: bool = False,
        queue_size: int = QUEUE_SIZE,
    ):
        self.cli_path = cli_path
        self.model = model
        self.thinking = thinking
        self.queue_size = queue_size

    def _spawn(self, handle: StreamHandle, prompt: str, work_dir: str) -> subprocess.Popen:
        executable = find_cli(self.cli_path)
        argv = build_command(
            executable,
            prompt,
            work_dir,
            model=self.model,
            thinking=self.thinking,
            session_id=handle.session_id,
        )
        logger.debug("Spawning agent for session %s: %s", handle.session_id, argv[:2])
        try:
            return subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ResolutionError(
                f"Failed to spawn CLI: {e}. Make sure kimi is installed."
            ) from e

    async def stream(
        self,
        handle: StreamHandle,
        prompt: str,
        work_dir: str,
        observer: WireObserver | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Run one turn and yield its outward events.

        Every decoded wire event is also passed to observer (if given)
        before translation. Ends with exactly one `done` or `cancelled`,
        or with a single `error` if the agent could not be started.
        """
        session_id = handle.session_id
        try:
            proc = self._spawn(handle, prompt, work_dir)
        except ResolutionError as e:
            logger.error("Cannot start agent: %s", e)
            yield StreamEvent(event="error", data={"session_id": session_id, "message": str(e)})
            return

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        stop = threading.Event()

        reader = threading.Thread(
            target=_pump_stdout, args=(proc.stdout, queue, loop, stop), daemon=True
        )
        stderr_reader = threading.Thread(
            target=_drain_stderr, args=(proc.stderr, session_id), daemon=True
        )
        reader.start()
        stderr_reader.start()

        ended = False
        get_task: asyncio.Future | None = None
        try:
            while True:
                get_task = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {get_task, handle.cancel_signal}, return_when=asyncio.FIRST_COMPLETED
                )

                if handle.cancel_signal in done:
                    _kill(proc)
                    logger.info("Stream %d for session %s cancelled", handle.id, session_id)
                    yield terminal_event("cancelled", session_id)
                    return

                item = get_task.result()
                if item is _EOF:
                    break

                event = decode_line(item)
                if event is None:
                    continue
                if observer is not None:
                    observer(event)
                outward = to_stream_event(event, session_id)
                if outward is not None:
                    yield outward

            ended = True
            yield terminal_event("done", session_id)
            # Exit status is not surfaced; just reap the child.
            await loop.run_in_executor(None, proc.wait)
        finally:
            if get_task is not None and not get_task.done():
                get_task.cancel()
            stop.set()
            if not ended:
                _kill(proc)
            # Free the reader if it is parked on a full queue.
            while not queue.empty():
                queue.get_nowait()
            if proc.returncode is None:
                try:
                    loop.run_in_executor(None, proc.wait)
                except RuntimeError:
                    logger.debug("Executor gone; pid %s left to the OS", proc.pid)
