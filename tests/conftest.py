"""
Pytest fixtures for relayagent tests.
"""

import json
import os
import sys
from pathlib import Path

import pytest

from relayagent.models.settings import BridgeSettings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Prevent environment variable pollution between tests.

    Executable resolution reads KIMI_GUI_COMMAND and settings read
    RELAYAGENT_* variables; a developer's shell must not leak into tests.
    """
    original_env = os.environ.copy()
    monkeypatch.delenv("KIMI_GUI_COMMAND", raising=False)
    for key in list(os.environ):
        if key.startswith("RELAYAGENT_"):
            monkeypatch.delenv(key, raising=False)
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def work_dir(tmp_path):
    """A working directory for tools and chat turns."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def share_dir(tmp_path):
    """An empty agent share directory."""
    path = tmp_path / "share"
    path.mkdir()
    return path


@pytest.fixture
def settings(share_dir):
    """Settings rooted in a temp share directory."""
    return BridgeSettings(share_dir=share_dir)


def write_agent_script(path: Path, lines: list, sleep: float = 0.0, version: str = "kimi 1.2.3") -> Path:
    """
    Write a fake wire-mode agent.

    It prints each entry of `lines` (dicts are JSON-encoded, strings are
    printed verbatim), then sleeps for `sleep` seconds. With --version it
    prints `version` and exits.
    """
    rendered = [json.dumps(line) if isinstance(line, dict) else line for line in lines]
    script = f"""#!{sys.executable}
import sys
import time

if "--version" in sys.argv:
    print({version!r})
    sys.exit(0)

for line in {rendered!r}:
    print(line, flush=True)
time.sleep({sleep!r})
"""
    path.write_text(script)
    path.chmod(0o755)
    return path


@pytest.fixture
def make_agent(tmp_path):
    """Factory for fake agent executables."""
    counter = {"n": 0}

    def _make(lines, sleep: float = 0.0, version: str = "kimi 1.2.3") -> Path:
        counter["n"] += 1
        return write_agent_script(tmp_path / f"agent_{counter['n']}", lines, sleep, version)

    return _make


@pytest.fixture
def wire_turn():
    """A typical single-turn wire transcript."""
    return [
        {"type": "turn_begin", "user_input": "hello there"},
        {"type": "step_begin", "n": 1},
        {"type": "text_part", "content": "Hi! "},
        {"type": "think_part", "think": "user greeted me"},
        {"type": "text_part", "content": "How can I help?"},
        {"type": "step_end"},
        {"type": "turn_end"},
    ]
