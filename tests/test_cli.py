"""Tests for the relayagent command line."""

import json
import sys

import pytest
from click.testing import CliRunner

from relayagent.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def settings_file(tmp_path, share_dir):
    path = tmp_path / "settings.yaml"
    path.write_text(f"share_dir: {share_dir}\n")
    return path


def invoke(runner, settings_file, *args):
    return runner.invoke(cli, ["--settings", str(settings_file), *args])


class TestRoot:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "sessions" in result.output

    def test_bad_settings(self, runner, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("nonsense_key: 1\n")
        result = runner.invoke(cli, ["--settings", str(path), "sessions", "list"])
        assert result.exit_code == 1


class TestSessionsCommands:
    def test_list_empty(self, runner, settings_file):
        result = invoke(runner, settings_file, "sessions", "list")
        assert result.exit_code == 0
        assert "No sessions found." in result.output

    def test_list_show_delete(self, runner, settings_file, share_dir):
        sessions = share_dir / "gui_sessions"
        sessions.mkdir()
        (sessions / "abc123.json").write_text(
            json.dumps({"id": "abc123", "title": "Fix tests", "work_dir": "/repo", "created_at": 1, "updated_at": 2})
        )
        (sessions / "abc123_messages.jsonl").write_text(
            json.dumps({"role": "user", "content": "please fix", "timestamp": 1}) + "\n"
        )

        listed = invoke(runner, settings_file, "sessions", "list")
        assert listed.exit_code == 0
        assert "abc123" in listed.output
        assert "Fix tests" in listed.output

        shown = invoke(runner, settings_file, "sessions", "show", "abc123", "--json")
        assert shown.exit_code == 0
        assert json.loads(shown.output)[0]["content"] == "please fix"

        deleted = invoke(runner, settings_file, "sessions", "delete", "abc123", "--yes")
        assert deleted.exit_code == 0
        assert not (sessions / "abc123.json").exists()


class TestToolCommand:
    def test_read_file(self, runner, settings_file, work_dir):
        (work_dir / "a.txt").write_text("hello\n")
        result = invoke(
            runner, settings_file, "tool", "ReadFile", '{"path": "a.txt"}', "--work-dir", str(work_dir)
        )
        assert result.exit_code == 0
        assert "1 lines read" in result.output
        assert "hello" in result.output

    def test_unknown_tool(self, runner, settings_file):
        result = invoke(runner, settings_file, "tool", "Nope")
        assert result.exit_code == 1

    def test_gated_tool_declined(self, runner, settings_file, work_dir):
        result = runner.invoke(
            cli,
            ["--settings", str(settings_file), "tool", "WriteFile",
             '{"path": "x.txt", "content": "x"}', "--work-dir", str(work_dir)],
            input="n\n",
        )
        assert result.exit_code == 1
        assert not (work_dir / "x.txt").exists()

    def test_gated_tool_with_yes(self, runner, settings_file, work_dir):
        result = invoke(
            runner, settings_file, "tool", "WriteFile", '{"path": "x.txt", "content": "x"}',
            "--work-dir", str(work_dir), "--yes",
        )
        assert result.exit_code == 0
        assert (work_dir / "x.txt").read_text() == "x"


@pytest.mark.skipif(sys.platform == "win32", reason="fake agents use a shebang")
class TestChatCommand:
    def test_streams_reply(self, runner, tmp_path, share_dir, make_agent, work_dir):
        agent = make_agent([{"type": "text_part", "content": "All good"}])
        path = tmp_path / "settings.yaml"
        path.write_text(f"share_dir: {share_dir}\ncli_path: {agent}\n")

        result = runner.invoke(
            cli, ["--settings", str(path), "chat", "status?", "-s", "session-xyz-0001", "-w", str(work_dir)]
        )

        assert result.exit_code == 0
        assert "All good" in result.output
        assert "session-xyz-0001" in result.output

    def test_missing_agent(self, runner, tmp_path, share_dir, work_dir):
        path = tmp_path / "settings.yaml"
        path.write_text(f"share_dir: {share_dir}\ncli_path: {tmp_path / 'missing'}\n")
        result = runner.invoke(cli, ["--settings", str(path), "chat", "hi", "-w", str(work_dir)])
        assert result.exit_code == 1


class TestDoctor:
    def test_reports_missing_agent(self, runner, tmp_path, share_dir):
        path = tmp_path / "settings.yaml"
        path.write_text(f"share_dir: {share_dir}\ncli_path: {tmp_path / 'missing'}\n")
        result = runner.invoke(cli, ["--settings", str(path), "doctor"])
        assert result.exit_code == 1
        assert "not found" in result.output
