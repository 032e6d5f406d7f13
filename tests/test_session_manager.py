"""
Tests for session storage: the GUI store, the CLI transcript adapter and
the merged catalog.
"""

import hashlib
import json
import os
from pathlib import Path

import pytest

from relayagent.core.errors import InvalidSessionId, StorageError
from relayagent.core.session_manager import (
    CliTranscriptStore,
    GuiSessionStore,
    SessionCatalog,
    check_session_id,
    merge_summaries,
    same_work_dir,
)
from relayagent.models.session import Message, SessionSummary


@pytest.fixture
def gui(tmp_path):
    return GuiSessionStore(tmp_path / "gui_sessions")


@pytest.fixture
def cli_store(share_dir):
    return CliTranscriptStore(share_dir)


def register_work_dir(share_dir: Path, work_dir: str, kaos: str = "local") -> None:
    """Record work_dir in the agent's metadata file."""
    meta_path = share_dir / "kimi.json"
    data = json.loads(meta_path.read_text()) if meta_path.exists() else {"work_dirs": []}
    data["work_dirs"].append({"path": work_dir, "kaos": kaos})
    meta_path.write_text(json.dumps(data))


def make_cli_session(
    share_dir: Path,
    work_dir: str,
    session_id: str,
    wire_records: list | None = None,
    mtime: float | None = None,
    kaos: str = "local",
) -> Path:
    """Lay out a CLI session directory the way the agent writes it."""
    digest = hashlib.md5(work_dir.encode()).hexdigest()
    name = digest if kaos == "local" else f"{kaos}_{digest}"
    session_dir = share_dir / "sessions" / name / session_id
    session_dir.mkdir(parents=True)
    context = session_dir / "context.jsonl"
    context.write_text("{}\n")
    if wire_records is not None:
        (session_dir / "wire.jsonl").write_text(
            "".join(json.dumps(r) + "\n" for r in wire_records)
        )
    if mtime is not None:
        os.utime(context, (mtime, mtime))
    return session_dir


# =========================================================================
# GUI store
# =========================================================================


class TestGuiSessionStore:
    def test_get_or_create_persists(self, gui):
        session = gui.get_or_create("s1", "First question", "/repo")

        assert session.meta.title == "First question"
        assert (gui.root / "s1.json").exists()

        # A fresh store reads the same record back
        reloaded = GuiSessionStore(gui.root).get("s1")
        assert reloaded.meta.title == "First question"
        assert reloaded.meta.work_dir == "/repo"

    def test_title_fixed_at_creation(self, gui):
        gui.get_or_create("s1", "original", "/repo")
        assert gui.get_or_create("s1", "changed", "/other").meta.title == "original"

    def test_add_message_appends_and_updates(self, gui):
        gui.get_or_create("s1", "t", "/repo")
        gui.add_message("s1", Message(role="user", content="hi", timestamp=1))
        gui.add_message("s1", Message(role="assistant", content="hello", timestamp=2))

        log = (gui.root / "s1_messages.jsonl").read_text().splitlines()
        assert len(log) == 2
        assert json.loads(log[0])["content"] == "hi"

        reloaded = GuiSessionStore(gui.root).get("s1")
        assert [m.content for m in reloaded.messages] == ["hi", "hello"]

    def test_add_message_to_uncached_session_still_writes(self, gui):
        gui.add_message("orphan", Message(role="user", content="x"))
        assert (gui.root / "orphan_messages.jsonl").exists()

    def test_unreadable_lines_are_skipped(self, gui):
        gui.get_or_create("s1", "t", "/repo")
        gui.save_message("s1", Message(role="user", content="ok"))
        with open(gui.root / "s1_messages.jsonl", "a") as f:
            f.write("garbage\n")

        reloaded = GuiSessionStore(gui.root).get("s1")
        assert [m.content for m in reloaded.messages] == ["ok"]

    def test_get_unknown(self, gui):
        assert gui.get("missing") is None

    def test_list_summaries_filters_by_work_dir(self, gui, tmp_path):
        a = tmp_path / "a"
        a.mkdir()
        gui.get_or_create("s1", "in a", str(a))
        gui.get_or_create("s2", "elsewhere", "/somewhere/else")

        assert {s.id for s in gui.list_summaries()} == {"s1", "s2"}
        only_a = gui.list_summaries(str(a) + "/")
        assert [s.id for s in only_a] == ["s1"]
        assert only_a[0].source == "gui"

    def test_delete(self, gui):
        gui.get_or_create("s1", "t", "/repo")
        gui.add_message("s1", Message(role="user", content="x"))

        assert gui.delete("s1") is True
        assert not (gui.root / "s1.json").exists()
        assert not (gui.root / "s1_messages.jsonl").exists()
        assert gui.get("s1") is None
        assert gui.delete("s1") is False

    def test_unwritable_root(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = GuiSessionStore(blocker / "sessions")
        with pytest.raises(StorageError):
            store.get_or_create("s1", "t", "/repo")


# =========================================================================
# CLI transcripts
# =========================================================================


class TestCliTranscriptStore:
    def test_sessions_dir_layout(self, cli_store, share_dir):
        digest = hashlib.md5(b"/repo").hexdigest()
        assert cli_store.sessions_dir("/repo") == share_dir / "sessions" / digest
        assert cli_store.sessions_dir("/repo", "ssh") == share_dir / "sessions" / f"ssh_{digest}"

    def test_lists_sessions_with_titles(self, cli_store, share_dir, wire_turn):
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/repo", "aaaa1111bbbb", wire_turn, mtime=1000)
        make_cli_session(share_dir, "/repo", "cccc2222dddd", [], mtime=2000)

        summaries = cli_store.list_summaries("/repo")

        assert [s.id for s in summaries] == ["cccc2222dddd", "aaaa1111bbbb"]
        assert summaries[0].title == "Session cccc2222"
        assert summaries[1].title == "hello there"
        assert summaries[1].updated_at == 1000
        assert all(s.source == "cli" for s in summaries)

    def test_long_title_is_truncated(self, cli_store, share_dir):
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/repo", "s1", [{"type": "TurnBegin", "user_input": "x" * 80}])
        title = cli_store.list_summaries("/repo")[0].title
        assert len(title) == 50
        assert title.endswith("...")

    def test_requires_context_file(self, cli_store, share_dir):
        register_work_dir(share_dir, "/repo")
        session_dir = make_cli_session(share_dir, "/repo", "s1")
        (session_dir / "context.jsonl").unlink()
        assert cli_store.list_summaries("/repo") == []

    def test_unknown_work_dir(self, cli_store, share_dir):
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/other", "s1")
        assert cli_store.list_summaries("/other") == []
        assert cli_store.list_summaries(None) == []

    def test_kaos_prefix(self, cli_store, share_dir):
        register_work_dir(share_dir, "/remote", kaos="ssh")
        make_cli_session(share_dir, "/remote", "s1", kaos="ssh")
        assert [s.id for s in cli_store.list_summaries("/remote")] == ["s1"]

    def test_bad_metadata(self, cli_store, share_dir):
        (share_dir / "kimi.json").write_text("{not json")
        with pytest.raises(StorageError):
            cli_store.list_summaries("/repo")

    def test_load_messages(self, cli_store, share_dir, wire_turn):
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/repo", "s1", wire_turn)

        messages = cli_store.load_messages("/repo", "s1")

        assert [(m.role, m.content) for m in messages] == [
            ("user", "hello there"),
            ("assistant", "Hi! How can I help?"),
        ]

    def test_load_messages_missing(self, cli_store):
        assert cli_store.load_messages("/repo", "nope") == []

    def test_delete(self, cli_store, share_dir):
        register_work_dir(share_dir, "/repo")
        session_dir = make_cli_session(share_dir, "/repo", "s1")
        assert cli_store.delete("/repo", "s1") is True
        assert not session_dir.exists()
        assert cli_store.delete("/repo", "s1") is False


# =========================================================================
# Merging
# =========================================================================


def _summary(id, updated_at, source):
    return SessionSummary(id=id, title=id, updated_at=updated_at, work_dir="/repo", source=source)


class TestMergeSummaries:
    def test_sorted_newest_first_and_deduplicated(self):
        cli = [_summary("shared", 200, "cli")]
        gui = [_summary("shared", 100, "gui"), _summary("newer", 300, "gui")]

        merged = merge_summaries(cli, gui)

        assert [(s.id, s.source) for s in merged] == [("newer", "gui"), ("shared", "cli")]

    def test_tie_keeps_first_source(self):
        merged = merge_summaries([_summary("x", 100, "cli")], [_summary("x", 100, "gui")])
        assert [s.source for s in merged] == ["cli"]

    def test_empty(self):
        assert merge_summaries([], []) == []


class TestSessionCatalog:
    def test_lists_both_backends(self, settings, share_dir, work_dir, wire_turn):
        catalog = SessionCatalog.from_settings(settings)
        wd = str(work_dir)
        register_work_dir(share_dir, wd)
        make_cli_session(share_dir, wd, "cli-session-1", wire_turn, mtime=1)
        catalog.gui.get_or_create("gui-session-1", "from gui", wd)

        ids = [s.id for s in catalog.list_sessions(wd)]

        assert ids == ["gui-session-1", "cli-session-1"]

    def test_without_work_dir_lists_gui_only(self, settings, share_dir, work_dir):
        catalog = SessionCatalog.from_settings(settings)
        register_work_dir(share_dir, str(work_dir))
        make_cli_session(share_dir, str(work_dir), "cli-only")
        catalog.gui.get_or_create("gui-only", "t", str(work_dir))

        assert [s.id for s in catalog.list_sessions()] == ["gui-only"]

    def test_messages_prefers_gui(self, settings, share_dir, wire_turn):
        catalog = SessionCatalog.from_settings(settings)
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/repo", "s1", wire_turn)
        catalog.gui.get_or_create("s1", "t", "/repo")
        catalog.gui.add_message("s1", Message(role="user", content="gui copy"))

        assert [m.content for m in catalog.messages("/repo", "s1")] == ["gui copy"]

    def test_messages_falls_back_to_cli(self, settings, share_dir, wire_turn):
        catalog = SessionCatalog.from_settings(settings)
        register_work_dir(share_dir, "/repo")
        make_cli_session(share_dir, "/repo", "s1", wire_turn)

        assert len(catalog.messages("/repo", "s1")) == 2

    def test_delete_removes_from_both(self, settings, share_dir):
        catalog = SessionCatalog.from_settings(settings)
        register_work_dir(share_dir, "/repo")
        session_dir = make_cli_session(share_dir, "/repo", "s1")
        catalog.gui.get_or_create("s1", "t", "/repo")

        catalog.delete("/repo", "s1")

        assert catalog.gui.get("s1") is None
        assert not session_dir.exists()


def test_same_work_dir(tmp_path):
    assert same_work_dir(str(tmp_path), str(tmp_path / "."))
    assert same_work_dir("/gone/away", "/gone/away")
    assert not same_work_dir(str(tmp_path), "/gone/away")


# =========================================================================
# Session id checks
# =========================================================================

BAD_IDS = ["", ".", "..", "../../escaped", "a/b", "a\\b", "nul\0byte", "/abs"]


class TestSessionIdChecks:
    @pytest.mark.parametrize("session_id", ["3f2a9c1e-0000-4000-8000-000000000001", "abc123", "a.b"])
    def test_plain_ids_accepted(self, session_id):
        assert check_session_id(session_id) == session_id

    @pytest.mark.parametrize("session_id", BAD_IDS)
    def test_bad_ids_rejected(self, session_id):
        with pytest.raises(InvalidSessionId):
            check_session_id(session_id)

    def test_invalid_id_is_a_storage_error(self):
        with pytest.raises(StorageError):
            check_session_id("..")

    @pytest.mark.parametrize("session_id", BAD_IDS)
    def test_gui_store_never_writes_outside_root(self, gui, tmp_path, session_id):
        with pytest.raises(InvalidSessionId):
            gui.get_or_create(session_id, "t", "/repo")
        with pytest.raises(InvalidSessionId):
            gui.add_message(session_id, Message(role="user", content="x"))

        assert not (tmp_path.parent / "escaped.json").exists()
        assert not (tmp_path.parent / "escaped_messages.jsonl").exists()
        assert not gui.root.exists() or list(gui.root.iterdir()) == []

    def test_gui_delete_rejects_traversal(self, gui):
        gui.get_or_create("keep", "t", "/repo")
        with pytest.raises(InvalidSessionId):
            gui.delete("..")
        assert (gui.root / "keep.json").exists()

    def test_gui_listing_skips_unusable_file_names(self, gui):
        gui.get_or_create("good", "t", "/repo")
        (gui.root / "..json").write_text("{}")
        assert [s.id for s in GuiSessionStore(gui.root).list_summaries()] == ["good"]

    def test_cli_delete_dotdot_keeps_other_work_dirs(self, settings, share_dir):
        catalog = SessionCatalog.from_settings(settings)
        register_work_dir(share_dir, "/some/project")
        register_work_dir(share_dir, "/other/project")
        mine = make_cli_session(share_dir, "/some/project", "s1")
        other = make_cli_session(share_dir, "/other/project", "s2")

        with pytest.raises(InvalidSessionId):
            catalog.delete("/some/project", "..")
        with pytest.raises(InvalidSessionId):
            catalog.cli.delete("/some/project", "..")

        assert mine.exists()
        assert other.exists()
        assert [s.id for s in catalog.cli.list_summaries("/other/project")] == ["s2"]

    def test_cli_load_messages_rejects_traversal(self, cli_store, share_dir):
        register_work_dir(share_dir, "/repo")
        with pytest.raises(InvalidSessionId):
            cli_store.load_messages("/repo", "../..")
