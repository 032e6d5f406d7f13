"""
Session storage for conversation history.

Two independent backends, reconciled only when listing:

- GuiSessionStore: sessions created by this application. One metadata
  file and one append-only message log per session:
      <root>/<session_id>.json
      <root>/<session_id>_messages.jsonl
- CliTranscriptStore: sessions written by the agent CLI itself, discovered
  under a directory derived from a hash of the working directory:
      <share_dir>/sessions/<hash>[ or <kaos>_<hash>]/<session_id>/{context.jsonl, wire.jsonl}
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Iterable, Protocol

from pydantic import ValidationError

from relayagent.core.errors import InvalidSessionId, StorageError
from relayagent.core.transcript import load_wire_messages
from relayagent.core.wire import decode_line
from relayagent.models.session import (
    Message,
    Session,
    SessionMeta,
    SessionSummary,
    _now_ts,
    truncate_with_ellipsis,
)
from relayagent.models.wire import WireEventKind

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50
TITLE_SCAN_LINES = 50
LOCAL_KAOS = "local"


class SessionSource(Protocol):
    """Anything that can list sessions for a working directory."""

    def list_summaries(self, work_dir: str | None) -> list[SessionSummary]: ...


def _canonical(path: str) -> Path:
    try:
        return Path(path).resolve(strict=True)
    except (OSError, RuntimeError):
        return Path(path)


def same_work_dir(recorded: str, requested: str) -> bool:
    """Canonical path equality, or raw string equality for dirs that no longer resolve."""
    return recorded == requested or _canonical(recorded) == _canonical(requested)


def check_session_id(session_id: str) -> str:
    """
    Return session_id if it is a plain file name component.

    Raises:
        InvalidSessionId: For empty ids, `.`, `..`, or ids containing path
            separators or NUL
    """
    if (
        not session_id
        or session_id in (".", "..")
        or any(sep in session_id for sep in ("/", "\\", "\0"))
        or Path(session_id).name != session_id
    ):
        raise InvalidSessionId(f"Invalid session id: {session_id!r}")
    return session_id


class GuiSessionStore:
    """
    Session store owned by this application.

    Sessions are cached in memory once touched; the cache is the source of
    truth for a live process and the files are the source of truth across
    restarts.
    """

    def __init__(self, root: Path):
        """
        Initialize the store.

        Args:
            root: Directory holding the <id>.json / <id>_messages.jsonl files
        """
        self.root = root
        self._lock = threading.Lock()
        self._cache: dict[str, Session] = {}

    def _ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create session directory: {e}") from e

    def _meta_path(self, session_id: str) -> Path:
        return self.root / f"{check_session_id(session_id)}.json"

    def _messages_path(self, session_id: str) -> Path:
        return self.root / f"{check_session_id(session_id)}_messages.jsonl"

    def _write_meta(self, meta: SessionMeta) -> None:
        self._ensure_root()
        try:
            self._meta_path(meta.id).write_text(meta.model_dump_json(indent=2))
        except OSError as e:
            raise StorageError(f"Failed to write session file: {e}") from e

    def _read_messages(self, session_id: str) -> list[Message]:
        path = self._messages_path(session_id)
        if not path.exists():
            return []

        messages: list[Message] = []
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        messages.append(Message.model_validate_json(line))
                    except ValidationError:
                        logger.warning("Skipping unreadable message in %s", path)
        except OSError as e:
            raise StorageError(f"Failed to read session messages: {e}") from e
        return messages

    def _read_session(self, session_id: str) -> Session | None:
        path = self._meta_path(session_id)
        if not path.exists():
            return None
        try:
            meta = SessionMeta.model_validate_json(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StorageError(f"Failed to read session file: {e}") from e
        except ValidationError:
            logger.warning("Skipping unreadable session file %s", path)
            return None
        return Session(meta=meta, messages=self._read_messages(meta.id))

    def get_or_create(self, session_id: str, title: str, work_dir: str) -> Session:
        """
        Return the session for session_id, creating and persisting it if new.

        Title and work_dir are fixed at creation; later calls ignore them.
        """
        with self._lock:
            cached = self._cache.get(session_id)
            if cached is not None:
                return cached

            session = self._read_session(session_id)
            if session is None:
                session = Session(meta=SessionMeta(id=session_id, title=title, work_dir=work_dir))
                self._write_meta(session.meta)
                logger.debug("Created session %s", session_id)

            self._cache[session_id] = session
            return session

    def get(self, session_id: str) -> Session | None:
        """Cached session, else the on-disk record, else None."""
        with self._lock:
            cached = self._cache.get(session_id)
            if cached is not None:
                return cached
            session = self._read_session(session_id)
            if session is not None:
                self._cache[session_id] = session
            return session

    def save_message(self, session_id: str, message: Message) -> None:
        """Append one message to the session's log file."""
        self._ensure_root()
        try:
            with open(self._messages_path(session_id), "a", encoding="utf-8") as f:
                f.write(message.model_dump_json() + "\n")
        except OSError as e:
            raise StorageError(f"Failed to write message: {e}") from e

    def add_message(self, session_id: str, message: Message) -> None:
        """
        Persist a message and record it on the cached session.

        The message log is append-only; the metadata file is rewritten to
        carry the new updated_at.
        """
        with self._lock:
            self.save_message(session_id, message)
            session = self._cache.get(session_id)
            if session is None:
                return
            session.messages.append(message)
            session.meta.updated_at = _now_ts()
            self._write_meta(session.meta)

    def touch(self, session_id: str) -> None:
        """Bump updated_at on a known session."""
        with self._lock:
            session = self._cache.get(session_id)
            if session is None:
                return
            session.meta.updated_at = _now_ts()
            self._write_meta(session.meta)

    def load_all(self) -> list[Session]:
        """Every session on disk, merged into the cache (cached copies win)."""
        if not self.root.exists():
            return []

        sessions: list[Session] = []
        with self._lock:
            for path in sorted(self.root.glob("*.json")):
                session_id = path.stem
                try:
                    check_session_id(session_id)
                except InvalidSessionId:
                    logger.warning("Skipping session file with unusable name %s", path)
                    continue
                cached = self._cache.get(session_id)
                if cached is not None:
                    sessions.append(cached)
                    continue
                session = self._read_session(session_id)
                if session is None:
                    continue
                self._cache[session_id] = session
                sessions.append(session)
        return sessions

    def list_summaries(self, work_dir: str | None = None) -> list[SessionSummary]:
        summaries = []
        for session in self.load_all():
            meta = session.meta
            if work_dir is not None and not same_work_dir(meta.work_dir, work_dir):
                continue
            summaries.append(
                SessionSummary(
                    id=meta.id,
                    title=meta.title,
                    updated_at=float(meta.updated_at),
                    work_dir=meta.work_dir,
                    source="gui",
                )
            )
        return summaries

    def delete(self, session_id: str) -> bool:
        """Remove a session's files and cache entry. Returns True if anything existed."""
        check_session_id(session_id)
        with self._lock:
            existed = self._cache.pop(session_id, None) is not None
            for path in (self._meta_path(session_id), self._messages_path(session_id)):
                if not path.exists():
                    continue
                try:
                    path.unlink()
                except OSError as e:
                    raise StorageError(f"Failed to delete {path.name}: {e}") from e
                existed = True
        return existed


class CliTranscriptStore:
    """
    Read-side adapter for sessions the agent CLI writes itself.

    Sessions are never created here. The CLI records every working
    directory it has seen in its metadata file ({"work_dirs": [{"path",
    "kaos"}]}); transcripts live under a directory named after the md5 of
    the working-directory string.
    """

    def __init__(self, share_dir: Path, metadata_path: Path | None = None):
        self.share_dir = share_dir
        self.metadata_path = metadata_path or share_dir / "kimi.json"

    @staticmethod
    def work_dir_hash(work_dir: str) -> str:
        return hashlib.md5(work_dir.encode("utf-8")).hexdigest()

    def sessions_dir(self, work_dir: str, kaos: str = LOCAL_KAOS) -> Path:
        digest = self.work_dir_hash(work_dir)
        name = digest if kaos == LOCAL_KAOS else f"{kaos}_{digest}"
        return self.share_dir / "sessions" / name

    def _work_dirs(self) -> list[dict]:
        if not self.metadata_path.exists():
            return []
        try:
            data = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StorageError(f"Failed to read metadata: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(f"Failed to parse metadata: {e}") from e
        entries = data.get("work_dirs") if isinstance(data, dict) else None
        return [e for e in entries or [] if isinstance(e, dict)]

    def _kaos_for(self, work_dir: str) -> str | None:
        for entry in self._work_dirs():
            if entry.get("path") == work_dir:
                kaos = entry.get("kaos")
                return kaos if isinstance(kaos, str) else LOCAL_KAOS
        return None

    def session_dir(self, work_dir: str, session_id: str) -> Path:
        kaos = self._kaos_for(work_dir) or LOCAL_KAOS
        return self.sessions_dir(work_dir, kaos) / check_session_id(session_id)

    @staticmethod
    def extract_title(wire_file: Path) -> str | None:
        """First turn's user input from the head of a wire log, truncated."""
        if not wire_file.exists():
            return None
        try:
            with open(wire_file, encoding="utf-8", errors="replace") as f:
                for index, line in enumerate(f):
                    if index >= TITLE_SCAN_LINES:
                        break
                    event = decode_line(line.rstrip("\r\n"))
                    if event is None or event.kind != WireEventKind.TURN_BEGIN:
                        continue
                    if isinstance(event.payload.get("user_input"), str):
                        return truncate_with_ellipsis(event.user_input, TITLE_MAX_CHARS)
        except OSError:
            logger.debug("Could not read %s for a title", wire_file)
        return None

    def list_summaries(self, work_dir: str | None) -> list[SessionSummary]:
        """
        Sessions recorded for exactly this work_dir string.

        No work_dir means no CLI sessions: they are only meaningful per directory.
        """
        if work_dir is None:
            return []
        kaos = self._kaos_for(work_dir)
        if kaos is None:
            return []

        root = self.sessions_dir(work_dir, kaos)
        if not root.is_dir():
            return []

        summaries = []
        for entry in root.iterdir():
            if not entry.is_dir():
                continue
            context_file = entry / "context.jsonl"
            if not context_file.exists():
                continue
            try:
                updated_at = context_file.stat().st_mtime
            except OSError:
                updated_at = 0.0
            session_id = entry.name
            title = self.extract_title(entry / "wire.jsonl") or f"Session {session_id[:8]}"
            summaries.append(
                SessionSummary(
                    id=session_id,
                    title=title,
                    updated_at=updated_at,
                    work_dir=work_dir,
                    source="cli",
                )
            )
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def load_messages(self, work_dir: str, session_id: str) -> list[Message]:
        wire_file = self.session_dir(work_dir, session_id) / "wire.jsonl"
        if not wire_file.exists():
            return []
        try:
            return load_wire_messages(wire_file)
        except OSError as e:
            raise StorageError(f"Failed to read wire file: {e}") from e

    def delete(self, work_dir: str, session_id: str) -> bool:
        path = self.session_dir(work_dir, session_id)
        if path.parent != self.sessions_dir(work_dir, self._kaos_for(work_dir) or LOCAL_KAOS):
            raise InvalidSessionId(f"Invalid session id: {session_id!r}")
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StorageError(f"Failed to delete CLI session directory: {e}") from e
        return True


def merge_summaries(*sources: Iterable[SessionSummary]) -> list[SessionSummary]:
    """Most recently updated first; a repeated id keeps its first occurrence."""
    combined = [s for source in sources for s in source]
    combined.sort(key=lambda s: s.updated_at, reverse=True)

    seen: set[str] = set()
    unique = []
    for summary in combined:
        if summary.id in seen:
            continue
        seen.add(summary.id)
        unique.append(summary)
    return unique


class SessionCatalog:
    """Single entry point over both session backends."""

    def __init__(self, gui: GuiSessionStore, cli: CliTranscriptStore):
        self.gui = gui
        self.cli = cli

    @classmethod
    def from_settings(cls, settings) -> "SessionCatalog":
        return cls(
            GuiSessionStore(settings.sessions_root),
            CliTranscriptStore(settings.share_dir, settings.metadata_path),
        )

    @property
    def sources(self) -> list[SessionSource]:
        # CLI first so that, at equal updated_at, its entry is the one kept.
        return [self.cli, self.gui]

    def list_sessions(self, work_dir: str | None = None) -> list[SessionSummary]:
        return merge_summaries(*(source.list_summaries(work_dir) for source in self.sources))

    def messages(self, work_dir: str, session_id: str) -> list[Message]:
        """GUI cache, then GUI files, then the CLI transcript."""
        session = self.gui.get(session_id)
        if session is not None:
            return list(session.messages)
        return self.cli.load_messages(work_dir, session_id)

    def delete(self, work_dir: str, session_id: str) -> None:
        self.gui.delete(session_id)
        self.cli.delete(work_dir, session_id)
